"""Direct USB transport for FTDI bridge chips, built on pyftdi.

Talks to the chip through libusb (via pyusb), bypassing any virtual COM
port driver. pyftdi exceptions are converted to TransportFault codes:

    -3    no device matches the descriptor
    -4    the device was found but could not be opened
    -666  the device is not open / went away
    -1    any other failure
"""
from __future__ import annotations

import errno
import logging
from typing import Optional

from pyftdi.ftdi import Ftdi, FtdiError
from pyftdi.usbtools import UsbToolsError
from usb.core import USBError

from .base import (
    FAULT_GENERIC,
    FAULT_NOT_FOUND,
    FAULT_OPEN_FAILED,
    FlowControl,
    Parity,
    Transport,
    TransportFault,
)

logger = logging.getLogger(__name__)

# Chip id lives in EEPROM words 0x43 and 0x44 of FT232R-type chips
CHIPID_EEPROM_ADDR = 0x43 * 2
CHIPID_XOR = 0xA5F0F7D1
CHIPID_IC_NAMES = ("ft232r",)

_FLOW_CONTROL = {
    FlowControl.DISABLED: "",
    FlowControl.RTS_CTS: "hw",
    FlowControl.XON_XOFF: "sw",
}


def _chipid_shift(value: int) -> int:
    return (
        ((value & 1) << 1)
        | ((value & 2) << 5)
        | ((value & 4) >> 2)
        | ((value & 8) << 4)
        | ((value & 16) >> 1)
        | ((value & 32) >> 1)
        | ((value & 64) >> 4)
        | ((value & 128) >> 2)
    )


def chipid_from_eeprom(raw: bytes) -> int:
    """Compute the FT232R chip id from the 4 EEPROM bytes at words 0x43-0x44.

    Same scrambling as libftdi's ftdi_read_chipid.
    """
    if len(raw) != 4:
        raise ValueError(f"Chip id needs 4 EEPROM bytes, got {len(raw)}")
    a = int.from_bytes(raw, "big")
    a = (
        _chipid_shift(a)
        | _chipid_shift(a >> 8) << 8
        | _chipid_shift(a >> 16) << 16
        | _chipid_shift(a >> 24) << 24
    )
    return a ^ CHIPID_XOR


def _fault(exc: Exception, default: int = FAULT_GENERIC) -> TransportFault:
    if isinstance(exc, USBError) and exc.errno == errno.ENODEV:
        return TransportFault.unavailable(str(exc))
    return TransportFault(default, str(exc))


class FtdiTransport(Transport):
    """Transport driving an FTDI chip with pyftdi.

    Usage::

        transport = FtdiTransport()
        transport.open(0x0403, 0xFAF0, "29252712")
        transport.write(frame)
        data = transport.read(256)
        transport.close()
    """

    def __init__(self, interface: int = 1, ftdi: Optional[Ftdi] = None):
        """Initialize FtdiTransport.

        Args:
            interface: FTDI interface (port) number, 1 for single-port chips
            ftdi: Existing Ftdi instance, or None to create new
        """
        self._interface = interface
        self._ftdi = ftdi or Ftdi()
        self._opened = False

    @property
    def ftdi(self) -> Ftdi:
        """The underlying pyftdi device, for calls this class does not wrap."""
        return self._ftdi

    def open(self, vendor_id: int, product_id: int, serial: str) -> None:
        try:
            self._ftdi.open(
                vendor_id,
                product_id,
                serial=serial or None,
                interface=self._interface,
            )
        except UsbToolsError as e:
            raise TransportFault(FAULT_NOT_FOUND, f"unable to find device: {e}") from e
        except (FtdiError, USBError, ValueError, OSError) as e:
            raise TransportFault(FAULT_OPEN_FAILED, f"unable to open device: {e}") from e
        self._opened = True
        logger.debug("Opened FTDI device %04x:%04x serial=%s", vendor_id, product_id, serial)

    def close(self) -> None:
        if not self._opened:
            return
        try:
            self._ftdi.close()
        except (FtdiError, USBError) as e:
            raise _fault(e) from e
        finally:
            self._opened = False

    def read_chipid(self) -> int:
        self._require_open()
        try:
            if self._ftdi.ic_name not in CHIPID_IC_NAMES:
                raise TransportFault(FAULT_GENERIC, f"chip id not available on {self._ftdi.ic_name}")
            raw = self._ftdi.read_eeprom(CHIPID_EEPROM_ADDR, 4)
        except (FtdiError, USBError, ValueError) as e:
            raise _fault(e) from e
        return chipid_from_eeprom(bytes(raw))

    def set_baudrate(self, baudrate: int) -> None:
        self._call(self._ftdi.set_baudrate, baudrate)

    def set_line_property(self, bits: int, stopbits: int, parity: Parity) -> None:
        self._call(self._ftdi.set_line_property, bits, stopbits, parity.value)

    def flush(self) -> None:
        self._call(self._ftdi.purge_buffers)

    def reset(self) -> None:
        self._call(self._ftdi.reset)

    def set_flow_control(self, flow: FlowControl) -> None:
        if flow not in _FLOW_CONTROL:
            raise TransportFault(FAULT_GENERIC, f"flow control {flow.name} not supported")
        self._call(self._ftdi.set_flowctrl, _FLOW_CONTROL[flow])

    def set_rts(self, state: bool) -> None:
        self._call(self._ftdi.set_rts, state)

    def write(self, data: bytes) -> int:
        return self._call(self._ftdi.write_data, data)

    def read(self, size: int) -> bytes:
        return bytes(self._call(self._ftdi.read_data, size))

    def _require_open(self) -> None:
        if not self._opened:
            raise TransportFault.unavailable("device not open")

    def _call(self, fn, *args):
        self._require_open()
        try:
            return fn(*args)
        except (FtdiError, USBError, ValueError) as e:
            raise _fault(e) from e
