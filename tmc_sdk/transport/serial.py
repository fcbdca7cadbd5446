"""Virtual COM port transport for FTDI bridge chips, built on pyserial.

Use this when the operating system's FTDI VCP driver owns the device
(the usual situation on Windows) and direct USB access is not possible.
The port is located by matching the USB descriptor reported by pyserial.

The VCP driver hides some chip-level operations:
- the chip id cannot be read and is reported as 0
- flush and reset both purge the driver buffers
"""
from __future__ import annotations

import logging
from typing import Optional

import serial
from serial.tools import list_ports

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

READ_TIMEOUT = 0.01  # seconds
WRITE_TIMEOUT = 1.0  # seconds

_PARITY = {
    Parity.NONE: serial.PARITY_NONE,
    Parity.ODD: serial.PARITY_ODD,
    Parity.EVEN: serial.PARITY_EVEN,
    Parity.MARK: serial.PARITY_MARK,
    Parity.SPACE: serial.PARITY_SPACE,
}

_STOPBITS = {
    1: serial.STOPBITS_ONE,
    2: serial.STOPBITS_TWO,
}


def is_matching_port(port, vendor_id: int, product_id: int, serial_number: str) -> bool:
    """Decide whether a pyserial ListPortInfo describes the device.

    An empty serial number matches any serial.
    """
    if port.vid != vendor_id or port.pid != product_id:
        return False
    if serial_number and port.serial_number != serial_number:
        return False
    return True


def find_port(vendor_id: int, product_id: int, serial_number: str) -> str:
    """Return the device name of the first port matching the descriptor.

    Raises:
        TransportFault: If no port matches.
    """
    for port in list_ports.comports():
        if is_matching_port(port, vendor_id, product_id, serial_number):
            return port.device
    raise TransportFault(
        FAULT_NOT_FOUND,
        f"no serial port for {vendor_id:04x}:{product_id:04x} serial={serial_number!r}",
    )


class SerialTransport(Transport):
    """Transport using the FTDI virtual COM port through pyserial."""

    def __init__(self, port: Optional[str] = None,
                 timeout: float = READ_TIMEOUT,
                 write_timeout: float = WRITE_TIMEOUT):
        """Initialize SerialTransport.

        Args:
            port: Serial port path (e.g. '/dev/ttyUSB0', 'COM3'), or None to
                locate it from the USB descriptor passed to open()
            timeout: Read timeout in seconds
            write_timeout: Write timeout in seconds
        """
        self._port = port
        self._timeout = timeout
        self._write_timeout = write_timeout
        self._serial: Optional[serial.Serial] = None

    @property
    def port(self) -> Optional[str]:
        return self._port

    def open(self, vendor_id: int, product_id: int, serial_number: str) -> None:
        port = self._port or find_port(vendor_id, product_id, serial_number)
        try:
            self._serial = serial.Serial(
                port=port,
                timeout=self._timeout,
                write_timeout=self._write_timeout,
            )
        except (serial.SerialException, ValueError) as e:
            raise TransportFault(FAULT_OPEN_FAILED, f"failed to open {port}: {e}") from e
        self._port = port
        logger.debug("Opened serial port %s", port)

    def close(self) -> None:
        if self._serial is None:
            return
        try:
            self._serial.close()
        except serial.SerialException as e:
            raise TransportFault(FAULT_GENERIC, f"error closing {self._port}: {e}") from e
        finally:
            self._serial = None

    def read_chipid(self) -> int:
        self._require_open()
        logger.debug("Chip id is not readable through a virtual COM port")
        return 0

    def set_baudrate(self, baudrate: int) -> None:
        port = self._require_open()
        self._configure(setattr, port, "baudrate", baudrate)

    def set_line_property(self, bits: int, stopbits: int, parity: Parity) -> None:
        port = self._require_open()
        if stopbits not in _STOPBITS:
            raise TransportFault(FAULT_GENERIC, f"unsupported stop bits: {stopbits}")
        self._configure(setattr, port, "bytesize", bits)
        self._configure(setattr, port, "stopbits", _STOPBITS[stopbits])
        self._configure(setattr, port, "parity", _PARITY[parity])

    def flush(self) -> None:
        port = self._require_open()
        self._configure(lambda: (port.reset_input_buffer(), port.reset_output_buffer()))

    def reset(self) -> None:
        self.flush()

    def set_flow_control(self, flow: FlowControl) -> None:
        port = self._require_open()
        self._configure(setattr, port, "rtscts", flow is FlowControl.RTS_CTS)
        self._configure(setattr, port, "dsrdtr", flow is FlowControl.DTR_DSR)
        self._configure(setattr, port, "xonxoff", flow is FlowControl.XON_XOFF)

    def set_rts(self, state: bool) -> None:
        port = self._require_open()
        self._configure(setattr, port, "rts", state)

    def write(self, data: bytes) -> int:
        port = self._require_open()
        try:
            count = port.write(data)
            port.flush()
        except serial.SerialException as e:
            raise TransportFault(FAULT_GENERIC, f"write failed: {e}") from e
        return count

    def read(self, size: int) -> bytes:
        port = self._require_open()
        try:
            return port.read(size)
        except serial.SerialException as e:
            raise TransportFault(FAULT_GENERIC, f"read failed: {e}") from e

    def _require_open(self) -> serial.Serial:
        if self._serial is None or not self._serial.is_open:
            raise TransportFault.unavailable("serial port not open")
        return self._serial

    def _configure(self, fn, *args) -> None:
        try:
            fn(*args)
        except (serial.SerialException, ValueError) as e:
            raise TransportFault(FAULT_GENERIC, str(e)) from e
