"""Abstract base class for the bridge chip transport.

The Transport interface is the narrow view of the USB-to-serial bridge
chip that the ConnectionManager needs. Implementations can drive the chip
directly over USB (FtdiTransport) or through the operating system's
virtual COM port driver (SerialTransport), or be a test double.

Key principles:
- Blocking calls, no threads
- No protocol knowledge (raw bytes in, raw bytes out)
- Failures raise TransportFault with a negative driver-style code
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum

from ..errors import DEVICE_UNAVAILABLE

# Driver-style fault codes used by the bundled transports
FAULT_GENERIC = -1
FAULT_NOT_FOUND = -3
FAULT_OPEN_FAILED = -4


class Parity(Enum):
    NONE = "N"
    ODD = "O"
    EVEN = "E"
    MARK = "M"
    SPACE = "S"


class FlowControl(Enum):
    DISABLED = "none"
    RTS_CTS = "rtscts"
    DTR_DSR = "dtrdsr"
    XON_XOFF = "xonxoff"


class TransportFault(Exception):
    """A transport call failed.

    Attributes:
        code: Negative driver-style code identifying the failure
    """

    def __init__(self, code: int = FAULT_GENERIC, message: str = ""):
        if code >= 0:
            raise ValueError(f"Transport fault codes are negative, got {code}")
        self.code = code
        super().__init__(message or f"transport fault {code}")

    @classmethod
    def unavailable(cls, message: str = "device not available") -> TransportFault:
        return cls(DEVICE_UNAVAILABLE, message)


class Transport(ABC):
    """Abstract bridge chip interface.

    Every method raises TransportFault on failure.
    """

    @abstractmethod
    def open(self, vendor_id: int, product_id: int, serial: str) -> None:
        """Find the device matching the descriptor and open it."""

    @abstractmethod
    def close(self) -> None:
        """Close the device handle."""

    @abstractmethod
    def read_chipid(self) -> int:
        """Read the bridge chip identifier."""

    @abstractmethod
    def set_baudrate(self, baudrate: int) -> None:
        pass

    @abstractmethod
    def set_line_property(self, bits: int, stopbits: int, parity: Parity) -> None:
        pass

    @abstractmethod
    def flush(self) -> None:
        """Flush both the receive and transmit buffers of the chip."""

    @abstractmethod
    def reset(self) -> None:
        """Reset the chip."""

    @abstractmethod
    def set_flow_control(self, flow: FlowControl) -> None:
        pass

    @abstractmethod
    def set_rts(self, state: bool) -> None:
        pass

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write `data` in one transfer.

        Returns:
            Number of bytes written
        """

    @abstractmethod
    def read(self, size: int) -> bytes:
        """Read up to `size` bytes.

        Returns:
            The bytes available, possibly empty
        """
