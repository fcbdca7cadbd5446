"""Device identification and connection tunables.

These are the values a ConnectionManager needs before it can talk to a
controller: which USB device to open, and how to bring the bridge chip
into a usable state.
"""
from __future__ import annotations

from dataclasses import dataclass, fields

# Thorlabs K-Cube / T-Cube controllers enumerate as FTDI VID with a
# Thorlabs-assigned PID.
DEFAULT_VENDOR_ID = 0x0403
DEFAULT_PRODUCT_ID = 0xFAF0

DEFAULT_BAUD_RATE = 115200
DEFAULT_PRE_FLUSH_DELAY_MS = 50
DEFAULT_POST_FLUSH_DELAY_MS = 50
DEFAULT_POST_ENABLE_CHANGE_DELAY_MS = 500
DEFAULT_READ_TIMEOUT_MS = 1000


@dataclass(frozen=True)
class DeviceIdentity:
    """USB descriptor used to find the device when opening.

    Attributes:
        vendor_id: USB Vendor ID
        product_id: USB Product ID
        serial: USB serial number string (printed on the device label)
    """
    vendor_id: int = DEFAULT_VENDOR_ID
    product_id: int = DEFAULT_PRODUCT_ID
    serial: str = ""

    def __post_init__(self):
        for name in ("vendor_id", "product_id"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"{name} must be 0-0xFFFF, got {value:#x}")

    def __str__(self) -> str:
        return f"{self.vendor_id:04x}:{self.product_id:04x}:{self.serial}"


@dataclass
class ConnectionConfig:
    """Tunables for the connect sequence and response reads.

    Attributes:
        baud_rate: Serial baud rate set on the bridge chip
        pre_flush_delay_ms: Sleep before flushing the chip buffers
        post_flush_delay_ms: Sleep after flushing the chip buffers
        post_enable_change_delay_ms: Sleep after a channel enable change,
            before draining the late response the device sends
        read_timeout_ms: How long to keep accumulating a response before
            giving up with a short read
    """
    baud_rate: int = DEFAULT_BAUD_RATE
    pre_flush_delay_ms: int = DEFAULT_PRE_FLUSH_DELAY_MS
    post_flush_delay_ms: int = DEFAULT_POST_FLUSH_DELAY_MS
    post_enable_change_delay_ms: int = DEFAULT_POST_ENABLE_CHANGE_DELAY_MS
    read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if value < 0:
                raise ValueError(f"{f.name} must be non-negative, got {value}")
