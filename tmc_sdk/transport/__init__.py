"""Transport layer for the FTDI bridge chip."""

from .base import FlowControl, Parity, Transport, TransportFault
from .ftdi import FtdiTransport
from .serial import SerialTransport

__all__ = [
    "FlowControl",
    "Parity",
    "Transport",
    "TransportFault",
    "FtdiTransport",
    "SerialTransport",
]
