"""Thorlabs APT protocol client for FTDI-attached piezo controllers."""

from .config import ConnectionConfig, DeviceIdentity
from .errors import (
    AptError,
    ProtocolError,
    Stage,
    TimingError,
    TransportError,
    ValidationError,
    log_reporter,
    stage_for_code,
)
from .models import (
    ConnectionState,
    EnableState,
    HWInfo,
    KMMIParams,
    PZStatus,
    TPZIOSettings,
    VoltLimit,
)
from .formatting import format_value
from .transport import Transport, TransportFault
from .device import ConnectionManager, Delay, TMCController

__all__ = [
    "ConnectionConfig",
    "DeviceIdentity",
    "AptError",
    "ProtocolError",
    "Stage",
    "TimingError",
    "TransportError",
    "ValidationError",
    "log_reporter",
    "stage_for_code",
    "ConnectionState",
    "EnableState",
    "HWInfo",
    "KMMIParams",
    "PZStatus",
    "TPZIOSettings",
    "VoltLimit",
    "format_value",
    "Transport",
    "TransportFault",
    "ConnectionManager",
    "Delay",
    "TMCController",
]
