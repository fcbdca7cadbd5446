"""Error classification for the APT client.

Every failure is raised as an AptError carrying a signed integer code.
The code tells the caller which pipeline stage failed without having to
inspect logs:

    raw transport code   open / close
    -20 + rv .. -80 + rv connect sub-steps (chip id, baud, line, flush,
                         reset, flow control, RTS)
    -49, -59             settle sleep interrupted during connect
    -100 + rv            write
    -200 + rv            read
    -300                 short read
    -350                 settle sleep interrupted after an enable change
    -400 .. -402         input rejected before any I/O
    -666                 device unavailable (passed through unchanged)

Diagnostics go through a reporter callable rather than a fixed stream.
`log_reporter` is the default; pass None to silence a component.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEVICE_UNAVAILABLE = -666
SHORT_READ = -300
ENABLE_SETTLE_INTERRUPTED = -350
PRE_FLUSH_INTERRUPTED = -49
POST_FLUSH_INTERRUPTED = -59
INVALID_ENABLE_STATE = -400
VOLTAGE_OUT_OF_RANGE = -401
INVALID_VOLTAGE_LIMIT = -402

Reporter = Callable[[str, str, Optional[int]], None]


class Stage(Enum):
    """Pipeline stage at which a failure happened."""
    OPEN = "open"
    CLOSE = "close"
    READ_CHIPID = "read chip id"
    SET_BAUDRATE = "set baud rate"
    SET_LINE_PROPERTY = "set line property"
    PRE_FLUSH_SLEEP = "pre-flush sleep"
    FLUSH = "flush"
    POST_FLUSH_SLEEP = "post-flush sleep"
    RESET = "reset"
    SET_FLOW_CONTROL = "set flow control"
    SET_RTS = "set RTS"
    WRITE = "write"
    READ = "read"
    SHORT_READ = "short read"
    ENABLE_SETTLE_SLEEP = "enable settle sleep"
    VALIDATION = "validation"


# stage -> (band offset, widest raw code kept inside the band)
_BANDS = {
    Stage.READ_CHIPID: (-20, 8),
    Stage.SET_BAUDRATE: (-30, 8),
    Stage.SET_LINE_PROPERTY: (-40, 8),
    Stage.FLUSH: (-50, 8),
    Stage.RESET: (-60, 8),
    Stage.SET_FLOW_CONTROL: (-70, 8),
    Stage.SET_RTS: (-80, 8),
    Stage.WRITE: (-100, 99),
    Stage.READ: (-200, 99),
}

_FIXED_CODES = {
    PRE_FLUSH_INTERRUPTED: Stage.PRE_FLUSH_SLEEP,
    POST_FLUSH_INTERRUPTED: Stage.POST_FLUSH_SLEEP,
    SHORT_READ: Stage.SHORT_READ,
    ENABLE_SETTLE_INTERRUPTED: Stage.ENABLE_SETTLE_SLEEP,
    INVALID_ENABLE_STATE: Stage.VALIDATION,
    VOLTAGE_OUT_OF_RANGE: Stage.VALIDATION,
    INVALID_VOLTAGE_LIMIT: Stage.VALIDATION,
}


def band_code(stage: Stage, raw: int) -> int:
    """Offset a raw (negative) transport code into the band for `stage`.

    Open and close codes are returned unchanged, as is the
    device-unavailable sentinel. Raw codes too large for a band are
    clamped to its edge so bands never overlap.
    """
    if raw == DEVICE_UNAVAILABLE or stage not in _BANDS:
        return raw
    offset, width = _BANDS[stage]
    raw = max(min(raw, -1), -width)
    return offset + raw


def stage_for_code(code: int) -> Optional[Stage]:
    """Map a banded code back to the stage that produced it.

    Returns None for raw open/close codes and the device-unavailable
    sentinel, which carry no band.
    """
    if code in _FIXED_CODES:
        return _FIXED_CODES[code]
    for stage, (offset, width) in _BANDS.items():
        if offset - width <= code <= offset - 1:
            return stage
    return None


class AptError(Exception):
    """Base exception for APT client errors.

    Attributes:
        code: Signed integer outcome (see module docstring)
        stage: Pipeline stage that failed
        source: Name of the operation that failed
    """

    def __init__(self, message: str, code: int, stage: Stage, source: str = ""):
        self.code = code
        self.stage = stage
        self.source = source
        super().__init__(f"{message} [{code}]")


class TransportError(AptError):
    """The bridge chip driver reported a failure."""

    def __init__(self, message: str, raw_code: int, stage: Stage, source: str = ""):
        self.raw_code = raw_code
        super().__init__(message, band_code(stage, raw_code), stage, source)


class ProtocolError(AptError):
    """The response did not have the expected length."""

    def __init__(self, expected: int, received: int, source: str = ""):
        self.expected = expected
        self.received = received
        super().__init__(
            f"did not read correct amount of data, expected {expected} got {received}",
            SHORT_READ,
            Stage.SHORT_READ,
            source,
        )


class TimingError(AptError):
    """A settle delay was interrupted before it completed."""


class ValidationError(AptError, ValueError):
    """Input rejected before any I/O took place."""

    def __init__(self, message: str, code: int, source: str = ""):
        super().__init__(message, code, Stage.VALIDATION, source)


def log_reporter(source: str, message: str, code: Optional[int] = None) -> None:
    """Default reporter: log the failure at error level."""
    if code is None:
        logger.error("%s: %s", source, message)
    else:
        logger.error("%s: %s [%d]", source, message, code)
