"""Device layer: connection lifecycle and the APT command set.

This module provides:
- Connection state machine and frame transactions (ConnectionManager)
- The command set for piezo controllers (TMCController)
- Cancellable settle delays (Delay)
"""

from .timing import Delay
from .connection import ConnectionManager
from .controller import TMCController

__all__ = [
    "Delay",
    "ConnectionManager",
    "TMCController",
]
