"""High-level interface to a Thorlabs K-Cube / T-Cube piezo controller.

Every operation checks its inputs, connects on demand, sends one request
through the ConnectionManager and parses the response. Failures are
raised as AptError subclasses whose code identifies the failing stage.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from ..config import ConnectionConfig, DeviceIdentity
from ..errors import ENABLE_SETTLE_INTERRUPTED, Reporter, Stage, ValidationError, log_reporter
from ..models import EnableState, HWInfo, KMMIParams, PZStatus, TPZIOSettings
from ..protocol.commands import CHANNEL_1, COMMANDS
from ..transport.base import Transport
from ..transport.ftdi import FtdiTransport
from .connection import ConnectionManager
from .timing import Delay

logger = logging.getLogger(__name__)


class TMCController:
    """APT command set for one controller.

    Usage::

        with TMCController(FtdiTransport(), DeviceIdentity(serial="29252712")) as tmc:
            info = tmc.get_hardware_info()
            tmc.set_output_volts(0.5)
    """

    def __init__(self,
                 transport: Optional[Transport] = None,
                 identity: Optional[DeviceIdentity] = None,
                 config: Optional[ConnectionConfig] = None,
                 reporter: Optional[Reporter] = log_reporter,
                 delay: Optional[Delay] = None,
                 connection: Optional[ConnectionManager] = None):
        """Initialize TMCController.

        Args:
            transport: Bridge chip transport (default FtdiTransport)
            identity: USB descriptor of the device
            config: Connection tunables
            reporter: Diagnostic callback, or None for silence
            delay: Settle delay primitive
            connection: Existing ConnectionManager, or None to create new
                from the other arguments
        """
        if connection is None:
            if transport is None:
                transport = FtdiTransport()
            connection = ConnectionManager(transport, identity, config, reporter, delay)
        self._conn = connection

    @property
    def connection(self) -> ConnectionManager:
        return self._conn

    def connect(self, identity: Optional[DeviceIdentity] = None) -> None:
        self._conn.connect(identity)

    def close(self) -> None:
        self._conn.close()

    # --- Module / hardware commands ---

    def identify(self) -> None:
        """Flash the front panel display so the unit can be located."""
        self._execute("identify")

    def set_channel_enable_state(self, channel: int, state: EnableState) -> None:
        """Enable or disable a channel.

        The device answers an enable change with an unsolicited message a
        little later. It is drained here after post_enable_change_delay_ms
        so it does not corrupt the next response.
        """
        name = "set_channel_enable_state"
        self._execute(name, channel, state)
        self._conn.settle(
            self._conn.config.post_enable_change_delay_ms,
            Stage.ENABLE_SETTLE_SLEEP,
            ENABLE_SETTLE_INTERRUPTED,
            name,
        )
        self._conn.drain(name)

    def get_channel_enable_state(self, channel: int = CHANNEL_1) -> EnableState:
        """Returns EnableState.INVALID if the device reports an unknown state."""
        return self._execute("get_channel_enable_state", channel)

    def stop_update_messages(self) -> None:
        """Stop the automatic status messages some controllers send."""
        self._execute("stop_update_messages")

    def get_hardware_info(self) -> HWInfo:
        return self._execute("get_hardware_info")

    # --- Piezo commands ---

    def set_output_volts(self, fraction: float, channel: int = CHANNEL_1) -> None:
        """Set the output voltage as a fraction (-1.0..1.0) of the voltage limit."""
        self._execute("set_output_volts", fraction, channel)

    def get_output_volts(self, channel: int = CHANNEL_1) -> float:
        """Get the output voltage as a fraction of the voltage limit."""
        return self._execute("get_output_volts", channel)

    def get_pz_status(self, channel: int = CHANNEL_1) -> PZStatus:
        return self._execute("get_pz_status", channel)

    def set_display_intensity(self, intensity: int) -> None:
        self._execute("set_display_intensity", intensity)

    def get_display_intensity(self, channel: int = CHANNEL_1) -> int:
        return self._execute("get_display_intensity", channel)

    def set_tpz_io_settings(self, settings: TPZIOSettings, channel: int = CHANNEL_1) -> None:
        self._execute("set_tpz_io_settings", settings, channel)

    def get_tpz_io_settings(self, channel: int = CHANNEL_1) -> TPZIOSettings:
        return self._execute("get_tpz_io_settings", channel)

    def set_mmi_params(self, params: KMMIParams, channel: int = CHANNEL_1) -> None:
        self._execute("set_mmi_params", params, channel)

    def get_mmi_params(self, channel: int = CHANNEL_1) -> KMMIParams:
        return self._execute("get_mmi_params", channel)

    # --- Internal ---

    def _execute(self, name: str, *args) -> Any:
        spec = COMMANDS[name]
        if spec.validate is not None:
            try:
                spec.validate(*args)
            except ValidationError as e:
                e.source = name
                self._conn.report(name, str(e), e.code)
                raise

        frame = spec.build(*args)
        self._conn.ensure_connected(name)
        data = self._conn.transact(name, frame, spec.response_length)
        if spec.parse is None:
            return None
        return spec.parse(data)

    def __enter__(self) -> TMCController:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._conn.close()
