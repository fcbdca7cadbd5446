"""Immutable data models for APT controller state and settings.

All models are frozen dataclasses. They are produced by the response
parsers in tmc_sdk.protocol.commands, or built by the caller and handed
to a set operation. Use dataclasses.replace to derive a modified copy.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional


class ConnectionState(Enum):
    """Lifecycle state of a ConnectionManager."""
    DISCONNECTED = "disconnected"
    OPENED = "opened"
    CONNECTED = "connected"


class EnableState(IntEnum):
    """Channel enable state.

    INVALID is never sent to the device; set operations reject it and
    get operations return it for an unrecognised response byte.
    """
    INVALID = 0x00
    ENABLED = 0x01
    DISABLED = 0x02

    @classmethod
    def from_code(cls, code: int) -> EnableState:
        if code in (cls.ENABLED, cls.DISABLED):
            return cls(code)
        return cls.INVALID


class VoltLimit(IntEnum):
    """Piezo output voltage limit of a TPZ/KPZ unit."""
    INVALID = 0x00
    V75 = 0x01
    V100 = 0x02
    V150 = 0x03

    @classmethod
    def from_code(cls, code: int) -> VoltLimit:
        if code in (cls.V75, cls.V100, cls.V150):
            return cls(code)
        return cls.INVALID

    @property
    def volts(self) -> Optional[int]:
        return {VoltLimit.V75: 75, VoltLimit.V100: 100, VoltLimit.V150: 150}.get(self)


@dataclass(frozen=True)
class HWInfo:
    """Hardware information reported by the controller.

    Attributes:
        serial_number: Device serial number
        model_number: Model string, at most 8 characters (e.g. 'KPZ101')
        type: Hardware type code
        fw_major: Firmware major version
        fw_interim: Firmware interim version
        fw_minor: Firmware minor version
        hw_version: Hardware version
        hw_mod_state: Hardware modification state
        num_channels: Number of channels
    """
    serial_number: int = 0
    model_number: str = ""
    type: int = 0
    fw_major: int = 0
    fw_interim: int = 0
    fw_minor: int = 0
    hw_version: int = 0
    hw_mod_state: int = 0
    num_channels: int = 0

    @property
    def firmware_version(self) -> str:
        return f"{self.fw_major}.{self.fw_interim}.{self.fw_minor}"


@dataclass(frozen=True)
class PZStatus:
    """Piezo status snapshot.

    Attributes:
        voltage: Output voltage, -32768..32767 for -100%..100% of the limit
        position: Position, 0..32767 for 0..100% of travel
        connected: Piezo actuator connected
        zeroed: Actuator has been zeroed
        zeroing: Actuator is being zeroed
        sg_connected: Strain gauge feedback connected
        pc_mode: Position control mode (False open loop, True closed loop)
        sampled_at: Unix timestamp when the status was read
    """
    voltage: int = 0
    position: int = 0
    connected: bool = False
    zeroed: bool = False
    zeroing: bool = False
    sg_connected: bool = False
    pc_mode: bool = False
    sampled_at: float = field(default_factory=time.time)

    @property
    def voltage_fraction(self) -> float:
        """Output voltage as a fraction of the voltage limit."""
        return self.voltage / (32767 if self.voltage > 0 else 32768)

    @property
    def position_fraction(self) -> float:
        """Position as a fraction of full travel."""
        return self.position / 32767

    def age(self, now: Optional[float] = None) -> float:
        """Seconds elapsed since this status was sampled."""
        if now is None:
            now = time.time()
        return now - self.sampled_at


@dataclass(frozen=True)
class TPZIOSettings:
    """TPZ I/O settings.

    Attributes:
        voltage_limit: Output voltage limit
        hub_analog_input: Hub analog input source selector
    """
    voltage_limit: VoltLimit = VoltLimit.V75
    hub_analog_input: int = 0


@dataclass(frozen=True)
class KMMIParams:
    """K-Cube front panel (MMI) parameters."""
    js_mode: int = 0
    js_volt_gearbox: int = 0
    js_volt_step: int = 0
    dir_sense: int = 0
    preset_volt1: int = 0
    preset_volt2: int = 0
    disp_brightness: int = 0
    disp_timeout: int = 0
    disp_dim_level: int = 0
