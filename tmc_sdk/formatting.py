"""Text rendering of device model values.

Kept apart from the models so they stay plain data. Use format_value()
for any model; new types can be added with format_value.register.
"""
from __future__ import annotations

from functools import singledispatch
from typing import Any, Iterable, Optional, Tuple

from .models import EnableState, HWInfo, KMMIParams, PZStatus, TPZIOSettings, VoltLimit


def _block(title: str, rows: Iterable[Tuple[str, Any]]) -> str:
    lines = [f"{title}:"]
    lines.extend(f"{label:>14}: {value}" for label, value in rows)
    return "\n".join(lines)


@singledispatch
def format_value(value: Any) -> str:
    """Render a device model value as human readable text."""
    return repr(value)


@format_value.register
def _(value: EnableState) -> str:
    return value.name.lower()


@format_value.register
def _(value: VoltLimit) -> str:
    return f"{value.volts} V" if value.volts else "invalid"


@format_value.register
def _(value: HWInfo) -> str:
    return _block("Hardware Info", [
        ("Model", value.model_number),
        ("Type", value.type),
        ("Serial", value.serial_number),
        ("HW Version", value.hw_version),
        ("HW Mod", value.hw_mod_state),
        ("Channels", value.num_channels),
        ("Firmware", value.firmware_version),
    ])


def format_pz_status(value: PZStatus, now: Optional[float] = None) -> str:
    return _block("PZ Status", [
        ("Voltage", f"{value.voltage} ({value.voltage_fraction:+.1%})"),
        ("Position", f"{value.position} ({value.position_fraction:.1%})"),
        ("Connected", value.connected),
        ("Zeroed", value.zeroed),
        ("Zeroing", value.zeroing),
        ("SG Connected", value.sg_connected),
        ("Closed Loop", value.pc_mode),
        ("Age", f"{value.age(now):.3f} s"),
    ])


format_value.register(PZStatus, format_pz_status)


@format_value.register
def _(value: TPZIOSettings) -> str:
    return _block("TPZ I/O Settings", [
        ("Voltage Limit", format_value(value.voltage_limit)),
        ("Hub Input", value.hub_analog_input),
    ])


@format_value.register
def _(value: KMMIParams) -> str:
    return _block("MMI Params", [
        ("JS Mode", value.js_mode),
        ("JS Gearbox", value.js_volt_gearbox),
        ("JS Step", value.js_volt_step),
        ("Dir Sense", value.dir_sense),
        ("Preset 1", value.preset_volt1),
        ("Preset 2", value.preset_volt2),
        ("Brightness", value.disp_brightness),
        ("Timeout", value.disp_timeout),
        ("Dim Level", value.disp_dim_level),
    ])
