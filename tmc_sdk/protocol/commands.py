"""APT message identifiers, request builders and response parsers.

Each command the client supports is described by a CommandSpec in
COMMANDS: the message id, how to build the request, how many response
bytes to read back, how to parse them, and which input checks run before
any I/O. Builders and parsers are pure functions over bytes.

Offsets follow the Thorlabs Host-Controller Communications Protocol
manual. The PZStatus bit assignments are taken from the manual and have
not been re-derived independently.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, Optional

from ..errors import (
    INVALID_ENABLE_STATE,
    INVALID_VOLTAGE_LIMIT,
    VOLTAGE_OUT_OF_RANGE,
    ValidationError,
)
from ..models import EnableState, HWInfo, KMMIParams, PZStatus, TPZIOSettings, VoltLimit
from .frame import (
    build_data,
    build_short,
    get_i16,
    get_i32,
    get_u16,
    get_u32,
    get_u8,
    put_i16,
    put_i32,
    put_u16,
)

CHANNEL_1 = 0x01

MODEL_NUMBER_OFFSET = 10
MODEL_NUMBER_SIZE = 8

# PZStatus status word bits
PZ_CONNECTED = 0x00000001
PZ_ZEROED = 0x00000010
PZ_ZEROING = 0x00000020
PZ_SG_CONNECTED = 0x00000100
PZ_PC_MODE = 0x00000400


class MessageId(IntEnum):
    """APT message identifiers used by this client."""

    HW_REQ_INFO = 0x0005
    HW_STOP_UPDATEMSGS = 0x0012
    MOD_SET_CHANENABLESTATE = 0x0210
    MOD_REQ_CHANENABLESTATE = 0x0211
    MOD_IDENTIFY = 0x0223
    PZ_SET_OUTPUTVOLTS = 0x0643
    PZ_REQ_OUTPUTVOLTS = 0x0644
    PZ_REQ_PZSTATUSUPDATE = 0x0660
    PZ_SET_TPZ_DISPSETTINGS = 0x07D1
    PZ_REQ_TPZ_DISPSETTINGS = 0x07D2
    PZ_SET_TPZ_IOSETTINGS = 0x07D4
    PZ_REQ_TPZ_IOSETTINGS = 0x07D5
    PZ_SET_KCUBEMMIPARAMS = 0x07F0
    PZ_REQ_KCUBEMMIPARAMS = 0x07F1


# --- Voltage encoding ---

def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def encode_voltage(fraction: float) -> int:
    """Convert a fraction of the voltage limit (-1.0..1.0) to the wire i16.

    Positive values scale by 32767 and non-positive ones by 32768, so the
    full signed 16-bit range is reachable.
    """
    if fraction > 0:
        return _round_half_away(fraction * 32767)
    return _round_half_away(fraction * 32768)


def decode_voltage(raw: int) -> float:
    """Inverse of encode_voltage."""
    if raw > 0:
        return raw / 32767
    return raw / 32768


# --- Validators ---

def validate_enable_state(state: EnableState) -> None:
    try:
        code = int(state)
    except (TypeError, ValueError):
        code = EnableState.INVALID
    if EnableState.from_code(code) is EnableState.INVALID:
        raise ValidationError(f"invalid enable state: {state!r}", INVALID_ENABLE_STATE)


def validate_voltage(fraction: float) -> None:
    if not abs(fraction) <= 1.0:
        raise ValidationError(
            f"output voltage {fraction} outside -1.0..1.0", VOLTAGE_OUT_OF_RANGE
        )


def validate_io_settings(settings: TPZIOSettings) -> None:
    if VoltLimit.from_code(int(settings.voltage_limit)) is VoltLimit.INVALID:
        raise ValidationError(
            f"invalid voltage limit: {settings.voltage_limit!r}", INVALID_VOLTAGE_LIMIT
        )


# --- Request builders ---

def build_identify() -> bytes:
    return build_short(MessageId.MOD_IDENTIFY)


def build_set_channel_enable_state(channel: int, state: EnableState) -> bytes:
    return build_short(MessageId.MOD_SET_CHANENABLESTATE, channel, int(state))


def build_req_channel_enable_state(channel: int) -> bytes:
    return build_short(MessageId.MOD_REQ_CHANENABLESTATE, channel)


def build_stop_update_messages() -> bytes:
    return build_short(MessageId.HW_STOP_UPDATEMSGS)


def build_req_hw_info() -> bytes:
    return build_short(MessageId.HW_REQ_INFO)


def build_set_output_volts(fraction: float, channel: int = CHANNEL_1) -> bytes:
    payload = put_u16(channel) + put_i16(encode_voltage(fraction))
    return build_data(MessageId.PZ_SET_OUTPUTVOLTS, payload)


def build_req_output_volts(channel: int = CHANNEL_1) -> bytes:
    return build_short(MessageId.PZ_REQ_OUTPUTVOLTS, channel)


def build_req_pz_status(channel: int = CHANNEL_1) -> bytes:
    return build_short(MessageId.PZ_REQ_PZSTATUSUPDATE, channel)


def build_set_display_intensity(intensity: int) -> bytes:
    return build_data(MessageId.PZ_SET_TPZ_DISPSETTINGS, put_u16(intensity))


def build_req_display_intensity(channel: int = CHANNEL_1) -> bytes:
    return build_short(MessageId.PZ_REQ_TPZ_DISPSETTINGS, channel)


def build_set_io_settings(settings: TPZIOSettings, channel: int = CHANNEL_1) -> bytes:
    payload = (
        put_u16(channel)
        + put_u16(int(settings.voltage_limit))
        + put_u16(settings.hub_analog_input)
        + bytes(4)
    )
    return build_data(MessageId.PZ_SET_TPZ_IOSETTINGS, payload)


def build_req_io_settings(channel: int = CHANNEL_1) -> bytes:
    return build_short(MessageId.PZ_REQ_TPZ_IOSETTINGS, channel)


def build_set_mmi_params(params: KMMIParams, channel: int = CHANNEL_1) -> bytes:
    payload = (
        put_u16(channel)
        + put_u16(params.js_mode)
        + put_u16(params.js_volt_gearbox)
        + put_i32(params.js_volt_step)
        + put_i16(params.dir_sense)
        + put_i32(params.preset_volt1)
        + put_i32(params.preset_volt2)
        + put_u16(params.disp_brightness)
        + put_u16(params.disp_timeout)
        + put_u16(params.disp_dim_level)
        + bytes(8)
    )
    return build_data(MessageId.PZ_SET_KCUBEMMIPARAMS, payload)


def build_req_mmi_params(channel: int = CHANNEL_1) -> bytes:
    return build_short(MessageId.PZ_REQ_KCUBEMMIPARAMS, channel)


# --- Response parsers ---

def parse_channel_enable_state(data: bytes) -> EnableState:
    return EnableState.from_code(get_u8(data, 3))


def parse_hw_info(data: bytes) -> HWInfo:
    """Parse a 90-byte HW_GET_INFO response."""
    raw_model = bytes(data[MODEL_NUMBER_OFFSET:MODEL_NUMBER_OFFSET + MODEL_NUMBER_SIZE])
    if len(raw_model) != MODEL_NUMBER_SIZE:
        raise IndexError(f"Response too short for model number: {len(data)} bytes")
    # The field is not guaranteed to be NUL terminated
    model = raw_model.split(b"\x00", 1)[0].decode("ascii", errors="replace")
    return HWInfo(
        serial_number=get_u32(data, 6),
        model_number=model,
        type=get_u16(data, 18),
        fw_minor=get_u8(data, 20),
        fw_interim=get_u8(data, 21),
        fw_major=get_u8(data, 22),
        hw_version=get_u16(data, 84),
        hw_mod_state=get_u16(data, 86),
        num_channels=get_u16(data, 88),
    )


def parse_output_volts(data: bytes) -> float:
    return decode_voltage(get_i16(data, 8))


def parse_status_bits(bits: int, voltage: int = 0, position: int = 0,
                      sampled_at: Optional[float] = None) -> PZStatus:
    return PZStatus(
        voltage=voltage,
        position=position,
        connected=bool(bits & PZ_CONNECTED),
        zeroed=bool(bits & PZ_ZEROED),
        zeroing=bool(bits & PZ_ZEROING),
        sg_connected=bool(bits & PZ_SG_CONNECTED),
        pc_mode=bool(bits & PZ_PC_MODE),
        sampled_at=time.time() if sampled_at is None else sampled_at,
    )


def parse_pz_status(data: bytes) -> PZStatus:
    """Parse a 16-byte PZ_GET_PZSTATUSUPDATE response."""
    return parse_status_bits(
        get_u32(data, 12),
        voltage=get_i16(data, 8),
        position=get_i16(data, 10),
    )


def parse_display_intensity(data: bytes) -> int:
    return get_u16(data, 6)


def parse_io_settings(data: bytes) -> TPZIOSettings:
    return TPZIOSettings(
        voltage_limit=VoltLimit.from_code(get_u16(data, 8)),
        hub_analog_input=get_u16(data, 10),
    )


def parse_mmi_params(data: bytes) -> KMMIParams:
    """Parse a 40-byte PZ_GET_KCUBEMMIPARAMS response."""
    return KMMIParams(
        js_mode=get_u16(data, 8),
        js_volt_gearbox=get_u16(data, 10),
        js_volt_step=get_i32(data, 12),
        dir_sense=get_i16(data, 16),
        preset_volt1=get_i32(data, 18),
        preset_volt2=get_i32(data, 22),
        disp_brightness=get_u16(data, 26),
        disp_timeout=get_u16(data, 28),
        disp_dim_level=get_u16(data, 30),
    )


# --- Command table ---

@dataclass(frozen=True)
class CommandSpec:
    """Description of one protocol operation.

    Attributes:
        name: Operation name, used as the error source
        message_id: APT message identifier of the request
        build: Request builder
        response_length: Bytes to read back, 0 for fire-and-forget
        parse: Response parser, None when nothing is read
        validate: Input check run before any I/O
    """
    name: str
    message_id: MessageId
    build: Callable[..., bytes]
    response_length: int = 0
    parse: Optional[Callable[[bytes], Any]] = None
    validate: Optional[Callable[..., None]] = None


COMMANDS: Dict[str, CommandSpec] = {
    spec.name: spec
    for spec in (
        CommandSpec("identify", MessageId.MOD_IDENTIFY, build_identify),
        CommandSpec(
            "set_channel_enable_state",
            MessageId.MOD_SET_CHANENABLESTATE,
            build_set_channel_enable_state,
            validate=lambda channel, state: validate_enable_state(state),
        ),
        CommandSpec(
            "get_channel_enable_state",
            MessageId.MOD_REQ_CHANENABLESTATE,
            build_req_channel_enable_state,
            response_length=6,
            parse=parse_channel_enable_state,
        ),
        CommandSpec("stop_update_messages", MessageId.HW_STOP_UPDATEMSGS, build_stop_update_messages),
        CommandSpec(
            "get_hardware_info",
            MessageId.HW_REQ_INFO,
            build_req_hw_info,
            response_length=90,
            parse=parse_hw_info,
        ),
        CommandSpec(
            "set_output_volts",
            MessageId.PZ_SET_OUTPUTVOLTS,
            build_set_output_volts,
            validate=lambda fraction, channel=CHANNEL_1: validate_voltage(fraction),
        ),
        CommandSpec(
            "get_output_volts",
            MessageId.PZ_REQ_OUTPUTVOLTS,
            build_req_output_volts,
            response_length=10,
            parse=parse_output_volts,
        ),
        CommandSpec(
            "get_pz_status",
            MessageId.PZ_REQ_PZSTATUSUPDATE,
            build_req_pz_status,
            response_length=16,
            parse=parse_pz_status,
        ),
        CommandSpec("set_display_intensity", MessageId.PZ_SET_TPZ_DISPSETTINGS, build_set_display_intensity),
        CommandSpec(
            "get_display_intensity",
            MessageId.PZ_REQ_TPZ_DISPSETTINGS,
            build_req_display_intensity,
            response_length=8,
            parse=parse_display_intensity,
        ),
        CommandSpec(
            "set_tpz_io_settings",
            MessageId.PZ_SET_TPZ_IOSETTINGS,
            build_set_io_settings,
            validate=lambda settings, channel=CHANNEL_1: validate_io_settings(settings),
        ),
        CommandSpec(
            "get_tpz_io_settings",
            MessageId.PZ_REQ_TPZ_IOSETTINGS,
            build_req_io_settings,
            response_length=16,
            parse=parse_io_settings,
        ),
        CommandSpec("set_mmi_params", MessageId.PZ_SET_KCUBEMMIPARAMS, build_set_mmi_params),
        CommandSpec(
            "get_mmi_params",
            MessageId.PZ_REQ_KCUBEMMIPARAMS,
            build_req_mmi_params,
            response_length=40,
            parse=parse_mmi_params,
        ),
    )
}
