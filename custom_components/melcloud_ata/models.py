"""Data models for the MELCloud ATA integration.

Holds the state codec that translates between labels and the integer codes
used by MELCloud, the effective-flag tracker that records which fields a
pending write touches, and the device records built from API responses.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import IntFlag
from typing import Any

from .const import (
    DEFAULT_MAX_TEMP,
    DEFAULT_MIN_TEMP,
    DEFAULT_NUMBER_OF_FAN_SPEEDS,
    DEFAULT_TEMPERATURE_INCREMENT,
    DEVICE_TYPE_ATA,
    FAN_AUTO,
    FAN_SPEED_AUTO,
    MODE_COOL,
    MODE_DRY,
    MODE_HEAT,
    MODE_HEAT_COOL,
    OPERATION_MODE_MAP,
    OPERATION_MODE_REVERSE_MAP,
    UNKNOWN,
    VANE_HORIZONTAL_MAP,
    VANE_HORIZONTAL_REVERSE_MAP,
    VANE_VERTICAL_MAP,
    VANE_VERTICAL_REVERSE_MAP,
)

_LOGGER = logging.getLogger(__name__)

_TIMESTAMP_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>Z|[+-]\d{2}:?\d{2})?$"
)


class InvalidValueError(ValueError):
    """Raised when a label cannot be encoded for the given field."""

    def __init__(self, field_name: str, value: Any) -> None:  # noqa: ANN401
        self.field = field_name
        self.value = value
        super().__init__(f"Invalid {field_name}: {value!r}")


class NoPendingChangesError(Exception):
    """Raised when a write is attempted without any effective flag set."""


class EffectiveFlag(IntFlag):
    """Bits telling MELCloud which fields of a SetAta payload to apply."""

    POWER = 0x01
    OPERATION_MODE = 0x02
    TARGET_TEMPERATURE = 0x04
    FAN_SPEED = 0x08
    VANE_VERTICAL = 0x10
    VANE_HORIZONTAL = 0x100


@dataclass(slots=True)
class ChangeFlags:
    """Append-only set of pending field changes for one edit session."""

    flags: EffectiveFlag = EffectiveFlag(0)

    def add(self, flag: EffectiveFlag) -> None:
        self.flags |= flag

    def clear(self) -> None:
        self.flags = EffectiveFlag(0)

    @property
    def is_empty(self) -> bool:
        return not self.flags

    @property
    def value(self) -> int:
        """Return the bitmask sent as EffectiveFlags."""
        return int(self.flags)

    def __contains__(self, flag: EffectiveFlag) -> bool:
        return flag in self.flags


def _decode(table: dict[int, str], field_name: str, code: int) -> str:
    label = table.get(code)
    if label is None:
        _LOGGER.debug("Unrecognised %s code %s", field_name, code)
        return UNKNOWN
    return label


def _encode(table: dict[str, int], field_name: str, label: str) -> int:
    try:
        return table[label]
    except (KeyError, TypeError) as err:
        raise InvalidValueError(field_name, label) from err


def decode_operation_mode(code: int) -> str:
    """Return the operation mode label for a MELCloud code."""
    return _decode(OPERATION_MODE_REVERSE_MAP, "operation mode", code)


def encode_operation_mode(label: str) -> int:
    """Return the MELCloud code for an operation mode label."""
    return _encode(OPERATION_MODE_MAP, "operation mode", label)


def decode_fan_speed(code: int) -> str:
    """Return "auto" for speed 0, the speed as a string for any positive step."""
    if code == FAN_SPEED_AUTO:
        return FAN_AUTO
    if isinstance(code, int) and code > 0:
        return str(code)
    _LOGGER.debug("Unrecognised fan speed code %s", code)
    return UNKNOWN


def encode_fan_speed(label: str) -> int:
    """Return the fan speed code for "auto" or a positive integer string.

    No upper bound is checked here; the number of speeds a unit supports is
    known only to its AtaDevice descriptor.
    """
    if label == FAN_AUTO:
        return FAN_SPEED_AUTO
    if isinstance(label, str) and label.isascii() and label.isdigit():
        speed = int(label)
        if speed > 0:
            return speed
    raise InvalidValueError("fan speed", label)


def decode_vane_vertical(code: int) -> str:
    return _decode(VANE_VERTICAL_REVERSE_MAP, "vertical vane position", code)


def encode_vane_vertical(label: str) -> int:
    return _encode(VANE_VERTICAL_MAP, "vertical vane position", label)


def decode_vane_horizontal(code: int) -> str:
    return _decode(VANE_HORIZONTAL_REVERSE_MAP, "horizontal vane position", code)


def encode_vane_horizontal(label: str) -> int:
    return _encode(VANE_HORIZONTAL_MAP, "horizontal vane position", label)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a MELCloud timestamp such as "2024-03-01T10:15:30.1234567".

    Any number of fractional digits is accepted and truncated to
    microseconds. Values without an offset are taken as UTC.

    Returns:
        Timezone-aware datetime, or None if the value is empty or malformed.

    """
    if not value:
        return None

    match = _TIMESTAMP_RE.match(value.strip())
    if match is None:
        _LOGGER.debug("Unparseable timestamp: %s", value)
        return None

    fraction = (match["fraction"] or "").ljust(6, "0")[:6]
    offset = match["offset"]
    if offset is None or offset == "Z":
        offset = "+00:00"
    elif ":" not in offset:
        offset = f"{offset[:3]}:{offset[3:]}"

    try:
        return datetime.fromisoformat(f"{match['base']}.{fraction}{offset}")
    except ValueError:
        _LOGGER.debug("Invalid timestamp: %s", value)
        return None


def _capability(entry: dict[str, Any], key: str, default: Any = None) -> Any:  # noqa: ANN401
    """Read a capability field from a device entry or its nested Device object."""
    if entry.get(key) is not None:
        return entry[key]
    nested = entry.get("Device")
    if isinstance(nested, dict) and nested.get(key) is not None:
        return nested[key]
    return default


@dataclass(frozen=True)
class AtaDevice:
    """Static identity and capability data of a MELCloud device.

    Attributes:
        id: MELCloud device identifier.
        building_id: Identifier of the building the device belongs to.
        name: Human-readable device name.
        device_type: 0 for air-to-air units.
        temperature_increment: Step the target temperature must follow.
        number_of_fan_speeds: Highest fan speed step supported.

    """

    id: int
    building_id: int
    name: str
    mac_address: str = ""
    serial_number: str = ""
    access_level: int = 0
    device_type: int = DEVICE_TYPE_ATA
    wifi_signal_strength: int = 0
    temperature_increment: float = DEFAULT_TEMPERATURE_INCREMENT
    min_temp_heat: float = DEFAULT_MIN_TEMP
    max_temp_heat: float = DEFAULT_MAX_TEMP
    min_temp_cool_dry: float = DEFAULT_MIN_TEMP
    max_temp_cool_dry: float = DEFAULT_MAX_TEMP
    min_temp_automatic: float = DEFAULT_MIN_TEMP
    max_temp_automatic: float = DEFAULT_MAX_TEMP
    number_of_fan_speeds: int = DEFAULT_NUMBER_OF_FAN_SPEEDS

    @classmethod
    def from_api(cls, entry: dict[str, Any]) -> AtaDevice:
        """Build a device from one ListDevices entry.

        Zero or missing capability values fall back to the defaults.
        """
        return cls(
            id=int(entry["DeviceID"]),
            building_id=int(entry["BuildingID"]),
            name=str(entry.get("DeviceName", "")),
            mac_address=str(entry.get("MacAddress") or ""),
            serial_number=str(entry.get("SerialNumber") or ""),
            access_level=int(entry.get("AccessLevel") or 0),
            device_type=int(_capability(entry, "DeviceType", DEVICE_TYPE_ATA)),
            wifi_signal_strength=int(_capability(entry, "WifiSignalStrength", 0)),
            temperature_increment=float(
                _capability(entry, "TemperatureIncrement")
                or DEFAULT_TEMPERATURE_INCREMENT
            ),
            min_temp_heat=float(_capability(entry, "MinTempHeat") or DEFAULT_MIN_TEMP),
            max_temp_heat=float(_capability(entry, "MaxTempHeat") or DEFAULT_MAX_TEMP),
            min_temp_cool_dry=float(
                _capability(entry, "MinTempCoolDry") or DEFAULT_MIN_TEMP
            ),
            max_temp_cool_dry=float(
                _capability(entry, "MaxTempCoolDry") or DEFAULT_MAX_TEMP
            ),
            min_temp_automatic=float(
                _capability(entry, "MinTempAutomatic") or DEFAULT_MIN_TEMP
            ),
            max_temp_automatic=float(
                _capability(entry, "MaxTempAutomatic") or DEFAULT_MAX_TEMP
            ),
            number_of_fan_speeds=int(
                _capability(entry, "NumberOfFanSpeeds") or DEFAULT_NUMBER_OF_FAN_SPEEDS
            ),
        )

    @property
    def is_ata(self) -> bool:
        return self.device_type == DEVICE_TYPE_ATA

    def temperature_range(self, mode: str | None) -> tuple[float, float]:
        """Return the (min, max) target temperature allowed in a mode."""
        if mode == MODE_HEAT:
            return self.min_temp_heat, self.max_temp_heat
        if mode in (MODE_COOL, MODE_DRY):
            return self.min_temp_cool_dry, self.max_temp_cool_dry
        if mode == MODE_HEAT_COOL:
            return self.min_temp_automatic, self.max_temp_automatic
        return (
            min(self.min_temp_heat, self.min_temp_cool_dry, self.min_temp_automatic),
            max(self.max_temp_heat, self.max_temp_cool_dry, self.max_temp_automatic),
        )

    def round_temperature(self, temperature: float) -> float:
        """Round a temperature to the nearest allowed increment, halves up."""
        increment = self.temperature_increment
        return round(math.floor(temperature / increment + 0.5) * increment, 2)


@dataclass(slots=True)
class AtaDeviceState:
    """Live and desired state of an air-to-air unit.

    Fields hold the raw integer codes MELCloud uses; the *_label properties
    decode them. Setters validate their input, assign the field and record
    the matching EffectiveFlag in one step.
    """

    device_id: int
    building_id: int
    device_type: int = DEVICE_TYPE_ATA
    mac_address: str = ""
    serial_number: str = ""
    power: bool = False
    room_temperature: float | None = None
    target_temperature: float | None = None
    operation_mode: int = 0
    fan_speed: int = FAN_SPEED_AUTO
    vane_vertical: int = 0
    vane_horizontal: int = 0
    error_code: int = 0
    has_error: bool = False
    last_communication: str = ""
    has_pending_command: bool = False
    effective_flags: ChangeFlags = field(default_factory=ChangeFlags)
    raw_state: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(
        cls, data: dict[str, Any], building_id: int | None = None
    ) -> AtaDeviceState:
        """Decode a Device/Get or SetAta response.

        The change tracker always starts empty; the EffectiveFlags echoed by
        the server stay available in raw_state only.

        Args:
            data: Response body.
            building_id: Building id to use when the response omits it.

        """
        if building_id is None:
            building_id = int(data.get("BuildingID") or 0)

        return cls(
            device_id=int(data["DeviceID"]),
            building_id=building_id,
            device_type=int(data.get("DeviceType") or DEVICE_TYPE_ATA),
            mac_address=str(data.get("MacAddress") or ""),
            serial_number=str(data.get("SerialNumber") or ""),
            power=bool(data.get("Power", False)),
            room_temperature=data.get("RoomTemperature"),
            target_temperature=data.get("SetTemperature"),
            operation_mode=int(data.get("OperationMode") or 0),
            fan_speed=int(data.get("SetFanSpeed") or FAN_SPEED_AUTO),
            vane_vertical=int(data.get("VaneVertical") or 0),
            vane_horizontal=int(data.get("VaneHorizontal") or 0),
            error_code=int(data.get("ErrorCode") or 0),
            has_error=bool(data.get("HasError", False)),
            last_communication=str(data.get("LastCommunication") or ""),
            has_pending_command=bool(data.get("HasPendingCommand", False)),
            raw_state=dict(data),
        )

    @property
    def operation_mode_label(self) -> str:
        return decode_operation_mode(self.operation_mode)

    @property
    def fan_speed_label(self) -> str:
        return decode_fan_speed(self.fan_speed)

    @property
    def vane_vertical_label(self) -> str:
        return decode_vane_vertical(self.vane_vertical)

    @property
    def vane_horizontal_label(self) -> str:
        return decode_vane_horizontal(self.vane_horizontal)

    @property
    def last_communication_time(self) -> datetime | None:
        return parse_timestamp(self.last_communication)

    def set_power(self, power: bool) -> None:  # noqa: FBT001
        self.power = bool(power)
        self.effective_flags.add(EffectiveFlag.POWER)

    def set_operation_mode(self, mode: str) -> None:
        """Set the operation mode from a label such as "cool".

        Raises:
            InvalidValueError: If the label is not a known mode.

        """
        code = encode_operation_mode(mode)
        self.operation_mode = code
        self.effective_flags.add(EffectiveFlag.OPERATION_MODE)

    def set_target_temperature(self, temperature: float) -> None:
        """Set the target temperature.

        Rounding to the device increment is left to the caller, which has the
        AtaDevice capability data at hand.
        """
        self.target_temperature = float(temperature)
        self.effective_flags.add(EffectiveFlag.TARGET_TEMPERATURE)

    def set_fan_speed(self, speed: str) -> None:
        code = encode_fan_speed(speed)
        self.fan_speed = code
        self.effective_flags.add(EffectiveFlag.FAN_SPEED)

    def set_vane_vertical(self, position: str) -> None:
        code = encode_vane_vertical(position)
        self.vane_vertical = code
        self.effective_flags.add(EffectiveFlag.VANE_VERTICAL)

    def set_vane_horizontal(self, position: str) -> None:
        code = encode_vane_horizontal(position)
        self.vane_horizontal = code
        self.effective_flags.add(EffectiveFlag.VANE_HORIZONTAL)

    def reset_effective_flags(self) -> None:
        self.effective_flags.clear()

    def begin_edit(self) -> AtaDeviceState:
        """Return a copy with no pending changes, ready for new setters."""
        return replace(
            self,
            effective_flags=ChangeFlags(),
            raw_state=dict(self.raw_state),
        )

    def prepare_command(self) -> dict[str, Any]:
        """Build the SetAta payload for the pending changes.

        Marks the state as carrying a pending command so MELCloud treats the
        payload as an intentional change rather than an echo.

        Returns:
            JSON payload with EffectiveFlags set to the pending bitmask.

        Raises:
            NoPendingChangesError: If no setter has been called.

        """
        if self.effective_flags.is_empty:
            error_msg = f"No pending changes for device {self.device_id}"
            raise NoPendingChangesError(error_msg)

        self.has_pending_command = True
        return self.to_api()

    def to_api(self) -> dict[str, Any]:
        """Serialize the state, keeping any response fields not modelled here."""
        return {
            **self.raw_state,
            "DeviceID": self.device_id,
            "BuildingID": self.building_id,
            "DeviceType": self.device_type,
            "MacAddress": self.mac_address,
            "SerialNumber": self.serial_number,
            "Power": self.power,
            "RoomTemperature": self.room_temperature,
            "SetTemperature": self.target_temperature,
            "OperationMode": self.operation_mode,
            "SetFanSpeed": self.fan_speed,
            "VaneHorizontal": self.vane_horizontal,
            "VaneVertical": self.vane_vertical,
            "ErrorCode": self.error_code,
            "HasError": self.has_error,
            "LastCommunication": self.last_communication,
            "EffectiveFlags": self.effective_flags.value,
            "HasPendingCommand": self.has_pending_command,
        }
