"""Normalization of Onecta gateway-device documents into flat climate records."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

logger = logging.getLogger("daikin_exporter.parser")

CLIMATE_CONTROL_TYPE = "climateControl"
DEFAULT_CONTROL_NAME = "Unnamed Device"
UNKNOWN_MODE = "unknown"
# Upstream commonly fills fan metadata only under "cooling"; used when a
# point reports no operation mode at all.
FAN_FALLBACK_MODE = "cooling"


class DeviceDocumentError(ValueError):
    """Raised when a device document violates the structural contract."""


@dataclass(frozen=True, slots=True)
class ClimateControlRecord:
    """One climate-capable management point, with absent readings kept as ``None``."""

    control_id: str
    name: str
    is_on: bool
    mode: str
    room_temperature: Optional[float] = None
    room_humidity: Optional[float] = None
    outdoor_temperature: Optional[float] = None
    target_temperature: Optional[float] = None
    fan_speed: Optional[str] = None
    fan_direction_horizontal: Optional[str] = None
    fan_direction_vertical: Optional[str] = None
    powerful_mode: bool = False
    is_in_error_state: bool = False
    is_in_warning_state: bool = False
    is_in_caution_state: bool = False
    consumption_today: float = 0.0
    consumption_week: float = 0.0
    consumption_month: float = 0.0


@dataclass(frozen=True, slots=True)
class ParsedDevice:
    device_id: str
    device_model: str
    is_online: bool
    climate_controls: List[ClimateControlRecord] = field(default_factory=list)


def _mapping(node: Any, key: str) -> Optional[Mapping[str, Any]]:
    if not isinstance(node, Mapping):
        return None
    child = node.get(key)
    return child if isinstance(child, Mapping) else None


def _path(node: Any, *keys: str) -> Optional[Mapping[str, Any]]:
    current: Any = node
    for key in keys:
        current = _mapping(current, key)
        if current is None:
            return None
    return current


def _attribute(point: Mapping[str, Any], key: str) -> Any:
    """Return ``point[key]["value"]`` or ``None`` when any level is missing."""
    wrapper = _mapping(point, key)
    if wrapper is None:
        return None
    return wrapper.get("value")


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def _reading(block: Optional[Mapping[str, Any]], key: str) -> Optional[float]:
    reading = _mapping(block, key)
    if reading is None:
        return None
    return _number(reading.get("value"))


def _current_mode(node: Any) -> Optional[str]:
    current = _mapping(node, "currentMode")
    if current is None:
        return None
    return _text(current.get("value"))


def _bucket_sum(series: Optional[Mapping[str, Any]], bucket: str) -> float:
    if series is None:
        return 0.0
    values = series.get(bucket)
    if not isinstance(values, list):
        return 0.0
    total = 0.0
    for value in values:
        number = _number(value)
        if number is not None:
            total += number
    return total


def _target_temperature(point: Mapping[str, Any], mode: Optional[str]) -> Optional[float]:
    if mode is None:
        return None
    control = _mapping(point, "temperatureControl")
    modes = _path(control, "value", "operationModes")
    setpoints = _path(modes, mode, "setpoints")
    return _reading(setpoints, "roomTemperature")


def _fan_settings(point: Mapping[str, Any], mode: Optional[str]) -> Optional[Mapping[str, Any]]:
    modes = _path(point, "fanControl", "value", "operationModes")
    return _mapping(modes, mode or FAN_FALLBACK_MODE)


def _parse_climate_control(point: Mapping[str, Any]) -> ClimateControlRecord:
    mode = _text(_attribute(point, "operationMode"))
    sensory = _mapping(point.get("sensoryData"), "value")
    fan = _fan_settings(point, mode)
    direction = _mapping(fan, "fanDirection")
    cooling = _path(point, "consumptionData", "value", "electrical", "cooling")

    control_id = point.get("embeddedId")
    return ClimateControlRecord(
        control_id=str(control_id) if control_id is not None else "",
        name=_text(_attribute(point, "name")) or DEFAULT_CONTROL_NAME,
        is_on=_attribute(point, "onOffMode") == "on",
        mode=mode or UNKNOWN_MODE,
        room_temperature=_reading(sensory, "roomTemperature"),
        room_humidity=_reading(sensory, "roomHumidity"),
        outdoor_temperature=_reading(sensory, "outdoorTemperature"),
        target_temperature=_target_temperature(point, mode),
        fan_speed=_current_mode(_mapping(fan, "fanSpeed")),
        fan_direction_horizontal=_current_mode(_mapping(direction, "horizontal")),
        fan_direction_vertical=_current_mode(_mapping(direction, "vertical")),
        powerful_mode=_attribute(point, "powerfulMode") == "on",
        is_in_error_state=_attribute(point, "isInErrorState") is True,
        is_in_warning_state=_attribute(point, "isInWarningState") is True,
        is_in_caution_state=_attribute(point, "isInCautionState") is True,
        consumption_today=_bucket_sum(cooling, "d"),
        consumption_week=_bucket_sum(cooling, "w"),
        consumption_month=_bucket_sum(cooling, "m"),
    )


def _management_points(device: Mapping[str, Any]) -> List[Any]:
    points = device.get("managementPoints")
    if points is None:
        return []
    if not isinstance(points, list):
        raise DeviceDocumentError(
            f"managementPoints must be a list, got {type(points).__name__} for device {device.get('_id')!r}"
        )
    return points


def _require_mapping(device: Any) -> Mapping[str, Any]:
    if not isinstance(device, Mapping):
        raise DeviceDocumentError(f"Device document must be an object, got {type(device).__name__}")
    for key in ("_id", "deviceModel"):
        if device.get(key) is None:
            raise DeviceDocumentError(f"Device document is missing required field '{key}'")
    return device


def parse_climate_controls(device: Any) -> List[ClimateControlRecord]:
    """Return one record per ``climateControl`` management point of ``device``.

    Devices without any climate-capable point yield an empty list.
    """
    document = _require_mapping(device)
    records: List[ClimateControlRecord] = []
    for point in _management_points(document):
        if not isinstance(point, Mapping):
            continue
        if point.get("managementPointType") != CLIMATE_CONTROL_TYPE:
            continue
        records.append(_parse_climate_control(point))
    return records


def parse_device(device: Any) -> ParsedDevice:
    document = _require_mapping(device)
    controls = parse_climate_controls(document)
    return ParsedDevice(
        device_id=str(document["_id"]),
        device_model=str(document["deviceModel"]),
        is_online=_attribute(document, "isCloudConnectionUp") is True,
        climate_controls=controls,
    )


def parse_devices(devices: Iterable[Any]) -> List[ParsedDevice]:
    parsed = [parse_device(device) for device in devices]
    logger.debug(
        "Parsed %d device(s) with %d climate control(s)",
        len(parsed),
        sum(len(device.climate_controls) for device in parsed),
    )
    return parsed


__all__ = [
    "CLIMATE_CONTROL_TYPE",
    "ClimateControlRecord",
    "DeviceDocumentError",
    "ParsedDevice",
    "parse_climate_controls",
    "parse_device",
    "parse_devices",
]
