"""Turn raw live-feed records into typed Vehicle snapshots.

The feed is a JSON object keyed by an arbitrary per-request key:

    {"4217": {"current_gps_latitude": "64.1766", "current_gps_longitude": "-51.7359",
              "route_short_name": "1", "stop_name": "54: Atuarfik Hans Lynge",
              "next_stop_name": "12: Nuuk Center", "current_bus_speed": "23.5",
              "at_stop": "false", "updated_at": "2026-03-02T08:14:05Z", ...}}

Only the coordinates are required; every other field degrades to a default.
"""

import datetime
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from busmap.config import settings
from busmap.core.names import is_placeholder
from busmap.schemas.vehicle import Vehicle

logger = logging.getLogger(__name__)

ROUTE_PLACEHOLDER = "N/A"
STALE_AFTER_SECONDS = 120

_STOP_FIELD = re.compile(r"^\s*(\d+)\s*:\s*(.+?)\s*$")

# Identity fields in order of preference; the feed key is the last resort
_IDENTITY_FIELDS = ("location_id", "device_id")


@dataclass(frozen=True)
class StopRef:
    id: int
    name: str


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


class RawFeedRecord(BaseModel):
    """Validated view of one feed record. Unknown fields are kept but unused."""

    model_config = ConfigDict(extra="allow")

    current_gps_latitude: float
    current_gps_longitude: float
    route_short_name: str = ""
    route_long_name: str = ""
    stop_name: str = ""
    next_stop_name: str = ""
    current_bus_speed: float = 0.0
    at_stop: bool = False
    updated_at: str = ""
    trip_headsign: str = ""
    trip_id: str = ""
    location_id: str = ""
    device_id: str = ""

    @field_validator("current_gps_latitude", "current_gps_longitude", mode="before")
    @classmethod
    def _coordinate(cls, value: Any) -> float:
        if isinstance(value, bool):
            raise ValueError("boolean is not a coordinate")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"cannot read {value!r} as a coordinate") from None
        if not math.isfinite(number):
            raise ValueError("coordinate must be finite")
        return number

    @field_validator(
        "route_short_name", "route_long_name", "stop_name", "next_stop_name",
        "updated_at", "trip_headsign", "trip_id", "location_id", "device_id",
        mode="before",
    )
    @classmethod
    def _text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("current_bus_speed", mode="before")
    @classmethod
    def _speed(cls, value: Any) -> float:
        try:
            speed = float(value)
        except (TypeError, ValueError):
            return 0.0
        return speed if math.isfinite(speed) and speed > 0 else 0.0

    @field_validator("at_stop", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return isinstance(value, str) and value.strip().lower() == "true"


def parse_stop_field(raw: Any) -> StopRef | None:
    """Split the feed's '<id>: <name>' stop reference. None for placeholders like 'N/A'."""
    if not isinstance(raw, str):
        return None
    match = _STOP_FIELD.match(raw)
    if not match:
        return None
    name = match.group(2).strip()
    if is_placeholder(name):
        return None
    return StopRef(id=int(match.group(1)), name=name)


def parse_timestamp(raw: str | None) -> datetime.datetime | None:
    """Parse an ISO-8601 timestamp to an aware UTC datetime; naive values are taken as UTC."""
    if not raw:
        return None
    try:
        parsed = datetime.datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed.astimezone(datetime.timezone.utc)


def is_stale(
    updated_at: datetime.datetime | None,
    now: datetime.datetime,
    stale_after_seconds: float = STALE_AFTER_SECONDS,
) -> bool:
    if updated_at is None:
        return True
    return (now - updated_at).total_seconds() > stale_after_seconds


def is_placeholder_route(route: str | None) -> bool:
    return not route or route.strip().upper() == ROUTE_PLACEHOLDER


def is_at_depot(lat: float, lon: float, bounds: tuple[float, float, float, float] | None = None) -> bool:
    min_lat, max_lat, min_lon, max_lon = bounds or settings.depot_bounds
    return min_lat <= lat <= max_lat and min_lon <= lon <= max_lon


def select_vehicle_id(feed_key: str, record: RawFeedRecord) -> str:
    """Prefer a stable hardware/location id so a bus keeps its identity across polls."""
    for attr in _IDENTITY_FIELDS:
        value = getattr(record, attr)
        if value:
            return value
    return str(feed_key)


def normalize_vehicle(
    feed_key: str,
    raw: Any,
    now: datetime.datetime,
    stale_after_seconds: float = STALE_AFTER_SECONDS,
) -> Vehicle | None:
    """Normalize one record; returns None (and logs) when coordinates are unusable."""
    if not isinstance(raw, dict):
        logger.warning("Skipping vehicle %s: record is %s, not an object", feed_key, type(raw).__name__)
        return None
    try:
        record = RawFeedRecord.model_validate(raw)
    except ValidationError as e:
        logger.warning("Skipping vehicle %s: %d invalid field(s): %s", feed_key, e.error_count(), e.errors()[0]["loc"])
        return None

    updated_at = parse_timestamp(record.updated_at)
    current = parse_stop_field(record.stop_name)
    upcoming = parse_stop_field(record.next_stop_name)
    lat, lon = record.current_gps_latitude, record.current_gps_longitude

    return Vehicle(
        id=select_vehicle_id(feed_key, record),
        route=record.route_short_name or ROUTE_PLACEHOLDER,
        route_long_name=record.route_long_name,
        lat=lat,
        lon=lon,
        updated_at=updated_at,
        speed=record.current_bus_speed,
        at_stop=record.at_stop,
        current_stop_id=current.id if current else None,
        current_stop_name=current.name if current else None,
        next_stop_id=upcoming.id if upcoming else None,
        next_stop_name=upcoming.name if upcoming else None,
        headsign=record.trip_headsign,
        trip_id=record.trip_id,
        is_stale=is_stale(updated_at, now, stale_after_seconds),
        at_depot=is_at_depot(lat, lon),
    )


def normalize_vehicles(
    payload: Any,
    now: datetime.datetime,
    stale_after_seconds: float = STALE_AFTER_SECONDS,
) -> list[Vehicle]:
    """Normalize a whole feed response. Malformed records are skipped individually."""
    if isinstance(payload, dict):
        items = list(payload.items())
    elif isinstance(payload, list):
        items = [(str(i), item) for i, item in enumerate(payload)]
    else:
        logger.warning("Unexpected feed payload type %s", type(payload).__name__)
        return []

    vehicles = []
    for key, raw in items:
        vehicle = normalize_vehicle(str(key), raw, now, stale_after_seconds)
        if vehicle is not None:
            vehicles.append(vehicle)
    if len(vehicles) < len(items):
        logger.info("Normalized %d/%d feed records", len(vehicles), len(items))
    return vehicles
