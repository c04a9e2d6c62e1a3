"""Read-only stop registry built from the geocoded stops asset (stops.geojson)."""

import enum
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from busmap.core.names import compact_key, normalize_name

logger = logging.getLogger(__name__)


class MatchQuality(str, enum.Enum):
    EXACT = "exact"
    FUZZY = "fuzzy"
    MANUAL = "manual"
    UNMATCHED = "unmatched"


# Stops that only exist in OSM were placed from their own node, not by name matching
_QUALITY_ALIASES = {
    "osm-only": MatchQuality.EXACT,
    "osm-direct": MatchQuality.EXACT,
}


@dataclass(frozen=True)
class Stop:
    id: int
    name: str
    alternate_name: str | None = None
    coordinates: tuple[float, float] | None = None  # (lat, lon)
    match_quality: MatchQuality = MatchQuality.UNMATCHED

    @property
    def names(self) -> list[str]:
        return [n for n in (self.name, self.alternate_name) if n]


def _parse_quality(raw) -> MatchQuality | None:
    """Known quality for a matchMethod tag, None for an unrecognised one."""
    raw = str(raw or "").strip().lower()
    if raw in _QUALITY_ALIASES:
        return _QUALITY_ALIASES[raw]
    try:
        return MatchQuality(raw)
    except ValueError:
        return None


def _feature_to_stop(feature: dict) -> Stop | None:
    """Convert a GeoJSON feature into a Stop, enforcing the coordinates/quality invariant."""
    props = feature.get("properties") or {}
    try:
        stop_id = int(props["id"])
    except (KeyError, TypeError, ValueError):
        logger.warning("Skipping stop feature without integer id: %s", props)
        return None

    name = str(props.get("name") or "").strip()
    alternate = str(props.get("osmName") or props.get("alternate_name") or "").strip() or None
    if alternate == name:
        alternate = None
    quality = _parse_quality(props.get("matchMethod", props.get("match_quality")))

    coordinates = None
    raw_coords = (feature.get("geometry") or {}).get("coordinates")
    if raw_coords:
        try:
            lon, lat = float(raw_coords[0]), float(raw_coords[1])
            coordinates = (lat, lon)
        except (IndexError, TypeError, ValueError):
            logger.warning("Stop %d has malformed coordinates %r", stop_id, raw_coords)

    if quality is None:
        # Unrecognised tag: the position is still trusted when present
        logger.debug("Stop %d has unknown match method %r", stop_id, props.get("matchMethod"))
        quality = MatchQuality.MANUAL if coordinates is not None else MatchQuality.UNMATCHED

    if coordinates is None and quality != MatchQuality.UNMATCHED:
        logger.warning("Stop %d (%s) tagged %s without coordinates", stop_id, name, quality.value)
        quality = MatchQuality.UNMATCHED
    elif coordinates is not None and quality == MatchQuality.UNMATCHED:
        logger.warning("Stop %d (%s) is unmatched but has coordinates, dropping them", stop_id, name)
        coordinates = None

    return Stop(
        id=stop_id,
        name=name,
        alternate_name=alternate,
        coordinates=coordinates,
        match_quality=quality,
    )


class StopRegistry:
    """Indexes stops by id and by normalized name. Never mutated after construction."""

    def __init__(self, stops: Iterable[Stop]) -> None:
        self._by_id: dict[int, Stop] = {}
        self._name_index: dict[str, int] = {}

        for stop in stops:
            if stop.id in self._by_id:
                logger.warning("Duplicate stop id %d (%s), keeping first", stop.id, stop.name)
                continue
            self._by_id[stop.id] = stop

        # Primary names take precedence over alternate names on key collisions
        for attr in ("name", "alternate_name"):
            for stop in self._by_id.values():
                value = getattr(stop, attr)
                for key in (normalize_name(value), compact_key(value)):
                    if key and key not in self._name_index:
                        self._name_index[key] = stop.id

    @classmethod
    def from_geojson(cls, data: dict) -> "StopRegistry":
        features = data.get("features", []) if isinstance(data, dict) else []
        stops = [s for s in (_feature_to_stop(f) for f in features if isinstance(f, dict)) if s]
        registry = cls(stops)
        logger.info(
            "Loaded %d stops (%d with coordinates)",
            len(registry), sum(1 for s in registry if s.coordinates),
        )
        return registry

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Stop]:
        return iter(self._by_id.values())

    def __contains__(self, stop_id: object) -> bool:
        return stop_id in self._by_id

    @property
    def stops(self) -> list[Stop]:
        return list(self._by_id.values())

    def get(self, stop_id: int | None) -> Stop | None:
        if stop_id is None:
            return None
        return self._by_id.get(stop_id)

    def coordinates(self, stop_id: int | None) -> tuple[float, float] | None:
        stop = self.get(stop_id)
        return stop.coordinates if stop else None

    def lookup_name(self, raw: str | None) -> int | None:
        """Exact lookup on the normalized (then space-free) form of a name."""
        key = normalize_name(raw)
        if not key:
            return None
        found = self._name_index.get(key)
        if found is None:
            found = self._name_index.get(key.replace(" ", ""))
        return found

    def coordinate_index(self) -> dict[int, tuple[float, float]]:
        return {s.id: s.coordinates for s in self._by_id.values() if s.coordinates}
