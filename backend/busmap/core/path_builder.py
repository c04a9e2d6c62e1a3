"""Build a drawable polyline for a route (or a trip on it) from its ordered stops.

Consecutive stop pairs are routed over the road network in batches. Pairs
with curated waypoints are spliced in as-is, and any batch the router cannot
serve falls back to straight lines between its inputs, so a build always
produces a path when at least two stops have coordinates.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass, field

from busmap.core.osrm_client import LatLon, OsrmClient, SegmentCache, coordinate_key

logger = logging.getLogger(__name__)

DEFAULT_MAX_COORDS = 80


@dataclass(frozen=True)
class PathOverrides:
    """Per-route overrides already resolved to stop ids."""

    # stop id -> (lat, lon) replacing the registry position
    coordinates: Mapping[int, LatLon] = field(default_factory=dict)
    # (from stop id, to stop id) -> waypoints between the two stops
    waypoints: Mapping[tuple[int, int], Sequence[LatLon]] = field(default_factory=dict)


@dataclass(frozen=True)
class RouteChunk:
    points: list[LatLon]
    manual: bool = False


@dataclass
class BuiltPath:
    points: list[list[float]]
    # True when at least one chunk fell back to a straight line after a routing failure
    degraded: bool = False


def looped_stop_order(order: Sequence[int]) -> list[int]:
    """Close a round trip by returning to the first stop."""
    if len(order) <= 1:
        return list(order)
    return [*order, order[0]]


def trip_stop_order(order: Sequence[int], from_stop: int, to_stop: int) -> list[int] | None:
    """Forward arc from `from_stop` to `to_stop`, wrapping past the end of the loop."""
    if not order or from_stop not in order or to_stop not in order:
        return None
    start, end = order.index(from_stop), order.index(to_stop)
    if start <= end:
        return list(order[start:end + 1])
    return [*order[start:], *order[:end + 1]]


def apply_stop_insertions(order: Sequence[int], insertions: Sequence[tuple[int, int]]) -> list[int]:
    """Insert `stop` right after `after` unless it already follows it."""
    updated = list(order)
    for after, stop in insertions:
        if after not in updated:
            continue
        index = updated.index(after)
        if index + 1 < len(updated) and updated[index + 1] == stop:
            continue
        updated.insert(index + 1, stop)
    return updated


def build_chunks(
    order: Sequence[int],
    coords: Mapping[int, LatLon],
    waypoints: Mapping[tuple[int, int], Sequence[LatLon]],
    max_coords: int = DEFAULT_MAX_COORDS,
) -> list[RouteChunk]:
    """Split the stop sequence into routing requests and manual splices.

    Pairs where either stop lacks coordinates are skipped. A routing chunk
    holds at most `max_coords` points; the next chunk starts at the last
    point of the previous one so the merged path stays connected.
    """
    chunks: list[RouteChunk] = []
    current: list[LatLon] = []

    def flush() -> None:
        nonlocal current
        if len(current) > 1:
            chunks.append(RouteChunk(points=current))
        current = []

    for from_id, to_id in zip(order, order[1:]):
        start, end = coords.get(from_id), coords.get(to_id)
        if start is None or end is None:
            continue

        via = waypoints.get((from_id, to_id))
        if via:
            flush()
            chunks.append(RouteChunk(points=[start, *via, end], manual=True))
            continue

        if not current:
            current.append(start)
        current.append(end)
        if len(current) >= max_coords:
            last = current[-1]
            flush()
            current.append(last)

    flush()
    return chunks


def merge_chunks(chunks: Sequence[Sequence[Sequence[float]]]) -> list[list[float]]:
    """Concatenate resolved chunks, dropping consecutive points that round to the same key."""
    merged: list[list[float]] = []
    last_key = None
    for chunk in chunks:
        for point in chunk:
            key = coordinate_key(point)
            if key == last_key:
                continue
            merged.append([point[0], point[1]])
            last_key = key
    return merged


def split_overlapping_segments(path: Sequence[Sequence[float]]) -> list[list[list[float]]]:
    """Split a polyline wherever it retraces an edge already drawn (either direction)."""
    seen: set[tuple[str, str]] = set()
    segments: list[list[list[float]]] = []
    current: list[list[float]] = []

    for a, b in zip(path, path[1:]):
        edge = tuple(sorted((coordinate_key(a), coordinate_key(b))))
        if edge in seen:
            if len(current) >= 2:
                segments.append(current)
            current = []
            continue
        seen.add(edge)
        if not current:
            current.append([a[0], a[1]])
        current.append([b[0], b[1]])

    if len(current) >= 2:
        segments.append(current)
    return segments


class RoutePathBuilder:
    """Resolves stop orders into polylines through OSRM, caching each routed chunk."""

    def __init__(
        self,
        osrm: OsrmClient | None,
        cache: SegmentCache | None = None,
        max_coords: int = DEFAULT_MAX_COORDS,
    ) -> None:
        self.osrm = osrm
        self.cache = cache if cache is not None else SegmentCache()
        self.max_coords = max(2, max_coords)

    def stop_coordinates(
        self,
        order: Sequence[int],
        coords: Mapping[int, LatLon],
        overrides: PathOverrides | None = None,
    ) -> dict[int, LatLon]:
        resolved = {sid: coords[sid] for sid in order if sid in coords}
        if overrides:
            for sid, point in overrides.coordinates.items():
                if sid in order:
                    resolved[sid] = point
        return resolved

    def straight_line(
        self,
        order: Sequence[int],
        coords: Mapping[int, LatLon],
        overrides: PathOverrides | None = None,
    ) -> list[list[float]]:
        """Stop positions with waypoints spliced in, without any routing."""
        index = self.stop_coordinates(order, coords, overrides)
        waypoints = overrides.waypoints if overrides else {}
        points: list[LatLon] = []
        for position, sid in enumerate(order):
            if sid in index:
                points.append(index[sid])
            if position + 1 < len(order):
                points.extend(waypoints.get((sid, order[position + 1]), ()))
        return merge_chunks([points])

    async def _resolve_chunk(self, chunk: RouteChunk) -> tuple[Sequence[Sequence[float]], bool]:
        """Chunk polyline and whether it came out as intended (False on routing failure)."""
        if chunk.manual or self.osrm is None:
            return chunk.points, True
        cached = self.cache.get(chunk.points)
        if cached is not None:
            return cached, True
        routed = await self.osrm.fetch_route(chunk.points)
        if routed is None:
            logger.info("Routing failed for %d-point chunk, using straight line", len(chunk.points))
            return chunk.points, False
        self.cache.put(chunk.points, routed)
        return routed, True

    async def build_path(
        self,
        order: Sequence[int],
        coords: Mapping[int, LatLon],
        overrides: PathOverrides | None = None,
    ) -> BuiltPath:
        """Polyline through `order` plus whether any chunk had to fall back to a straight line."""
        index = self.stop_coordinates(order, coords, overrides)
        waypoints = overrides.waypoints if overrides else {}
        chunks = build_chunks(order, index, waypoints, self.max_coords)
        if not chunks:
            return BuiltPath([])

        resolved = await asyncio.gather(*(self._resolve_chunk(c) for c in chunks))
        degraded = not all(ok for _, ok in resolved)
        path = merge_chunks([points for points, _ in resolved])
        if len(path) < 2:
            return BuiltPath(self.straight_line(order, coords, overrides), degraded)
        logger.debug("Built path: %d stops, %d chunks, %d points", len(order), len(chunks), len(path))
        return BuiltPath(path, degraded)

    async def build(
        self,
        order: Sequence[int],
        coords: Mapping[int, LatLon],
        overrides: PathOverrides | None = None,
    ) -> list[list[float]]:
        """Polyline [[lat, lon], ...] through `order`. Empty when fewer than two stops are placed."""
        return (await self.build_path(order, coords, overrides)).points

    async def build_route(
        self,
        order: Sequence[int],
        coords: Mapping[int, LatLon],
        overrides: PathOverrides | None = None,
        from_stop: int | None = None,
        to_stop: int | None = None,
    ) -> list[list[float]]:
        """Whole loop, or the trip between two stops when both are given and on the route."""
        active = None
        if from_stop is not None and to_stop is not None:
            active = trip_stop_order(order, from_stop, to_stop)
        if active is None:
            active = looped_stop_order(order)
        return await self.build(active, coords, overrides)


class PathSelection:
    """One client's current path request. A new key cancels the build in flight."""

    def __init__(self) -> None:
        self._task: asyncio.Task | None = None
        self._key: Hashable | None = None
        self._generation = 0

    @property
    def key(self) -> Hashable | None:
        return self._key

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._key = None
        self._generation += 1

    async def select(
        self,
        key: Hashable,
        build: Callable[[], Awaitable[list[list[float]]]],
    ) -> list[list[float]] | None:
        """Run `build` for `key`. Returns None when superseded by a newer selection."""
        if key == self._key and self._task is not None:
            task = self._task
        else:
            self.cancel()
            self._key = key
            task = asyncio.ensure_future(build())
            self._task = task
        generation = self._generation

        try:
            result = await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return None
            raise
        if generation != self._generation:
            return None
        return result
