"""Snap GPS positions to route polylines and cut the stretch a bus is about to drive.

Uses Shapely linear referencing on the route LineString in (lon, lat) degrees.
"""

import logging
import math
from dataclasses import dataclass

from shapely.geometry import LineString, Point
from shapely.ops import substring

logger = logging.getLogger(__name__)

# Max distance (meters) from route to consider a valid snap
MAX_SNAP_DISTANCE_M = 300

# Approximate meters per degree at Nuuk latitude (~64.18)
LAT_M_PER_DEG = 111_320.0
LON_M_PER_DEG = 111_320.0 * math.cos(math.radians(64.18))


@dataclass
class MatchResult:
    progress: float  # 0.0-1.0 along the route
    distance_m: float  # perpendicular distance from route in meters


def _to_latlon(line: LineString) -> list[list[float]]:
    return [[y, x] for x, y in line.coords]


class RouteMatcher:
    """Matches GPS coordinates to loaded route polylines."""

    def __init__(self) -> None:
        # route number -> (LineString in degrees, closed loop)
        self._routes: dict[str, tuple[LineString, bool]] = {}

    def __contains__(self, route: object) -> bool:
        return route in self._routes

    def load_route(self, route: str, coords: list[list[float]]) -> None:
        """Load route geometry. coords = [[lat, lon], ...]"""
        if len(coords) < 2:
            self._routes.pop(route, None)
            return
        # Shapely uses (x, y) = (lon, lat)
        line = LineString([(c[1], c[0]) for c in coords])
        if line.length == 0:
            self._routes.pop(route, None)
            return
        closed = tuple(coords[0]) == tuple(coords[-1])
        self._routes[route] = (line, closed)

    def match(self, route: str, lat: float, lon: float) -> MatchResult | None:
        """Snap a point to a route, returning progress and distance."""
        if route not in self._routes:
            return None

        line, _ = self._routes[route]
        point = Point(lon, lat)
        progress = line.project(point, normalized=True)
        dist_m = self._distance_m(line, point)
        if dist_m > MAX_SNAP_DISTANCE_M:
            return None
        return MatchResult(progress=progress, distance_m=dist_m)

    def path_between(
        self,
        route: str,
        start: tuple[float, float],
        end: tuple[float, float],
    ) -> list[list[float]] | None:
        """Route polyline from `start` to `end` ((lat, lon) each), as [[lat, lon], ...].

        On a closed loop the path runs forward and wraps past the loop's end
        when `end` lies behind `start`; on an open line it is reversed instead.
        Returns None when the route is unknown or either point is off-route.
        """
        if route not in self._routes:
            return None
        line, closed = self._routes[route]
        start_pt, end_pt = Point(start[1], start[0]), Point(end[1], end[0])
        if (
            self._distance_m(line, start_pt) > MAX_SNAP_DISTANCE_M
            or self._distance_m(line, end_pt) > MAX_SNAP_DISTANCE_M
        ):
            return None

        a = line.project(start_pt)
        b = line.project(end_pt)
        if a <= b or not closed:
            # Reversed distances give a reversed substring on open lines
            coords = _to_latlon(substring(line, a, b))
        else:
            head = _to_latlon(substring(line, a, line.length))
            tail = _to_latlon(substring(line, 0, b))
            coords = head + tail[1:] if tail else head

        if len(coords) < 2:
            return [[start[0], start[1]], [end[0], end[1]]]
        return coords

    @staticmethod
    def _distance_m(line: LineString, point: Point) -> float:
        # Nearest point on the line, converted with per-axis scale
        nearest = line.interpolate(line.project(point))
        dlat = (point.y - nearest.y) * LAT_M_PER_DEG
        dlon = (point.x - nearest.x) * LON_M_PER_DEG
        return math.sqrt(dlat * dlat + dlon * dlon)
