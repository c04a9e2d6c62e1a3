"""Joins the stop registry, timetables and route geometry into queryable network state."""

import datetime
import logging
from zoneinfo import ZoneInfo

from busmap.config import settings
from busmap.core.assets import AssetLoader
from busmap.core.name_resolver import IndexedNameResolver, NameResolver, PairwiseNameResolver
from busmap.core.path_builder import (
    PathOverrides,
    RoutePathBuilder,
    apply_stop_insertions,
    looped_stop_order,
    trip_stop_order,
)
from busmap.core.route_catalog import ROUTES, RouteOverrides
from busmap.core.route_matcher import RouteMatcher
from busmap.core.schedule_parser import (
    DEFAULT_UPCOMING_LIMIT,
    RouteSchedule,
    UpcomingDepartures,
    get_upcoming_departures,
    parse_schedule_csv,
    stop_order_for_date,
)
from busmap.core.stop_registry import Stop, StopRegistry
from busmap.schemas.route import DepartureInfo
from busmap.schemas.vehicle import StopPoint, Vehicle, VehicleContext

logger = logging.getLogger(__name__)

RESOLVERS: dict[str, type[NameResolver]] = {
    "pairwise": PairwiseNameResolver,
    "indexed": IndexedNameResolver,
}


def _stop_point(stop: Stop | None) -> StopPoint | None:
    if stop is None or stop.coordinates is None:
        return None
    lat, lon = stop.coordinates
    return StopPoint(id=stop.id, name=stop.name, lat=lat, lon=lon)


class TransitNetwork:
    """Static network data plus the queries the API and live views need.

    Every query returns an empty or neutral result until the stop registry
    (and, for timetable queries, the route's schedule) has been loaded.
    """

    def __init__(
        self,
        path_builder: RoutePathBuilder,
        assets: AssetLoader | None = None,
        routes: dict[str, RouteOverrides] | None = None,
        threshold: float | None = None,
        resolver: str | None = None,
        timezone: str | None = None,
    ) -> None:
        self.path_builder = path_builder
        self.assets = assets
        self.routes = ROUTES if routes is None else routes
        self.threshold = settings.fuzzy_match_threshold if threshold is None else threshold
        self.resolver_cls = RESOLVERS[resolver or settings.name_resolver]
        self.tz = ZoneInfo(timezone or settings.timezone)

        self.registry: StopRegistry | None = None
        self.resolver: NameResolver | None = None
        self.schedules: dict[str, RouteSchedule] = {}
        self.route_matcher = RouteMatcher()
        self._overrides: dict[str, PathOverrides] = {}
        self._insertions: dict[str, list[tuple[int, int]]] = {}
        # (route, stop order) -> looped path
        self._path_cache: dict[tuple[str, tuple[int, ...]], list[list[float]]] = {}

    @property
    def loaded(self) -> bool:
        return self.registry is not None

    def now(self) -> datetime.datetime:
        return datetime.datetime.now(self.tz)

    def local_time(self, when: datetime.datetime | None) -> datetime.datetime:
        if when is None:
            return self.now()
        if when.tzinfo is None:
            return when
        return when.astimezone(self.tz)

    # ---- loading -----------------------------------------------------------

    def load_stops_geojson(self, data: dict) -> None:
        registry = StopRegistry.from_geojson(data)
        self.registry = registry
        self.resolver = self.resolver_cls(registry, self.threshold)
        self._overrides = {num: self._resolve_overrides(r) for num, r in self.routes.items()}
        self._insertions = {num: self._resolve_insertions(r) for num, r in self.routes.items()}
        self._path_cache.clear()
        self.route_matcher = RouteMatcher()

    def load_schedule_csv(self, route: str, csv_text: str) -> RouteSchedule | None:
        overrides = self.routes.get(route)
        if self.resolver is None or overrides is None:
            logger.warning("Cannot load schedule for route %s: stops not loaded or route unknown", route)
            return None
        schedule = parse_schedule_csv(
            csv_text, self.resolver,
            aliases=overrides.aliases,
            time_parser=overrides.time_parser,
        )
        self.schedules[route] = schedule
        self._path_cache = {k: v for k, v in self._path_cache.items() if k[0] != route}
        self.route_matcher.load_route(route, [])
        return schedule

    async def reload(self) -> None:
        """Re-read the stop registry and every route timetable from the asset store."""
        if self.assets is None:
            return
        data = await self.assets.read_json(settings.stops_asset)
        if not isinstance(data, dict):
            logger.error("Stop registry %s unavailable, keeping current network", settings.stops_asset)
            return
        self.load_stops_geojson(data)

        schedules = {}
        for number, route in self.routes.items():
            text = await self.assets.read_text(route.schedule_asset)
            if text is None:
                previous = self.schedules.get(number)
                if previous is not None:
                    logger.warning("Timetable for route %s unavailable, keeping the previous one", number)
                    schedules[number] = previous
                continue
            schedule = self.load_schedule_csv(number, text)
            if schedule is not None:
                schedules[number] = schedule
        self.schedules = schedules
        logger.info("Network loaded: %d stops, %d route timetables", len(self.registry), len(schedules))

    def _resolve_overrides(self, route: RouteOverrides) -> PathOverrides:
        coordinates = {}
        for name, point in route.stop_coordinates.items():
            stop_id = self.registry.lookup_name(name)
            if stop_id is not None:
                coordinates[stop_id] = point
        waypoints = {}
        for override in route.waypoints:
            start = self.registry.lookup_name(override.from_name)
            end = self.registry.lookup_name(override.to_name)
            if start is not None and end is not None:
                waypoints[(start, end)] = override.via
        return PathOverrides(coordinates=coordinates, waypoints=waypoints)

    def _resolve_insertions(self, route: RouteOverrides) -> list[tuple[int, int]]:
        pairs = []
        for after, stop in route.stop_insertions:
            after_id, stop_id = self.registry.lookup_name(after), self.registry.lookup_name(stop)
            if after_id is not None and stop_id is not None:
                pairs.append((after_id, stop_id))
        return pairs

    # ---- queries -----------------------------------------------------------

    def get_stop(self, stop_id: int | None) -> Stop | None:
        return self.registry.get(stop_id) if self.registry is not None else None

    def resolve_stop(self, name: str | None) -> Stop | None:
        if self.resolver is None:
            return None
        return self.get_stop(self.resolver.resolve(name))

    def stop_order(self, route: str, when: datetime.datetime | None = None) -> list[int]:
        schedule = self.schedules.get(route)
        if schedule is None:
            return []
        order = stop_order_for_date(schedule, self.local_time(when).date())
        return apply_stop_insertions(order, self._insertions.get(route, []))

    def routes_for_stop(self, stop_id: int) -> list[str]:
        return [
            number for number, schedule in self.schedules.items()
            if any(stop_id in order for order in schedule.stop_order.values())
        ]

    def upcoming_departures(
        self,
        route: str,
        stop_id: int,
        now: datetime.datetime | None = None,
        limit: int = DEFAULT_UPCOMING_LIMIT,
    ) -> UpcomingDepartures | None:
        return get_upcoming_departures(self.schedules.get(route), stop_id, self.local_time(now), limit)

    async def route_path(
        self,
        route: str,
        from_stop: int | None = None,
        to_stop: int | None = None,
        when: datetime.datetime | None = None,
    ) -> list[list[float]]:
        """Polyline for the whole loop, or for the trip between two of its stops."""
        if self.registry is None:
            return []
        order = self.stop_order(route, when)
        if len(order) < 2:
            return []

        overrides = self._overrides.get(route)
        coords = self.registry.coordinate_index()
        if from_stop is not None and to_stop is not None:
            trip = trip_stop_order(order, from_stop, to_stop)
            if trip is not None:
                return await self.path_builder.build(trip, coords, overrides)

        key = (route, tuple(order))
        cached = self._path_cache.get(key)
        if cached is not None:
            return cached
        built = await self.path_builder.build_path(looped_stop_order(order), coords, overrides)
        # Straight-line fallbacks are served but never cached
        if built.points and not built.degraded:
            self._path_cache[key] = built.points
            self.route_matcher.load_route(route, built.points)
        return built.points

    async def path_to_stop(self, vehicle: Vehicle, stop: StopPoint) -> list[list[float]]:
        """Road path from the vehicle to `stop` along its route, or a straight line."""
        straight = [[vehicle.lat, vehicle.lon], [stop.lat, stop.lon]]
        if vehicle.route not in self.schedules:
            return straight
        if vehicle.route not in self.route_matcher:
            await self.route_path(vehicle.route)
        sliced = self.route_matcher.path_between(vehicle.route, (vehicle.lat, vehicle.lon), (stop.lat, stop.lon))
        return sliced or straight

    def _vehicle_stop(self, stop_id: int | None, name: str | None) -> Stop | None:
        # Feed stop ids match the registry; the name is the fallback
        stop = self.get_stop(stop_id)
        if stop is None and name:
            stop = self.resolve_stop(name)
        return stop

    async def vehicle_context(self, vehicle: Vehicle, now: datetime.datetime | None = None) -> VehicleContext:
        """Where the vehicle is, where it heads next, and what the timetable says there."""
        context = VehicleContext(vehicle=vehicle)
        if self.registry is None:
            return context

        context.current_stop = _stop_point(self._vehicle_stop(vehicle.current_stop_id, vehicle.current_stop_name))
        context.next_stop = _stop_point(self._vehicle_stop(vehicle.next_stop_id, vehicle.next_stop_name))
        target = context.next_stop or context.current_stop
        if target is None:
            return context

        upcoming = self.upcoming_departures(vehicle.route, target.id, now)
        if upcoming is not None:
            context.service_day = upcoming.service_day.value
            context.service_ended = upcoming.service_ended
            context.next_stop_departures = [
                DepartureInfo(label=d.label, seconds=d.seconds, is_next=d.is_next)
                for d in upcoming.departures
            ]
        context.path_to_next_stop = await self.path_to_stop(vehicle, target)
        return context
