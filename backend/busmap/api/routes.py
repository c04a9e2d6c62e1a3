"""Route REST API endpoints."""

from fastapi import APIRouter, HTTPException

from busmap.core.path_builder import split_overlapping_segments
from busmap.core.route_catalog import ROUTES, get_route
from busmap.schemas.route import RouteInfo, RoutePath, RouteStopInfo

router = APIRouter(prefix="/api/routes", tags=["routes"])

# Will be set by main.py
network = None


def _require_route(route: str):
    overrides = get_route(route)
    if overrides is None:
        raise HTTPException(status_code=404, detail="Route not found")
    return overrides


@router.get("", response_model=list[RouteInfo])
async def list_routes():
    """Get all routes with colours and today's stop order."""
    return [
        RouteInfo(
            number=r.number,
            name=r.name,
            color=r.color,
            line_color=r.path_color,
            stop_order=network.stop_order(r.number) if network else [],
        )
        for r in ROUTES.values()
    ]


@router.get("/{route}/stops", response_model=list[RouteStopInfo])
async def get_route_stops(route: str):
    """Stops of a route in today's order."""
    overrides = _require_route(route)
    if network is None:
        return []
    stops = []
    for order, stop_id in enumerate(network.stop_order(overrides.number)):
        stop = network.get_stop(stop_id)
        if stop is None:
            continue
        lat, lon = stop.coordinates if stop.coordinates else (None, None)
        stops.append(RouteStopInfo(id=stop.id, name=stop.name, lat=lat, lon=lon, order=order))
    return stops


@router.get("/{route}/path", response_model=RoutePath)
async def get_route_path(route: str, from_stop: int | None = None, to_stop: int | None = None):
    """Road path for the whole loop, or for the trip between two of its stops."""
    overrides = _require_route(route)
    coordinates = []
    if network is not None:
        coordinates = await network.route_path(overrides.number, from_stop, to_stop)
    return RoutePath(
        route=overrides.number,
        from_stop=from_stop,
        to_stop=to_stop,
        coordinates=coordinates,
        segments=split_overlapping_segments(coordinates),
    )
