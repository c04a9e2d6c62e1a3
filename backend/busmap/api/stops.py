"""Stop REST API endpoints."""

from fastapi import APIRouter, HTTPException, Query

from busmap.core.route_catalog import get_route
from busmap.schemas.route import DepartureInfo, StopDepartures, StopInfoFull, StopResolution

router = APIRouter(prefix="/api/stops", tags=["stops"])

# Will be set by main.py
network = None


@router.get("", response_model=list[StopInfoFull])
async def list_stops():
    """Get all stops in the registry, placed or not."""
    if network is None or network.registry is None:
        return []
    result = []
    for s in sorted(network.registry, key=lambda s: s.name):
        lat, lon = s.coordinates if s.coordinates else (None, None)
        result.append(StopInfoFull(
            id=s.id,
            name=s.name,
            alternate_name=s.alternate_name,
            lat=lat,
            lon=lon,
            match_quality=s.match_quality.value,
            routes=network.routes_for_stop(s.id),
        ))
    return result


@router.get("/resolve", response_model=StopResolution)
async def resolve_stop(name: str = Query(..., min_length=1)):
    """Resolve a free-text stop label to a registry stop."""
    stop = network.resolve_stop(name) if network else None
    return StopResolution(
        query=name,
        stop_id=stop.id if stop else None,
        name=stop.name if stop else None,
    )


@router.get("/{stop_id}/departures", response_model=StopDepartures)
async def get_departures(stop_id: int, route: str, limit: int = Query(6, ge=1, le=50)):
    """Remaining timetable departures today for a stop on one route."""
    stop = network.get_stop(stop_id) if network else None
    if stop is None:
        raise HTTPException(status_code=404, detail="Stop not found")
    overrides = get_route(route)
    if overrides is None:
        raise HTTPException(status_code=404, detail="Route not found")
    route = overrides.number

    upcoming = network.upcoming_departures(route, stop_id, limit=limit)
    if upcoming is None:
        return StopDepartures(stop_id=stop.id, stop_name=stop.name, route=route)
    return StopDepartures(
        stop_id=stop.id,
        stop_name=stop.name,
        route=route,
        service_day=upcoming.service_day.value,
        service_ended=upcoming.service_ended,
        departures=[
            DepartureInfo(label=d.label, seconds=d.seconds, is_next=d.is_next)
            for d in upcoming.departures
        ],
    )
