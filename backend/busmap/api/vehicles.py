"""Vehicle REST API endpoints."""

from fastapi import APIRouter, HTTPException

from busmap.schemas.vehicle import FeedStatus, Vehicle, VehicleContext

router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])

# Will be set by main.py
tracker = None
network = None


@router.get("", response_model=list[Vehicle])
async def list_vehicles(route: str | None = None):
    """Get all vehicles in the current snapshot, optionally for one route."""
    if tracker is None:
        return []
    return tracker.vehicles(route)


@router.get("/status", response_model=FeedStatus)
async def feed_status():
    """Live feed health: last error and last successful poll."""
    if tracker is None:
        return FeedStatus(feed_error="Tracker not initialized")
    return tracker.status()


@router.get("/{vehicle_id}", response_model=Vehicle)
async def get_vehicle(vehicle_id: str):
    vehicle = tracker.get_vehicle(vehicle_id) if tracker else None
    if vehicle is None:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


@router.get("/{vehicle_id}/context", response_model=VehicleContext)
async def get_vehicle_context(vehicle_id: str):
    """Current and next stop, timetable at the next stop, and the path there."""
    vehicle = tracker.get_vehicle(vehicle_id) if tracker else None
    if vehicle is None:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    if network is None:
        return VehicleContext(vehicle=vehicle)
    return await network.vehicle_context(vehicle)
