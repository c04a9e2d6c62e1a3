import datetime

from pydantic import BaseModel

from busmap.schemas.route import DepartureInfo


class Vehicle(BaseModel):
    id: str
    route: str
    route_long_name: str = ""
    lat: float
    lon: float
    updated_at: datetime.datetime | None = None
    speed: float = 0.0
    at_stop: bool = False
    current_stop_id: int | None = None
    current_stop_name: str | None = None
    next_stop_id: int | None = None
    next_stop_name: str | None = None
    headsign: str = ""
    trip_id: str = ""
    is_stale: bool = True
    at_depot: bool = False


class FeedStatus(BaseModel):
    feed_error: str | None = None
    last_success_at: datetime.datetime | None = None
    vehicle_count: int = 0


class StopPoint(BaseModel):
    id: int
    name: str
    lat: float
    lon: float


class VehicleContext(BaseModel):
    vehicle: Vehicle
    current_stop: StopPoint | None = None
    next_stop: StopPoint | None = None
    service_day: str | None = None
    service_ended: bool = False
    next_stop_departures: list[DepartureInfo] = []
    path_to_next_stop: list[list[float]] = []  # [[lat, lon], ...]
