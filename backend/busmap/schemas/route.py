from pydantic import BaseModel


class RouteInfo(BaseModel):
    number: str
    name: str
    color: str
    line_color: str
    stop_order: list[int] = []


class RouteStopInfo(BaseModel):
    id: int
    name: str
    lat: float | None = None
    lon: float | None = None
    order: int


class RoutePath(BaseModel):
    route: str
    from_stop: int | None = None
    to_stop: int | None = None
    coordinates: list[list[float]] = []  # [[lat, lon], ...]
    segments: list[list[list[float]]] = []


class StopInfoFull(BaseModel):
    id: int
    name: str
    alternate_name: str | None = None
    lat: float | None = None
    lon: float | None = None
    match_quality: str
    routes: list[str] = []


class StopResolution(BaseModel):
    query: str
    stop_id: int | None = None
    name: str | None = None


class DepartureInfo(BaseModel):
    label: str
    seconds: int
    is_next: bool = False


class StopDepartures(BaseModel):
    stop_id: int
    stop_name: str
    route: str
    service_day: str | None = None
    service_ended: bool = False
    departures: list[DepartureInfo] = []
