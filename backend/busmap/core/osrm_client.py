"""Road-snapped geometry from an OSRM routing server, with an in-memory segment cache."""

import logging
from collections.abc import Sequence

import httpx

from busmap.config import settings

logger = logging.getLogger(__name__)

LatLon = tuple[float, float]


def coordinate_key(point: Sequence[float]) -> str:
    """5-decimal key (about 1 m) used for caching and boundary de-duplication."""
    return f"{point[0]:.5f},{point[1]:.5f}"


def segment_key(points: Sequence[Sequence[float]]) -> str:
    return "|".join(coordinate_key(p) for p in points)


class SegmentCache:
    """Memo of routed polylines keyed by their rounded input coordinates."""

    def __init__(self) -> None:
        self._entries: dict[str, list[list[float]]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, points: Sequence[Sequence[float]]) -> list[list[float]] | None:
        return self._entries.get(segment_key(points))

    def put(self, points: Sequence[Sequence[float]], path: list[list[float]]) -> None:
        self._entries[segment_key(points)] = path

    def clear(self) -> None:
        self._entries.clear()


class OsrmClient:
    """Thin async wrapper over the OSRM /route service. Failures return None, never raise."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        profile: str | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=settings.osrm_timeout_seconds)
        self.base_url = (base_url or settings.osrm_base_url).rstrip("/")
        self.profile = profile or settings.osrm_profile

    async def close(self) -> None:
        await self._client.aclose()

    def route_url(self, points: Sequence[LatLon]) -> str:
        coords = ";".join(f"{lon:.6f},{lat:.6f}" for lat, lon in points)
        return f"{self.base_url}/route/v1/{self.profile}/{coords}"

    async def fetch_route(self, points: Sequence[LatLon]) -> list[list[float]] | None:
        """Route through `points` in order. Returns [[lat, lon], ...] or None."""
        if len(points) < 2:
            return None
        try:
            resp = await self._client.get(
                self.route_url(points),
                params={"overview": "full", "geometries": "geojson", "steps": "false"},
            )
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("OSRM returned HTTP %d for %d points", e.response.status_code, len(points))
            return None
        except (httpx.TransportError, ValueError) as e:
            logger.warning("OSRM request failed: %s", e)
            return None

        routes = data.get("routes") if isinstance(data, dict) else None
        if not routes:
            logger.warning("OSRM response without routes (code=%s)", data.get("code") if isinstance(data, dict) else None)
            return None
        coords = (routes[0].get("geometry") or {}).get("coordinates")
        if not coords or len(coords) < 2:
            logger.warning("OSRM response without usable geometry")
            return None
        # [lon, lat] -> [lat, lon]
        return [[c[1], c[0]] for c in coords]
