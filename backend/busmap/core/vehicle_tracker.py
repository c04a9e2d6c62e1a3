"""Main orchestrator: polls the live feed, reconciles vehicles, publishes the snapshot."""

import asyncio
import datetime
import logging

from busmap.config import settings
from busmap.core.broadcaster import Broadcaster
from busmap.core.feed_client import FeedClient, FeedUnavailableError
from busmap.core.vehicle_normalizer import is_placeholder_route, is_stale, normalize_vehicles
from busmap.schemas.vehicle import FeedStatus, Vehicle

logger = logging.getLogger(__name__)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def merge_vehicle(previous: Vehicle | None, incoming: Vehicle) -> Vehicle:
    """Keep the last known route when the feed momentarily reports none."""
    if previous is None or not is_placeholder_route(incoming.route):
        return incoming
    if is_placeholder_route(previous.route):
        return incoming
    return incoming.model_copy(update={
        "route": previous.route,
        "route_long_name": incoming.route_long_name or previous.route_long_name,
    })


class VehicleTracker:
    """Owns the vehicle snapshot. Readers always see a complete poll, never a partial one."""

    def __init__(
        self,
        feed: FeedClient,
        broadcaster: Broadcaster | None = None,
        poll_interval_seconds: float | None = None,
        eviction_grace_seconds: float | None = None,
        stale_after_seconds: float | None = None,
    ) -> None:
        self.feed = feed
        self.broadcaster = broadcaster
        self.poll_interval_seconds = (
            settings.poll_interval_seconds if poll_interval_seconds is None else poll_interval_seconds
        )
        self.eviction_grace_seconds = (
            settings.eviction_grace_seconds if eviction_grace_seconds is None else eviction_grace_seconds
        )
        self.stale_after_seconds = (
            settings.stale_after_seconds if stale_after_seconds is None else stale_after_seconds
        )

        # Current vehicle states (vehicle_id -> Vehicle), replaced wholesale per poll
        self.current_states: dict[str, Vehicle] = {}
        # vehicle_id -> last poll that contained it
        self._last_seen: dict[str, datetime.datetime] = {}

        self.feed_error: str | None = None
        self.last_success_at: datetime.datetime | None = None
        self._lock = asyncio.Lock()

    @property
    def eviction_after_seconds(self) -> float:
        return self.poll_interval_seconds + self.eviction_grace_seconds

    def vehicles(self, route: str | None = None) -> list[Vehicle]:
        states = list(self.current_states.values())
        if route:
            states = [v for v in states if v.route == route]
        return states

    def get_vehicle(self, vehicle_id: str) -> Vehicle | None:
        return self.current_states.get(vehicle_id)

    def status(self) -> FeedStatus:
        return FeedStatus(
            feed_error=self.feed_error,
            last_success_at=self.last_success_at,
            vehicle_count=len(self.current_states),
        )

    def reconcile(
        self, payload, now: datetime.datetime,
    ) -> tuple[dict[str, Vehicle], dict[str, datetime.datetime]]:
        """Build the next snapshot (and last-seen map) from one payload without touching the current one."""
        previous = self.current_states
        snapshot: dict[str, Vehicle] = {}
        last_seen = dict(self._last_seen)

        for vehicle in normalize_vehicles(payload, now, self.stale_after_seconds):
            if vehicle.id in snapshot:
                logger.debug("Duplicate vehicle id %s in feed, keeping last", vehicle.id)
            snapshot[vehicle.id] = merge_vehicle(previous.get(vehicle.id), vehicle)
            last_seen[vehicle.id] = now

        # Vehicles missing from this poll linger until the eviction window passes
        evicted = []
        for vid, seen in last_seen.items():
            if vid in snapshot:
                continue
            if (now - seen).total_seconds() > self.eviction_after_seconds or vid not in previous:
                evicted.append(vid)
                continue
            held = previous[vid]
            snapshot[vid] = held.model_copy(update={
                "is_stale": is_stale(held.updated_at, now, self.stale_after_seconds),
            })

        for vid in evicted:
            del last_seen[vid]
        if evicted:
            logger.info("Evicted %d vehicle(s): %s", len(evicted), ", ".join(sorted(evicted)))

        return snapshot, last_seen

    async def poll_vehicles(self, now: datetime.datetime | None = None) -> bool:
        """Single poll cycle: fetch, normalize, merge, evict, swap, publish.

        Returns True on success. On failure the previous snapshot stays in
        place and the error is recorded in `feed_error`.
        """
        async with self._lock:
            try:
                payload = await self.feed.fetch_vehicles()
            except FeedUnavailableError as e:
                self.feed_error = str(e)
                logger.warning("Vehicle poll failed, keeping %d vehicle(s): %s", len(self.current_states), e)
                return False
            except Exception as e:
                self.feed_error = f"unexpected error: {e}"
                logger.exception("Error in vehicle poll cycle")
                return False

            now = now or _utcnow()
            snapshot, last_seen = self.reconcile(payload, now)

            # Swap in one step so readers never see a half-merged poll
            self.current_states = snapshot
            self._last_seen = last_seen
            self.feed_error = None
            self.last_success_at = now
            logger.debug("Poll ok: %d vehicle(s)", len(snapshot))

            if self.broadcaster is not None:
                await self.broadcaster.publish([v.model_dump(mode="json") for v in snapshot.values()])
            return True
