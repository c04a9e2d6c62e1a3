"""Async client for the Ridango realtime vehicle feed (pilet.ee)."""

import asyncio
import logging
from typing import Any

import httpx

from busmap.config import settings

logger = logging.getLogger(__name__)

# Backoff between retries: 1s, 2s, 4s, ... capped at 30s
RETRY_BASE_SECONDS = 1.0
RETRY_MAX_SECONDS = 30.0


class FeedUnavailableError(Exception):
    """The feed could not be fetched after all retries."""


def retry_delay(attempt: int) -> float:
    return min(RETRY_BASE_SECONDS * 2 ** attempt, RETRY_MAX_SECONDS)


class FeedClient:
    """Fetches the raw vehicle map from the realtime feed."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=settings.feed_timeout_seconds,
            headers={"Accept": "application/json"},
        )
        self.max_retries = settings.feed_max_retries if max_retries is None else max_retries

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_with_retry(self, url: str, params: dict, label: str) -> httpx.Response:
        """GET with exponential backoff on transport errors and 5xx responses."""
        last_error: Exception | None = None
        for attempt in range(self.max_retries + 1):
            try:
                resp = await self._client.get(url, params=params)
                resp.raise_for_status()
                return resp
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    logger.error("%s request rejected: HTTP %d", label, e.response.status_code)
                    raise FeedUnavailableError(f"{label}: HTTP {e.response.status_code}") from e
                last_error = e
                reason = f"HTTP {e.response.status_code}"
            except httpx.TransportError as e:
                last_error = e
                reason = type(e).__name__

            if attempt < self.max_retries:
                wait = retry_delay(attempt)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.0fs",
                    label, attempt + 1, self.max_retries + 1, reason, wait,
                )
                await asyncio.sleep(wait)

        logger.error("%s failed after %d attempts: %s", label, self.max_retries + 1, last_error)
        raise FeedUnavailableError(f"{label} unavailable: {last_error}") from last_error

    async def fetch_vehicles(self) -> dict[str, Any]:
        """Fetch the current vehicle map. Raises FeedUnavailableError when the feed is down."""
        resp = await self._get_with_retry(
            settings.feed_url, {"org_id": settings.feed_org_id}, "vehicle feed",
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise FeedUnavailableError("vehicle feed returned invalid JSON") from e

        if isinstance(data, list):
            data = {str(i): item for i, item in enumerate(data)}
        if not isinstance(data, dict):
            raise FeedUnavailableError(f"vehicle feed returned {type(data).__name__}, expected object")

        logger.debug("Fetched %d vehicle records", len(data))
        return data
