"""Load static assets (stops.geojson, timetable CSVs) from a directory or an HTTP base URL."""

import logging
from pathlib import Path
from urllib.parse import quote

import httpx
import orjson

from busmap.config import settings

logger = logging.getLogger(__name__)


class AssetLoader:
    def __init__(self, base: str | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.base = base if base is not None else settings.assets_base
        self._client = client
        self._owns_client = False

    @property
    def is_remote(self) -> bool:
        return self.base.startswith(("http://", "https://"))

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
            self._owns_client = True
        return self._client

    async def read_text(self, name: str) -> str | None:
        """Asset contents, or None when missing or unreadable."""
        if self.is_remote:
            url = f"{self.base.rstrip('/')}/{quote(name)}"
            try:
                resp = await self._http().get(url)
                resp.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning("Failed to fetch asset %s: %s", url, e)
                return None
            return resp.text

        path = Path(self.base) / name
        try:
            return path.read_text(encoding="utf-8-sig")
        except OSError as e:
            logger.warning("Failed to read asset %s: %s", path, e)
            return None

    async def read_json(self, name: str):
        text = await self.read_text(name)
        if text is None:
            return None
        try:
            return orjson.loads(text)
        except orjson.JSONDecodeError as e:
            logger.warning("Asset %s is not valid JSON: %s", name, e)
            return None
