"""WebSocket endpoint for real-time vehicle updates and route path selection.

Server -> client: {"type": "snapshot" | "update", "vehicles": [...]},
{"type": "path", "route", "from_stop", "to_stop", "coordinates", "segments"},
{"type": "error", "detail"}.

Client -> server: {"type": "select_route", "route": "2", "from_stop": 12, "to_stop": 40}
(stops optional). A newer selection cancels a build still in flight.
"""

import asyncio
import logging

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from busmap.core.path_builder import PathSelection, split_overlapping_segments
from busmap.core.route_catalog import get_route
from busmap.schemas.route import RoutePath

logger = logging.getLogger(__name__)

router = APIRouter()

# Will be set by main.py on startup
broadcaster = None
network = None


def _optional_int(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class VehicleSession:
    """One connected client: update pump plus its current path selection."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.selection = PathSelection()
        self._send_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()

    async def send(self, data: bytes) -> None:
        async with self._send_lock:
            await self.websocket.send_bytes(data)

    async def pump(self) -> None:
        queue = broadcaster.subscribe()
        try:
            while True:
                await self.send(await queue.get())
        except WebSocketDisconnect:
            pass
        finally:
            broadcaster.unsubscribe(queue)

    def handle(self, message: dict) -> None:
        if message.get("type") == "select_route":
            task = asyncio.create_task(self.select_route(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            logger.debug("Ignoring WebSocket message of type %r", message.get("type"))

    async def select_route(self, message: dict) -> None:
        overrides = get_route(str(message.get("route") or ""))
        if overrides is None or network is None:
            await self.send(orjson.dumps({"type": "error", "detail": "Route not found"}))
            return
        route = overrides.number
        from_stop = _optional_int(message.get("from_stop"))
        to_stop = _optional_int(message.get("to_stop"))

        coordinates = await self.selection.select(
            (route, from_stop, to_stop),
            lambda: network.route_path(route, from_stop, to_stop),
        )
        if coordinates is None:
            return  # superseded by a newer selection

        path = RoutePath(
            route=route,
            from_stop=from_stop,
            to_stop=to_stop,
            coordinates=coordinates,
            segments=split_overlapping_segments(coordinates),
        )
        await self.send(orjson.dumps({"type": "path", **path.model_dump()}))

    def close(self) -> None:
        self.selection.cancel()
        for task in list(self._tasks):
            task.cancel()


@router.websocket("/ws/vehicles")
async def vehicle_ws(websocket: WebSocket) -> None:
    """Stream vehicle updates; answer route selections with road paths."""
    await websocket.accept()

    if broadcaster is None:
        await websocket.close(code=1011, reason="Service not ready")
        return

    session = VehicleSession(websocket)

    # Send current snapshot first
    state_data = await broadcaster.get_current_state()
    if state_data:
        snapshot = orjson.loads(state_data)
        snapshot["type"] = "snapshot"
        await session.send(orjson.dumps(snapshot))

    pump = asyncio.create_task(session.pump())
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = orjson.loads(text)
            except orjson.JSONDecodeError:
                await session.send(orjson.dumps({"type": "error", "detail": "Invalid JSON"}))
                continue
            if isinstance(message, dict):
                session.handle(message)
    except WebSocketDisconnect:
        pass
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("WebSocket error")
    finally:
        pump.cancel()
        session.close()
