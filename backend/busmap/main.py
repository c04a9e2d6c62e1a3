"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from busmap.api import routes, stops, vehicles, ws
from busmap.config import settings
from busmap.core.assets import AssetLoader
from busmap.core.broadcaster import Broadcaster
from busmap.core.feed_client import FeedClient
from busmap.core.network import TransitNetwork
from busmap.core.osrm_client import OsrmClient
from busmap.core.path_builder import RoutePathBuilder
from busmap.core.scheduler import create_scheduler
from busmap.core.vehicle_tracker import VehicleTracker

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    feed = FeedClient()
    osrm = OsrmClient()
    assets = AssetLoader()
    broadcaster = Broadcaster()
    await broadcaster.connect()

    network = TransitNetwork(
        RoutePathBuilder(osrm, max_coords=settings.osrm_max_coords),
        assets=assets,
    )
    tracker = VehicleTracker(feed, broadcaster)

    # Wire up API modules
    ws.broadcaster = broadcaster
    ws.network = network
    vehicles.tracker = tracker
    vehicles.network = network
    stops.network = network
    routes.network = network

    # Load stops and timetables; the live feed works without them
    try:
        await network.reload()
    except Exception:
        logger.exception("Failed to load stops/timetables - will retry")

    scheduler = create_scheduler(tracker, network)
    scheduler.start()
    logger.info("Bus map started - polling feed every %ds", settings.poll_interval_seconds)

    yield

    # Shutdown
    scheduler.shutdown(wait=False)
    await feed.close()
    await osrm.close()
    await assets.close()
    await broadcaster.close()
    logger.info("Bus map shut down")


app = FastAPI(
    title="Nuuk Bus Map",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router)
app.include_router(stops.router)
app.include_router(vehicles.router)
app.include_router(ws.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
