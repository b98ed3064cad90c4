# src/fleet_telemetry/main.py
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fleet_telemetry import collector
from fleet_telemetry.client import FetchOrchestrator
from fleet_telemetry.config import settings
from fleet_telemetry.engine import TelemetryEngine
from fleet_telemetry.routes import router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    orchestrator = FetchOrchestrator(
        fallback_templates=settings.fallback_templates,
        timeout=settings.fetch_timeout,
    )
    engine = TelemetryEngine.from_settings(settings, orchestrator=orchestrator)
    app.state.engine = engine
    logger.info(
        "Engine ready (speed limit %.0f km/h, idle threshold %.0f min)",
        settings.speed_limit_kmh,
        settings.idle_threshold_minutes,
    )

    task = asyncio.create_task(collector.run(engine, orchestrator))
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    await orchestrator.aclose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="fleet telemetry",
    description="Normalized live vehicle state, historical tracks and cross-system "
    "vehicle matching for the municipal fleet dashboard. Vehicle endpoints return "
    "GeoJSON.",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(router)


@app.get("/health", tags=["system"])
def health():
    engine: TelemetryEngine = app.state.engine
    return {
        "status": "ok",
        "vehicles": len(engine.live),
        "rejected_records": engine.rejected_total,
    }
