"""
FastAPI Application — entry point.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST

from search_janitor import __version__
from search_janitor.config import settings
from search_janitor.database import init_db, close_db
from search_janitor.dependencies import (
    cleanup_collector,
    cleanup_job,
    get_metrics_plugin,
    health_collector,
)
from search_janitor.routes import router
from search_janitor.routes.deletions import deletions_router
from search_janitor.services.metrics import MetricsPlugin

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)

logger = logging.getLogger(__name__)


async def periodic_metrics_processing(plugin: MetricsPlugin, interval: int = 3600) -> None:
    """Run the expensive collector work every ``interval`` seconds."""
    while True:
        try:
            await asyncio.sleep(interval)
            await plugin.process_metrics()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Metrics processing error: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hook."""
    logger.info("🚀 Starting Search Janitor v%s (%s)", __version__, settings.app_environment or "no environment")
    await init_db()
    logger.info("✅ Database ready")

    plugin = MetricsPlugin.get_instance()
    plugin.load_collectors([cleanup_collector, health_collector])

    cleanup_job.init()

    metrics_task = asyncio.create_task(
        periodic_metrics_processing(plugin, interval=settings.metrics_process_interval)
    )

    yield

    # Shutdown
    metrics_task.cancel()
    try:
        await metrics_task
    except asyncio.CancelledError:
        pass
    await cleanup_job.stop()
    await close_db()
    logger.info("👋 Shutdown complete")


app = FastAPI(
    title="Search Janitor",
    description="Deletes stale search index versions and reports index health.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")
app.include_router(deletions_router, prefix="/api/v1")


@app.get("/metrics", include_in_schema=False)
async def metrics(plugin: MetricsPlugin = Depends(get_metrics_plugin)):
    return Response(content=plugin.render(), media_type=CONTENT_TYPE_LATEST)


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "Search Janitor",
        "version": __version__,
        "docs": "/docs",
    }
