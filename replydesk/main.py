"""FastAPI application wiring for ReplyDesk.

This module bootstraps the HTTP API:

- Configures logging and Prometheus metrics.
- Serves synthesized reply audio from ``MEDIA_DIR`` under ``/media`` so the
  messaging provider can fetch it by link.
- Mounts the WhatsApp webhook routes and the dashboard chat simulator.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .config import get_settings
from .routers import simulator, webhooks
from .routers.dependencies import reset_dependencies

logger = logging.getLogger(__name__)

MEDIA_DIR = get_settings().media_dir
os.makedirs(MEDIA_DIR, exist_ok=True)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    reset_dependencies()


app = FastAPI(title="ReplyDesk", version=__version__, lifespan=lifespan)
init_logging(app)

app.mount("/media", StaticFiles(directory=MEDIA_DIR), name="media")
app.include_router(webhooks.router)
app.include_router(simulator.router)

# Prometheus metrics
Instrumentator().instrument(app).expose(
    app, endpoint="/api/metrics", include_in_schema=False
)


@app.get("/api/health")
async def health():
    """Liveness/readiness probe with a minimal JSON body."""
    return {"status": "ok"}


@app.get("/api/version")
async def version():
    """Return version information for the application."""
    return {
        "version": __version__,
        "build_date": __build_date__,
        "commit_sha": __commit_sha__,
    }
