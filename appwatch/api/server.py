"""FastAPI server for the application registry."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from appwatch import __version__
from appwatch.api.routes import apps_router, broadcast_notice, broadcast_views
from appwatch.apps.registry import AppRegistry
from appwatch.apps.store import AppStore
from appwatch.health.probes import NetworkProber
from appwatch.inventory.cache import FileSnapshotSource, InventoryCache

logger = logging.getLogger(__name__)


def build_registry() -> AppRegistry:
    """Wire the default collaborators from settings."""
    return AppRegistry(
        store=AppStore(),
        inventory=InventoryCache(FileSnapshotSource()),
        prober=NetworkProber(),
        on_change=broadcast_views,
        on_notice=broadcast_notice,
    )


def create_app(registry: AppRegistry | None = None) -> FastAPI:
    """Build the API. Pass ``registry`` to run against custom collaborators."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reg = registry or build_registry()
        app.state.registry = reg
        app.state.prober = reg.poller.prober

        try:
            await reg.start()
            logger.info("Registry started: %d applications", len(reg.views))
        except Exception:
            logger.exception("Registry failed to start")

        try:
            yield
        finally:
            await reg.stop()

    app = FastAPI(
        title="appwatch - Application Registry",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(apps_router, prefix="/api")

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
