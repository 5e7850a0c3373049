"""
FastAPI application factory.

``create_app()`` wires the container, routers and error handlers into a
single ``FastAPI`` instance. The HTTP layer only admits events and exposes
the workers to an external cron; all engine logic lives in the container's
services.

Tags:
    zapflow, api, app-factory, FastAPI
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from zapflow import __version__
from zapflow.api.errors import unhandled_exception_handler, zapflow_error_handler
from zapflow.container import ZapflowContainer
from zapflow.core.errors import ZapflowError
from zapflow.core.logging import get_logger

log = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables on startup."""
    container: ZapflowContainer = app.state.container
    container.init_db()
    log.info("zapflow_api_starting", version=app.version)
    yield
    log.info("zapflow_api_shutting_down")


def create_app(container: ZapflowContainer | None = None) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    container : ZapflowContainer | None
        Pre-wired container (useful for testing). When ``None`` a container
        is built from the cached settings.
    """
    app = FastAPI(title="zapflow", version=__version__, lifespan=lifespan)
    app.state.container = container or ZapflowContainer()

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(ZapflowError, zapflow_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from zapflow.api.routers import cron, health, hooks

    app.include_router(hooks.router)
    app.include_router(cron.router)
    app.include_router(health.router)

    return app


__all__ = ["create_app"]
