"""
Ripple Application Factories

This module builds the two ASGI applications served by Ripple:

- the primary app (health probes; the proxy surface mounts here)
- the metrics app (Prometheus scrape endpoint on its own port)

Design Goals
------------
- Explicit dependency injection: state and metrics are passed in, never
  imported as globals
- Centralized router and exception handler registration
- Test-friendly: each call returns a fresh, isolated app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from . import __version__
from .api import health_routes, metrics_routes
from .api.middleware import track_requests
from .config import load_config
from .core.errors import (
    RippleError,
    SubsystemError,
    ripple_error_handler,
    unhandled_exception_handler,
)
from .metrics import MetricsRegistry
from .state import AppState


logger = logging.getLogger("ripple.app")


# ---------------------------------------------------------------------
# Primary Application
# ---------------------------------------------------------------------

def create_app(state: AppState, metrics: MetricsRegistry) -> FastAPI:
    """
    Create the primary FastAPI application.

    Parameters
    ----------
    state : AppState
        Frozen shared state, exposed to handlers as `app.state.ripple`.
    metrics : MetricsRegistry
        Registry the request middleware and error handlers write to.
        `register_all()` is called here so the app never runs without its
        instruments.

    Returns
    -------
    FastAPI
        Fully configured application.
    """

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info("Ripple v%s listening on %s", __version__, state.config.listen_address)
        yield
        logger.info("Primary listener stopped")

    metrics.register_all()

    app = FastAPI(
        title="ripple",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.ripple = state
    app.state.metrics = metrics

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(RippleError, ripple_error_handler)
    app.add_exception_handler(SubsystemError, ripple_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Middleware and Routers
    # --------------------------------------------------------------

    app.middleware("http")(track_requests)
    app.include_router(health_routes.router)

    return app


# ---------------------------------------------------------------------
# Metrics Application
# ---------------------------------------------------------------------

def create_metrics_app(metrics: MetricsRegistry) -> FastAPI:
    """Create the FastAPI application serving `GET /metrics`."""
    metrics.register_all()

    app = FastAPI(
        title="ripple-metrics",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.metrics = metrics
    app.include_router(metrics_routes.router)
    return app


# ---------------------------------------------------------------------
# Standalone Factory (uvicorn --factory)
# ---------------------------------------------------------------------

def create_app_from_env() -> FastAPI:
    """
    Build the primary app straight from the environment.

    Intended for `uvicorn --factory ripple.main:create_app_from_env` during
    development. Production runs go through `ripple.server`, which also
    starts the metrics listener and owns signal handling.
    """
    return create_app(AppState(config=load_config()), MetricsRegistry())
