"""
Health Probes

Liveness, readiness, and detailed status for orchestrators and operators.

Probe Semantics
---------------
- Liveness never performs I/O and never fails
- Readiness makes one bounded call to the vector store's `/healthz`;
  any failure (connection error, timeout, non-2xx) means 503
- Detailed status makes the same call but always answers 200; it is
  informational only and never drives orchestration decisions

Each probe is stateless. The only inputs are the frozen `AppState` and
the live result of the outbound check.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, NamedTuple, Optional

import httpx

from . import __version__
from .state import AppState

logger = logging.getLogger("ripple.health")

READINESS_TIMEOUT_SECONDS = 3.0
VECTOR_STORE_HEALTH_PATH = "/healthz"


class HealthResult(NamedTuple):
    status_code: int
    body: Dict[str, Any]


# ---------------------------------------------------------------------
# Outbound Check
# ---------------------------------------------------------------------

async def check_vector_store(
    base_url: str,
    timeout: float = READINESS_TIMEOUT_SECONDS,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """
    Return True if the vector store answers its health endpoint with a 2xx.

    Never raises. `timeout` bounds the whole call, not each phase of it;
    a timed-out call is treated like a connection failure.
    """
    url = base_url.rstrip("/") + VECTOR_STORE_HEALTH_PATH
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await asyncio.wait_for(client.get(url), timeout=timeout)
    except asyncio.TimeoutError:
        logger.debug("Vector store health check timed out after %.1fs for %s", timeout, url)
        return False
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.debug("Vector store health check failed for %s: %s", url, exc)
        return False

    if not resp.is_success:
        logger.debug("Vector store health check returned %s for %s", resp.status_code, url)
    return resp.is_success


# ---------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------

def liveness() -> HealthResult:
    return HealthResult(200, {"status": "alive"})


async def readiness(state: AppState) -> HealthResult:
    if await check_vector_store(state.config.qdrant_url):
        return HealthResult(200, {"status": "ready", "checks": {"qdrant": "healthy"}})

    logger.warning("Readiness check failed: vector store unreachable at %s", state.config.qdrant_url)
    return HealthResult(503, {"status": "not_ready", "checks": {"qdrant": "unhealthy"}})


async def detailed_status(state: AppState) -> HealthResult:
    config = state.config
    qdrant_ok = await check_vector_store(config.qdrant_url)

    body: Dict[str, Any] = {
        "status": "healthy" if qdrant_ok else "degraded",
        "version": __version__,
        "uptime_seconds": state.uptime_seconds,
        "components": {
            "qdrant": {
                "status": "healthy" if qdrant_ok else "unhealthy",
                "url": config.qdrant_url,
            },
            # Engine lifecycle is owned by the embedding subsystem.
            "embedding_model": {
                "status": "not_loaded",
                "path": config.embedding_model_path,
            },
        },
        "configuration": {
            "cache_ttl_hours": config.cache_ttl_hours,
            "similarity_threshold": config.similarity_threshold,
            "max_cache_size": config.max_cache_size,
        },
    }

    return HealthResult(200, body)
