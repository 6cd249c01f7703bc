import logging
import time
from typing import Callable

from fastapi import Request

logger = logging.getLogger("ripple.app")

# Routes served by this core never consult the semantic cache.
BYPASS_CACHE_STATUS = "bypass"


async def track_requests(request: Request, call_next: Callable):
    """
    Keep `ripple_active_requests` current and record request count and
    duration for every response the primary listener produces.
    """
    metrics = request.app.state.metrics
    start_time = time.perf_counter()
    metrics.active_requests.inc()

    try:
        response = await call_next(request)
    finally:
        metrics.active_requests.dec()

    process_time = time.perf_counter() - start_time
    endpoint = request.url.path if response.status_code != 404 else "unmatched"
    metrics.observe_request(endpoint, BYPASS_CACHE_STATUS, process_time)

    if process_time > 1.0 or response.status_code >= 500:
        logger.info(
            "%s %s - %s - %.2fs",
            request.method,
            request.url.path,
            response.status_code,
            process_time,
        )
    return response
