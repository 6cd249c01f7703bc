"""
Health Probe Tests

The outbound vector store check is exercised against httpx.MockTransport
and against closed or slow local ports; the probes themselves are tested with the
check patched out.
"""

import asyncio
import socket
import time
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from ripple import __version__, health
from ripple.health import check_vector_store


def _closed_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


# ---------------------------------------------------------------------
# check_vector_store
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_check_hits_healthz_and_accepts_2xx():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, text="healthz check passed")

    ok = await check_vector_store("http://qdrant:6333/", transport=httpx.MockTransport(handler))

    assert ok is True
    assert str(seen[0]) == "http://qdrant:6333/healthz"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [404, 500, 503])
async def test_check_rejects_non_success_status(status):
    transport = httpx.MockTransport(lambda request: httpx.Response(status))
    assert await check_vector_store("http://qdrant:6333", transport=transport) is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc",
    [
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("timed out"),
        httpx.ConnectTimeout("timed out"),
    ],
)
async def test_check_treats_transport_errors_as_unhealthy(exc):
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    assert await check_vector_store("http://qdrant:6333", transport=httpx.MockTransport(handler)) is False


@pytest.mark.asyncio
async def test_check_against_unreachable_port_returns_within_timeout():
    url = f"http://127.0.0.1:{_closed_port()}"

    start = time.monotonic()
    ok = await check_vector_store(url)
    elapsed = time.monotonic() - start

    assert ok is False
    assert elapsed < health.READINESS_TIMEOUT_SECONDS + 1.0


@pytest.mark.asyncio
async def test_check_bounds_the_whole_call_against_a_slow_store():
    async def drip(reader, writer):
        await reader.readuntil(b"\r\n\r\n")
        writer.write(b"HTTP/1.1 200 OK\r\nContent-Length: 20\r\n\r\n")
        await writer.drain()
        try:
            for _ in range(20):
                await asyncio.sleep(0.2)
                writer.write(b"x")
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(drip, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]

    try:
        start = time.monotonic()
        ok = await check_vector_store(f"http://127.0.0.1:{port}", timeout=1.0)
        elapsed = time.monotonic() - start
    finally:
        server.close()
        await server.wait_closed()

    assert ok is False
    assert elapsed < 2.0


# ---------------------------------------------------------------------
# Probes
# ---------------------------------------------------------------------

def test_liveness_always_alive():
    result = health.liveness()
    assert result.status_code == 200
    assert result.body == {"status": "alive"}


@pytest.mark.asyncio
async def test_readiness_ready(app_state):
    with patch("ripple.health.check_vector_store", AsyncMock(return_value=True)) as check:
        result = await health.readiness(app_state)

    check.assert_awaited_once_with(app_state.config.qdrant_url)
    assert result.status_code == 200
    assert result.body == {"status": "ready", "checks": {"qdrant": "healthy"}}


@pytest.mark.asyncio
async def test_readiness_not_ready(app_state):
    with patch("ripple.health.check_vector_store", AsyncMock(return_value=False)):
        result = await health.readiness(app_state)

    assert result.status_code == 503
    assert result.body == {"status": "not_ready", "checks": {"qdrant": "unhealthy"}}


@pytest.mark.asyncio
async def test_readiness_against_unreachable_store(config_factory):
    from ripple.state import AppState

    state = AppState(config=config_factory(qdrant_url=f"http://127.0.0.1:{_closed_port()}"))
    result = await health.readiness(state)
    assert result.status_code == 503


@pytest.mark.asyncio
async def test_detailed_status_healthy(app_state):
    with patch("ripple.health.check_vector_store", AsyncMock(return_value=True)):
        result = await health.detailed_status(app_state)

    body = result.body
    config = app_state.config
    assert result.status_code == 200
    assert body["status"] == "healthy"
    assert body["version"] == __version__
    assert isinstance(body["uptime_seconds"], int)
    assert body["uptime_seconds"] >= 0
    assert body["components"]["qdrant"] == {"status": "healthy", "url": config.qdrant_url}
    assert body["components"]["embedding_model"] == {
        "status": "not_loaded",
        "path": config.embedding_model_path,
    }
    assert body["configuration"] == {
        "cache_ttl_hours": config.cache_ttl_hours,
        "similarity_threshold": config.similarity_threshold,
        "max_cache_size": config.max_cache_size,
    }


@pytest.mark.asyncio
async def test_detailed_status_degraded_still_200(app_state):
    with patch("ripple.health.check_vector_store", AsyncMock(return_value=False)):
        result = await health.detailed_status(app_state)

    assert result.status_code == 200
    assert result.body["status"] == "degraded"
    assert result.body["components"]["qdrant"]["status"] == "unhealthy"


def test_uptime_counts_from_start_time(config):
    from ripple.state import AppState

    state = AppState(config=config, start_time=time.monotonic() - 42.5)
    assert state.uptime_seconds == 42
