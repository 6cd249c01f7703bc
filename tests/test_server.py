"""
Orchestrator Tests

The end-to-end tests start real listeners on free local ports and shut
them down with a real SIGTERM, so they only run where the event loop
supports signal handlers.
"""

import asyncio
import signal
import socket
import sys

import httpx
import pytest

from ripple.core.errors import BindFailedError
from ripple.server import ShutdownSignal, bind_listener, serve

unix_only = pytest.mark.skipif(sys.platform == "win32", reason="needs loop signal handlers")


def _free_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


async def _wait_until_up(url: str, timeout: float = 10.0) -> httpx.Response:
    deadline = asyncio.get_running_loop().time() + timeout
    async with httpx.AsyncClient(timeout=1.0) as client:
        while True:
            try:
                return await client.get(url)
            except httpx.TransportError:
                if asyncio.get_running_loop().time() > deadline:
                    raise
                await asyncio.sleep(0.05)


# ---------------------------------------------------------------------
# bind_listener
# ---------------------------------------------------------------------

def test_bind_listener_reports_address_in_use():
    first = bind_listener("127.0.0.1", 0)
    port = first.getsockname()[1]
    try:
        with pytest.raises(BindFailedError) as exc_info:
            bind_listener("127.0.0.1", port)
    finally:
        first.close()

    assert f"127.0.0.1:{port}" in str(exc_info.value)
    assert exc_info.value.address == f"127.0.0.1:{port}"


def test_bind_listener_returns_listening_socket():
    sock = bind_listener("127.0.0.1", 0)
    try:
        assert sock.getsockname()[1] > 0
    finally:
        sock.close()


# ---------------------------------------------------------------------
# ShutdownSignal
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_first_signal_wins():
    shutdown = ShutdownSignal()
    repeats = []
    shutdown.on_repeat = lambda: repeats.append(True)

    shutdown.trigger("SIGTERM")
    shutdown.trigger("SIGINT")

    assert await asyncio.wait_for(shutdown.wait(), timeout=1) == "SIGTERM"
    assert repeats == [True]


@pytest.mark.asyncio
async def test_wait_blocks_until_triggered():
    shutdown = ShutdownSignal()
    waiter = asyncio.create_task(shutdown.wait())

    await asyncio.sleep(0.05)
    assert not waiter.done()

    shutdown.trigger("SIGINT")
    assert await asyncio.wait_for(waiter, timeout=1) == "SIGINT"


# ---------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------

@unix_only
@pytest.mark.asyncio
async def test_serve_runs_both_listeners_until_sigterm(config_factory, metrics):
    port, metrics_port = _free_port(), _free_port()
    config = config_factory(host="127.0.0.1", port=port, metrics_port=metrics_port, workers=2)

    task = asyncio.create_task(serve(config, metrics))

    live = await _wait_until_up(f"http://127.0.0.1:{port}/health/live")
    assert live.status_code == 200
    assert live.json() == {"status": "alive"}

    scrape = await _wait_until_up(f"http://127.0.0.1:{metrics_port}/metrics")
    assert scrape.status_code == 200
    assert "ripple_requests_total" in scrape.text

    signal.raise_signal(signal.SIGTERM)
    cause = await asyncio.wait_for(task, timeout=15)

    assert cause == "SIGTERM"

    # Both ports are released.
    bind_listener("127.0.0.1", port).close()
    bind_listener("0.0.0.0", metrics_port).close()


@unix_only
@pytest.mark.asyncio
async def test_serve_without_metrics_listener(config_factory, metrics):
    port = _free_port()
    config = config_factory(host="127.0.0.1", port=port, metrics_enabled=False, workers=1)

    task = asyncio.create_task(serve(config, metrics))
    await _wait_until_up(f"http://127.0.0.1:{port}/health/live")

    signal.raise_signal(signal.SIGINT)
    assert await asyncio.wait_for(task, timeout=15) == "SIGINT"


@pytest.mark.asyncio
async def test_serve_fails_fast_when_primary_port_is_taken(config_factory, metrics):
    blocker = bind_listener("127.0.0.1", 0)
    port = blocker.getsockname()[1]
    config = config_factory(host="127.0.0.1", port=port, metrics_port=_free_port())

    try:
        with pytest.raises(BindFailedError):
            await serve(config, metrics)
    finally:
        blocker.close()


@pytest.mark.asyncio
async def test_serve_releases_primary_when_metrics_port_is_taken(config_factory, metrics):
    blocker = bind_listener("0.0.0.0", 0)
    metrics_port = blocker.getsockname()[1]
    port = _free_port()
    config = config_factory(host="127.0.0.1", port=port, metrics_port=metrics_port)

    try:
        with pytest.raises(BindFailedError, match=str(metrics_port)):
            await serve(config, metrics)
    finally:
        blocker.close()

    bind_listener("127.0.0.1", port).close()
