"""
Bootstrap Orchestrator

Runs Ripple's two HTTP listeners and owns process shutdown.

Startup
-------
1. Size the event loop's default thread pool from RIPPLE_WORKERS
2. Build the frozen `AppState`
3. Bind both listener sockets up front; a bind failure aborts startup
4. Start the primary server, the metrics server, and the signal waiter
   as concurrent tasks

Shutdown
--------
SIGINT and SIGTERM are handled identically. The first one to arrive asks
the primary server to stop accepting connections and drain in-flight
requests; a second one skips the drain. The metrics server is then
stopped without draining. Errors raised while draining are logged and do
not change the exit status.

uvicorn's own signal handling is disabled so the orchestrator alone
decides when the process terminates.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import socket
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterator, List, Optional

import uvicorn
from fastapi import FastAPI

from .config import Config
from .core.errors import BindFailedError
from .main import create_app, create_metrics_app
from .metrics import MetricsRegistry
from .state import AppState

logger = logging.getLogger("ripple.server")

METRICS_HOST = "0.0.0.0"
METRICS_ABORT_TIMEOUT_SECONDS = 5.0
LISTEN_BACKLOG = 2048

HANDLED_SIGNALS = tuple(
    sig for sig in (getattr(signal, "SIGINT", None), getattr(signal, "SIGTERM", None)) if sig is not None
)


# ---------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------

class ManagedServer(uvicorn.Server):
    """uvicorn server whose lifetime is driven by the orchestrator."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


def bind_listener(host: str, port: int) -> socket.socket:
    """
    Bind and listen on `host:port`.

    Raises
    ------
    BindFailedError
        The address is in use, not permitted, or cannot be resolved.
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        sock = socket.create_server((host, port), family=family, backlog=LISTEN_BACKLOG)
    except (OSError, OverflowError) as exc:
        raise BindFailedError(address=f"{host}:{port}", details=str(exc)) from exc
    sock.setblocking(False)
    return sock


def build_server(app: FastAPI, sock: socket.socket) -> ManagedServer:
    host, port = sock.getsockname()[:2]
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        lifespan="on",
    )
    return ManagedServer(config)


# ---------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------

class ShutdownSignal:
    """
    Resolves when SIGINT or SIGTERM is received.

    Only the first signal resolves `wait()`. Later signals invoke
    `on_repeat`, if set.
    """

    def __init__(self) -> None:
        self.received: Optional[str] = None
        self.on_repeat: Optional[Callable[[], None]] = None
        self._event = asyncio.Event()
        self._installed: List[signal.Signals] = []
        self._fallback: List[signal.Signals] = []

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.trigger, sig.name)
                self._installed.append(sig)
            except (NotImplementedError, RuntimeError):
                # Event loops without add_signal_handler (Windows).
                signal.signal(
                    sig,
                    lambda signum, _frame: loop.call_soon_threadsafe(
                        self.trigger, signal.Signals(signum).name
                    ),
                )
                self._fallback.append(sig)

    def remove(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in self._installed:
            loop.remove_signal_handler(sig)
        for sig in self._fallback:
            signal.signal(sig, signal.SIG_DFL)
        self._installed.clear()
        self._fallback.clear()

    def trigger(self, name: str) -> None:
        if self.received is None:
            self.received = name
            self._event.set()
        elif self.on_repeat is not None:
            logger.warning("Received %s again, skipping drain", name)
            self.on_repeat()

    async def wait(self) -> str:
        await self._event.wait()
        return self.received or "shutdown"


# ---------------------------------------------------------------------
# Teardown Helpers
# ---------------------------------------------------------------------

def _log_task_failure(task: "asyncio.Task[None]") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("%s exited with an error", task.get_name(), exc_info=exc)


async def _drain(task: "asyncio.Task[None]") -> None:
    try:
        await task
    except Exception:
        logger.exception("Primary listener failed while draining")


async def _abort(server: ManagedServer, task: "asyncio.Task[None]") -> None:
    server.force_exit = True
    server.should_exit = True
    try:
        await asyncio.wait_for(task, timeout=METRICS_ABORT_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning("Metrics listener did not stop in time, cancelled")
    except Exception:
        logger.exception("Metrics listener failed during shutdown")


# ---------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------

async def serve(config: Config, metrics: MetricsRegistry) -> str:
    """
    Run both listeners until a shutdown signal or the primary server exits.

    Returns
    -------
    str
        What ended the run: the signal name, or "primary_exit".

    Raises
    ------
    BindFailedError
        Either listener could not bind. Nothing has been started.
    """
    loop = asyncio.get_running_loop()
    loop.set_default_executor(
        ThreadPoolExecutor(max_workers=config.workers, thread_name_prefix="ripple-worker")
    )

    state = AppState(config=config)

    primary_sock = bind_listener(config.host, config.port)
    metrics_sock: Optional[socket.socket] = None
    if config.metrics_enabled:
        try:
            metrics_sock = bind_listener(METRICS_HOST, config.metrics_port)
        except BindFailedError:
            primary_sock.close()
            raise

    primary = build_server(create_app(state, metrics), primary_sock)
    metrics_server: Optional[ManagedServer] = None
    metrics_task: Optional["asyncio.Task[None]"] = None

    signals = ShutdownSignal()
    signals.install(loop)

    primary_task = asyncio.create_task(
        primary.serve(sockets=[primary_sock]), name="primary-listener"
    )
    if metrics_sock is not None:
        metrics_server = build_server(create_metrics_app(metrics), metrics_sock)
        metrics_task = asyncio.create_task(
            metrics_server.serve(sockets=[metrics_sock]), name="metrics-listener"
        )
        metrics_task.add_done_callback(_log_task_failure)
        logger.info("Metrics server listening on %s:%d", METRICS_HOST, config.metrics_port)
    else:
        logger.info("Metrics server disabled")

    signal_task = asyncio.create_task(signals.wait(), name="shutdown-signal")

    try:
        done, _ = await asyncio.wait(
            {primary_task, signal_task},
            return_when=asyncio.FIRST_COMPLETED,
        )

        if signal_task in done:
            cause = signal_task.result()
            logger.warning("Received %s, shutting down", cause)
            signals.on_repeat = lambda: setattr(primary, "force_exit", True)
            primary.should_exit = True
            await _drain(primary_task)
        else:
            cause = "primary_exit"
            signal_task.cancel()
            _log_task_failure(primary_task)
            logger.warning("Primary listener stopped on its own, shutting down")
    finally:
        signals.remove(loop)
        if metrics_server is not None and metrics_task is not None:
            await _abort(metrics_server, metrics_task)
        primary_sock.close()
        if metrics_sock is not None:
            metrics_sock.close()

    logger.info("Ripple shut down gracefully")
    return cause
