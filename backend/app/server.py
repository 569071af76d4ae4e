"""Process lifecycle of the HTTP service.

``start`` loads the settings, optionally migrates the database, starts the HTTP
and telemetry listeners, blocks until SIGINT/SIGTERM and then shuts the HTTP
listener down within the configured shutdown timeout.
"""

import asyncio
import contextlib
import math
import signal
import socket
from collections.abc import Iterator, Sequence
from datetime import timedelta
from threading import Thread
from wsgiref.simple_server import WSGIServer

import uvicorn
from fastapi import FastAPI
from prometheus_client import start_http_server

from app.main import create_app
from common.core.app_error import Errors
from common.core.config_service import HttpConfig, Settings, get_env_file_path, load_settings
from common.core.lifecycle import Lifecycle
from common.utils.utils import format_duration, get_logger
from todo_db.db.run_migrations import run_migrations

logger = get_logger()

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

# How long a cancelled server task gets to unwind after the shutdown timeout
_CANCEL_GRACE_SECONDS = 1.0


class _UvicornServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to :func:`wait_for_shutdown_signal`."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class HttpServer(Lifecycle):
    """Serves the FastAPI application with uvicorn on the configured address.

    ``start`` returns once the listening socket is bound and the application
    has started. ``stop`` stops accepting connections and lets in-flight
    requests finish until ``shutdown_timeout`` elapses; whatever is still
    running then is cancelled.
    """

    def __init__(self, app: FastAPI, http: HttpConfig, shutdown_timeout: timedelta) -> None:
        super().__init__()
        self._app = app
        self._http = http
        self._shutdown_timeout = shutdown_timeout
        self._socket: socket.socket | None = None
        self._server: _UvicornServer | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def port(self) -> int:
        """The bound port, useful when configured with port 0."""
        if self._socket is None:
            return self._http.port
        return self._socket.getsockname()[1]

    async def _start(self) -> None:
        self._socket = self._bind()
        config = uvicorn.Config(
            self._app,
            host=self._http.host,
            port=self._http.port,
            log_config=None,
            access_log=False,
            lifespan="on",
            timeout_graceful_shutdown=max(1, math.ceil(self._shutdown_timeout.total_seconds())),
        )
        self._server = _UvicornServer(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[self._socket]), name="http-server")

        while not self._server.started:
            if self._task.done():
                # serve() returns early when the application fails to start
                task, self._server, self._task = self._task, None, None
                task.result()
                raise Errors.Server.START_FAILED.create(message="HTTP server exited during startup")
            await asyncio.sleep(0.01)

        logger.info("HTTP server listening", host=self._http.host, port=self.port, prefix=self._http.prefix or "/")

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self._http.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self._http.host, self._http.port))
        except OSError as e:
            sock.close()
            raise Errors.Server.START_FAILED.create(
                message=f"Cannot bind {self._http.host}:{self._http.port}",
                details={"host": self._http.host, "port": self._http.port},
                cause=e,
            ) from e
        sock.set_inheritable(True)
        return sock

    async def _stop(self) -> None:
        server, task = self._server, self._task
        self._server = self._task = None
        try:
            if server is None or task is None:
                return

            server.should_exit = True
            timeout = self._shutdown_timeout.total_seconds()
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
            except TimeoutError:
                in_flight = list(server.server_state.tasks)
                logger.warning(
                    "Shutdown timeout exceeded, abandoning in-flight requests",
                    timeout=format_duration(self._shutdown_timeout),
                    in_flight=len(in_flight),
                )
                server.force_exit = True
                for request_task in in_flight:
                    request_task.cancel()
                task.cancel()
                _ = await asyncio.wait([task], timeout=_CANCEL_GRACE_SECONDS)
                if task.done() and not task.cancelled() and task.exception() is not None:
                    logger.warning("HTTP server failed while shutting down", error=str(task.exception()))
        finally:
            if self._socket is not None:
                self._socket.close()
                self._socket = None


class TelemetryServer(Lifecycle):
    """Prometheus metrics endpoint served from a background thread."""

    def __init__(self, port: int, addr: str = "0.0.0.0") -> None:
        super().__init__()
        self._port = port
        self._addr = addr
        self._server: WSGIServer | None = None
        self._thread: Thread | None = None

    @property
    def port(self) -> int:
        if self._server is None:
            return self._port
        return self._server.server_port

    async def _start(self) -> None:
        try:
            self._server, self._thread = start_http_server(self._port, addr=self._addr)
        except OSError as e:
            raise Errors.Server.START_FAILED.create(
                message=f"Cannot start telemetry endpoint on port {self._port}",
                details={"port": self._port},
                cause=e,
            ) from e
        logger.info("Telemetry endpoint listening", port=self.port, path="/metrics")

    async def _stop(self) -> None:
        server, thread = self._server, self._thread
        self._server = self._thread = None
        if server is None:
            return
        await asyncio.to_thread(server.shutdown)
        server.server_close()
        if thread is not None:
            await asyncio.to_thread(thread.join, 5)


async def wait_for_shutdown_signal(signals: Sequence[signal.Signals] = SHUTDOWN_SIGNALS) -> signal.Signals:
    """Block until one of ``signals`` is delivered to the process.

    The handlers are installed on the running loop and removed again before
    returning.
    """
    loop = asyncio.get_running_loop()
    received: asyncio.Future[signal.Signals] = loop.create_future()

    def on_signal(sig: signal.Signals) -> None:
        if not received.done():
            received.set_result(sig)

    for sig in signals:
        loop.add_signal_handler(sig, on_signal, sig)
    try:
        return await received
    finally:
        for sig in signals:
            _ = loop.remove_signal_handler(sig)


async def serve(settings: Settings) -> None:
    """Run the service until a shutdown signal arrives."""
    if settings.postgres.migrate:
        logger.info("Applying pending migrations before start")
        _ = await asyncio.to_thread(run_migrations, settings.postgres)

    app = create_app(settings)
    http_server = HttpServer(app, settings.http, settings.shutdown_timeout)
    telemetry_server = TelemetryServer(settings.telemetry_port)

    await http_server.start()
    try:
        await telemetry_server.start()
        received = await wait_for_shutdown_signal()
        logger.info("Shutting down server...", signal=received.name, timeout=format_duration(settings.shutdown_timeout))
    finally:
        try:
            await http_server.stop()
        finally:
            await telemetry_server.stop()
    logger.info("Server stopped")


def start(settings: Settings | None = None) -> None:
    """Load the settings (failing fast) and run the service."""
    if settings is None:
        settings = load_settings(get_env_file_path())
    asyncio.run(serve(settings))
