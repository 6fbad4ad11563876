"""Start/stop/restart state machine around an embedded uvicorn server."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import functools
import logging
import os
import socket
from typing import Callable, Iterator, Optional

import uvicorn

from .config import ServerConfig
from .errors import BindError, InvalidConfig
from .events import CLOSED, ERROR, STARTED, STOPPED, EventBus, Listener
from .metrics import SERVER_LISTENING, SERVER_STARTS_TOTAL
from .pipeline import RequestPipeline


LOGGER = logging.getLogger("servez.lifecycle")

STARTUP_POLL_INTERVAL = 0.01
STOP_TIMEOUT = 5.0
BACKLOG = 2048


class ServerState(str, enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    STOPPING = "stopping"
    CLOSED = "closed"


def bind_socket(host: str, port: int, *, backlog: int = BACKLOG) -> socket.socket:
    """Bind and listen synchronously so failures surface before serving."""

    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
    except OSError as exc:
        sock.close()
        raise BindError(host, port, exc) from exc
    return sock


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signals to the host application."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        return None


class StaticServer:
    """Own one listening socket at a time and report its lifecycle.

    Each start attempt gets a new generation number; events carry it so
    hosts can drop anything emitted by a server that has since been
    replaced. ``start`` while running performs stop-then-start with the
    configuration current when the old socket is fully closed.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        *,
        stop_timeout: float = STOP_TIMEOUT,
    ) -> None:
        self._config = config
        self._stop_timeout = stop_timeout
        self._events = EventBus()
        self._state = ServerState.IDLE
        self._generation = 0
        self._server: Optional[_EmbeddedServer] = None
        self._socket: Optional[socket.socket] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._active_config: Optional[ServerConfig] = None
        self._address: Optional[tuple[str, int]] = None
        self._restart_requested = False
        self._listening_generation = 0

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def config(self) -> Optional[ServerConfig]:
        return self._config

    @property
    def active_config(self) -> Optional[ServerConfig]:
        return self._active_config

    @property
    def address(self) -> Optional[tuple[str, int]]:
        return self._address

    @property
    def running(self) -> bool:
        return self._state is ServerState.LISTENING

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._events.subscribe(listener)

    def configure(self, config: ServerConfig) -> None:
        """Replace the configuration used by the next (re)start."""

        self._config = config

    async def start(self, config: Optional[ServerConfig] = None) -> bool:
        """Start serving; returns ``True`` once a generation is listening.

        Raises ``InvalidConfig`` before any socket is created. Bind failures
        are reported as ``error`` events and return ``False``.
        """

        if config is not None:
            self._config = config
        if self._state in (ServerState.STARTING, ServerState.LISTENING):
            LOGGER.info("restart_requested generation=%s", self._generation)
            self._restart_requested = True
            await self.stop(cancel_restart=False)
            return self.running
        if self._state is ServerState.STOPPING:
            self._restart_requested = True
            return False
        return await self._start_generation()

    async def stop(self, *, cancel_restart: bool = True) -> None:
        if cancel_restart:
            self._restart_requested = False
        if self._state not in (ServerState.STARTING, ServerState.LISTENING) or self._server is None:
            LOGGER.debug("stop_ignored state=%s", self._state.value)
            return
        self._state = ServerState.STOPPING
        server, task = self._server, self._task
        LOGGER.info("stopping generation=%s", self._generation)
        server.should_exit = True
        server.force_exit = True
        if task is None or task is asyncio.current_task():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._stop_timeout)
        except asyncio.TimeoutError:
            LOGGER.error("stop_timeout generation=%s; cancelling serve task", self._generation)
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def wait_closed(self) -> None:
        task = self._task
        if task is not None and not task.done():
            await asyncio.shield(task)

    async def _start_generation(self) -> bool:
        config = self._config
        if config is None:
            raise InvalidConfig("no configuration supplied")
        config.validate()

        self._generation += 1
        generation = self._generation
        self._state = ServerState.STARTING
        LOGGER.info(
            "starting generation=%s host=%s port=%s root=%s",
            generation,
            config.bind_host,
            config.port,
            config.root,
        )
        try:
            sock = bind_socket(config.bind_host, config.port)
        except BindError as exc:
            self._state = ServerState.IDLE
            self._restart_requested = False
            SERVER_STARTS_TOTAL.labels(outcome="bind_error").inc()
            LOGGER.error("bind_failed generation=%s error=%s", generation, exc)
            self._events.emit(ERROR, generation, message=f"ERROR: {exc}")
            return False

        pipeline = RequestPipeline(config, emit=functools.partial(self._events.emit, generation=generation))
        server = _EmbeddedServer(
            uvicorn.Config(
                pipeline,
                host=config.bind_host,
                port=config.port,
                lifespan="off",
                log_config=None,
                access_log=False,
                server_header=False,
                ssl_certfile=str(config.ssl_certfile) if config.ssl_certfile else None,
                ssl_keyfile=str(config.ssl_keyfile) if config.ssl_keyfile else None,
            )
        )
        self._server = server
        self._socket = sock
        self._active_config = config
        task = asyncio.create_task(self._serve(generation, server, sock))
        self._task = task

        while not server.started and not task.done():
            await asyncio.sleep(STARTUP_POLL_INTERVAL)

        if not server.started or self._state is not ServerState.STARTING or generation != self._generation:
            LOGGER.info("start_abandoned generation=%s state=%s", generation, self._state.value)
            return self.running

        host, port = sock.getsockname()[:2]
        self._address = (host, port)
        self._state = ServerState.LISTENING
        self._listening_generation = generation
        SERVER_STARTS_TOTAL.labels(outcome="listening").inc()
        SERVER_LISTENING.set(1)
        display_host = "localhost" if host in ("0.0.0.0", "::") else host
        self._events.emit(
            STARTED,
            generation,
            address=host,
            port=port,
            root=str(config.root),
            url=f"{config.scheme}://{display_host}:{port}",
            message=f"server started on port: {host}:{port} for path: {config.root}",
        )
        return True

    async def _serve(self, generation: int, server: _EmbeddedServer, sock: socket.socket) -> None:
        try:
            await server.serve(sockets=[sock])
        except Exception as exc:
            LOGGER.error("serve_failed generation=%s error=%s", generation, exc, exc_info=True)
            self._events.emit(ERROR, generation, message=f"ERROR: {exc}")
        finally:
            self._abort_connections(server)
            sock.close()
            self._mark_closed(generation)
        await self._restart_if_requested(generation)

    @staticmethod
    def _abort_connections(server: _EmbeddedServer) -> None:
        for connection in list(server.server_state.connections):
            transport = getattr(connection, "transport", None)
            if transport is not None and not transport.is_closing():
                transport.abort()

    def _mark_closed(self, generation: int) -> None:
        if generation != self._generation:
            LOGGER.debug("stale_close_ignored generation=%s current=%s", generation, self._generation)
            return
        self._state = ServerState.CLOSED
        self._server = None
        self._socket = None
        self._address = None
        SERVER_LISTENING.set(0)
        LOGGER.info("closed generation=%s", generation)
        if self._listening_generation == generation:
            self._events.emit(STOPPED, generation, message="server stopped")
        self._events.emit(CLOSED, generation)

    async def _restart_if_requested(self, generation: int) -> None:
        if generation != self._generation or not self._restart_requested:
            return
        self._restart_requested = False
        LOGGER.info("restarting after generation=%s", generation)
        try:
            await self._start_generation()
        except InvalidConfig as exc:
            LOGGER.error("restart_rejected error=%s", exc)
            self._events.emit(ERROR, generation, message=f"ERROR: {exc}")


__all__ = ["ServerState", "StaticServer", "bind_socket"]
