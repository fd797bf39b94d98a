"""
=============================================================================
SERVER LIFECYCLE MANAGER
=============================================================================

Owns the listening socket, feeds every request through the Router and
decides when and how the process stops.

=============================================================================
STATE MACHINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   INITIALIZING ──► BINDING ──► LISTENING ──► DRAINING ──► STOPPED   │
    │                       │            │             │                   │
    │                       │ bind       │ lifecycle   │ lifecycle         │
    │                       │ failed     │ failure     │ failure           │
    │                       ▼            ▼             ▼                   │
    │                    ERRORED ◄───────┴─────────────┘                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    LISTENING → DRAINING is triggered by:

        SIGINT / SIGTERM        exit code 0
        stop()                  exit code 0
        uncaught exception      exit code 1

    A shutdown request that arrives while already draining is logged and
    ignored.

=============================================================================
CONCURRENCY MODEL
=============================================================================

One asyncio event loop on one thread. Each accepted connection runs as a
task; tasks only interleave where they wait on the socket:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   conn task A:  readline ─┐          route+send ─┐  readline ...     │
    │   conn task B:            └─ readline ─┐          └─ ...             │
    │                                        └─ route+send                 │
    │                                                                      │
    │   await points: accept, readline, readexactly, drain                 │
    │   no await inside route(): a request is handled in one step          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION LOOP (keep-alive)
=============================================================================

    accept
      │
      ▼
    wait ≤ keep_alive_timeout for a request line ── timeout/EOF ──► close
      │                                                  (idle)
      ▼  busy
    read headers + body ≤ request_timeout ── malformed ──► 400, close
      │                                   └─ too slow ───► 408, close
      ▼
    Router.route(request, response) ──► response bytes written
      │
      ├── Connection: close / HTTP/1.0 / draining ──► close
      └── otherwise ──► back to the top

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    1. Close the listener: no new connections.
    2. Close idle connections (waiting between requests).
    3. Let busy connections finish their current response, then close.
    4. After shutdown_timeout, cancel whatever is left; exit code 1.

=============================================================================
"""

import asyncio
import errno
import os
import signal
import socket
from enum import Enum
from typing import Dict, List, Optional, Tuple

from . import config as config_module
from . import log
from .config import Configuration
from .http.request import HTTPParseError, RequestContext, RequestParser
from .http.response import HTTPResponse, send_response
from .http.router import Router, router as default_router
from .http.status_codes import HTTPStatus, reason_phrase


class ServerState(Enum):
    """Lifecycle states of a LifecycleManager."""

    INITIALIZING = "initializing"
    BINDING = "binding"
    LISTENING = "listening"
    DRAINING = "draining"
    STOPPED = "stopped"
    ERRORED = "errored"


_TRANSITIONS = {
    ServerState.INITIALIZING: {ServerState.BINDING},
    ServerState.BINDING: {ServerState.LISTENING, ServerState.ERRORED},
    ServerState.LISTENING: {ServerState.DRAINING, ServerState.ERRORED},
    ServerState.DRAINING: {ServerState.STOPPED, ServerState.ERRORED},
    ServerState.STOPPED: set(),
    ServerState.ERRORED: set(),
}

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class _Connection:
    """Bookkeeping for one accepted connection."""

    __slots__ = ("peer", "busy")

    def __init__(self, peer: Tuple[str, int]):
        self.peer = peer
        # True from the first byte of a request line until its response is sent
        self.busy = False


class LifecycleManager:
    """
    Runs the HTTP server from bind to exit.

    ==========================================================================
    USAGE
    ==========================================================================

        manager = LifecycleManager()
        exit_code = manager.start()     # blocks until shutdown
        sys.exit(exit_code)

    From another thread (tests, embedding):

        manager = LifecycleManager(config, install_signal_handlers=False)
        thread = threading.Thread(target=manager.start)
        thread.start()
        ...
        manager.stop()
        thread.join()

    Signal handlers can only be installed from the main thread, so
    background-thread users turn them off.
    ==========================================================================
    """

    def __init__(
        self,
        config: Optional[Configuration] = None,
        router: Optional[Router] = None,
        *,
        install_signal_handlers: bool = True,
    ):
        self._config = config
        self._router = router or default_router
        self._install_signal_handlers = install_signal_handlers

        self._state = ServerState.INITIALIZING
        self._exit_code = 0
        self._address: Optional[Tuple[str, int]] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._server: Optional[asyncio.AbstractServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._stop_requested = False
        self._parser: Optional[RequestParser] = None
        self._connections: Dict[asyncio.Task, _Connection] = {}
        self._installed_signals: List[signal.Signals] = []

    # =========================================================================
    # PUBLIC SURFACE
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        """(host, port) actually bound, once listening."""
        return self._address

    @property
    def config(self) -> Optional[Configuration]:
        return self._config

    def start(self) -> int:
        """
        Bind, serve until shutdown, and return the process exit code.

        Returns:
            0 after a requested shutdown; 1 after a bind failure, a fault or
            a drain that timed out.

        Raises:
            RuntimeError: If this manager has already been started.
        """
        if self._state is not ServerState.INITIALIZING or self._loop is not None:
            raise RuntimeError("LifecycleManager can only be started once")
        return asyncio.run(self._run())

    def stop(self) -> None:
        """
        Request a graceful shutdown. Safe to call from any thread, any
        number of times.
        """
        if self._state in (ServerState.STOPPED, ServerState.ERRORED):
            log.debug("stop() called on a server that is already %s", self._state.value)
            return

        loop = self._loop
        if loop is None:
            # start() hasn't reached the event loop yet
            self._stop_requested = True
            return

        try:
            loop.call_soon_threadsafe(self._request_shutdown, "stop() called", 0)
        except RuntimeError:
            # loop closed between the state check and here
            log.debug("stop() called after the event loop closed")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _transition(self, new_state: ServerState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Invalid server state transition: {self._state.value} -> {new_state.value}"
            )
        log.debug("Server state: %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    async def _run(self) -> int:
        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()

        if self._config is None:
            self._config = config_module.load()
        config = self._config
        self._parser = RequestParser(config.max_headers, config.max_body_bytes)

        self._transition(ServerState.BINDING)
        log.info("Starting HTTP server on %s:%d", config.host, config.port)

        try:
            self._server = await asyncio.start_server(
                self._handle_connection,
                host=config.host,
                port=config.port,
                backlog=config.backlog,
                limit=config.max_header_bytes,
            )
        except OSError as exc:
            self._transition(ServerState.ERRORED)
            self._log_bind_error(exc, config)
            return 1

        sockets = self._server.sockets or []
        if sockets:
            self._address = tuple(sockets[0].getsockname()[:2])
        self._transition(ServerState.LISTENING)
        self._log_ready(config, sockets)

        try:
            self._loop.set_exception_handler(self._on_loop_exception)
            self._add_signal_handlers()

            if self._stop_requested:
                self._request_shutdown("stop() called", 0)

            await self._shutdown_event.wait()
            await self._drain(config)
        except Exception as exc:
            log.error("Server failed while running: %s", exc, exc_info=exc)
            self._transition(ServerState.ERRORED)
            self._server.close()
            return 1
        finally:
            self._remove_signal_handlers()

        self._transition(ServerState.STOPPED)
        log.info("Server closed successfully")
        return self._exit_code

    def _log_ready(self, config: Configuration, sockets: list) -> None:
        for sock in sockets:
            host, port = sock.getsockname()[:2]
            log.info("Server successfully started and listening on %s:%d", host, port)
        log.info("Process ID: %d", os.getpid())
        log.info("Environment: %s", config.environment)
        log.info("Server ready at %s", config.url)
        log.info("Hello endpoint available at %s", config.endpoint_url)

    def _log_bind_error(self, exc: OSError, config: Configuration) -> None:
        if isinstance(exc, socket.gaierror):
            log.error("Cannot resolve host %s: %s", config.host, exc)
        elif exc.errno == errno.EADDRINUSE:
            log.error(
                "Port %d is already in use. Please choose a different port "
                "or stop the process using it.",
                config.port,
            )
        elif exc.errno == errno.EACCES:
            log.error(
                "Permission denied to bind to port %d. Try a port above 1024 "
                "or check your permissions.",
                config.port,
            )
        elif exc.errno == errno.EADDRNOTAVAIL:
            log.error("Address %s is not available on this machine.", config.host)
        else:
            log.error("Failed to start server on %s:%d: %s",
                      config.host, config.port, exc, exc_info=exc)

    # =========================================================================
    # SHUTDOWN TRIGGERS
    # =========================================================================

    def _request_shutdown(self, reason: str, exit_code: int) -> None:
        """Begin draining. Runs on the event loop thread only."""
        if self._state is ServerState.DRAINING:
            # a fault during drain still fails the process
            self._exit_code = max(self._exit_code, exit_code)
            log.warn("Shutdown already in progress, ignoring: %s", reason)
            return
        if self._state is not ServerState.LISTENING:
            # still binding; honoured as soon as the listener is up
            self._stop_requested = True
            return

        if exit_code:
            self._exit_code = exit_code
            log.error("Shutting down due to error: %s", reason)
        else:
            log.info("Graceful shutdown started (%s)", reason)

        self._transition(ServerState.DRAINING)
        self._shutdown_event.set()

    def _on_signal(self, sig: signal.Signals) -> None:
        log.info("%s received, shutting down gracefully...", sig.name)
        self._request_shutdown(sig.name, 0)

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        message = context.get("message", "Unhandled exception in event loop")
        log.error("Uncaught exception: %s", exc if exc is not None else message, exc_info=exc)
        self._request_shutdown("uncaught exception", 1)

    def _add_signal_handlers(self) -> None:
        if not self._install_signal_handlers:
            return
        for sig in SHUTDOWN_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as exc:
                log.warn("Cannot install %s handler, signal shutdown disabled: %s", sig.name, exc)
            else:
                self._installed_signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        while self._installed_signals:
            self._loop.remove_signal_handler(self._installed_signals.pop())

    async def _drain(self, config: Configuration) -> None:
        log.info("Closing listener, no longer accepting new connections")
        self._server.close()

        idle = [task for task, conn in self._connections.items() if not conn.busy]
        busy = len(self._connections) - len(idle)
        for task in idle:
            task.cancel()
        if busy:
            log.info("Waiting for %d in-flight request(s) to complete", busy)

        deadline = self._loop.time() + config.shutdown_timeout
        while self._connections:
            remaining = deadline - self._loop.time()
            if remaining <= 0:
                break
            await asyncio.wait(list(self._connections), timeout=remaining)

        if self._connections:
            log.warn(
                "Could not close %d connection(s) within %.1fs, forcefully shutting down",
                len(self._connections), config.shutdown_timeout,
            )
            self._exit_code = 1
            stragglers = list(self._connections)
            for task in stragglers:
                task.cancel()
            await asyncio.gather(*stragglers, return_exceptions=True)

        await self._server.wait_closed()

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        peername = writer.get_extra_info("peername") or ("unknown", 0)
        peer = (str(peername[0]), int(peername[1]))
        task = asyncio.current_task()
        self._connections[task] = _Connection(peer)
        log.info("New connection established from %s:%d", *peer)

        try:
            await self._serve(reader, writer, self._connections[task])
        except (ConnectionError, asyncio.IncompleteReadError) as exc:
            log.debug("Connection from %s:%d lost: %s", peer[0], peer[1], exc)
        except Exception as exc:
            log.error("Unhandled error on connection from %s:%d: %s",
                      peer[0], peer[1], exc, exc_info=exc)
            self._request_shutdown("uncaught exception", 1)
        finally:
            self._connections.pop(task, None)
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError) as exc:
                log.debug("Error closing connection from %s:%d: %s", peer[0], peer[1], exc)
            log.debug("Connection from %s:%d closed", *peer)

    async def _serve(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        conn: _Connection,
    ) -> None:
        config = self._config

        while self._state is ServerState.LISTENING:
            conn.busy = False
            try:
                line = await asyncio.wait_for(reader.readline(), config.keep_alive_timeout)
            except asyncio.TimeoutError:
                log.debug("Keep-alive timeout for %s:%d", *conn.peer)
                return
            except ValueError:
                # readline() past the stream limit
                await self._reject(writer, conn, HTTPStatus.BAD_REQUEST, "Request line too long")
                return

            if not line:
                return
            if line in (b"\r\n", b"\n"):
                # stray CRLF between requests
                continue

            conn.busy = True
            try:
                request = await asyncio.wait_for(
                    self._read_request(reader, line, conn.peer), config.request_timeout
                )
            except HTTPParseError as exc:
                await self._reject(writer, conn, exc.status_code, str(exc))
                return
            except asyncio.TimeoutError:
                await self._reject(writer, conn, HTTPStatus.REQUEST_TIMEOUT,
                                   f"Request not received within {config.request_timeout:.0f}s")
                return

            keep_alive = request.is_keep_alive and "transfer-encoding" not in request.headers

            response = HTTPResponse(transport=writer.write)
            self._router.route(request, response)
            await writer.drain()

            if not keep_alive:
                return

    async def _read_request(
        self,
        reader: asyncio.StreamReader,
        request_line: bytes,
        peer: Tuple[str, int],
    ) -> RequestContext:
        parser = self._parser
        method, target, version = parser.parse_request_line(request_line)

        lines: List[bytes] = []
        while True:
            try:
                line = await reader.readline()
            except ValueError:
                raise HTTPParseError("Header line too long")
            if not line:
                raise HTTPParseError("Connection closed before end of headers")
            if line in (b"\r\n", b"\n"):
                break
            lines.append(line)
            if len(lines) > parser.max_headers:
                raise HTTPParseError(f"Too many headers: more than {parser.max_headers}")

        headers = parser.parse_headers(lines)
        length = parser.body_length(headers)
        if length:
            # bodies are read and discarded; no handler consumes them
            await reader.readexactly(length)

        return RequestContext(
            method=method,
            target=target,
            headers=headers,
            version=version,
            client_address=peer,
        )

    async def _reject(
        self,
        writer: asyncio.StreamWriter,
        conn: _Connection,
        status_code: int,
        reason: str,
    ) -> None:
        """Answer a request that never reached the router, then let the caller close."""
        log.warn("Client error from %s:%d: %s", conn.peer[0], conn.peer[1], reason)
        response = HTTPResponse(transport=writer.write)
        send_response(response, status_code, reason_phrase(status_code), {"Connection": "close"})
        await writer.drain()
