"""
=============================================================================
STATIC SERVER
=============================================================================

Ties everything together: one router, one thread pool, and one listening
socket plus handler chain per configured listener.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        StaticServer                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer(:8080, http) ──┐                                      │
    │   SocketServer(:8443, https) ─┼─► ConnectionPool ─► _process_connection│
    │                               │                        │             │
    │                               │     read → parse → listener chain    │
    │                               │     → StreamResponseWriter.finish()  │
    │                               │     → keep-alive? loop : close       │
    │                                                                      │
    │   every listener chain ends in the SAME PrefixRouter                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STARTUP AND SHUTDOWN
=============================================================================

    start()     bind EVERY listener first; any failure closes the ones
                already bound and raises, before a single accept()
    run()       start(), then wait for SIGINT / SIGTERM or shutdown()
    shutdown()  stop accepting, drain the pool, return from run()

Signal handlers are only installed when run() is called on the main
thread; Python refuses them anywhere else.

=============================================================================
"""

import logging
import signal
import threading
from functools import partial
from typing import List, Tuple

from .app import build_listener_handler, build_router
from .config import ServerConfig
from .core import Connection, ConnectionPool, SocketServer, create_ssl_context
from .errors import ClientDisconnected
from .http import HTTPParseError, HTTPRequest, RequestParser, StreamResponseWriter
from .http.response import error
from .http.status_codes import status_text
from .http.writer import Handler


logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """Configure the root logger once for the whole process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("staticserve").setLevel(level.upper())


class StaticServer:
    """
    The configured server.

    Usage:
        config = load_config("staticserve.yaml").sanitise()
        config.validate()
        StaticServer(config).run()      # blocks until SIGINT / SIGTERM

    Raises (constructor):
        ConfigError: Invalid configuration, duplicate routes or overrides.
    """

    def __init__(self, config: ServerConfig):
        config.validate()
        self.config = config
        self.runtime = config.runtime

        self.router = build_router(config)
        self._parser = RequestParser(max_request_size=self.runtime.max_request_size)
        self._pool = ConnectionPool(
            self._process_connection,
            min_workers=self.runtime.min_workers,
            max_workers=self.runtime.max_workers,
            max_wait=self.runtime.timeout,
        )

        self._listeners: List[Tuple[SocketServer, Handler]] = []
        for listener in config.listeners:
            context = None
            if listener.is_tls:
                context = create_ssl_context(listener.cert, listener.key)
            server = SocketServer(listener, self.runtime, ssl_context=context)
            handler = build_listener_handler(listener, self.router, self.runtime)
            self._listeners.append((server, handler))

        self._threads: List[threading.Thread] = []
        self._running = False
        self._stop = threading.Event()
        self._original_handlers: dict = {}

    @property
    def addresses(self) -> List[Tuple[str, int]]:
        """Bound (host, port) of every listener, in configuration order."""
        return [server.address for server, _ in self._listeners]

    @property
    def is_running(self) -> bool:
        return self._running

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def start(self):
        """
        Bind every listener, then start accepting on all of them.

        Raises:
            OSError: If any listener cannot be bound.
        """
        bound = []
        try:
            for server, _ in self._listeners:
                server.bind()
                bound.append(server)
        except Exception:
            for server in bound:
                server.shutdown()
                server.close()
            raise

        self._running = True
        self._stop.clear()
        self._pool.start()

        for server, handler in self._listeners:
            thread = threading.Thread(
                target=server.serve_forever,
                args=(partial(self._handle_connection, handler),),
                name=f"Accept-{server.listener.addr}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
            logger.info(f"listening on {server.listener.addr} ({server.listener.protocol})")

    def run(self):
        """Start, then block until shutdown() or a termination signal."""
        in_main_thread = threading.current_thread() is threading.main_thread()
        if in_main_thread:
            self._setup_signals()
        try:
            self.start()
            # Short waits keep the main thread responsive to signals
            while not self._stop.wait(0.5):
                pass
        finally:
            self.stop()
            if in_main_thread:
                self._restore_signals()

    def shutdown(self):
        """Ask run() to return. Safe from signal handlers and other threads."""
        self._stop.set()

    def stop(self, timeout: float = 30.0):
        """Stop accepting, let workers finish, release the sockets."""
        if not self._running:
            return
        logger.info("Shutting down server...")
        self._running = False
        self._stop.set()

        for server, _ in self._listeners:
            server.shutdown()
        for thread in self._threads:
            thread.join(timeout=2.0)
        self._threads.clear()

        self._pool.stop(timeout=timeout)
        logger.info("Server stopped")

    def _setup_signals(self):
        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # ─────────────────────────────────────────────────────────────────────
    # Connections
    # ─────────────────────────────────────────────────────────────────────

    def _handle_connection(self, handler: Handler, conn: Connection):
        """Accept-thread callback: hand the connection to the pool."""
        if not self._pool.submit(conn, handler):
            logger.warning(f"[{conn.id}] No worker available, rejecting connection")
            if not conn.is_tls:
                self._send_error(conn, 503)
            conn.close()

    def _process_connection(self, conn: Connection, handler: Handler):
        """
        Serve every request on one connection (runs on a worker).

            handshake (TLS) → read → parse → handler → finish → keep-alive?
        """
        with conn:
            if not conn.handshake():
                return

            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    self._send_error(conn, 408)
                    break
                except HTTPParseError as e:
                    logger.debug(f"[{conn.id}] {e}")
                    self._send_error(conn, e.status_code)
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.debug(f"[{conn.id}] {e}")
                    self._send_error(conn, e.status_code)
                    break

                writer = StreamResponseWriter(
                    conn.send,
                    request,
                    server_name=self.runtime.server_name,
                    buffer_size=self.runtime.buffer_size,
                    keep_alive=self.runtime.keep_alive and request.is_keep_alive,
                    keep_alive_timeout=self.runtime.keep_alive_timeout,
                )

                try:
                    handler(request, writer)
                    writer.finish()
                except ConnectionError as e:
                    logger.debug(f"[{conn.id}] Client disconnected: {e}")
                    break
                except Exception as e:
                    logger.exception(f"[{conn.id}] Handler error: {e}")
                    if not writer.header_sent:
                        self._finish_with_500(writer)
                    break

                if writer.must_close:
                    break
                conn.set_keep_alive()

    def _finish_with_500(self, writer: StreamResponseWriter):
        writer.headers["Connection"] = "close"
        try:
            error(writer, status_text(500), 500)
            writer.finish()
        except ClientDisconnected:
            pass

    def _send_error(self, conn: Connection, status: int):
        """Answer outside the handler chain (parse errors, timeouts, 503)."""
        writer = StreamResponseWriter(
            conn.send,
            HTTPRequest(method="GET", path="/"),
            server_name=self.runtime.server_name,
            keep_alive=False,
        )
        try:
            error(writer, status_text(status), status)
            writer.finish()
        except ClientDisconnected:
            pass


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# setup_logging()  - basicConfig with the server's log format
# StaticServer     - builds router, pool and per-listener chains from a
#                    ServerConfig; start()/run()/shutdown()/stop()
#   _process_connection - keep-alive loop on a worker thread
#   _send_error         - errors that never reach a handler
# =============================================================================
