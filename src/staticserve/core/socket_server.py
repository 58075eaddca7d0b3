"""
=============================================================================
LISTENING SOCKETS
=============================================================================

One SocketServer per configured listener. Binding and serving are two
separate steps so that every listener can be bound (and fail loudly)
before the first connection is accepted anywhere.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    bind()             socket → setsockopt → bind → listen           │
    │        │              (https: wrap the listening socket in TLS)     │
    │        ▼                                                             │
    │    serve_forever()    accept loop, one Connection per client,        │
    │        │              handed to the callback (the thread pool)       │
    │        ▼                                                             │
    │    shutdown()         loop exits within one accept timeout           │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
TLS
=============================================================================

The LISTENING socket is wrapped once:

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(cert, key)
    sock = context.wrap_socket(sock, server_side=True,
                               do_handshake_on_connect=False)

accept() then yields TLS sockets whose handshake has not run yet. The
worker thread performs it (Connection.handshake), so a slow or broken
client never stalls the accept loop.

=============================================================================
"""

import socket
import ssl
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ListenerConfig, RuntimeConfig, parse_address
from .connection import Connection


logger = logging.getLogger(__name__)


def create_ssl_context(cert_file: str, key_file: str) -> ssl.SSLContext:
    """Server-side TLS context for one certificate/key pair."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(cert_file, key_file)
    return context


class SocketServer:
    """
    A listening socket and its accept loop.

    Usage:
        server = SocketServer(listener, runtime)
        server.bind()                       # raises OSError on failure
        server.serve_forever(on_connection) # blocks until shutdown()
    """

    def __init__(
        self,
        listener: ListenerConfig,
        runtime: RuntimeConfig,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        self.listener = listener
        self.runtime = runtime
        self.ssl_context = ssl_context
        self.host, self.port = parse_address(listener.addr)

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._stopped = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the real port once bound to port 0."""
        if self._socket is not None:
            bound = self._socket.getsockname()
            return bound[0], bound[1]
        return self.host, self.port

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Rebind right after a restart, despite TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        # Small responses go out without Nagle delay
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up once a second to notice shutdown()
        sock.settimeout(1.0)
        return sock

    def bind(self):
        """
        Create, bind and listen.

        Raises:
            OSError: If the address cannot be bound.
            ssl.SSLError: If the certificate or key cannot be loaded.
        """
        sock = self._create_socket()
        try:
            sock.bind((self.host, self.port))
            sock.listen(self.runtime.backlog)
            if self.ssl_context is not None:
                sock = self.ssl_context.wrap_socket(
                    sock,
                    server_side=True,
                    do_handshake_on_connect=False,
                )
        except (OSError, ssl.SSLError) as e:
            sock.close()
            logger.error(f"Failed to bind to {self.listener.addr}: {e}")
            raise

        self._socket = sock
        host, port = self.address
        logger.debug(f"Bound {self.listener.protocol} socket to {host or '*'}:{port}")

    def serve_forever(self, connection_handler: Callable[[Connection], None]):
        """Accept connections until shutdown(). Binds first if needed."""
        if self._socket is None:
            self.bind()

        self._running = True
        self._stopped.clear()
        try:
            self._accept_loop(connection_handler)
        finally:
            self.close()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except ssl.SSLError as e:
                logger.info(f"TLS accept failed: {e}")
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error on {self.listener.addr}: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.runtime.buffer_size,
                timeout=self.runtime.timeout,
                keep_alive_timeout=self.runtime.keep_alive_timeout,
                max_request_size=self.runtime.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop accepting. Safe to call more than once, from any thread."""
        self._running = False

    def close(self):
        """Release the listening socket."""
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._stopped.set()
        logger.debug(f"Listener {self.listener.addr} stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop has exited. False on timeout."""
        return self._stopped.wait(timeout)
