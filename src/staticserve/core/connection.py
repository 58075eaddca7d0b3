"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted socket (plain TCP or TLS) for the lifetime of the
connection, across every keep-alive request on it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONNECTION LIFECYCLE                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   NEW ──► HANDSHAKE (TLS only) ──► READING ──► PROCESSING           │
    │                                       ▲             │                │
    │                                       │             ▼                │
    │                                  KEEP_ALIVE ◄── WRITING              │
    │                                                     │                │
    │                                                     ▼                │
    │                                           CLOSING ──► CLOSED         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
READING A REQUEST
=============================================================================

TCP delivers bytes in arbitrary chunks. read_request() buffers until the
header terminator, then until Content-Length body bytes are in. Bytes
past the end of the request stay buffered for the next one (pipelining).

    first request      timeout            (client may be slow to start)
    later requests     keep_alive_timeout (idle connections are cut early)

=============================================================================
WRITING
=============================================================================

send() is handed to the response writer. A failed send raises
ClientDisconnected: the handler chain unwinds and only this connection is
dropped.

=============================================================================
"""

import socket
import ssl
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..errors import ClientDisconnected
from ..http.request import HTTPParseError


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    HANDSHAKE = "handshake"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The accepted socket; an SSLSocket on https listeners.
        address: Client (ip, port).
        id: Short identifier used in log lines.
        requests_handled: Requests read so far on this connection.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: float = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_tls(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    @property
    def age(self) -> float:
        return time.time() - self.created_at

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    def handshake(self) -> bool:
        """
        Complete the TLS handshake, on the worker thread.

        Returns:
            False if it failed; the failure is logged and the caller
            should close the connection.
        """
        if not self.is_tls:
            return True
        self.state = ConnectionState.HANDSHAKE
        try:
            self.socket.do_handshake()
        except (ssl.SSLError, OSError) as e:
            logger.info(f"[{self.id}] TLS handshake with {self.client_ip} failed: {e}")
            return False
        return True

    # ─────────────────────────────────────────────────────────────────────
    # Reading
    # ─────────────────────────────────────────────────────────────────────

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request (headers and body).

        Returns:
            The request bytes, or None if the client closed the connection
            or a keep-alive connection went idle.

        Raises:
            TimeoutError: If the first request does not arrive in time.
            HTTPParseError: 413 if the request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                self._check_size()

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # closed mid-body; the parser reports it
                self._buffer += chunk
                self._check_size()

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.state = ConnectionState.PROCESSING
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout") from None

        finally:
            self.socket.settimeout(self.timeout)

    def _check_size(self):
        if len(self._buffer) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(self._buffer)} bytes",
                status_code=413,
            )

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError, ssl.SSLError):
            return b""

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        """Content-Length from raw header bytes, 0 if absent or garbled."""
        for line in headers.decode("latin-1").lower().split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0  # RequestParser rejects it with 400
        return 0

    # ─────────────────────────────────────────────────────────────────────
    # Writing
    # ─────────────────────────────────────────────────────────────────────

    def send(self, data: bytes) -> None:
        """
        Send bytes to the client.

        Raises:
            ClientDisconnected: If the client went away.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except (OSError, ssl.SSLError) as e:
            raise ClientDisconnected(f"[{self.id}] send failed: {e}") from e
        self.last_activity = time.time()

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    # ─────────────────────────────────────────────────────────────────────
    # Closing
    # ─────────────────────────────────────────────────────────────────────

    def close(self):
        """
        Close gracefully: FIN, drain what the client still sends, release.

            Server                              Client
               │   FIN ──────────────────────────► │  shutdown(SHUT_WR)
               │ ◄───────────────────────── FIN   │
            (closed)                           (closed)
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection closed after {self.requests_handled} requests "
            f"({self.age:.1f}s)"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
