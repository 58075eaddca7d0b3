"""
=============================================================================
RESPONSE WRITERS
=============================================================================

Handlers in this server do not *return* responses, they *write* them:

    def handler(request: HTTPRequest, writer: ResponseWriter) -> None:
        writer.headers["Content-Type"] = "text/plain; charset=utf-8"
        if writer.write_header(200) is WriteOutcome.INTERCEPTED:
            return
        writer.write(b"hello")

Writing instead of returning is what makes streaming files, gzip, and
status interception possible: every layer of the server can wrap the writer
and see each call as it happens.

=============================================================================
THE WRITER STACK
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   terminal handler                                                  │
    │        │ write_header / write                                       │
    │        ▼                                                            │
    │   HeaderInjectingWriter   (per-serve headers)                       │
    │        ▼                                                            │
    │   InterceptingWriter      (status overrides, see intercept.py)      │
    │        ▼                                                            │
    │   GzipWriter              (compression)                             │
    │        ▼                                                            │
    │   HeaderInjectingWriter   (per-listener headers)                    │
    │        ▼                                                            │
    │   StatusRecorder          (access log)                              │
    │        ▼                                                            │
    │   StreamResponseWriter    (bytes on the socket)                     │
    └─────────────────────────────────────────────────────────────────────┘

All of them share ONE Headers object: the one owned by the bottom writer.
Wrappers that need to act on it do so at write_header() time, before the
call is passed down.

=============================================================================
WRITE OUTCOMES
=============================================================================

Every write_header() and write() returns a WriteOutcome:

    PASSTHROUGH  - the call went through (or was a harmless no-op)
    INTERCEPTED  - the response now belongs to someone else; stop writing

A handler that sees INTERCEPTED should return. If it keeps writing anyway,
its bytes are discarded; the outcome is a courtesy, not the guarantee.

=============================================================================
BODY FRAMING (StreamResponseWriter)
=============================================================================

The status line cannot go out until we know how the body will be framed:

    handler set Content-Length?  ──yes──► stream as written
              │ no
              ▼
    body fits in buffer_size?    ──yes──► Content-Length: <buffered size>
              │ no
              ▼
    HTTP/1.1?                    ──yes──► Transfer-Encoding: chunked
              │ no
              ▼
    close-delimited body (Connection: close)

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from .headers import Headers
from .request import HTTPRequest
from .dates import format_http_date, utc_now
from .status_codes import body_allowed, status_text


logger = logging.getLogger(__name__)


class WriteOutcome(Enum):
    """Result of a write attempt."""
    PASSTHROUGH = "passthrough"
    INTERCEPTED = "intercepted"


class ResponseWriter(ABC):
    """
    The sink a handler writes its response into.

    Contract:
        - Set headers, then call write_header(status) once, then write().
        - write() before write_header() commits status 200.
        - After write_header(), header changes are no longer sent.
    """

    headers: Headers

    @property
    @abstractmethod
    def header_sent(self) -> bool:
        """True once a status has been committed."""

    @property
    @abstractmethod
    def status(self) -> Optional[int]:
        """The committed status, or None before write_header()."""

    @abstractmethod
    def write_header(self, status: int) -> WriteOutcome:
        """Commit the status code and the current headers."""

    @abstractmethod
    def write(self, data: bytes) -> WriteOutcome:
        """Append body bytes."""


# Every handler, terminal or composed, has this shape.
Handler = Callable[[HTTPRequest, ResponseWriter], None]


class WriterWrapper(ResponseWriter):
    """
    Delegates everything to an inner writer.

    Subclasses override only the calls they care about.
    """

    def __init__(self, inner: ResponseWriter):
        self.inner = inner

    @property
    def headers(self) -> Headers:
        return self.inner.headers

    @property
    def header_sent(self) -> bool:
        return self.inner.header_sent

    @property
    def status(self) -> Optional[int]:
        return self.inner.status

    def write_header(self, status: int) -> WriteOutcome:
        return self.inner.write_header(status)

    def write(self, data: bytes) -> WriteOutcome:
        return self.inner.write(data)


class StreamResponseWriter(ResponseWriter):
    """
    Serialises a response onto a byte sink (normally a client socket).

    Args:
        send: Called with each chunk of wire bytes. Raises on I/O failure
              (ClientDisconnected for sockets); errors are not caught here.
        request: The request being answered (method and version matter).
        server_name: Value of the Server header.
        buffer_size: Body bytes held back to compute Content-Length.
        keep_alive: Whether the connection will be reused afterwards.
        keep_alive_timeout: Advertised in the Keep-Alive header.
    """

    def __init__(
        self,
        send: Callable[[bytes], None],
        request: HTTPRequest,
        server_name: str = "staticserve",
        buffer_size: int = 8192,
        keep_alive: bool = False,
        keep_alive_timeout: float = 5.0,
    ):
        self.headers = Headers()
        self._send = send
        self._request = request
        self._server_name = server_name
        self._buffer_size = buffer_size
        self._keep_alive = keep_alive
        self._keep_alive_timeout = keep_alive_timeout

        self._status: Optional[int] = None
        self._flushed = False          # status line is on the wire
        self._chunked = False
        self._close_delimited = False
        self._finished = False
        self._buffer = bytearray()
        self.bytes_written = 0

    # ─────────────────────────────────────────────────────────────────────
    # ResponseWriter interface
    # ─────────────────────────────────────────────────────────────────────

    @property
    def header_sent(self) -> bool:
        return self._status is not None

    @property
    def status(self) -> Optional[int]:
        return self._status

    def write_header(self, status: int) -> WriteOutcome:
        if self._status is not None:
            logger.warning(
                f"superfluous write_header({status}), status already {self._status}"
            )
            return WriteOutcome.PASSTHROUGH
        self._status = status
        return WriteOutcome.PASSTHROUGH

    def write(self, data: bytes) -> WriteOutcome:
        if self._status is None:
            self.write_header(200)
        if not data:
            return WriteOutcome.PASSTHROUGH

        self.bytes_written += len(data)
        if not self._sends_body:
            return WriteOutcome.PASSTHROUGH

        if self._flushed:
            self._send_body(data)
        elif "Content-Length" in self.headers:
            self._flush_header()
            self._send_body(data)
        else:
            self._buffer += data
            if len(self._buffer) > self._buffer_size:
                self._start_streaming()
        return WriteOutcome.PASSTHROUGH

    # ─────────────────────────────────────────────────────────────────────
    # Completion
    # ─────────────────────────────────────────────────────────────────────

    def finish(self):
        """
        Complete the response after the handler returned.

        Sends the header if nothing did yet (a handler that wrote nothing
        still produces "200 OK" with an empty body), flushes the buffer,
        and terminates a chunked body.
        """
        if self._finished:
            return
        self._finished = True

        if self._status is None:
            self.write_header(200)

        if not self._flushed:
            if self._needs_length():
                self.headers["Content-Length"] = str(self.bytes_written)
            self._flush_header()
            if self._buffer:
                self._send(bytes(self._buffer))
                self._buffer.clear()
        elif self._chunked:
            self._send(b"0\r\n\r\n")

    @property
    def must_close(self) -> bool:
        """Whether the connection has to be closed after this response."""
        if self._close_delimited or not self._keep_alive:
            return True
        return self.headers.get("Connection", "").lower() == "close"

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    @property
    def _sends_body(self) -> bool:
        return body_allowed(self._status) and self._request.method != "HEAD"

    def _needs_length(self) -> bool:
        if not body_allowed(self._status) or "Content-Length" in self.headers:
            return False
        # A HEAD handler that wrote nothing does not know the GET length
        return self._request.method != "HEAD" or self.bytes_written > 0

    def _start_streaming(self):
        """Buffer overflowed: pick a framing that needs no length up front."""
        if self._request.version == "HTTP/1.1":
            self.headers["Transfer-Encoding"] = "chunked"
            self._chunked = True
        else:
            self._close_delimited = True
        self._flush_header()
        pending = bytes(self._buffer)
        self._buffer.clear()
        self._send_body(pending)

    def _send_body(self, data: bytes):
        if self._chunked:
            self._send(f"{len(data):x}\r\n".encode("ascii") + data + b"\r\n")
        else:
            self._send(data)

    def _flush_header(self):
        headers = self.headers
        headers.set_default("Date", format_http_date(utc_now()))
        headers.set_default("Server", self._server_name)

        if self.must_close:
            headers["Connection"] = "close"
        else:
            headers.set_default("Connection", "keep-alive")
            headers.set_default("Keep-Alive", f"timeout={int(self._keep_alive_timeout)}")

        reason = status_text(self._status) or f"status code {self._status}"
        head = f"HTTP/1.1 {self._status} {reason}\r\n"
        head += headers.to_lines() + "\r\n"

        self._flushed = True
        self._send(head.encode("latin-1"))


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# WriteOutcome         - PASSTHROUGH / INTERCEPTED, returned by every write
# ResponseWriter       - the handler-facing sink (headers, write_header, write)
# WriterWrapper        - delegating base for decorators
# StreamResponseWriter - wire serialisation with Content-Length, chunked or
#                        close-delimited framing; honours HEAD, 204 and 304
# =============================================================================
