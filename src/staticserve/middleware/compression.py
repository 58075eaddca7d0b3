"""
=============================================================================
GZIP COMPRESSION MIDDLEWARE
=============================================================================

Compresses response bodies on the fly for clients that accept gzip.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      COMPRESSION FLOW                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Client                                                             │
    │     │  Accept-Encoding: gzip, deflate, br                            │
    │     ▼                                                                │
    │   CompressionMiddleware ── "gzip" not accepted? ──► pass through     │
    │     │                                                                │
    │     ▼                                                                │
    │   GzipWriter                                                         │
    │     write_header(200)   → held back                                  │
    │     write(chunk #1)     → sniff Content-Type if missing,             │
    │                           drop Content-Length,                       │
    │                           Content-Encoding: gzip,                    │
    │                           Vary: Accept-Encoding,                     │
    │                           send status, send compressed bytes         │
    │     write(chunk #n)     → send compressed bytes                      │
    │     close()             → send the gzip trailer                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY THE STATUS IS HELD BACK
=============================================================================

Content-Type may only be known from the body itself (a file without an
extension). The header cannot change once the status line is out, so the
status waits for the first chunk. A response that never writes a body
goes out uncompressed when the writer is closed; 204 and 304 are never
compressed at all.

=============================================================================
"""

import logging
import zlib
from dataclasses import dataclass
from typing import Any, Optional

from .base import Middleware, NextHandler
from ..http.mime_types import SNIFF_LENGTH, sniff_content_type
from ..http.request import HTTPRequest
from ..http.status_codes import body_allowed
from ..http.writer import ResponseWriter, WriteOutcome, WriterWrapper


logger = logging.getLogger(__name__)

# zlib wbits for a gzip container (16 + max window)
GZIP_WBITS = 16 + zlib.MAX_WBITS


@dataclass
class CompressionContext:
    """Per-response state of a GzipWriter."""
    status: Optional[int] = None
    sniffed: bool = False
    started: bool = False        # status committed downstream
    compressing: bool = False
    compressor: Any = None


def accepts_gzip(request: HTTPRequest) -> bool:
    """True if Accept-Encoding lists gzip (with a non-zero q-value)."""
    for item in request.get_header("accept-encoding").split(","):
        coding, _, params = item.strip().partition(";")
        if coding.strip().lower() not in ("gzip", "x-gzip"):
            continue
        params = params.replace(" ", "")
        if params in ("q=0", "q=0.0", "q=0.00", "q=0.000"):
            return False
        return True
    return False


class GzipWriter(WriterWrapper):
    """
    Writer that gzips everything written through it.

    close() must be called once the handler is done, whether it returned
    or raised; CompressionMiddleware does that in a finally block.
    """

    def __init__(self, inner: ResponseWriter, request: HTTPRequest, level: int = 6):
        super().__init__(inner)
        self.request = request
        self.level = level
        self.context = CompressionContext()

    @property
    def header_sent(self) -> bool:
        return self.context.status is not None

    @property
    def status(self) -> Optional[int]:
        return self.context.status

    def write_header(self, status: int) -> WriteOutcome:
        ctx = self.context
        if ctx.status is not None:
            return WriteOutcome.PASSTHROUGH
        ctx.status = status

        if not body_allowed(status):
            ctx.started = True
            return self.inner.write_header(status)
        return WriteOutcome.PASSTHROUGH

    def write(self, data: bytes) -> WriteOutcome:
        ctx = self.context
        if ctx.status is None:
            self.write_header(200)
        if not data:
            return WriteOutcome.PASSTHROUGH

        if not ctx.started:
            outcome = self._start(data)
            if outcome is WriteOutcome.INTERCEPTED:
                return outcome

        if not ctx.compressing:
            return self.inner.write(data)

        chunk = ctx.compressor.compress(data)
        if chunk:
            return self.inner.write(chunk)
        return WriteOutcome.PASSTHROUGH

    def close(self):
        """Commit a held-back status, or finish the gzip stream."""
        ctx = self.context
        if ctx.status is None:
            return

        if not ctx.started:
            # No body was written
            if self.request.method == "HEAD":
                self._use_gzip_headers()
            ctx.started = True
            self.inner.write_header(ctx.status)
            return

        if ctx.compressing:
            ctx.compressing = False
            tail = ctx.compressor.flush()
            if tail:
                self.inner.write(tail)

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _start(self, first_chunk: bytes) -> WriteOutcome:
        ctx = self.context
        headers = self.inner.headers

        if "Content-Type" not in headers:
            headers["Content-Type"] = sniff_content_type(first_chunk[:SNIFF_LENGTH])
            ctx.sniffed = True

        # Already encoded by the handler (e.g. a stored .gz file)
        if "Content-Encoding" not in headers:
            self._use_gzip_headers()
            ctx.compressor = zlib.compressobj(self.level, zlib.DEFLATED, GZIP_WBITS)
            ctx.compressing = True

        ctx.started = True
        return self.inner.write_header(ctx.status)

    def _use_gzip_headers(self):
        headers = self.inner.headers
        headers.discard("Content-Length")
        headers["Content-Encoding"] = "gzip"
        vary = headers.get("Vary")
        if not vary:
            headers["Vary"] = "Accept-Encoding"
        elif "accept-encoding" not in vary.lower():
            headers["Vary"] = vary + ", Accept-Encoding"


class CompressionMiddleware(Middleware):
    """
    Gzip responses for clients that send "Accept-Encoding: gzip".

    Args:
        level: zlib compression level (1 = fastest, 9 = smallest).
    """

    def __init__(self, level: int = 6):
        if not 1 <= level <= 9:
            raise ValueError(f"gzip level must be between 1 and 9, got {level}")
        self.level = level

    def __call__(self, request: HTTPRequest, writer: ResponseWriter, next: NextHandler) -> None:
        if not accepts_gzip(request):
            next(request, writer)
            return

        gzip_writer = GzipWriter(writer, request, self.level)
        try:
            next(request, gzip_writer)
        finally:
            gzip_writer.close()


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# accepts_gzip()        - Accept-Encoding check
# CompressionContext    - pending status, sniff flag, compressor
# GzipWriter            - holds the status until the first chunk, then
#                         streams compressed bytes; close() ends the stream
# CompressionMiddleware - wraps the writer when the client accepts gzip
# =============================================================================
