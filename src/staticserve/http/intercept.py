"""
=============================================================================
STATUS INTERCEPTION
=============================================================================

A handler starts answering a request; the server looks at the status it
picks BEFORE anything reaches the client; if an override is configured for
that status, a different handler produces the response instead.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    write_header(status) DECISION                    │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   already sent? ──yes──► no-op (INTERCEPTED if we took over before) │
    │        │ no                                                          │
    │        ▼                                                             │
    │   override for status? ──yes──► 1. restore headers to baseline      │
    │        │ no                     2. run override handler on an       │
    │        │                           OverrideWriter (status pinned)   │
    │        │                        3. return INTERCEPTED               │
    │        ▼                                                             │
    │   status >= 400? ──yes──► restore baseline, reason phrase as        │
    │        │                  text/plain, INTERCEPTED                   │
    │        │ no                                                          │
    │        ▼                                                             │
    │   forward status, PASSTHROUGH                                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONTROL FLOW
=============================================================================

The decision is returned to the caller, nothing is raised:

    if writer.write_header(404) is WriteOutcome.INTERCEPTED:
        return

Anything the original handler writes after a takeover is dropped by the
writer, whether or not the handler checks the outcome.

=============================================================================
BASELINE HEADERS
=============================================================================

The interceptor sits INSIDE the listener middleware. When it is created,
the shared header map already holds what outer layers set (for instance
the X-Request-ID of the access log). Those stay. Everything the original
handler queued after that point is discarded on takeover, by an override
or by a plain error body, so a stale Content-Type or ETag never leaks
into the response that replaces it.

    baseline  = {X-Request-ID: 3f2a9c1e}
    handler   + {Content-Type: text/css, Content-Length: 812, ETag: ...}
    takeover  → back to baseline, then the override handler writes.

=============================================================================
STATUS POLICY FOR OVERRIDES
=============================================================================

The override handler always answers with the ORIGINAL status. A 404 page
is served as 404, never as the 200 its file handler would pick.
OverrideWriter pins it.

=============================================================================
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from .request import HTTPRequest
from .response import error
from .status_codes import status_text
from .writer import Handler, ResponseWriter, WriteOutcome, WriterWrapper


logger = logging.getLogger(__name__)


@dataclass
class Exchange:
    """
    In-flight state of one request.

    `header_sent` goes False → True exactly once, via commit().
    """
    status: Optional[int] = None
    header_sent: bool = False
    intercepted: bool = False

    def commit(self, status: int):
        if self.header_sent:
            raise RuntimeError(f"status already committed ({self.status})")
        self.status = status
        self.header_sent = True


class OverrideWriter(WriterWrapper):
    """
    Sink given to an override handler.

    Whatever status the override handler asks for, the original status is
    what gets written; a second write_header() is ignored.
    """

    def __init__(self, inner: ResponseWriter, status: int):
        super().__init__(inner)
        self.pinned_status = status
        self._sent = False

    @property
    def header_sent(self) -> bool:
        return self._sent

    @property
    def status(self) -> Optional[int]:
        return self.pinned_status if self._sent else None

    def write_header(self, status: int) -> WriteOutcome:
        if self._sent:
            return WriteOutcome.PASSTHROUGH
        self._sent = True
        if status != self.pinned_status:
            logger.debug(f"override handler asked for {status}, sending {self.pinned_status}")
        return self.inner.write_header(self.pinned_status)

    def write(self, data: bytes) -> WriteOutcome:
        if not self._sent:
            self.write_header(self.pinned_status)
        return self.inner.write(data)


class InterceptingWriter(WriterWrapper):
    """
    Response writer that may hand the response to a status override.

    Args:
        inner: Writer the final response goes to.
        request: The request, passed on to override handlers unchanged.
        overrides: status → handler. Read-only; shared by all requests.
    """

    def __init__(
        self,
        inner: ResponseWriter,
        request: HTTPRequest,
        overrides: Mapping[int, Handler],
    ):
        super().__init__(inner)
        self.request = request
        self.overrides = overrides
        self.exchange = Exchange()
        self._baseline = inner.headers.copy()

    @property
    def header_sent(self) -> bool:
        return self.exchange.header_sent

    @property
    def status(self) -> Optional[int]:
        return self.exchange.status

    @property
    def intercepted(self) -> bool:
        return self.exchange.intercepted

    def write_header(self, status: int) -> WriteOutcome:
        exchange = self.exchange
        if exchange.header_sent:
            if exchange.intercepted:
                return WriteOutcome.INTERCEPTED
            return WriteOutcome.PASSTHROUGH

        exchange.commit(status)

        handler = self.overrides.get(status)
        if handler is not None:
            exchange.intercepted = True
            self.inner.headers.replace_with(self._baseline)
            self._run_override(handler, status)
            return WriteOutcome.INTERCEPTED

        if status >= 400:
            exchange.intercepted = True
            self.inner.headers.replace_with(self._baseline)
            error(self.inner, status_text(status), status)
            return WriteOutcome.INTERCEPTED

        return self.inner.write_header(status)

    def write(self, data: bytes) -> WriteOutcome:
        if not self.exchange.header_sent:
            self.write_header(200)
        if self.exchange.intercepted:
            return WriteOutcome.INTERCEPTED
        return self.inner.write(data)

    def _run_override(self, handler: Handler, status: int):
        sink = OverrideWriter(self.inner, status)
        try:
            handler(self.request, sink)
        except ConnectionError:
            raise
        except Exception:
            logger.exception(f"Override handler for status {status} failed")
            if self.inner.header_sent:
                raise
            # Nothing reached the client yet: fall back to the plain answer
            self.inner.headers.replace_with(self._baseline)
            error(self.inner, status_text(status), status)
            return

        if not sink.header_sent:
            sink.write_header(status)


def intercept(handler: Handler, overrides: Mapping[int, Handler]) -> Handler:
    """
    Wrap `handler` so its responses pass through an InterceptingWriter.

    A handler that raises before committing a status is answered with 500,
    itself subject to interception (a configured 500 page applies).
    Client disconnects propagate untouched.
    """

    def intercepted(request: HTTPRequest, writer: ResponseWriter) -> None:
        iw = InterceptingWriter(writer, request, overrides)
        try:
            handler(request, iw)
        except ConnectionError:
            raise
        except Exception:
            if iw.header_sent:
                raise
            logger.exception(f"Handler failed for {request.method} {request.path}")
            iw.write_header(500)

    return intercepted


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# Exchange           - per-request {status, header_sent, intercepted}
# InterceptingWriter - first status decides: override, plain error, or pass
# OverrideWriter     - pins the original status for override handlers
# intercept()        - Handler → Handler, also maps crashes to 500
# =============================================================================
