"""
Header injection.

Configured headers are added when the status is committed, and only if the
response does not already carry them. Because the innermost layer commits
first, precedence falls out of the nesting:

    handler's own headers  >  per-serve headers  >  per-listener headers
"""

import logging
from typing import Mapping

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.writer import ResponseWriter, WriteOutcome, WriterWrapper


logger = logging.getLogger(__name__)


class HeaderInjectingWriter(WriterWrapper):
    """Adds missing headers at write_header() time."""

    def __init__(self, inner: ResponseWriter, headers: Mapping[str, str]):
        super().__init__(inner)
        self.inject = headers

    def write_header(self, status: int) -> WriteOutcome:
        if not self.inner.header_sent:
            for name, value in self.inject.items():
                self.inner.headers.set_default(name, value)
        return self.inner.write_header(status)

    def write(self, data: bytes) -> WriteOutcome:
        if not self.inner.header_sent:
            self.write_header(200)
        return self.inner.write(data)


class HeaderInjectionMiddleware(Middleware):
    """
    Injects a fixed set of headers into every response.

    Args:
        headers: name → value. Copied; later changes to the mapping have no
                 effect.
    """

    def __init__(self, headers: Mapping[str, str]):
        self.headers = dict(headers)

    def __call__(self, request: HTTPRequest, writer: ResponseWriter, next: NextHandler) -> None:
        if not self.headers:
            next(request, writer)
            return
        next(request, HeaderInjectingWriter(writer, self.headers))
