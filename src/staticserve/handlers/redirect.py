"""
Fixed redirect handler.

    redirects:
      - from: /old
        to: /new
        status: 302

Every request routed here is sent to the same target. Relative targets
resolve against the request path, so "to: new" under /docs/old gives
Location: /docs/new.
"""

from ..http.request import HTTPRequest
from ..http.response import redirect
from ..http.writer import ResponseWriter


class RedirectHandler:
    """Answers with `status` and Location: `to`."""

    def __init__(self, to: str, status: int = 301):
        self.to = to
        self.status = status

    def __call__(self, request: HTTPRequest, writer: ResponseWriter) -> None:
        redirect(writer, request, self.to, self.status)

    def __repr__(self) -> str:
        return f"RedirectHandler({self.to!r}, {self.status})"
