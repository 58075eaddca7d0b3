"""
=============================================================================
ERROR HANDLERS
=============================================================================

Two ways of producing an error response:

    FixedErrorHandler     a serve with "error: 410"
                          → 410, body "Gone" (or the 410 override page)

    ErrorPageHandler      an "errors:" entry, registered as a status
                          override: the configured file becomes the body
                          of every response with that status

    errors:
      - status: 404
        target: ./public/404.html

An error page is served unconditionally. A client revalidating with
If-None-Match would otherwise turn a 404 into a 304.

=============================================================================
"""

import logging
from pathlib import Path

from .static import FileEntry, serve_file
from ..http.request import HTTPRequest
from ..http.response import error
from ..http.status_codes import status_text
from ..http.writer import ResponseWriter


logger = logging.getLogger(__name__)


class FixedErrorHandler:
    """
    Always answers with one status.

    The body is the standard reason phrase. Behind the status interceptor
    an error status gets the page registered for it instead.
    """

    def __init__(self, status: int):
        self.status = status

    def __call__(self, request: HTTPRequest, writer: ResponseWriter) -> None:
        error(writer, status_text(self.status), self.status)

    def __repr__(self) -> str:
        return f"FixedErrorHandler({self.status})"


class ErrorPageHandler:
    """
    Serves one file as the body of an overridden response.

    Runs on the sink the interceptor provides, so the status the client
    sees is the one being overridden, not 200. Lookup errors propagate;
    the interceptor then falls back to the plain reason phrase.
    """

    def __init__(self, target):
        self.target = Path(target)

    def __call__(self, request: HTTPRequest, writer: ResponseWriter) -> None:
        # The type of whatever was being served does not apply to the page
        writer.headers.discard("Content-Type")
        entry = FileEntry.from_path(self.target)
        serve_file(request, writer, entry, conditional=False)

    def __repr__(self) -> str:
        return f"ErrorPageHandler({str(self.target)!r})"
