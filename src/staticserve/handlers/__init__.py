"""
=============================================================================
TERMINAL HANDLERS
=============================================================================

The handlers at the end of the chain, the ones that actually answer:

    StaticFileHandler    a serve with "target:"        files and listings
    FixedErrorHandler    a serve with "error:"         one fixed status
    RedirectHandler      a "redirects:" entry          Location + 3xx
    ErrorPageHandler     an "errors:" entry            status override body

All of them have the handler shape:

    def handler(request: HTTPRequest, writer: ResponseWriter) -> None

=============================================================================
"""

from .static import FileSource, FileEntry, ListingForbidden, StaticFileHandler, serve_file
from .redirect import RedirectHandler
from .errors import ErrorPageHandler, FixedErrorHandler

__all__ = [
    "FileSource",
    "FileEntry",
    "ListingForbidden",
    "StaticFileHandler",
    "serve_file",
    "RedirectHandler",
    "ErrorPageHandler",
    "FixedErrorHandler",
]
