"""
=============================================================================
HTTP LAYER
=============================================================================

Everything between raw bytes and the handlers:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ request.py       bytes → HTTPRequest (RequestParser, HTTPParseError)│
    │ headers.py       ordered, case-insensitive Headers                  │
    │ writer.py        ResponseWriter, WriteOutcome, StreamResponseWriter │
    │ intercept.py     InterceptingWriter: status → override handler      │
    │ router.py        PrefixRouter: longest prefix → handler             │
    │ response.py      error() and redirect() helpers                     │
    │ status_codes.py  HTTPStatus, status_text()                          │
    │ mime_types.py    extension lookup and content sniffing             │
    │ dates.py         HTTP-date formatting and parsing                   │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
HTTP MESSAGE FORMAT (RFC 7230)
=============================================================================

    REQUEST:                          RESPONSE:
    ─────────                         ──────────
    GET /path HTTP/1.1\\r\\n            HTTP/1.1 200 OK\\r\\n
    Header: Value\\r\\n                 Header: Value\\r\\n
    \\r\\n                              \\r\\n
    [body]                            [body]

- Lines end with CRLF
- Header names are case-insensitive
- A response body is framed by Content-Length, chunked encoding, or
  the end of the connection

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .headers import Headers
from .writer import (
    Handler,
    ResponseWriter,
    StreamResponseWriter,
    WriteOutcome,
    WriterWrapper,
)
from .intercept import Exchange, InterceptingWriter, OverrideWriter, intercept
from .router import PrefixRouter
from .response import error, redirect
from .status_codes import HTTPStatus, status_text
from .mime_types import content_type_for, sniff_content_type

__all__ = [
    # Requests
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    # Responses
    "Headers",
    "Handler",
    "ResponseWriter",
    "StreamResponseWriter",
    "WriteOutcome",
    "WriterWrapper",
    "error",
    "redirect",

    # Interception and routing
    "Exchange",
    "InterceptingWriter",
    "OverrideWriter",
    "intercept",
    "PrefixRouter",

    # Tables
    "HTTPStatus",
    "status_text",
    "content_type_for",
    "sniff_content_type",
]
