"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into HTTPRequest objects (RFC 7230).

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /static/css/site.css?v=3 HTTP/1.1\r\n      ← request line    │
    │    ─┬─ ───────────┬──────────── ────┬───                             │
    │   Method   request target        Version                             │
    │                   │                                                  │
    │         ┌─────────┴─────────┐                                        │
    │       path              query                                        │
    │  /static/css/site.css    v=3                                         │
    │                                                                      │
    │    Host: example.com\r\n                          ← headers         │
    │    Accept-Encoding: gzip, br\r\n                                     │
    │    \r\n                                           ← separator       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
THE ASTERISK TARGET
=============================================================================

RFC 7230 section 5.3.4 allows one request target that is not a path:

    OPTIONS * HTTP/1.1

It addresses "the server as a whole" and has no path semantics, so it can
never be routed to a file. The parser accepts it and keeps the raw target
in `HTTPRequest.target`; the router answers it with 400 before consulting
any route.

=============================================================================
PATHS AFTER ROUTING
=============================================================================

A serve mounted at /static/ sees paths relative to its mount point. The
router does not mutate the request for this; it derives a copy:

    request.path            = "/static/css/site.css"
    request.with_path(...)  → path = "/css/site.css", everything else shared

=============================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Dict
from urllib.parse import parse_qs, urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status the client should receive:
        400 Bad Request                - malformed syntax, ".." in path
        405 Method Not Allowed         - unknown method
        413 Payload Too Large          - request exceeds size limit
        505 HTTP Version Not Supported - anything but HTTP/1.0 or 1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         GET, HEAD, ...
        path:           Percent-decoded path without query string. After
                        routing, relative to the serve's mount point.
        target:         Request target exactly as sent ("*" for the
                        asterisk form, "/a%20b?x=1" otherwise).
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header name → value, names lowercased.
        query:          Raw query string ("" if none).
        query_params:   Parsed query string, name → list of values.
        body:           Raw body bytes.
        client_address: (ip, port) of the peer.
    """

    method: str
    path: str
    target: str = ""
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query: str = ""
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)

    def __post_init__(self):
        if not self.target:
            self.target = self.path + (f"?{self.query}" if self.query else "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_asterisk(self) -> bool:
        """True for the `*` request target (server-wide OPTIONS)."""
        return self.target == "*"

    @property
    def proto_at_least_1_1(self) -> bool:
        return self.version == "HTTP/1.1"

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

            HTTP/1.1: keep-alive unless "Connection: close"
            HTTP/1.0: close unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def with_path(self, path: str) -> "HTTPRequest":
        """Copy of this request with a different routing path."""
        return replace(self, path=path)


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw bytes
            │
            ├─► size check ─────────────► 413
            ├─► find \\r\\n\\r\\n ───────────► 400 if missing
            ├─► request line ───────────► 400 / 405 / 505
            ├─► headers (lowercased, repeats joined with ", ")
            └─► body (Content-Length bytes)

    Paths with a ".." segment are rejected outright (400). File handlers
    still confine themselves to their root; this is the first fence.
    """

    VALID_METHODS = {
        "GET", "HEAD", "POST", "PUT", "DELETE", "PATCH",
        "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse one complete request.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, target, version = self._parse_request_line(lines[0])
        path, query, query_params = self._split_target(target)
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length") from None
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            target=target,
            version=version,
            headers=headers,
            query=query,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        return method, target, version

    def _split_target(self, target: str) -> tuple[str, str, Dict[str, list[str]]]:
        """Split a request target into (decoded path, raw query, params)."""
        if target == "*":
            return "*", "", {}

        parsed = urlparse(target)
        path = unquote(parsed.path) or "/"

        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return path, parsed.query, parse_qs(parsed.query, keep_blank_values=True)

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Continuation lines (leading whitespace) extend the previous header.
        A repeated header is joined with ", " (Accept-Encoding: gzip +
        Accept-Encoding: br → "gzip, br").
        """
        headers: Dict[str, str] = {}
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed lines

            name = match.group(1).strip().lower()
            value = match.group(2).strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# HTTPParseError - parse failure carrying the status to send
# HTTPRequest    - parsed request; with_path() derives routed copies
# RequestParser  - bytes → HTTPRequest, rejecting ".." segments early
# =============================================================================
