"""
=============================================================================
RESPONSE HELPERS
=============================================================================

Small, reusable ways of answering a request through a ResponseWriter.
They are the writer-based counterparts of "return not_found(...)":

    error(writer, "Forbidden", 403)
        Content-Type: text/plain; charset=utf-8
        X-Content-Type-Options: nosniff
        body: the message

    redirect(writer, request, "/new", 301)
        Location: /new
        body (GET/HEAD only): <a href="/new">Moved Permanently</a>.

Both return the WriteOutcome of what they wrote, so callers can hand
INTERCEPTED upward without inspecting anything.

=============================================================================
"""

import html
import posixpath
from urllib.parse import urlsplit

from .request import HTTPRequest
from .status_codes import status_text
from .writer import ResponseWriter, WriteOutcome


def error(writer: ResponseWriter, message: str, status: int) -> WriteOutcome:
    """
    Answer with a plain-text error body.

    Any Content-Length left by an earlier attempt to send a file is
    dropped; it would describe a body that is never sent.
    """
    writer.headers.discard("Content-Length")
    writer.headers["Content-Type"] = "text/plain; charset=utf-8"
    writer.headers["X-Content-Type-Options"] = "nosniff"
    if writer.write_header(status) is WriteOutcome.INTERCEPTED:
        return WriteOutcome.INTERCEPTED
    return writer.write(message.encode("utf-8"))


def resolve_location(request: HTTPRequest, url: str) -> str:
    """
    Resolve a relative redirect target against the request path.

        request.path = "/docs/guide"
        "intro"   → "/docs/intro"
        "../"     → "/"
        "/x", "https://h/x" → unchanged
    """
    if urlsplit(url).scheme or url.startswith("/"):
        return url

    if request.path.endswith("/"):
        base = request.path
    else:
        base = posixpath.dirname(request.path).rstrip("/") + "/"

    resolved = posixpath.normpath(posixpath.join(base, url))
    # normpath keeps a leading "//", which clients read as a host
    resolved = "/" + resolved.lstrip("/")
    if url.endswith("/") and not resolved.endswith("/"):
        resolved += "/"
    return resolved


def redirect(
    writer: ResponseWriter,
    request: HTTPRequest,
    url: str,
    status: int,
) -> WriteOutcome:
    """Redirect the client to `url` with the given 3xx status."""
    url = resolve_location(request, url)
    writer.headers["Location"] = url

    body = None
    if request.method in ("GET", "HEAD") and "Content-Type" not in writer.headers:
        writer.headers["Content-Type"] = "text/html; charset=utf-8"
        body = f'<a href="{html.escape(url)}">{status_text(status)}</a>.\n'

    if writer.write_header(status) is WriteOutcome.INTERCEPTED:
        return WriteOutcome.INTERCEPTED
    if body is not None:
        return writer.write(body.encode("utf-8"))
    return WriteOutcome.PASSTHROUGH


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# error(writer, message, status)      - text/plain error response
# resolve_location(request, url)      - relative → absolute-path Location
# redirect(writer, request, url, st)  - Location + short HTML body
# =============================================================================
