"""
=============================================================================
PREFIX ROUTER
=============================================================================

Maps URL path prefixes to handlers. Every request is answered by exactly
one handler, chosen by the LONGEST registered prefix of its path.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        PREFIX MATCHING                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Registered:  "/"   "/a/"   "/a/b/"   "/old"                        │
    │                                                                      │
    │   /a/b/c     → "/a/b/"   handler sees /c                             │
    │   /a/x       → "/a/"     handler sees /x                             │
    │   /old       → "/old"    (exact prefix, no trailing slash)           │
    │   /old/x     → "/"       "/old" matches only itself                  │
    │   /a         → 301 Location: /a/                                     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A prefix ending in "/" names a subtree; any other prefix names one path.

=============================================================================
WHAT THE ROUTER ADDS AROUND A HANDLER
=============================================================================

    request ──► "*" target? ──yes──► 400, empty body (not intercepted)
                   │ no
                   ▼
               dispatch ──► strip prefix ──► intercept(handler, overrides)

The override map lives here too: it is registered alongside the routes at
startup and handed to every interceptor the router creates.

=============================================================================
"""

import logging
from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import quote

from ..errors import DuplicateOverride, DuplicateRoute
from .intercept import intercept
from .request import HTTPRequest
from .response import redirect
from .writer import Handler, ResponseWriter


logger = logging.getLogger(__name__)


def not_found(request: HTTPRequest, writer: ResponseWriter) -> None:
    """Handler for paths no route covers."""
    writer.write_header(404)


class PrefixRouter:
    """
    Longest-prefix router with status overrides.

    Usage:
        router = PrefixRouter()
        router.register("/", files)
        router.register("/old", RedirectHandler("/new"), strip_prefix=False)
        router.register_status_override(404, ErrorPageHandler("404.html"))

        router(request, writer)

    Routes and overrides are registered once, before serving starts, and
    only read afterwards.
    """

    def __init__(self):
        self._routes: Dict[str, Tuple[Handler, bool]] = {}
        self._overrides: Dict[int, Handler] = {}

    # ─────────────────────────────────────────────────────────────────────
    # Registration
    # ─────────────────────────────────────────────────────────────────────

    def register(self, prefix: str, handler: Handler, strip_prefix: bool = True):
        """
        Route `prefix` to `handler`.

        Args:
            prefix: "/static/" for a subtree, "/old" for a single path.
            handler: The terminal (possibly already wrapped) handler.
            strip_prefix: Hand the handler the path below the prefix.

        Raises:
            DuplicateRoute: If the prefix is already registered.
        """
        if not prefix.startswith("/"):
            prefix = "/" + prefix
        if prefix in self._routes:
            raise DuplicateRoute(prefix)
        self._routes[prefix] = (handler, strip_prefix)
        logger.debug(f"Registered route {prefix}")

    def register_status_override(self, status: int, handler: Handler):
        """
        Answer every response with `status` using `handler` instead.

        Raises:
            DuplicateOverride: If `status` already has an override.
        """
        if status in self._overrides:
            raise DuplicateOverride(status)
        self._overrides[status] = handler
        logger.debug(f"Registered override for status {status}")

    @property
    def overrides(self) -> Mapping[int, Handler]:
        return self._overrides

    @property
    def prefixes(self) -> list[str]:
        return sorted(self._routes)

    # ─────────────────────────────────────────────────────────────────────
    # Dispatch
    # ─────────────────────────────────────────────────────────────────────

    def dispatch(self, request: HTTPRequest) -> Tuple[Handler, Optional[str]]:
        """
        Pick the handler for a request.

        Returns:
            (handler, prefix). prefix is None when nothing matched; the
            handler then answers 404 or the slash redirect.
        """
        path = request.path

        # "/dir" when only "/dir/" is registered, even if "/" would match
        if path not in self._routes and path + "/" in self._routes:
            return self._slash_redirect, None

        best: Optional[str] = None
        for prefix in self._routes:
            if prefix.endswith("/"):
                matches = path.startswith(prefix)
            else:
                matches = path == prefix
            if matches and (best is None or len(prefix) > len(best)):
                best = prefix

        if best is not None:
            return self._routes[best][0], best
        return not_found, None

    def __call__(self, request: HTTPRequest, writer: ResponseWriter) -> None:
        if request.is_asterisk:
            if request.proto_at_least_1_1:
                writer.headers["Connection"] = "close"
            writer.write_header(400)
            return

        handler, prefix = self.dispatch(request)
        if prefix is not None and self._routes[prefix][1]:
            request = request.with_path(self._strip(prefix, request.path))

        intercept(handler, self._overrides)(request, writer)

    @staticmethod
    def _strip(prefix: str, path: str) -> str:
        rest = path[len(prefix.rstrip("/")):]
        if not rest.startswith("/"):
            rest = "/" + rest
        return rest

    @staticmethod
    def _slash_redirect(request: HTTPRequest, writer: ResponseWriter) -> None:
        url = quote(request.path + "/")
        if request.query:
            url += "?" + request.query
        redirect(writer, request, url, 301)


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# PrefixRouter.register()                 - prefix → handler, unique
# PrefixRouter.register_status_override() - status → handler, unique
# PrefixRouter.dispatch()                 - longest matching prefix
# PrefixRouter.__call__()                 - "*" → 400, strip, intercept
# not_found()                             - 404 (subject to interception)
# =============================================================================
