"""
=============================================================================
APPLICATION ASSEMBLY
=============================================================================

Turns a validated ServerConfig into handlers. Everything is built once, at
startup; the results are shared, read-only, by all worker threads.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       build_router(config)                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   errors:     status  → ErrorPageHandler        (status overrides)  │
    │   serves:     path    → [HeaderInjection]                           │
    │                           → StaticFileHandler(FileSource            │
    │                                 [→ ListingGuardSource])             │
    │                         or FixedErrorHandler                        │
    │   redirects:  from    → RedirectHandler         (path not stripped) │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │              build_listener_handler(listener, router)               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   LoggingMiddleware → [HeaderInjection] → [Compression] → router    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
from typing import Optional

from .config import ListenerConfig, RuntimeConfig, ServeConfig, ServerConfig
from .handlers import (
    ErrorPageHandler,
    FileSource,
    FixedErrorHandler,
    RedirectHandler,
    StaticFileHandler,
)
from .http.router import PrefixRouter
from .http.writer import Handler
from .middleware import (
    CompressionMiddleware,
    HeaderInjectionMiddleware,
    ListingGuardSource,
    LoggingMiddleware,
    MiddlewarePipeline,
)


logger = logging.getLogger(__name__)


def build_serve_handler(serve: ServeConfig) -> Handler:
    """The terminal handler for one serve entry, with its own headers."""
    if serve.error:
        handler: Handler = FixedErrorHandler(serve.error)
    else:
        source = FileSource(serve.target)
        if serve.prevent_listing:
            source = ListingGuardSource(source)
        handler = StaticFileHandler(source)

    if serve.headers:
        handler = HeaderInjectionMiddleware(serve.headers).wrap(handler)
    return handler


def build_router(config: ServerConfig) -> PrefixRouter:
    """
    Register every serve, redirect and error page.

    Raises:
        DuplicateRoute: Two entries claim the same path.
        DuplicateOverride: Two error pages for one status.
    """
    router = PrefixRouter()

    for page in config.errors:
        router.register_status_override(page.status, ErrorPageHandler(page.target))

    for serve in config.serves:
        router.register(serve.path, build_serve_handler(serve))

    for redirect in config.redirects:
        router.register(
            redirect.from_path,
            RedirectHandler(redirect.to, redirect.status),
            strip_prefix=False,
        )

    logger.debug(f"Routes: {', '.join(router.prefixes)}")
    return router


def build_listener_handler(
    listener: ListenerConfig,
    router: Handler,
    runtime: Optional[RuntimeConfig] = None,
) -> Handler:
    """The complete handler chain for one listener."""
    runtime = runtime or RuntimeConfig()

    pipeline = MiddlewarePipeline()
    pipeline.add(LoggingMiddleware(log_format=runtime.log_format))
    if listener.headers:
        pipeline.add(HeaderInjectionMiddleware(listener.headers))
    if listener.gzip:
        pipeline.add(CompressionMiddleware(level=runtime.gzip_level))

    return pipeline.wrap(router)
