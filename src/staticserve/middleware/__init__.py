"""
=============================================================================
MIDDLEWARE
=============================================================================

Layers that sit between the connection and the terminal handlers. Each one
wraps the next handler and, usually, the writer it hands inward.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      PER-LISTENER CHAIN                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   LoggingMiddleware            access line after the response       │
    │        ▼                                                             │
    │   HeaderInjectionMiddleware    listener "headers:"                  │
    │        ▼                                                             │
    │   CompressionMiddleware        listener "gzip: true"                │
    │        ▼                                                             │
    │   PrefixRouter                 → intercept → serve handler          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Per serve, closer to the file handler:

    HeaderInjectionMiddleware    serve "headers:"
    ListingGuardSource           serve "prevent-listing: true" (wraps the
                                 file source rather than the handler)

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, FunctionMiddleware
from .logging import LoggingMiddleware, StatusRecorder
from .headers import HeaderInjectionMiddleware, HeaderInjectingWriter
from .compression import CompressionMiddleware, GzipWriter
from .listing import ListingGuardSource

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "FunctionMiddleware",
    "LoggingMiddleware",
    "StatusRecorder",
    "HeaderInjectionMiddleware",
    "HeaderInjectingWriter",
    "CompressionMiddleware",
    "GzipWriter",
    "ListingGuardSource",
]
