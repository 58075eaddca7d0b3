"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

A middleware wraps the handler after it. It receives the request, the
writer, and the next handler, and usually calls next with a DECORATED
writer so it can see the response as it is written:

    class Stamp(Middleware):
        def __call__(self, request, writer, next):
            next(request, StampingWriter(writer))

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       LISTENER PIPELINE                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Request ──────────────────────────────────────────────────►       │
    │                                                                      │
    │   ┌──────────┐    ┌──────────┐    ┌──────────┐    ┌──────────┐      │
    │   │  Access  │───►│  Header  │───►│   Gzip   │───►│  Router  │      │
    │   │   Log    │    │ Injection│    │          │    │          │      │
    │   └──────────┘    └──────────┘    └──────────┘    └──────────┘      │
    │                                                                      │
    │   ◄──────────────── writer calls flow back out ─────────────        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Nothing is returned: every layer observes the response through the writer
it handed inward.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.writer import Handler, ResponseWriter


logger = logging.getLogger(__name__)


# Type alias for the next handler in the chain
NextHandler = Handler


class Middleware(ABC):
    """
    Abstract base class for middleware.

    Subclasses implement __call__ and decide whether, and with which
    writer, to call next.
    """

    @abstractmethod
    def __call__(
        self,
        request: HTTPRequest,
        writer: ResponseWriter,
        next: NextHandler,
    ) -> None:
        """Handle the request, normally by delegating to next."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    def wrap(self, handler: NextHandler) -> Handler:
        """This middleware in front of a single handler."""
        return MiddlewarePipeline().add(self).wrap(handler)


class MiddlewarePipeline:
    """
    Chains middleware in front of a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())       # first added = outermost
        pipeline.add(CompressionMiddleware())   # closest to the handler
        handler = pipeline.wrap(router)

        handler(request, writer)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware; returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> Handler:
        """
        Build the chain around `handler`.

        Given [MW1, MW2, MW3] the result is MW1 → MW2 → MW3 → handler:
        wrapping happens in reverse so the first-added is outermost.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler,
    ) -> Handler:
        # Closure binds this middleware to its own next_handler
        def wrapped(request: HTTPRequest, writer: ResponseWriter) -> None:
            middleware(request, writer, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)


class FunctionMiddleware(Middleware):
    """
    Middleware from a plain function, for small one-off layers.

        def no_store(request, writer, next):
            writer.headers.set_default("Cache-Control", "no-store")
            next(request, writer)

        pipeline.add(FunctionMiddleware(no_store))
    """

    def __init__(
        self,
        func: Callable[[HTTPRequest, ResponseWriter, NextHandler], None],
        name: str = "",
    ):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: HTTPRequest, writer: ResponseWriter, next: NextHandler) -> None:
        self._func(request, writer, next)

    @property
    def name(self) -> str:
        return self._name
