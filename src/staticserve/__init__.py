"""
=============================================================================
STATICSERVE
=============================================================================

A configuration-driven static file server on a raw-socket HTTP/1.1 stack.

    listeners   plain and TLS sockets, each with its own headers and gzip
    serves      path prefixes answered from directories or fixed errors
    redirects   fixed Location answers
    errors      custom pages substituted for chosen status codes

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        PACKAGE LAYOUT                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   config.py      YAML → ServerConfig, defaults, validation          │
    │   app.py         ServerConfig → router and listener chains          │
    │   server.py      StaticServer: sockets, pool, keep-alive loop       │
    │   core/          sockets, connections, thread pool                  │
    │   http/          parser, writers, interception, router              │
    │   middleware/    access log, header injection, gzip, listing guard  │
    │   handlers/      files, redirects, error pages                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    python -m staticserve ./public
    python -m staticserve --config staticserve.yaml

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, default_config, load_config
from .errors import ConfigError
from .server import StaticServer, setup_logging

__all__ = [
    "StaticServer",
    "ServerConfig",
    "ConfigError",
    "default_config",
    "load_config",
    "setup_logging",
    "__version__",
]
