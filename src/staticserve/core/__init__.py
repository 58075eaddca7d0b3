"""
=============================================================================
NETWORK CORE
=============================================================================

The raw-socket layer underneath the handlers:

    SocketServer   one listening socket (plain or TLS) and its accept loop
    Connection     one client socket: buffered reads, sends, graceful close
    ConnectionPool the worker threads every connection is served on

Nothing here knows about files, routes or configuration entries beyond the
listener being bound.

=============================================================================
"""

from .socket_server import SocketServer, create_ssl_context
from .connection import Connection, ConnectionState
from .thread_pool import ConnectionPool

__all__ = [
    "SocketServer",
    "create_ssl_context",
    "Connection",
    "ConnectionState",
    "ConnectionPool",
]
