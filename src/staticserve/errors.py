"""
=============================================================================
ERROR TYPES
=============================================================================

Two families of failure exist in a static file server, and they are
handled at opposite ends of the process lifetime:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ERROR TAXONOMY                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   STARTUP (fatal)                 PER REQUEST (contained)           │
    │   ───────────────                 ───────────────────────           │
    │   ConfigError                     OSError from the file tree        │
    │    ├── DuplicateRoute               → 404 / 403 / 500 response     │
    │    └── DuplicateOverride          ClientDisconnected                │
    │                                     → connection dropped            │
    │   Logged, exit status 1,                                            │
    │   no listener is bound.           Never reaches other requests.    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from typing import Iterable, List


class ConfigError(Exception):
    """
    The server configuration cannot be used.

    Carries every problem found, so an operator can fix a config file in
    one pass instead of one error per restart.
    """

    def __init__(self, problems: Iterable[str] | str):
        if isinstance(problems, str):
            problems = [problems]
        self.problems: List[str] = list(problems)
        super().__init__("; ".join(self.problems) or "invalid configuration")


class DuplicateRoute(ConfigError):
    """A path prefix was registered twice."""

    def __init__(self, prefix: str):
        self.prefix = prefix
        super().__init__(f"route already registered for `{prefix}`")


class DuplicateOverride(ConfigError):
    """Two handlers were registered for the same status code."""

    def __init__(self, status: int):
        self.status = status
        super().__init__(f"handler for status {status} already registered")


class ClientDisconnected(ConnectionError):
    """A write to the client socket failed; the peer is gone."""
