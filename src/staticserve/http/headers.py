"""
=============================================================================
RESPONSE HEADERS
=============================================================================

HTTP header names are case-insensitive (RFC 7230 section 3.2):

    Content-Type: text/html
    content-type: text/html      ← the SAME header
    CONTENT-TYPE: text/html      ← still the same header

Requests normalise their header names to lowercase when parsed (see
request.py). Responses are different: we want to send names in the case
the handler wrote them, keep the order they were set in, and still look
them up case-insensitively. That is what `Headers` does.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       Headers internals                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   _items = {                                                         │
    │       "content-type": ("Content-Type", "text/html"),                │
    │       "x-frame-options": ("X-Frame-Options", "DENY"),               │
    │   }                                                                  │
    │       ▲                  ▲               ▲                           │
    │   lookup key       name as written     value                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

One value per name is enough for a static server: the configured
custom headers are a plain name → value map.

=============================================================================
"""

from collections.abc import MutableMapping
from typing import Dict, Iterator, Optional, Tuple


class Headers(MutableMapping):
    """Ordered, case-insensitive header map with one value per name."""

    def __init__(self, initial: Optional[Dict[str, str]] = None, **kwargs: str):
        self._items: Dict[str, Tuple[str, str]] = {}
        if initial:
            self.update(initial)
        if kwargs:
            self.update(kwargs)

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()][1]

    def __setitem__(self, name: str, value) -> None:
        self._items[name.lower()] = (name, str(value))

    def __delitem__(self, name: str) -> None:
        del self._items[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __iter__(self) -> Iterator[str]:
        for name, _ in self._items.values():
            yield name

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def set_default(self, name: str, value) -> bool:
        """Set `name` only if it is absent. Returns True if it was set."""
        if name in self:
            return False
        self[name] = value
        return True

    def discard(self, name: str) -> None:
        """Remove `name` if present."""
        self._items.pop(name.lower(), None)

    def copy(self) -> "Headers":
        clone = Headers()
        clone._items = dict(self._items)
        return clone

    def replace_with(self, other: "Headers") -> None:
        """Make this map an exact copy of `other`, in place."""
        self._items = dict(other._items)

    def to_lines(self) -> str:
        """Serialise as `Name: value\\r\\n` lines."""
        return "".join(f"{name}: {value}\r\n" for name, value in self._items.values())
