"""
Directory-listing guard.

Wraps a FileSource so that ANY failed lookup raises ListingForbidden:

    /docs/           no index.html   → 403 (instead of a listing)
    /docs/missing    no such file    → 403 (instead of 404)

Answering both the same way keeps the guarded tree's layout from being
probed one name at a time.
"""

from ..handlers.static import FileEntry, FileSource, ListingForbidden


class ListingGuardSource(FileSource):
    """FileSource whose failed lookups all become ListingForbidden."""

    def __init__(self, source: FileSource):
        self.source = source

    @property
    def root(self):
        return self.source.root

    def open(self, name: str) -> FileEntry:
        try:
            return self.source.open(name)
        except OSError as e:
            raise ListingForbidden(f"{name}: {e}") from e

    def list(self, directory: FileEntry):
        raise ListingForbidden(f"listing {directory.name} is not allowed")
