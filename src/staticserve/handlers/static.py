"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves a directory tree. The handler never touches the filesystem itself:
it asks a FileSource, which confines every lookup to its root.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    REQUEST → RESPONSE                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   /guide/index.html   → 301 Location: ./                             │
    │   /guide              → 301 Location: guide/      (is a directory)   │
    │   /logo.png/          → 301 Location: ../logo.png (is a file)        │
    │   /guide/             → /guide/index.html if present,                │
    │                         otherwise an HTML listing                    │
    │   /logo.png           → the file, with validators                    │
    │                                                                      │
    │   missing → 404    permission denied → 403    other I/O error → 500 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Slash redirects carry a RELATIVE Location. The handler only sees the path
below its mount point (/static/guide arrives as /guide), and a relative
reference resolves correctly against whatever URL the client used.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    GET /static/..%2f..%2fetc/passwd

The parser already rejects ".." segments. FileSource checks again after
resolving symlinks:

    full_path = (root / name).resolve()
    full_path.relative_to(root)      # ValueError → PermissionError → 403

=============================================================================
CONDITIONAL REQUESTS
=============================================================================

    ETag: "<mtime>-<size>"                    Last-Modified: <mtime>

    If-None-Match matches          → 304
    If-None-Match absent and
    If-Modified-Since >= mtime     → 304

A 304 carries the validators but no Content-Type or Content-Length.

=============================================================================
"""

import html
import logging
import os
import posixpath
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional
from urllib.parse import quote

from ..http.dates import format_http_date, parse_http_date
from ..http.mime_types import SNIFF_LENGTH, content_type_for, sniff_content_type
from ..http.request import HTTPRequest
from ..http.response import error
from ..http.status_codes import status_text
from ..http.writer import ResponseWriter, WriteOutcome


logger = logging.getLogger(__name__)


class ListingForbidden(PermissionError):
    """Raised by a guarded source for any lookup that fails."""


@dataclass
class FileEntry:
    """A file or directory found in a FileSource."""

    name: str
    path: Path
    stat: os.stat_result

    @classmethod
    def from_path(cls, path, name: Optional[str] = None) -> "FileEntry":
        path = Path(path)
        return cls(name=name or path.name, path=path, stat=path.stat())

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.stat.st_mode)

    @property
    def size(self) -> int:
        return self.stat.st_size

    @property
    def modified(self) -> datetime:
        return datetime.fromtimestamp(int(self.stat.st_mtime), tz=timezone.utc)

    @property
    def etag(self) -> str:
        return f'"{int(self.stat.st_mtime)}-{self.stat.st_size}"'

    def read_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        with self.path.open("rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    return
                yield chunk


class FileSource:
    """
    A directory tree addressed by URL-style names ("/css/site.css").

    Lookups raise the usual OSError subclasses: FileNotFoundError,
    PermissionError (also for names escaping the root), and so on.
    """

    def __init__(self, root):
        self.root = Path(root).resolve()

    def open(self, name: str) -> FileEntry:
        if "\x00" in name:
            # No file name can hold a NUL byte; os calls raise ValueError
            raise FileNotFoundError(f"{name!r} is not a valid file name")
        full_path = (self.root / name.lstrip("/")).resolve()
        try:
            full_path.relative_to(self.root)
        except ValueError:
            logger.warning(f"Path traversal attempt: {name}")
            raise PermissionError(f"{name} is outside {self.root}") from None
        return FileEntry.from_path(full_path, name)

    def list(self, directory: FileEntry) -> List[FileEntry]:
        """Entries of a directory, sorted by name. Unreadable ones are skipped."""
        entries = []
        with os.scandir(directory.path) as it:
            for item in it:
                try:
                    entries.append(FileEntry(item.name, Path(item.path), item.stat()))
                except OSError:
                    continue
        entries.sort(key=lambda e: e.name)
        return entries


def status_for_error(exc: OSError) -> int:
    """Map a lookup failure to the status the client gets."""
    if isinstance(exc, (FileNotFoundError, NotADirectoryError)):
        return 404
    if isinstance(exc, PermissionError):
        return 403
    return 500


def not_modified(request: HTTPRequest, entry: FileEntry) -> bool:
    """Whether the client's cached copy is still current."""
    if request.method not in ("GET", "HEAD"):
        return False

    if_none_match = request.get_header("if-none-match")
    if if_none_match:
        if if_none_match.strip() == "*":
            return True
        candidates = [tag.strip() for tag in if_none_match.split(",")]
        # Weak comparison
        return entry.etag in [c[2:] if c.startswith("W/") else c for c in candidates]

    since = parse_http_date(request.get_header("if-modified-since"))
    if since is None:
        return False
    return entry.modified <= since


def serve_file(
    request: HTTPRequest,
    writer: ResponseWriter,
    entry: FileEntry,
    conditional: bool = True,
    chunk_size: int = 64 * 1024,
) -> WriteOutcome:
    """
    Send one file: headers, then the body in chunks.

    Args:
        conditional: Honour If-None-Match / If-Modified-Since.
    """
    headers = writer.headers
    headers["Last-Modified"] = format_http_date(entry.modified)
    headers.set_default("ETag", entry.etag)

    if conditional and not_modified(request, entry):
        headers.discard("Content-Type")
        headers.discard("Content-Length")
        return writer.write_header(304)

    chunks = entry.read_chunks(chunk_size)
    first = next(chunks, b"")

    if "Content-Type" not in headers:
        headers["Content-Type"] = (
            content_type_for(entry.name) or sniff_content_type(first[:SNIFF_LENGTH])
        )
    headers["Content-Length"] = str(entry.size)

    try:
        outcome = writer.write_header(200)
        if outcome is WriteOutcome.INTERCEPTED or request.method == "HEAD":
            return outcome

        if first:
            outcome = writer.write(first)
        for chunk in chunks:
            if outcome is WriteOutcome.INTERCEPTED:
                break
            outcome = writer.write(chunk)
        return outcome
    finally:
        chunks.close()


class StaticFileHandler:
    """
    Handler serving the files of a FileSource.

        files = StaticFileHandler(FileSource("./public"))
        router.register("/static/", files)

    Wrap the source in a ListingGuardSource to answer 403 instead of
    listing directories that have no index file.
    """

    def __init__(self, source: FileSource, index_file: str = "index.html"):
        self.source = source
        self.index_file = index_file

    def __call__(self, request: HTTPRequest, writer: ResponseWriter) -> None:
        path = request.path
        if not path.startswith("/"):
            path = "/" + path

        if path.endswith("/" + self.index_file):
            self._local_redirect(writer, "./")
            return

        try:
            entry = self.source.open(path)
        except OSError as e:
            self._fail(writer, path, e)
            return

        if entry.is_dir and not path.endswith("/"):
            self._local_redirect(writer, posixpath.basename(path) + "/")
            return
        if not entry.is_dir and path.endswith("/"):
            self._local_redirect(writer, "../" + posixpath.basename(path.rstrip("/")))
            return

        if entry.is_dir:
            try:
                entry = self.source.open(path + self.index_file)
            except ListingForbidden as e:
                self._fail(writer, path, e)
                return
            except OSError:
                self._serve_listing(request, writer, entry)
                return

        try:
            serve_file(request, writer, entry)
        except OSError as e:
            if writer.header_sent:
                raise
            self._fail(writer, path, e)

    # ─────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────

    def _fail(self, writer: ResponseWriter, path: str, exc: OSError):
        status = status_for_error(exc)
        if status == 500:
            logger.error(f"Error serving {path}: {exc}")
        else:
            logger.debug(f"{path}: {exc}")
        error(writer, status_text(status), status)

    def _local_redirect(self, writer: ResponseWriter, url: str):
        writer.headers["Location"] = url
        writer.write_header(301)

    def _serve_listing(self, request: HTTPRequest, writer: ResponseWriter, directory: FileEntry):
        writer.headers["Last-Modified"] = format_http_date(directory.modified)
        if not_modified(request, directory):
            writer.write_header(304)
            return

        try:
            entries = self.source.list(directory)
        except OSError as e:
            self._fail(writer, request.path, e)
            return

        body = render_listing(request.path, entries).encode("utf-8")
        writer.headers["Content-Type"] = "text/html; charset=utf-8"
        if writer.write_header(200) is WriteOutcome.INTERCEPTED:
            return
        if request.method != "HEAD":
            writer.write(body)


def render_listing(url_path: str, entries: List[FileEntry]) -> str:
    """Simple HTML index of a directory."""
    title = html.escape(url_path)
    items = []
    if url_path != "/":
        items.append('<li><a href="../">../</a></li>')
    for entry in entries:
        name = entry.name + ("/" if entry.is_dir else "")
        items.append(f'<li><a href="{quote(name)}">{html.escape(name)}</a></li>')

    newline = "\n"
    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Index of {title}</title>
</head>
<body>
<h1>Index of {title}</h1>
<ul>
{newline.join(items)}
</ul>
</body>
</html>
"""


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# FileSource        - root-confined lookups and directory listings
# FileEntry         - stat result plus ETag / Last-Modified / chunked reads
# serve_file()      - one file with validators, 304 and HEAD handling
# StaticFileHandler - index files, slash redirects, listings, I/O errors
# ListingForbidden  - raised by guarded sources, answered with 403
# =============================================================================
