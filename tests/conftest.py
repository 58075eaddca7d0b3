"""
pytest configuration and fixtures.
"""

import socket
from pathlib import Path
from typing import List, Optional

import pytest

from staticserve.http.headers import Headers
from staticserve.http.request import HTTPRequest
from staticserve.http.writer import ResponseWriter, WriteOutcome


class ResponseRecorder(ResponseWriter):
    """In-memory writer: records the status, headers and body it receives."""

    def __init__(self):
        self.headers = Headers()
        self._status: Optional[int] = None
        self.sent_headers: Optional[Headers] = None
        self.chunks: List[bytes] = []
        self.write_header_calls: List[int] = []

    @property
    def header_sent(self) -> bool:
        return self._status is not None

    @property
    def status(self) -> Optional[int]:
        return self._status

    def write_header(self, status: int) -> WriteOutcome:
        self.write_header_calls.append(status)
        if self._status is None:
            self._status = status
            self.sent_headers = self.headers.copy()
        return WriteOutcome.PASSTHROUGH

    def write(self, data: bytes) -> WriteOutcome:
        if self._status is None:
            self.write_header(200)
        self.chunks.append(data)
        return WriteOutcome.PASSTHROUGH

    @property
    def body(self) -> bytes:
        return b"".join(self.chunks)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


def make_request(
    path: str = "/",
    method: str = "GET",
    headers: Optional[dict] = None,
    version: str = "HTTP/1.1",
    target: str = "",
    query: str = "",
) -> HTTPRequest:
    """Helper to create a request for testing."""
    return HTTPRequest(
        method=method,
        path=path,
        target=target,
        version=version,
        headers={k.lower(): v for k, v in (headers or {}).items()},
        query=query,
        client_address=("127.0.0.1", 50000),
    )


@pytest.fixture
def recorder() -> ResponseRecorder:
    return ResponseRecorder()


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """
    A small document tree:

        site/
          index.html
          hello.txt
          data           (no extension, HTML content)
          docs/          (no index file)
            guide.txt
            a b.txt
          blog/
            index.html
        pages/
          404.html
    """
    root = tmp_path / "site"
    root.mkdir()
    (root / "index.html").write_text("<html><body>home</body></html>")
    (root / "hello.txt").write_text("hello world\n")
    (root / "data").write_text("<html><p>sniffed</p></html>")

    docs = root / "docs"
    docs.mkdir()
    (docs / "guide.txt").write_text("the guide\n")
    (docs / "a b.txt").write_text("spaced\n")

    blog = root / "blog"
    blog.mkdir()
    (blog / "index.html").write_text("<html>blog</html>")

    pages = tmp_path / "pages"
    pages.mkdir()
    (pages / "404.html").write_text("<h1>custom not found</h1>")
    return root
