"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One line per request, written after the response is complete.

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 10.0.0.7 - - [18/Oct/2026:10:55:36 +0000] "GET /static/a.css"       │
    │     200 1234 0.81ms [3f2a9c1e]                                      │
    └─────────────────────────────────────────────────────────────────────┘

    JSON:
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"request_id": "3f2a9c1e", "method": "GET", "path": "/static/a.css",│
    │  "client_ip": "10.0.0.7", "status_code": 200, "bytes": 1234, ...}   │
    └─────────────────────────────────────────────────────────────────────┘

The status and byte count are what actually went out: a 404 replaced by a
configured error page is logged with the page's size, and a gzipped body
with its compressed size.

The logger is "staticserve.access", separate from the server's own log:

    logging.getLogger("staticserve.access").addHandler(file_handler)

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.writer import ResponseWriter, WriteOutcome, WriterWrapper


logger = logging.getLogger("staticserve.access")


@dataclass
class RequestLog:
    """A single access log entry."""

    request_id: str
    method: str
    path: str
    query: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "query": self.query,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "bytes": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        """Apache-like line, request id appended."""
        target = self.path + (f"?{self.query}" if self.query else "")
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {target}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms [{self.request_id}]'
        )


class StatusRecorder(WriterWrapper):
    """Remembers the status and counts body bytes on their way out."""

    def __init__(self, inner: ResponseWriter):
        super().__init__(inner)
        self.recorded_status: Optional[int] = None
        self.bytes = 0

    def write_header(self, status: int) -> WriteOutcome:
        if self.recorded_status is None:
            self.recorded_status = status
        return self.inner.write_header(status)

    def write(self, data: bytes) -> WriteOutcome:
        if self.recorded_status is None:
            self.recorded_status = 200
        self.bytes += len(data)
        return self.inner.write(data)


class LoggingMiddleware(Middleware):
    """
    Access logging middleware. Belongs first in the listener pipeline so
    it sees every request and times all of it.

    Args:
        log_format: "text" or "json".
        include_request_id: Send the request id as X-Request-ID.
        log_level: Level access lines are logged at.
        skip_paths: Paths not logged at all.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown log format: {log_format}")
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    def __call__(self, request: HTTPRequest, writer: ResponseWriter, next: NextHandler) -> None:
        # 8 hex chars are plenty to correlate lines of one server
        request_id = uuid.uuid4().hex[:8]
        start_time = time.time()

        if self.include_request_id:
            writer.headers.set_default("X-Request-ID", request_id)

        recorder = StatusRecorder(writer)
        try:
            next(request, recorder)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms) [{request_id}]"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if request.path in self.skip_paths:
            return

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=request.query,
            client_ip=request.client_address[0] or "-",
            user_agent=request.user_agent or "-",
            # Nothing committed yet: the connection will send 200
            status_code=recorder.recorded_status or 200,
            content_length=recorder.bytes,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# RequestLog        - one access log entry, text or JSON
# StatusRecorder    - writer that remembers status and body size
# LoggingMiddleware - times the request and logs it on "staticserve.access"
# =============================================================================
