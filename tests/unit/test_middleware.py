"""
Unit tests for the middleware layers.
"""

import json
import logging
import zlib

import pytest

from staticserve.http.intercept import intercept
from staticserve.http.writer import WriteOutcome
from staticserve.middleware import (
    CompressionMiddleware,
    FunctionMiddleware,
    GzipWriter,
    HeaderInjectionMiddleware,
    LoggingMiddleware,
    MiddlewarePipeline,
    StatusRecorder,
)
from staticserve.middleware.compression import accepts_gzip

from conftest import ResponseRecorder, make_request


def gunzip(data: bytes) -> bytes:
    return zlib.decompress(data, 16 + zlib.MAX_WBITS)


def respond(status=200, body=b"", headers=None):
    def handler(request, writer):
        for name, value in (headers or {}).items():
            writer.headers[name] = value
        writer.write_header(status)
        if body:
            writer.write(body)
    return handler


def gzip_request(method="GET"):
    return make_request(method=method, headers={"Accept-Encoding": "gzip, deflate"})


class TestMiddlewarePipeline:
    """Tests for MiddlewarePipeline class."""

    def test_order(self, recorder):
        """Test the first middleware added is outermost."""
        calls = []

        def tag(name):
            def mw(request, writer, next):
                calls.append(f"{name}-in")
                next(request, writer)
                calls.append(f"{name}-out")
            return FunctionMiddleware(mw, name)

        pipeline = MiddlewarePipeline().use(tag("a"), tag("b"))
        handler = pipeline.wrap(lambda request, writer: calls.append("handler"))
        handler(make_request(), recorder)

        assert calls == ["a-in", "b-in", "handler", "b-out", "a-out"]
        assert len(pipeline) == 2
        assert [mw.name for mw in pipeline] == ["a", "b"]

    def test_empty_pipeline_returns_handler(self):
        """Test wrapping with no middleware is the handler itself."""
        handler = respond()
        assert MiddlewarePipeline().wrap(handler) is handler

    def test_short_circuit(self, recorder):
        """Test middleware may answer without calling next."""
        def deny(request, writer, next):
            writer.write_header(403)

        handler = FunctionMiddleware(deny).wrap(respond(body=b"never"))
        handler(make_request(), recorder)

        assert recorder.status == 403
        assert recorder.body == b""


class TestHeaderInjection:
    """Tests for HeaderInjectionMiddleware."""

    def test_adds_missing_headers(self, recorder):
        """Test configured headers are added."""
        mw = HeaderInjectionMiddleware({"X-Frame-Options": "DENY"})
        mw.wrap(respond(body=b"ok"))(make_request(), recorder)

        assert recorder.sent_headers["X-Frame-Options"] == "DENY"

    def test_never_overrides_handler(self, recorder):
        """Test a header set by the handler wins."""
        mw = HeaderInjectionMiddleware({"Cache-Control": "max-age=60"})
        mw.wrap(respond(headers={"Cache-Control": "no-store"}))(make_request(), recorder)

        assert recorder.sent_headers["Cache-Control"] == "no-store"

    def test_inner_injection_wins(self, recorder):
        """Test the layer nearest the handler wins over outer layers."""
        inner = HeaderInjectionMiddleware({"X-Scope": "serve"}).wrap(respond())
        outer = HeaderInjectionMiddleware({"X-Scope": "listener", "X-Other": "1"})
        outer.wrap(inner)(make_request(), recorder)

        assert recorder.sent_headers["X-Scope"] == "serve"
        assert recorder.sent_headers["X-Other"] == "1"

    def test_implicit_status(self, recorder):
        """Test headers are injected when the handler only writes."""
        def handler(request, writer):
            writer.write(b"body")

        HeaderInjectionMiddleware({"X-A": "1"}).wrap(handler)(make_request(), recorder)
        assert recorder.status == 200
        assert recorder.sent_headers["X-A"] == "1"

    def test_not_applied_after_commit(self, recorder):
        """Test nothing is added once the status is committed."""
        recorder.write_header(200)
        HeaderInjectionMiddleware({"X-Late": "1"}).wrap(respond())(make_request(), recorder)
        assert "X-Late" not in recorder.headers

    def test_mapping_is_copied(self, recorder):
        """Test later changes to the configured mapping have no effect."""
        headers = {"X-A": "1"}
        mw = HeaderInjectionMiddleware(headers)
        headers["X-A"] = "2"
        mw.wrap(respond())(make_request(), recorder)
        assert recorder.sent_headers["X-A"] == "1"


class TestAcceptsGzip:
    """Tests for Accept-Encoding parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("gzip", True),
        ("deflate, gzip;q=0.5", True),
        ("GZIP", True),
        ("x-gzip", True),
        ("gzip;q=0", False),
        ("br", False),
        ("", False),
    ])
    def test_accepts_gzip(self, value, expected):
        """Test which clients get compressed responses."""
        request = make_request(headers={"Accept-Encoding": value} if value else {})
        assert accepts_gzip(request) is expected


class TestCompression:
    """Tests for CompressionMiddleware and GzipWriter."""

    def test_compresses_body(self, recorder):
        """Test bodies are gzipped for accepting clients."""
        body = b"hello " * 100
        handler = respond(body=body, headers={"Content-Type": "text/plain", "Content-Length": "600"})
        CompressionMiddleware().wrap(handler)(gzip_request(), recorder)

        assert recorder.status == 200
        assert recorder.sent_headers["Content-Encoding"] == "gzip"
        assert recorder.sent_headers["Vary"] == "Accept-Encoding"
        assert "Content-Length" not in recorder.sent_headers
        assert gunzip(recorder.body) == body

    def test_multiple_chunks(self, recorder):
        """Test a streamed body decompresses to the concatenation."""
        def handler(request, writer):
            writer.headers["Content-Type"] = "text/plain"
            for i in range(10):
                writer.write(f"chunk {i}\n".encode())

        CompressionMiddleware(level=1).wrap(handler)(gzip_request(), recorder)
        assert gunzip(recorder.body) == b"".join(f"chunk {i}\n".encode() for i in range(10))

    def test_client_without_gzip(self, recorder):
        """Test responses pass through untouched without Accept-Encoding."""
        handler = respond(body=b"plain", headers={"Content-Type": "text/plain"})
        CompressionMiddleware().wrap(handler)(make_request(), recorder)

        assert recorder.body == b"plain"
        assert "Content-Encoding" not in recorder.sent_headers

    def test_sniffs_content_type(self, recorder):
        """Test a missing Content-Type is sniffed from the first chunk."""
        handler = respond(body=b"<!DOCTYPE html><html></html>")
        CompressionMiddleware().wrap(handler)(gzip_request(), recorder)

        assert recorder.sent_headers["Content-Type"] == "text/html; charset=utf-8"

    def test_status_held_until_first_write(self):
        """Test write_header does not reach the client before the body."""
        recorder = ResponseRecorder()
        writer = GzipWriter(recorder, gzip_request())

        assert writer.write_header(404) is WriteOutcome.PASSTHROUGH
        assert writer.header_sent
        assert recorder.status is None

        writer.write(b"missing")
        assert recorder.status == 404
        writer.close()
        assert gunzip(recorder.body) == b"missing"

    @pytest.mark.parametrize("status", [204, 304])
    def test_bodyless_status_not_compressed(self, recorder, status):
        """Test 204 and 304 go out at once, without gzip headers."""
        CompressionMiddleware().wrap(respond(status))(gzip_request(), recorder)

        assert recorder.status == status
        assert "Content-Encoding" not in recorder.sent_headers
        assert recorder.body == b""

    def test_empty_body_uncompressed(self, recorder):
        """Test a response with no body is committed plainly on close."""
        CompressionMiddleware().wrap(respond(301, headers={"Location": "/x"}))(
            gzip_request(), recorder
        )
        assert recorder.status == 301
        assert "Content-Encoding" not in recorder.sent_headers

    def test_head_gets_gzip_headers(self, recorder):
        """Test HEAD responses advertise the encoding GET would use."""
        handler = respond(headers={"Content-Type": "text/plain", "Content-Length": "10"})
        CompressionMiddleware().wrap(handler)(gzip_request("HEAD"), recorder)

        assert recorder.sent_headers["Content-Encoding"] == "gzip"
        assert "Content-Length" not in recorder.sent_headers

    def test_already_encoded_passes_through(self, recorder):
        """Test handler-set Content-Encoding is not compressed again."""
        handler = respond(body=b"\x1f\x8b\x08rawgzip", headers={
            "Content-Type": "application/x-tar",
            "Content-Encoding": "gzip",
        })
        CompressionMiddleware().wrap(handler)(gzip_request(), recorder)
        assert recorder.body == b"\x1f\x8b\x08rawgzip"

    def test_vary_is_extended(self, recorder):
        """Test an existing Vary header is extended, not replaced."""
        handler = respond(body=b"x", headers={"Content-Type": "text/plain", "Vary": "Origin"})
        CompressionMiddleware().wrap(handler)(gzip_request(), recorder)
        assert recorder.sent_headers["Vary"] == "Origin, Accept-Encoding"

    def test_error_page_is_compressed(self, recorder):
        """Test an intercepted error body is compressed like any other."""
        handler = intercept(respond(404), {})
        CompressionMiddleware().wrap(handler)(gzip_request(), recorder)

        assert recorder.status == 404
        assert gunzip(recorder.body) == b"Not Found"

    def test_close_after_crash(self, recorder):
        """Test the writer is closed when the handler raises."""
        def handler(request, writer):
            writer.write_header(200)
            writer.write(b"partial")
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            CompressionMiddleware().wrap(handler)(gzip_request(), recorder)
        assert gunzip(recorder.body) == b"partial"

    def test_invalid_level(self):
        """Test levels outside 1-9 are rejected."""
        with pytest.raises(ValueError):
            CompressionMiddleware(level=0)


class TestLogging:
    """Tests for LoggingMiddleware."""

    def test_text_access_line(self, recorder, caplog):
        """Test a text access line is logged per request."""
        handler = LoggingMiddleware().wrap(respond(body=b"12345"))

        with caplog.at_level(logging.INFO, logger="staticserve.access"):
            handler(make_request("/index.html", query="a=1"), recorder)

        assert len(caplog.records) == 1
        line = caplog.records[0].getMessage()
        assert '"GET /index.html?a=1" 200 5' in line
        assert recorder.sent_headers["X-Request-ID"] in line

    def test_json_access_line(self, recorder, caplog):
        """Test JSON access lines."""
        handler = LoggingMiddleware(log_format="json").wrap(respond(404))

        with caplog.at_level(logging.INFO, logger="staticserve.access"):
            handler(make_request("/missing"), recorder)

        entry = json.loads(caplog.records[0].getMessage())
        assert entry["status_code"] == 404
        assert entry["path"] == "/missing"
        assert entry["client_ip"] == "127.0.0.1"

    def test_request_id_not_overridden(self, recorder):
        """Test an existing X-Request-ID is kept."""
        recorder.headers["X-Request-ID"] = "given"
        LoggingMiddleware().wrap(respond())(make_request(), recorder)
        assert recorder.sent_headers["X-Request-ID"] == "given"

    def test_request_id_optional(self, recorder):
        """Test the request id header can be disabled."""
        LoggingMiddleware(include_request_id=False).wrap(respond())(make_request(), recorder)
        assert "X-Request-ID" not in recorder.sent_headers

    def test_skip_paths(self, recorder, caplog):
        """Test skipped paths are not logged."""
        handler = LoggingMiddleware(skip_paths=["/favicon.ico"]).wrap(respond())

        with caplog.at_level(logging.INFO, logger="staticserve.access"):
            handler(make_request("/favicon.ico"), recorder)
        assert caplog.records == []

    def test_failure_logged_and_raised(self, recorder, caplog):
        """Test handler errors are logged and propagated."""
        def handler(request, writer):
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="staticserve.access"):
            with pytest.raises(RuntimeError):
                LoggingMiddleware().wrap(handler)(make_request(), recorder)
        assert "RuntimeError: boom" in caplog.records[0].getMessage()

    def test_invalid_format(self):
        """Test unknown formats are rejected."""
        with pytest.raises(ValueError):
            LoggingMiddleware(log_format="xml")


class TestStatusRecorder:
    """Tests for StatusRecorder."""

    def test_records_status_and_bytes(self, recorder):
        """Test the first status and the body size are recorded."""
        status_recorder = StatusRecorder(recorder)
        status_recorder.write_header(404)
        status_recorder.write_header(200)
        status_recorder.write(b"abc")
        status_recorder.write(b"de")

        assert status_recorder.recorded_status == 404
        assert status_recorder.bytes == 5

    def test_implicit_200(self, recorder):
        """Test a bare write records 200."""
        status_recorder = StatusRecorder(recorder)
        status_recorder.write(b"x")
        assert status_recorder.recorded_status == 200
