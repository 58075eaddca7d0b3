"""
Unit tests for headers, status codes, content types and the wire writer.
"""

import gzip
from datetime import datetime, timezone

import pytest

from staticserve.http.dates import format_http_date, parse_http_date
from staticserve.http.headers import Headers
from staticserve.http.mime_types import content_type_for, sniff_content_type
from staticserve.http.response import error, redirect, resolve_location
from staticserve.http.status_codes import HTTPStatus, body_allowed, status_text
from staticserve.http.writer import StreamResponseWriter, WriteOutcome

from conftest import make_request


def split_response(raw: bytes):
    """(status line, {lowercased name: value}, body) of a wire response."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(": ")
        headers[name.lower()] = value
    return lines[0], headers, body


class Sink:
    """Collects what a StreamResponseWriter sends."""

    def __init__(self):
        self.data = b""

    def __call__(self, chunk: bytes):
        self.data += chunk


def stream_writer(request=None, **kwargs):
    sink = Sink()
    writer = StreamResponseWriter(sink, request or make_request(), **kwargs)
    return writer, sink


class TestHeaders:
    """Tests for the case-insensitive header map."""

    def test_case_insensitive(self):
        """Test lookups ignore case but keep the original spelling."""
        headers = Headers()
        headers["Content-Type"] = "text/plain"

        assert headers["content-type"] == "text/plain"
        assert "CONTENT-TYPE" in headers
        assert list(headers) == ["Content-Type"]

    def test_set_default(self):
        """Test set_default only sets absent headers."""
        headers = Headers({"X-Frame-Options": "DENY"})

        assert headers.set_default("x-frame-options", "SAMEORIGIN") is False
        assert headers.set_default("Cache-Control", "no-store") is True
        assert headers["X-Frame-Options"] == "DENY"
        assert headers["Cache-Control"] == "no-store"

    def test_discard_missing_is_fine(self):
        """Test discard of an absent header."""
        headers = Headers()
        headers.discard("Content-Length")
        assert len(headers) == 0

    def test_copy_and_replace_with(self):
        """Test snapshots are independent and can be restored."""
        headers = Headers({"A": "1"})
        snapshot = headers.copy()
        headers["B"] = "2"

        assert "B" not in snapshot
        headers.replace_with(snapshot)
        assert dict(headers) == {"A": "1"}

    def test_to_lines(self):
        """Test wire serialisation."""
        headers = Headers({"A": "1", "B": 2})
        assert headers.to_lines() == "A: 1\r\nB: 2\r\n"


class TestStatusCodes:
    """Tests for reason phrases and body rules."""

    @pytest.mark.parametrize("code,phrase", [
        (200, "OK"),
        (301, "Moved Permanently"),
        (404, "Not Found"),
        (418, "I'm a teapot"),
        (500, "Internal Server Error"),
        (505, "HTTP Version Not Supported"),
    ])
    def test_status_text(self, code, phrase):
        """Test reason phrases."""
        assert status_text(code) == phrase

    def test_unknown_status(self):
        """Test unregistered codes have no phrase."""
        assert status_text(499) == ""

    def test_enum_phrase(self):
        """Test the enum exposes the same phrase."""
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"
        assert HTTPStatus.NOT_FOUND.is_error

    @pytest.mark.parametrize("code,allowed", [
        (100, False), (200, True), (204, False), (304, False), (404, True),
    ])
    def test_body_allowed(self, code, allowed):
        """Test which statuses may carry a body."""
        assert body_allowed(code) is allowed


class TestContentTypes:
    """Tests for extension lookup and sniffing."""

    def test_known_extension(self):
        """Test text types get a charset, binary types do not."""
        assert content_type_for("site.css") == "text/css; charset=utf-8"
        assert content_type_for("LOGO.PNG") == "image/png"

    def test_unknown_extension(self):
        """Test unknown extensions defer to sniffing."""
        assert content_type_for("Makefile") is None

    @pytest.mark.parametrize("data,expected", [
        (b"\x89PNG\r\n\x1a\n....", "image/png"),
        (b"%PDF-1.7", "application/pdf"),
        (b"  <!DOCTYPE html><html>", "text/html; charset=utf-8"),
        (b"<?xml version='1.0'?>", "text/xml; charset=utf-8"),
        (b"just some words\n", "text/plain; charset=utf-8"),
        (b"\x00\x01\x02\x03", "application/octet-stream"),
    ])
    def test_sniff(self, data, expected):
        """Test content sniffing."""
        assert sniff_content_type(data) == expected


class TestDates:
    """Tests for HTTP-date handling."""

    def test_format(self):
        """Test IMF-fixdate formatting."""
        dt = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Thu, 01 Jan 2026 12:00:00 GMT"

    def test_parse_round_trip(self):
        """Test parsing what we format."""
        dt = datetime(2026, 3, 4, 5, 6, 7, tzinfo=timezone.utc)
        assert parse_http_date(format_http_date(dt)) == dt

    def test_parse_garbage(self):
        """Test unparseable values give None."""
        assert parse_http_date("yesterday") is None
        assert parse_http_date("") is None


class TestStreamResponseWriter:
    """Tests for wire serialisation and body framing."""

    def test_small_body_gets_content_length(self):
        """Test buffered bodies are sent with Content-Length."""
        writer, sink = stream_writer(server_name="test/1")
        writer.headers["Content-Type"] = "text/plain"
        writer.write_header(200)
        writer.write(b"hello")
        writer.finish()

        status, headers, body = split_response(sink.data)
        assert status == "HTTP/1.1 200 OK"
        assert headers["content-length"] == "5"
        assert headers["server"] == "test/1"
        assert "date" in headers
        assert body == b"hello"

    def test_nothing_written_is_empty_200(self):
        """Test a handler that writes nothing still produces 200."""
        writer, sink = stream_writer()
        writer.finish()

        status, headers, body = split_response(sink.data)
        assert status == "HTTP/1.1 200 OK"
        assert headers["content-length"] == "0"
        assert body == b""

    def test_large_body_is_chunked(self):
        """Test bodies larger than the buffer use chunked encoding."""
        writer, sink = stream_writer(buffer_size=4)
        writer.write(b"0123456789")
        writer.write(b"abc")
        writer.finish()

        _, headers, body = split_response(sink.data)
        assert headers["transfer-encoding"] == "chunked"
        assert "content-length" not in headers
        assert body == b"a\r\n0123456789\r\n3\r\nabc\r\n0\r\n\r\n"

    def test_http10_large_body_is_close_delimited(self):
        """Test HTTP/1.0 clients get a close-delimited body."""
        writer, sink = stream_writer(make_request(version="HTTP/1.0"), buffer_size=4)
        writer.write(b"0123456789")
        writer.finish()

        _, headers, body = split_response(sink.data)
        assert headers["connection"] == "close"
        assert body == b"0123456789"
        assert writer.must_close

    def test_declared_content_length_streams(self):
        """Test a handler-set Content-Length is streamed as written."""
        writer, sink = stream_writer(buffer_size=4)
        writer.headers["Content-Length"] = "10"
        writer.write(b"01234")
        assert sink.data.endswith(b"01234")
        writer.write(b"56789")
        writer.finish()

        _, headers, body = split_response(sink.data)
        assert headers["content-length"] == "10"
        assert body == b"0123456789"

    def test_head_sends_no_body(self):
        """Test HEAD responses keep headers but drop the body."""
        writer, sink = stream_writer(make_request(method="HEAD"))
        writer.headers["Content-Length"] = "5"
        writer.write_header(200)
        writer.write(b"hello")
        writer.finish()

        _, headers, body = split_response(sink.data)
        assert headers["content-length"] == "5"
        assert body == b""

    @pytest.mark.parametrize("status", [204, 304])
    def test_no_body_statuses(self, status):
        """Test 204 and 304 never carry a body or a computed length."""
        writer, sink = stream_writer()
        writer.write_header(status)
        writer.write(b"ignored")
        writer.finish()

        status_line, headers, body = split_response(sink.data)
        assert status_line.startswith(f"HTTP/1.1 {status}")
        assert "content-length" not in headers
        assert body == b""

    def test_head_without_length(self):
        """Test HEAD that wrote no body does not claim Content-Length: 0."""
        writer, sink = stream_writer(make_request(method="HEAD"))
        writer.headers["Content-Encoding"] = "gzip"
        writer.write_header(200)
        writer.finish()

        status_line, headers, body = split_response(sink.data)
        assert status_line == "HTTP/1.1 200 OK"
        assert "content-length" not in headers
        assert body == b""

    def test_second_write_header_ignored(self):
        """Test the first status wins."""
        writer, sink = stream_writer()
        writer.write_header(404)
        assert writer.write_header(200) is WriteOutcome.PASSTHROUGH
        writer.finish()
        assert sink.data.startswith(b"HTTP/1.1 404 Not Found\r\n")

    def test_keep_alive_headers(self):
        """Test keep-alive responses advertise their timeout."""
        writer, sink = stream_writer(keep_alive=True, keep_alive_timeout=7)
        writer.finish()

        _, headers, _ = split_response(sink.data)
        assert headers["connection"] == "keep-alive"
        assert headers["keep-alive"] == "timeout=7"
        assert not writer.must_close

    def test_connection_close_header_forces_close(self):
        """Test a handler can ask for the connection to close."""
        writer, _ = stream_writer(keep_alive=True)
        writer.headers["Connection"] = "close"
        writer.finish()
        assert writer.must_close

    def test_unknown_status_has_fallback_reason(self):
        """Test codes without a phrase still produce a status line."""
        writer, sink = stream_writer()
        writer.write_header(499)
        writer.finish()
        assert sink.data.startswith(b"HTTP/1.1 499 status code 499\r\n")

    def test_gzip_body_passes_through(self):
        """Test arbitrary binary bodies are sent untouched."""
        payload = gzip.compress(b"x" * 100)
        writer, sink = stream_writer()
        writer.write(payload)
        writer.finish()
        assert split_response(sink.data)[2] == payload


class TestResponseHelpers:
    """Tests for error() and redirect()."""

    def test_error(self, recorder):
        """Test plain-text error bodies."""
        recorder.headers["Content-Length"] = "999"
        error(recorder, "Not Found", 404)

        assert recorder.status == 404
        assert recorder.text == "Not Found"
        assert recorder.sent_headers["Content-Type"] == "text/plain; charset=utf-8"
        assert recorder.sent_headers["X-Content-Type-Options"] == "nosniff"
        assert "Content-Length" not in recorder.sent_headers

    def test_redirect_get_has_html_body(self, recorder):
        """Test GET redirects carry a short link body."""
        redirect(recorder, make_request("/old"), "/new", 302)

        assert recorder.status == 302
        assert recorder.sent_headers["Location"] == "/new"
        assert '<a href="/new">Found</a>' in recorder.text

    def test_redirect_post_has_no_body(self, recorder):
        """Test non-GET redirects have no body."""
        redirect(recorder, make_request("/old", method="POST"), "/new", 307)

        assert recorder.status == 307
        assert recorder.body == b""

    @pytest.mark.parametrize("path,url,expected", [
        ("/docs/guide", "intro", "/docs/intro"),
        ("/docs/guide", "../", "/"),
        ("/docs/", "intro", "/docs/intro"),
        ("/docs", "docs/", "/docs/"),
        ("/a", "/b", "/b"),
        ("/a", "https://example.com/x", "https://example.com/x"),
    ])
    def test_resolve_location(self, path, url, expected):
        """Test relative redirect targets resolve against the path."""
        assert resolve_location(make_request(path), url) == expected
