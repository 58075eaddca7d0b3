"""
Unit tests for redirect and error handlers.
"""

import pytest

from staticserve.handlers import ErrorPageHandler, FixedErrorHandler, RedirectHandler
from staticserve.http.intercept import intercept

from conftest import make_request


class TestRedirectHandler:
    """Tests for RedirectHandler."""

    def test_absolute_target(self, recorder):
        """Test a fixed Location and status."""
        RedirectHandler("/new", 302)(make_request("/old"), recorder)

        assert recorder.status == 302
        assert recorder.sent_headers["Location"] == "/new"

    def test_default_status(self, recorder):
        """Test redirects default to 301."""
        RedirectHandler("https://example.com/")(make_request("/old"), recorder)
        assert recorder.status == 301
        assert recorder.sent_headers["Location"] == "https://example.com/"

    def test_relative_target(self, recorder):
        """Test relative targets resolve against the request path."""
        RedirectHandler("new")(make_request("/docs/old"), recorder)
        assert recorder.sent_headers["Location"] == "/docs/new"


class TestFixedErrorHandler:
    """Tests for FixedErrorHandler."""

    def test_reason_phrase_body(self, recorder):
        """Test the body is the reason phrase once intercepted."""
        intercept(FixedErrorHandler(410), {})(make_request(), recorder)

        assert recorder.status == 410
        assert recorder.text == "Gone"

    def test_non_error_status_has_body(self, recorder):
        """Test a status below 400 still carries its reason phrase."""
        intercept(FixedErrorHandler(200), {})(make_request(), recorder)

        assert recorder.status == 200
        assert recorder.text == "OK"
        assert recorder.sent_headers["Content-Type"] == "text/plain; charset=utf-8"

    def test_uses_override_page(self, recorder, site):
        """Test a registered page replaces the reason phrase."""
        page = ErrorPageHandler(site.parent / "pages" / "404.html")
        intercept(FixedErrorHandler(404), {404: page})(make_request(), recorder)

        assert recorder.status == 404
        assert recorder.body == b"<h1>custom not found</h1>"


class TestErrorPageHandler:
    """Tests for ErrorPageHandler."""

    @pytest.fixture
    def page(self, site):
        return ErrorPageHandler(site.parent / "pages" / "404.html")

    def test_page_replaces_file_response(self, recorder, page):
        """Test the page body and type replace the original ones."""
        def handler(request, writer):
            writer.headers["Content-Type"] = "image/png"
            writer.write_header(404)
            writer.write(b"\x89PNG")

        intercept(handler, {404: page})(make_request("/logo.png"), recorder)

        assert recorder.status == 404
        assert recorder.sent_headers["Content-Type"] == "text/html; charset=utf-8"
        assert recorder.body == b"<h1>custom not found</h1>"

    def test_served_unconditionally(self, recorder, page):
        """Test conditional headers never turn the page into a 304."""
        request = make_request(headers={"If-None-Match": "*"})
        intercept(FixedErrorHandler(404), {404: page})(request, recorder)

        assert recorder.status == 404
        assert recorder.body == b"<h1>custom not found</h1>"

    def test_head(self, recorder, page):
        """Test HEAD gets the page headers without the body."""
        intercept(FixedErrorHandler(404), {404: page})(make_request(method="HEAD"), recorder)

        assert recorder.status == 404
        assert recorder.sent_headers["Content-Length"] == str(len(b"<h1>custom not found</h1>"))
        assert recorder.body == b""

    def test_missing_page_falls_back(self, recorder, tmp_path):
        """Test a vanished page file falls back to the reason phrase."""
        page = ErrorPageHandler(tmp_path / "gone.html")
        intercept(FixedErrorHandler(404), {404: page})(make_request(), recorder)

        assert recorder.status == 404
        assert recorder.text == "Not Found"
