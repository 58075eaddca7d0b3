"""
Unit tests for assembling routers and listener chains from configuration.
"""

import zlib

import pytest

from staticserve.app import build_listener_handler, build_router, build_serve_handler
from staticserve.config import (
    ErrorPageConfig,
    ListenerConfig,
    RedirectConfig,
    ServeConfig,
    ServerConfig,
)
from staticserve.errors import ConfigError

from conftest import ResponseRecorder, make_request


@pytest.fixture
def config(site):
    return ServerConfig(
        listeners=[ListenerConfig(
            protocol="http",
            addr=":0",
            gzip=True,
            headers={"X-Frame-Options": "DENY", "Cache-Control": "no-cache"},
        )],
        serves=[
            ServeConfig(path="/", target=str(site)),
            ServeConfig(
                path="/assets/",
                target=str(site / "docs"),
                prevent_listing=True,
                headers={"Cache-Control": "max-age=3600"},
            ),
            ServeConfig(path="/private/", error=403),
        ],
        redirects=[RedirectConfig(from_path="/old", to="/hello.txt", status=302)],
        errors=[ErrorPageConfig(status=404, target=str(site.parent / "pages" / "404.html"))],
    ).sanitise()


@pytest.fixture
def handler(config):
    return build_listener_handler(config.listeners[0], build_router(config), config.runtime)


def get(handler, path, **kwargs) -> ResponseRecorder:
    recorder = ResponseRecorder()
    handler(make_request(path, **kwargs), recorder)
    return recorder


class TestBuildRouter:
    """Tests for build_router()."""

    def test_routes_and_overrides(self, config):
        """Test every serve and redirect is registered."""
        router = build_router(config)
        assert router.prefixes == ["/", "/assets/", "/old", "/private/"]
        assert list(router.overrides) == [404]

    def test_duplicate_path(self, config):
        """Test duplicate paths fail at build time."""
        config.redirects.append(RedirectConfig(from_path="/assets/", to="/", status=301))
        with pytest.raises(ConfigError):
            build_router(config)

    def test_serve_handler_for_error(self):
        """Test error serves answer their fixed status."""
        recorder = ResponseRecorder()
        build_serve_handler(ServeConfig(path="/x/", error=410))(make_request(), recorder)
        assert recorder.status == 410


class TestListenerChain:
    """Tests for complete request handling through one listener."""

    def test_file_with_listener_headers(self, handler):
        """Test files are served with the listener's headers."""
        response = get(handler, "/hello.txt")

        assert response.status == 200
        assert response.body == b"hello world\n"
        assert response.sent_headers["X-Frame-Options"] == "DENY"
        assert "X-Request-ID" in response.sent_headers

    def test_serve_headers_beat_listener_headers(self, handler):
        """Test per-serve headers take precedence."""
        response = get(handler, "/assets/guide.txt")

        assert response.body == b"the guide\n"
        assert response.sent_headers["Cache-Control"] == "max-age=3600"
        assert response.sent_headers["X-Frame-Options"] == "DENY"

    def test_gzip(self, handler):
        """Test accepting clients get compressed bodies."""
        response = get(handler, "/hello.txt", headers={"Accept-Encoding": "gzip"})

        assert response.sent_headers["Content-Encoding"] == "gzip"
        assert zlib.decompress(response.body, 16 + zlib.MAX_WBITS) == b"hello world\n"

    def test_not_found_uses_error_page(self, handler):
        """Test a missing file gets the configured 404 page."""
        response = get(handler, "/nope.html")

        assert response.status == 404
        assert response.body == b"<h1>custom not found</h1>"
        assert response.sent_headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.sent_headers["X-Frame-Options"] == "DENY"

    def test_error_page_compressed(self, handler):
        """Test the 404 page goes through gzip with the original status."""
        response = get(handler, "/nope.html", headers={"Accept-Encoding": "gzip"})

        assert response.status == 404
        assert response.sent_headers["Content-Encoding"] == "gzip"
        assert "Content-Length" not in response.sent_headers
        assert zlib.decompress(response.body, 16 + zlib.MAX_WBITS) == b"<h1>custom not found</h1>"

    def test_error_drops_serve_headers(self, handler):
        """Test per-serve headers do not survive an error takeover."""
        response = get(handler, "/assets/nope.txt")

        assert response.status == 403
        assert response.sent_headers["Cache-Control"] == "no-cache"
        assert "ETag" not in response.sent_headers

    def test_listing_forbidden(self, handler):
        """Test prevent-listing serves answer 403."""
        response = get(handler, "/assets/")

        assert response.status == 403
        assert response.text == "Forbidden"

    def test_listing_allowed_elsewhere(self, handler):
        """Test other serves still list directories."""
        response = get(handler, "/docs/")

        assert response.status == 200
        assert b"guide.txt" in response.body

    def test_fixed_error_serve(self, handler):
        """Test error serves answer with the reason phrase."""
        response = get(handler, "/private/anything")

        assert response.status == 403
        assert response.text == "Forbidden"

    def test_redirect(self, handler):
        """Test redirects are answered with their status and target."""
        response = get(handler, "/old")

        assert response.status == 302
        assert response.sent_headers["Location"] == "/hello.txt"

    def test_asterisk(self, handler):
        """Test OPTIONS * is a bare 400."""
        response = get(handler, "*", method="OPTIONS", target="*")
        assert response.status == 400
        assert response.body == b""

    def test_subtree_slash_redirect(self, handler):
        """Test '/assets' redirects to '/assets/'."""
        response = get(handler, "/assets")

        assert response.status == 301
        assert response.sent_headers["Location"] == "/assets/"


class TestListenerWithoutExtras:
    """Tests for listeners without headers or gzip."""

    def test_plain_listener(self, config):
        """Test no extra headers and no compression."""
        listener = ListenerConfig(protocol="http", addr=":0")
        handler = build_listener_handler(listener, build_router(config))
        response = get(handler, "/hello.txt", headers={"Accept-Encoding": "gzip"})

        assert response.body == b"hello world\n"
        assert "Content-Encoding" not in response.sent_headers
        assert "X-Frame-Options" not in response.sent_headers
