"""
=============================================================================
CONTENT TYPE DETECTION
=============================================================================

A static server has two ways to decide what a response body is:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    HOW A CONTENT TYPE IS CHOSEN                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. BY NAME       style.css  → text/css; charset=utf-8             │
    │      (cheap)       logo.png   → image/png                           │
    │                    README     → ??? (no extension)                  │
    │                          │                                           │
    │                          ▼                                           │
    │   2. BY CONTENT    first 512 bytes of the body                      │
    │      (sniffing)    b"\\x89PNG..."    → image/png                     │
    │                    b"<!DOCTYPE html" → text/html; charset=utf-8     │
    │                    b"hello world"    → text/plain; charset=utf-8    │
    │                    b"\\x00\\x01..."    → application/octet-stream     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Sniffing is bounded: only the first SNIFF_LENGTH bytes of the first body
chunk are looked at, never the whole body. The compression middleware
relies on this when a handler wrote bytes without declaring a type.

=============================================================================
"""

from pathlib import Path
from typing import Optional


SNIFF_LENGTH = 512

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = {
    # text
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".map": "application/json",
    # images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",
    # fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    # media
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    # documents and archives
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tar": "application/x-tar",
    ".wasm": "application/wasm",
}

_TEXT_APPLICATION_TYPES = {
    "application/json",
    "application/xml",
    "image/svg+xml",
}

# (prefix, content type); checked in order against the sniffed bytes
_SIGNATURES = (
    (b"%PDF-", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"PK\x03\x04", "application/zip"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"\x00asm", "application/wasm"),
    (b"wOFF", "font/woff"),
    (b"wOF2", "font/woff2"),
    (b"OggS\x00", "application/ogg"),
)

_HTML_MARKERS = (
    b"<!doctype html", b"<html", b"<head", b"<script", b"<iframe", b"<h1",
    b"<div", b"<font", b"<table", b"<a", b"<style", b"<title", b"<b",
    b"<body", b"<br", b"<p", b"<!--",
)

# Bytes that never appear in text content (control chars minus whitespace)
_BINARY_BYTES = set(range(0x00, 0x09)) | {0x0B} | set(range(0x0E, 0x1B)) | set(range(0x1C, 0x20))


def is_text_type(mime_type: str) -> bool:
    """Text types get a charset parameter."""
    return mime_type.startswith("text/") or mime_type in _TEXT_APPLICATION_TYPES


def content_type_for(path: str | Path) -> Optional[str]:
    """
    Content-Type for a file name, judged by extension only.

    Returns None when the extension is unknown so the caller can fall back
    to sniff_content_type().

        >>> content_type_for("site.css")
        'text/css; charset=utf-8'
        >>> content_type_for("LOGO.PNG")
        'image/png'
        >>> content_type_for("Makefile") is None
        True
    """
    mime_type = MIME_TYPES.get(Path(path).suffix.lower())
    if mime_type is None:
        return None
    if is_text_type(mime_type):
        return f"{mime_type}; charset=utf-8"
    return mime_type


def sniff_content_type(data: bytes) -> str:
    """
    Infer a Content-Type from the leading bytes of a body.

    Only the first SNIFF_LENGTH bytes are examined. Always returns a
    value; unrecognised binary data is application/octet-stream.
    """
    head = data[:SNIFF_LENGTH]

    for signature, mime_type in _SIGNATURES:
        if head.startswith(signature):
            return mime_type
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"

    # Markup checks ignore leading whitespace and case
    stripped = head.lstrip(b"\t\n\x0c\r ").lower()
    for marker in _HTML_MARKERS:
        if stripped.startswith(marker):
            end = stripped[len(marker):len(marker) + 1]
            if end in (b" ", b">"):
                return "text/html; charset=utf-8"
    if stripped.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"

    if any(byte in _BINARY_BYTES for byte in head):
        return DEFAULT_MIME_TYPE
    return "text/plain; charset=utf-8"


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# content_type_for(path)   - extension lookup, None when unknown
# sniff_content_type(data) - bounded magic-number / markup / text sniff
# is_text_type(mime)       - decides whether to append a charset
# =============================================================================
