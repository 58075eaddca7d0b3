"""
=============================================================================
HTTP STATUS CODES
=============================================================================

Status codes matter more to this server than to most: the status a handler
picks decides whether its own bytes reach the client at all.

    ┌────────┬────────────────────────────────────────────────────────────┐
    │ RANGE  │ WHAT THE INTERCEPTOR DOES WITH IT                          │
    ├────────┼────────────────────────────────────────────────────────────┤
    │ 1xx    │ forwarded (unless an override is configured)              │
    │ 2xx    │ forwarded (unless an override is configured)              │
    │ 3xx    │ forwarded (unless an override is configured)              │
    │ 4xx    │ override body, or the reason phrase as text/plain         │
    │ 5xx    │ override body, or the reason phrase as text/plain         │
    └────────┴────────────────────────────────────────────────────────────┘

The reason phrase is therefore part of the wire contract, not decoration:
for an un-overridden 404 the client receives exactly `Not Found`.

`status_text()` works on any integer. Config files may name codes that are
not in the enum (e.g. 499); those have an empty phrase, like an
unregistered code in any other HTTP stack.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes.

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    # 1xx
    CONTINUE = 100
    SWITCHING_PROTOCOLS = 101
    PROCESSING = 102
    EARLY_HINTS = 103

    # 2xx
    OK = 200
    CREATED = 201
    ACCEPTED = 202
    NON_AUTHORITATIVE_INFORMATION = 203
    NO_CONTENT = 204
    RESET_CONTENT = 205
    PARTIAL_CONTENT = 206
    MULTI_STATUS = 207
    ALREADY_REPORTED = 208
    IM_USED = 226

    # 3xx
    MULTIPLE_CHOICES = 300
    MOVED_PERMANENTLY = 301
    FOUND = 302
    SEE_OTHER = 303
    NOT_MODIFIED = 304
    USE_PROXY = 305
    TEMPORARY_REDIRECT = 307
    PERMANENT_REDIRECT = 308

    # 4xx
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    PAYMENT_REQUIRED = 402
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    NOT_ACCEPTABLE = 406
    PROXY_AUTHENTICATION_REQUIRED = 407
    REQUEST_TIMEOUT = 408
    CONFLICT = 409
    GONE = 410
    LENGTH_REQUIRED = 411
    PRECONDITION_FAILED = 412
    PAYLOAD_TOO_LARGE = 413
    URI_TOO_LONG = 414
    UNSUPPORTED_MEDIA_TYPE = 415
    RANGE_NOT_SATISFIABLE = 416
    EXPECTATION_FAILED = 417
    IM_A_TEAPOT = 418
    MISDIRECTED_REQUEST = 421
    UNPROCESSABLE_ENTITY = 422
    LOCKED = 423
    FAILED_DEPENDENCY = 424
    TOO_EARLY = 425
    UPGRADE_REQUIRED = 426
    PRECONDITION_REQUIRED = 428
    TOO_MANY_REQUESTS = 429
    REQUEST_HEADER_FIELDS_TOO_LARGE = 431
    UNAVAILABLE_FOR_LEGAL_REASONS = 451

    # 5xx
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504
    HTTP_VERSION_NOT_SUPPORTED = 505
    VARIANT_ALSO_NEGOTIATES = 506
    INSUFFICIENT_STORAGE = 507
    LOOP_DETECTED = 508
    NOT_EXTENDED = 510
    NETWORK_AUTHENTICATION_REQUIRED = 511

    @property
    def phrase(self) -> str:
        """Reason phrase, as sent on the status line."""
        return _STATUS_PHRASES[self]

    @property
    def is_error(self) -> bool:
        return self >= 400


# Phrases that the NAME.title() rule below would get wrong.
_IRREGULAR_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.IM_USED: "IM Used",
    HTTPStatus.NON_AUTHORITATIVE_INFORMATION: "Non-Authoritative Information",
    HTTPStatus.MULTI_STATUS: "Multi-Status",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Request Entity Too Large",
    HTTPStatus.URI_TOO_LONG: "Request URI Too Long",
    HTTPStatus.RANGE_NOT_SATISFIABLE: "Requested Range Not Satisfiable",
    HTTPStatus.IM_A_TEAPOT: "I'm a teapot",
    HTTPStatus.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}

_STATUS_PHRASES = {
    status: _IRREGULAR_PHRASES.get(status, status.name.replace("_", " ").title())
    for status in HTTPStatus
}


def status_text(code: int) -> str:
    """
    Reason phrase for any integer status code.

    Returns an empty string for codes that have no registered phrase.

        >>> status_text(503)
        'Service Unavailable'
        >>> status_text(499)
        ''
    """
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""


def body_allowed(code: int) -> bool:
    """Whether a response with this status may carry a body (RFC 7230 3.3)."""
    return not (100 <= code < 200 or code in (204, 304))


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# HTTPStatus   - IntEnum of the registered codes, with .phrase
# status_text  - phrase for any int, "" when unregistered
# body_allowed - 1xx, 204 and 304 never carry a body
# =============================================================================
