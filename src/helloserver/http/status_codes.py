"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can emit, with their RFC 9110 reason phrases.

    HTTP/1.1 405 Method Not Allowed
             ─┬─ ─────────┬────────
              │           │
         Status code   Reason phrase

=============================================================================
"""

from enum import IntEnum


UNKNOWN_PHRASE = "Unknown Status"


class HTTPStatus(IntEnum):
    """
    Status codes used by the server.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    # 2xx SUCCESS
    OK = 200

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400                   # Unparseable request head
    NOT_FOUND = 404                     # No route for the path
    METHOD_NOT_ALLOWED = 405            # Path exists, method doesn't
    REQUEST_TIMEOUT = 408               # Client too slow sending the head

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500         # Handler fault (generic body only)

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line."""
        return _STATUS_PHRASES[self]


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
}


def reason_phrase(status_code: int) -> str:
    """
    Look up the reason phrase for any integer status code.

    Returns UNKNOWN_PHRASE for codes the server doesn't know about.
    """
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return UNKNOWN_PHRASE
