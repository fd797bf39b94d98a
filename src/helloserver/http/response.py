"""
=============================================================================
HTTP RESPONSE SINK AND WRITER
=============================================================================

HTTPResponse collects a status, headers and body, then serializes them
exactly once. send_response() is the one call handlers use to produce a
complete plain-text response.

=============================================================================
RESPONSE LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   HTTPResponse(transport)          building: mutable                 │
    │        │                                                             │
    │        ├── set_status(405)                                           │
    │        ├── set_header("Allow", "GET")                                │
    │        ├── write(b"Method Not Allowed")                              │
    │        │                                                             │
    │        ▼                                                             │
    │   end()  ──► to_bytes() ──► transport(bytes)   exactly once          │
    │        │                                                             │
    │        ▼                                                             │
    │   finished: every further set_* / write / end raises                 │
    │             ResponseFinalizedError                                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Writing after end() is a programming error. It is reported loudly instead
of being ignored so a handler can never emit two responses for one request.

The transport is any callable taking bytes. The server passes the socket
writer; tests leave it out and inspect the response afterwards.

=============================================================================
WIRE FORMAT
=============================================================================

    HTTP/1.1 200 OK\r\n
    Content-Type: text/plain; charset=utf-8\r\n
    Connection: keep-alive\r\n
    Content-Length: 11\r\n
    Date: Thu, 01 Jan 2026 12:00:00 GMT\r\n
    \r\n
    Hello world

=============================================================================
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Mapping, Optional, Tuple, Union

from .. import log
from .status_codes import HTTPStatus, UNKNOWN_PHRASE, reason_phrase


DEFAULT_HEADERS: Mapping[str, str] = {
    "Content-Type": "text/plain; charset=utf-8",
    "Connection": "keep-alive",
}

Transport = Callable[[bytes], None]


class ResponseFinalizedError(RuntimeError):
    """Raised when a finished response is modified or finished again."""


class HTTPResponse:
    """
    A response under construction for one request.

    Header names are matched case-insensitively but emitted with the
    spelling of the last set_header() call.
    """

    version = "HTTP/1.1"

    def __init__(self, transport: Optional[Transport] = None):
        self.status_code: int = HTTPStatus.OK
        self.reason: str = HTTPStatus.OK.phrase
        self._headers: Dict[str, Tuple[str, str]] = {}   # lower name → (name, value)
        self._body = bytearray()
        self._transport = transport
        self._finished = False

    # =========================================================================
    # INSPECTION
    # =========================================================================

    @property
    def finished(self) -> bool:
        """True once end() has been called."""
        return self._finished

    @property
    def headers(self) -> Dict[str, str]:
        """Copy of the headers set so far."""
        return {name: value for name, value in self._headers.values()}

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        entry = self._headers.get(name.lower())
        return entry[1] if entry else default

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status_code)} {self.reason}"

    # =========================================================================
    # BUILDING
    # =========================================================================

    def _check_open(self, action: str) -> None:
        if self._finished:
            raise ResponseFinalizedError(f"Cannot {action}: response already finalized")

    def set_status(self, status_code: int, reason: Optional[str] = None) -> "HTTPResponse":
        self._check_open("set status")
        self.status_code = status_code
        self.reason = reason if reason is not None else reason_phrase(status_code)
        return self

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """
        Set (or replace) a header.

        Raises:
            ValueError: If the name or value contains CR or LF, which would
                        let a value inject extra header lines.
        """
        self._check_open("set header")
        value = str(value)
        if any(c in name or c in value for c in "\r\n") or not name:
            raise ValueError(f"Invalid header: {name!r}")
        self._headers[name.lower()] = (name, value)
        return self

    def write(self, data: Union[str, bytes]) -> "HTTPResponse":
        """Append to the body. Strings are encoded as UTF-8."""
        self._check_open("write body")
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._body.extend(data)
        return self

    def reset(self) -> "HTTPResponse":
        """Discard everything set so far. Only allowed before end()."""
        self._check_open("reset response")
        self.status_code = HTTPStatus.OK
        self.reason = HTTPStatus.OK.phrase
        self._headers.clear()
        self._body.clear()
        return self

    def end(self) -> bytes:
        """
        Finalize the response and hand it to the transport.

        Content-Length is filled in from the body if no one set it.

        Returns:
            The serialized response.

        Raises:
            ResponseFinalizedError: If called a second time.
        """
        self._check_open("end response")
        if "content-length" not in self._headers:
            self._headers["content-length"] = ("Content-Length", str(len(self._body)))

        self._finished = True
        payload = self.to_bytes()
        if self._transport is not None:
            self._transport(payload)
        return payload

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def to_bytes(self) -> bytes:
        """Serialize status line, headers and body."""
        lines = [self.status_line]
        for name, value in self._headers.values():
            lines.append(f"{name}: {value}")
        if "date" not in self._headers:
            lines.append(f"Date: {format_http_date(datetime.now(timezone.utc))}")
        lines.append("")

        head = "\r\n".join(lines).encode("latin-1", errors="replace") + b"\r\n"
        return head + bytes(self._body)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an IMF-fixdate (RFC 9110).

    Example: Thu, 01 Jan 2026 12:00:00 GMT
    """
    return (
        f"{_DAYS[dt.weekday()]}, {dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def send_response(
    response: HTTPResponse,
    status_code: int,
    body: Union[str, bytes],
    headers: Optional[Mapping[str, str]] = None,
) -> None:
    """
    Emit a complete response in one call.

    Applies DEFAULT_HEADERS, then the caller's headers (which win on
    conflict, e.g. an Allow header for 405), sets Content-Length from the
    encoded body, writes the body and finalizes.

    Args:
        response: The sink for this request.
        status_code: HTTP status code.
        body: Response body; strings are sent as UTF-8.
        headers: Extra or overriding headers.

    Raises:
        ResponseFinalizedError: If the response was already finished.
    """
    payload = body.encode("utf-8") if isinstance(body, str) else bytes(body)

    phrase = reason_phrase(status_code)
    if phrase == UNKNOWN_PHRASE:
        log.warn("Unknown HTTP status code: %d", status_code)

    response.set_status(status_code, phrase)
    for name, value in DEFAULT_HEADERS.items():
        response.set_header(name, value)
    for name, value in (headers or {}).items():
        response.set_header(name, value)
    response.set_header("Content-Length", str(len(payload)))
    response.write(payload)
    response.end()

    log.info("HTTP response sent - Status: %d, Bytes: %d", status_code, len(payload))
