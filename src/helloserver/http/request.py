"""
=============================================================================
HTTP REQUEST MODEL AND HEAD PARSER
=============================================================================

Turns the bytes of an HTTP/1.x request head into a RequestContext.

=============================================================================
REQUEST HEAD ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   GET /hello/?lang=en#top HTTP/1.1\r\n     ← request line            │
    │   ─┬─ ─────────┬───────── ───┬────                                   │
    │    │           │             │                                       │
    │  method  request-target   version                                    │
    │                                                                      │
    │   Host: localhost:3000\r\n                 ← header fields           │
    │   User-Agent: curl/8.5.0\r\n                                         │
    │   \r\n                                     ← end of head             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The server reads the head one line at a time from the socket and hands
each piece to RequestParser. Only the head is modelled: the body is
drained by the server (Content-Length) and never reaches a handler.

=============================================================================
PATH NORMALIZATION
=============================================================================

RequestContext.path is what the router matches on:

    "/hello"            → "/hello"
    "/hello/"           → "/hello"      (one trailing slash removed)
    "/hello?lang=en"    → "/hello"      (query stripped)
    "/hello#top"        → "/hello"      (fragment stripped)
    "/"                 → "/"           (root keeps its slash)
    "http://h/hello"    → "/hello"      (absolute-form target)

Percent-encoding is left alone, so "/hel%6Co" does not match "/hello".

=============================================================================
"""

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple
from urllib.parse import urlsplit

from .status_codes import HTTPStatus


class HTTPParseError(ValueError):
    """
    Raised when a request head cannot be parsed.

    Carries the status code the connection should be answered with before
    it is closed.
    """

    def __init__(self, message: str, status_code: int = HTTPStatus.BAD_REQUEST):
        super().__init__(message)
        self.status_code = status_code


def normalize_path(target: str) -> str:
    """
    Reduce a request-target to the path used for routing.

    See the module docstring for examples.
    """
    if target.startswith(("http://", "https://")):
        path = urlsplit(target).path
    else:
        path = target.split("#", 1)[0].split("?", 1)[0]

    if not path:
        return "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]
    return path


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request view handed to the router and handlers.

    Created when a request head has been read, discarded once its response
    is finalized. It is never shared between requests.

    Header names are lower-cased on construction and the header mapping is
    read-only.
    """

    method: str
    target: str = "/"
    headers: Mapping[str, str] = field(default_factory=dict)
    version: str = "HTTP/1.1"
    client_address: Tuple[str, int] = ("", 0)

    def __post_init__(self):
        lowered = {name.lower(): value for name, value in dict(self.headers).items()}
        object.__setattr__(self, "headers", MappingProxyType(lowered))

    @property
    def path(self) -> str:
        """Request path with query, fragment and trailing slash removed."""
        return normalize_path(self.target)

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client expects the connection to stay open.

        HTTP/1.1 keeps alive unless told ``Connection: close``;
        HTTP/1.0 closes unless told ``Connection: keep-alive``.
        """
        tokens = {t.strip().lower() for t in self.headers.get("connection", "").split(",")}
        if self.version == "HTTP/1.1":
            return "close" not in tokens
        return "keep-alive" in tokens

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses the pieces of a request head.

    The server feeds it line by line (parse_request_line, then
    parse_headers); parse() handles a complete head in one call.
    """

    # method SP request-target SP HTTP-version
    # Method is an RFC 9110 token; lower-case methods are accepted and
    # normalized by the router.
    REQUEST_LINE_PATTERN = re.compile(r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) (\S+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+):[ \t]*(.*?)[ \t]*$")
    CONTENT_LENGTH_PATTERN = re.compile(r"[0-9]+")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_headers: int = 100, max_body_bytes: int = 1024 * 1024):
        self.max_headers = max_headers
        self.max_body_bytes = max_body_bytes

    def parse_request_line(self, line: bytes) -> Tuple[str, str, str]:
        """
        Parse ``METHOD target HTTP/x.y``.

        Returns:
            (method, target, version)

        Raises:
            HTTPParseError: For anything that isn't a valid request line.
        """
        text = _decode(line).rstrip("\r\n")
        match = self.REQUEST_LINE_PATTERN.match(text)
        if not match:
            raise HTTPParseError(f"Invalid request line: {text[:100]!r}")

        method, target, version = match.groups()
        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(f"Unsupported HTTP version: {version}")
        if not (target.startswith("/") or target == "*"
                or target.startswith(("http://", "https://"))):
            raise HTTPParseError(f"Invalid request target: {target[:100]!r}")

        return method, target, version

    def parse_headers(self, lines: Iterable[bytes]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lower-case names.

        Repeated fields are joined with ", " (RFC 9110 field combination).
        Obsolete line folding and malformed lines are rejected rather than
        guessed at.
        """
        headers: Dict[str, str] = {}
        count = 0

        for raw in lines:
            text = _decode(raw).rstrip("\r\n")
            if not text:
                continue

            if text[0] in (" ", "\t"):
                raise HTTPParseError("Obsolete header line folding is not supported")

            match = self.HEADER_PATTERN.match(text)
            if not match:
                raise HTTPParseError(f"Invalid header line: {text[:100]!r}")

            count += 1
            if count > self.max_headers:
                raise HTTPParseError(f"Too many headers: more than {self.max_headers}")

            name, value = match.groups()
            name = name.lower()
            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

    def body_length(self, headers: Mapping[str, str]) -> int:
        """
        Number of body bytes that follow the head.

        Raises:
            HTTPParseError: If Content-Length is not a single non-negative
                integer or exceeds the body limit.
        """
        raw = headers.get("content-length")
        if raw is None:
            return 0

        # ASCII digits only; "5, 5" from repeated fields is ambiguous framing
        if not self.CONTENT_LENGTH_PATTERN.fullmatch(raw):
            raise HTTPParseError(f"Invalid Content-Length: {raw[:40]!r}")

        length = int(raw)
        if length > self.max_body_bytes:
            raise HTTPParseError(f"Request body too large: {length} bytes")
        return length

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> RequestContext:
        """
        Parse a complete request head (everything up to ``\\r\\n\\r\\n``).

        Any bytes after the head are ignored.
        """
        head_end = data.find(b"\r\n\r\n")
        if head_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        lines = data[:head_end].split(b"\r\n")
        method, target, version = self.parse_request_line(lines[0])
        headers = self.parse_headers(lines[1:])

        return RequestContext(
            method=method,
            target=target,
            headers=headers,
            version=version,
            client_address=client_address,
        )


def _decode(raw: bytes) -> str:
    # Request heads are ASCII; latin-1 maps every byte so nothing is lost
    # before validation rejects it.
    return raw.decode("latin-1")


def parse_request(data: bytes, client_address: Optional[Tuple[str, int]] = None) -> RequestContext:
    """Parse a request head with default limits."""
    return RequestParser().parse(data, client_address or ("", 0))
