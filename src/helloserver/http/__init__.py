"""
HTTP protocol pieces: status codes, request model, response sink, router.
"""

from .status_codes import HTTPStatus, reason_phrase
from .request import HTTPParseError, RequestContext, RequestParser, parse_request
from .response import (
    DEFAULT_HEADERS,
    HTTPResponse,
    ResponseFinalizedError,
    send_response,
)
from .router import ROUTES, RouteTable, RouteTableError, Router, router

__all__ = [
    "HTTPStatus",
    "reason_phrase",
    "HTTPParseError",
    "RequestContext",
    "RequestParser",
    "parse_request",
    "DEFAULT_HEADERS",
    "HTTPResponse",
    "ResponseFinalizedError",
    "send_response",
    "ROUTES",
    "RouteTable",
    "RouteTableError",
    "Router",
    "router",
]
