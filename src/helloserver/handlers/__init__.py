"""
Request handlers.

Every handler has the same shape:

    handler(request: RequestContext, response: HTTPResponse, *extra) -> None

and must finish by calling send_response() exactly once.
"""

from .hello import handle_hello, HELLO_MESSAGE
from .errors import (
    handle_not_found,
    handle_method_not_allowed,
    handle_server_error,
    FALLBACK_ALLOWED_METHODS,
)

__all__ = [
    "handle_hello",
    "HELLO_MESSAGE",
    "handle_not_found",
    "handle_method_not_allowed",
    "handle_server_error",
    "FALLBACK_ALLOWED_METHODS",
]
