"""
=============================================================================
HELLO HANDLER
=============================================================================

The server's one real endpoint.

    GET /hello  →  200 OK
                   Content-Type: text/plain; charset=utf-8

                   Hello world

The body never changes: headers, query string and request body are all
ignored.

=============================================================================
"""

from .. import log
from ..http.request import RequestContext
from ..http.response import HTTPResponse, send_response
from ..http.status_codes import HTTPStatus


HELLO_MESSAGE = "Hello world"


def handle_hello(request: RequestContext, response: HTTPResponse) -> None:
    """Respond 200 with HELLO_MESSAGE."""
    log.info(
        "Hello endpoint requested - Method: %s, URL: %s, User-Agent: %s",
        request.method, request.target, request.user_agent or "unknown",
    )

    send_response(response, HTTPStatus.OK, HELLO_MESSAGE)

    log.info("Hello response delivered successfully")
