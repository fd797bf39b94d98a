"""
=============================================================================
ERROR HANDLERS
=============================================================================

Responses for requests that can't be served normally.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Handler                    │ Status │ Body                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │ handle_not_found           │ 404    │ Not Found                     │
    │ handle_method_not_allowed  │ 405    │ Method Not Allowed  (+ Allow) │
    │ handle_server_error        │ 500    │ Internal Server Error         │
    └─────────────────────────────────────────────────────────────────────┘

Bodies are fixed strings. Exception messages, tracebacks and configuration
stay in the server log and never reach the client.

=============================================================================
"""

from typing import Optional, Sequence

from .. import log
from ..http.request import RequestContext
from ..http.response import HTTPResponse, send_response
from ..http.status_codes import HTTPStatus


FALLBACK_ALLOWED_METHODS = ("GET",)


def handle_not_found(request: RequestContext, response: HTTPResponse) -> None:
    log.warn("404 Not Found - Method: %s, URL: %s", request.method, request.target)
    send_response(response, HTTPStatus.NOT_FOUND, HTTPStatus.NOT_FOUND.phrase)


def handle_method_not_allowed(
    request: RequestContext,
    response: HTTPResponse,
    allowed_methods: Optional[Sequence[str]] = None,
) -> None:
    """
    Respond 405 with an Allow header listing the methods the path supports.

    An empty or missing method list should not happen for a path that is in
    the route table; it is logged and answered with Allow: GET.
    """
    if not allowed_methods:
        log.warn(
            "Method not allowed called without allowed methods for %s, "
            "falling back to: %s",
            request.target, ", ".join(FALLBACK_ALLOWED_METHODS),
        )
        allowed_methods = FALLBACK_ALLOWED_METHODS

    allow = ", ".join(allowed_methods)
    log.warn(
        "405 Method Not Allowed - Method: %s, URL: %s, Allowed: %s",
        request.method, request.target, allow,
    )
    send_response(
        response,
        HTTPStatus.METHOD_NOT_ALLOWED,
        HTTPStatus.METHOD_NOT_ALLOWED.phrase,
        {"Allow": allow},
    )


def handle_server_error(
    request: RequestContext,
    response: HTTPResponse,
    error: Optional[BaseException] = None,
) -> None:
    """
    Respond 500 with a generic body.

    This is the last line of defence, so it never raises. If a response was
    already sent for this request, or sending fails (client gone), the
    problem is logged and the handler returns.
    """
    if error is not None:
        log.error(
            "500 Internal Server Error - Method: %s, URL: %s, Error: %s",
            request.method, request.target, error,
            exc_info=error,
        )
    else:
        log.error(
            "500 Internal Server Error - Method: %s, URL: %s, Error: Unknown error",
            request.method, request.target,
        )

    if response.finished:
        log.error("Response already sent for %s %s, cannot send 500",
                  request.method, request.target)
        return

    try:
        # drop whatever the failed handler had already set
        response.reset()
        send_response(
            response,
            HTTPStatus.INTERNAL_SERVER_ERROR,
            HTTPStatus.INTERNAL_SERVER_ERROR.phrase,
        )
    except Exception as exc:
        log.error("Failed to send 500 response: %s", exc)
