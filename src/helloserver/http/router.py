"""
=============================================================================
ROUTER
=============================================================================

Maps (path, method) to a handler, and turns misses into 404 or 405.

=============================================================================
ROUTING FLOW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   POST /hello/?x=1                                                   │
    │        │                                                             │
    │        ▼   normalize: path "/hello", method "POST"                   │
    │                                                                      │
    │   ┌──────────────────────────────────────────────────────────────┐  │
    │   │  RouteTable                                                   │  │
    │   │    "/hello" → { "GET": handle_hello }                         │  │
    │   └──────────────────────────────────────────────────────────────┘  │
    │        │                                                             │
    │        ├── path missing           → handle_not_found          404   │
    │        ├── path ok, method missing → handle_method_not_allowed 405  │
    │        └── both match             → handler                         │
    │                                                                      │
    │   Anything the handler raises     → handle_server_error       500   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Routes are exact matches only. There are no path parameters or wildcards.

=============================================================================
ROUTE TABLE
=============================================================================

The table is built once at import time and is read-only afterwards: both
the outer mapping and each per-path method mapping are MappingProxyType
views, so ``ROUTES["/x"] = ...`` raises TypeError.

Entries are checked when the table is built, so a typo in a path or a
handler that isn't callable fails at import, not on the first request:

    RouteTable({"hello": {"GET": handle_hello}})
    → RouteTableError: Route path must start with "/": 'hello'

=============================================================================
"""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Callable, Dict, Iterator, List, Tuple

from .. import log
from ..handlers import (
    handle_hello,
    handle_method_not_allowed,
    handle_not_found,
    handle_server_error,
)
from .request import RequestContext
from .response import HTTPResponse


# =============================================================================
# TYPE ALIASES
# =============================================================================

# handler(request, response, *extra) -> None
Handler = Callable[..., None]


class RouteTableError(ValueError):
    """Raised when a route table entry is invalid."""


class RouteTable(Mapping):
    """
    Immutable mapping of path → {METHOD → handler}.

    Iteration order is the order the paths were given in.
    """

    def __init__(self, routes: "Mapping[str, Mapping[str, Handler]]"):
        table: Dict[str, "MappingProxyType[str, Handler]"] = {}

        for path, methods in routes.items():
            _check_path(path)
            if not methods:
                raise RouteTableError(f"Route {path!r} has no methods")

            by_method: Dict[str, Handler] = {}
            for method, handler in methods.items():
                if not method or not method.strip():
                    raise RouteTableError(f"Route {path!r} has an empty method name")
                if not callable(handler):
                    raise RouteTableError(
                        f"Handler for {method} {path} is not callable: {handler!r}"
                    )
                by_method[method.strip().upper()] = handler

            table[path] = MappingProxyType(by_method)

        self._routes = MappingProxyType(table)

    def __getitem__(self, path: str) -> "Mapping[str, Handler]":
        return self._routes[path]

    def __iter__(self) -> Iterator[str]:
        return iter(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def __repr__(self) -> str:
        return f"RouteTable({dict((p, dict(m)) for p, m in self._routes.items())!r})"

    def allowed_methods(self, path: str) -> List[str]:
        """Methods registered for a path, or [] if the path is unknown."""
        methods = self._routes.get(path)
        return list(methods) if methods else []

    def describe(self) -> List[Tuple[str, str]]:
        """(method, path) pairs in registration order."""
        return [(method, path) for path, methods in self._routes.items() for method in methods]


def _check_path(path: str) -> None:
    if not isinstance(path, str) or not path.startswith("/"):
        raise RouteTableError(f'Route path must start with "/": {path!r}')
    if "?" in path or "#" in path:
        raise RouteTableError(f"Route path must not contain a query or fragment: {path!r}")
    if path != "/" and path.endswith("/"):
        raise RouteTableError(f"Route path must not end with a slash: {path!r}")


class Router:
    """
    Dispatches requests through a RouteTable.

    route() is also the error boundary: nothing a handler raises escapes it.

    Example:
        router = Router(RouteTable({"/hello": {"GET": handle_hello}}))
        response = HTTPResponse()
        router.route(RequestContext("GET", "/hello"), response)
        assert response.status_code == 200
    """

    def __init__(self, table: RouteTable):
        self.table = table

    def route(self, request: RequestContext, response: HTTPResponse) -> None:
        try:
            self._dispatch(request, response)
        except Exception as exc:
            log.error(
                "Unhandled error while routing %s %s: %s",
                request.method, request.target, exc,
                exc_info=exc,
            )
            handle_server_error(request, response, exc)
            return

        if not response.finished:
            log.error("Handler for %s %s returned without sending a response",
                      request.method, request.target)
            handle_server_error(request, response)

    def _dispatch(self, request: RequestContext, response: HTTPResponse) -> None:
        path = request.path
        method = request.method.upper()

        log.info("Incoming request - Method: %s, URL: %s, Path: %s",
                 method, request.target, path)
        log.info(
            "Request headers - Host: %s, User-Agent: %s, Accept: %s",
            request.host or "-",
            request.user_agent or "-",
            request.get_header("accept") or "-",
        )

        methods = self.table.get(path)
        if methods is None:
            log.warn("Route not found - Path: %s", path)
            handle_not_found(request, response)
            return

        handler = methods.get(method)
        if handler is None:
            allowed = list(methods)
            log.warn("Method not allowed - Method: %s, Path: %s, Allowed: %s",
                     method, path, ", ".join(allowed))
            handle_method_not_allowed(request, response, allowed)
            return

        log.info("Route matched, dispatching to handler - Method: %s, Path: %s", method, path)
        handler(request, response)


# =============================================================================
# APPLICATION ROUTES
# =============================================================================

ROUTES = RouteTable({
    "/hello": {"GET": handle_hello},
})

router = Router(ROUTES)
