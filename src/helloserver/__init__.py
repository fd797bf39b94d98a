"""
=============================================================================
HELLOSERVER - Minimal HTTP Request-Processing Core
=============================================================================

One endpoint, GET /hello, answering "Hello world". Everything around it is
the actual work: configuration with safe defaults, leveled logging, exact
routing with 404/405, a 500 boundary that never leaks internals, and a
server lifecycle that drains cleanly on signals and faults.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    helloserver/
    ├── __init__.py          # Package exports
    ├── __main__.py          # CLI entry point (python -m helloserver)
    ├── config.py            # Configuration snapshot from the environment
    ├── log.py               # Leveled logging to stdout / stderr
    ├── server.py            # LifecycleManager (asyncio server + shutdown)
    ├── http/
    │   ├── status_codes.py  # Status enum and reason phrases
    │   ├── request.py       # RequestContext and head parser
    │   ├── response.py      # HTTPResponse sink and send_response()
    │   └── router.py        # RouteTable, Router, application routes
    └── handlers/
        ├── hello.py         # GET /hello
        └── errors.py        # 404, 405, 500

=============================================================================
QUICK START
=============================================================================

    from helloserver import LifecycleManager, setup_logging

    setup_logging()
    exit_code = LifecycleManager().start()

    $ PORT=8080 python -m helloserver
    $ curl http://localhost:8080/hello
    Hello world

=============================================================================
"""

__version__ = "1.0.0"

from .config import Configuration, load as load_config
from .log import setup_logging
from .http import (
    HTTPParseError,
    HTTPResponse,
    HTTPStatus,
    RequestContext,
    ResponseFinalizedError,
    RouteTable,
    RouteTableError,
    Router,
    ROUTES,
    send_response,
)
from .server import LifecycleManager, ServerState

__all__ = [
    "__version__",
    "Configuration",
    "load_config",
    "setup_logging",
    "HTTPParseError",
    "HTTPResponse",
    "HTTPStatus",
    "RequestContext",
    "ResponseFinalizedError",
    "RouteTable",
    "RouteTableError",
    "Router",
    "ROUTES",
    "send_response",
    "LifecycleManager",
    "ServerState",
]
