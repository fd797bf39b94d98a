"""
=============================================================================
HELLOSERVER CLI ENTRY POINT
=============================================================================

    # Run with defaults (localhost:3000)
    python -m helloserver

    # Bind settings come from the environment
    PORT=8080 HOST=0.0.0.0 APP_ENV=production python -m helloserver

    # Development diagnostics and debug logging
    python -m helloserver --dev --log-level DEBUG

The process exit code is the server's: 0 after a graceful shutdown, 1 after
a bind failure, fault or drain timeout.

=============================================================================
"""

import argparse
import os
import platform
import sys

from . import __version__, log
from .http.router import ROUTES
from .server import LifecycleManager


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helloserver",
        description="Minimal HTTP server answering GET /hello",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment:
  PORT      Port to listen on, 1025-65535 (default: 3000)
  HOST      Address to bind (default: localhost)
  APP_ENV   Environment name (default: development)
        """,
    )

    parser.add_argument(
        "--dev",
        action="store_true",
        help="Log development diagnostics (interpreter, platform, routes) at startup",
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"helloserver {__version__}",
    )

    return parser


def log_dev_diagnostics() -> None:
    """Startup details that help when running locally."""
    log.info("Development mode enabled")
    log.info("Python %s (%s) on %s",
             platform.python_version(), platform.python_implementation(), platform.platform())
    log.info("Working directory: %s", os.getcwd())
    for method, path in ROUTES.describe():
        log.info("Route registered: %s %s", method, path)
    log.info("Press Ctrl+C to stop the server")


def main(argv=None) -> int:
    """
    Parse arguments, run the server, and return its exit code.

    Args:
        argv: Argument list without the program name. Defaults to sys.argv[1:].
    """
    args = build_parser().parse_args(argv)

    log.setup_logging(args.log_level)
    log.info("Starting helloserver %s (Python %s, PID %d, %s)",
             __version__, platform.python_version(), os.getpid(), sys.platform)

    if args.dev:
        log_dev_diagnostics()

    exit_code = LifecycleManager().start()

    log.info("Process exiting with code %d", exit_code)
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
