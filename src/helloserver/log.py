"""
=============================================================================
LOGGING
=============================================================================

Process-wide leveled logging for the server.

Every line has the same shape:

    [2026-01-01T12:00:00.000Z] [INFO] Server ready at http://localhost:3000
     ────────────┬───────────   ──┬──  ────────────────┬────────────────────
                 │                │                    │
        ISO-8601 UTC timestamp  Level tag      printf-style message

=============================================================================
STREAM SELECTION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Level   │ Tag    │ Stream                                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │ DEBUG   │ DEBUG  │ stdout                                          │
    │ INFO    │ INFO   │ stdout                                          │
    │ WARNING │ WARN   │ stderr                                          │
    │ ERROR   │ ERROR  │ stderr                                          │
    └─────────────────────────────────────────────────────────────────────┘

The stream is looked up when each record is emitted, not when the handler
is created, so redirecting sys.stdout / sys.stderr (pytest capsys, a
supervisor swapping file descriptors) is picked up immediately.

=============================================================================
USAGE
=============================================================================

    from helloserver import log

    log.info("Listening on %s:%d", host, port)
    log.warn("Invalid PORT %r, using %d", raw, 3000)
    log.error("Bind failed: %s", exc)

Formatting is lazy: arguments are only interpolated if the record is
actually emitted.

=============================================================================
"""

import logging
import sys
from datetime import datetime, timezone


LOGGER_NAME = "helloserver"

logger = logging.getLogger(LOGGER_NAME)


# Level tags used in log lines. WARNING is shortened to WARN.
_LEVEL_TAGS = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
    logging.CRITICAL: "ERROR",
}


class LineFormatter(logging.Formatter):
    """Formats records as ``[timestamp] [LEVEL] message``."""

    def __init__(self):
        super().__init__("[%(asctime)s] [%(level_tag)s] %(message)s")

    def formatTime(self, record: logging.LogRecord, datefmt=None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def format(self, record: logging.LogRecord) -> str:
        record.level_tag = _LEVEL_TAGS.get(record.levelno, record.levelname)
        return super().format(record)


class LevelStreamHandler(logging.Handler):
    """
    Writes INFO and below to stdout, WARN and above to stderr.

    One write per record, so a line is never split between two streams.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
            stream = sys.stderr if record.levelno >= logging.WARNING else sys.stdout
            stream.write(line + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure the ``helloserver`` logger.

    Safe to call more than once: the previous handler is replaced, not
    duplicated. Python warnings are routed through the same handler.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR).

    Returns:
        The configured logger.
    """
    for handler in list(logger.handlers):
        if isinstance(handler, LevelStreamHandler):
            logger.removeHandler(handler)

    handler = LevelStreamHandler()
    handler.setFormatter(LineFormatter())
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Records are fully handled here; don't echo them through the root logger
    logger.propagate = False

    logging.captureWarnings(True)
    warnings_logger = logging.getLogger("py.warnings")
    for existing in list(warnings_logger.handlers):
        if isinstance(existing, LevelStreamHandler):
            warnings_logger.removeHandler(existing)
    warnings_logger.addHandler(handler)
    warnings_logger.propagate = False

    return logger


# =============================================================================
# LEVELED HELPERS
# =============================================================================

def debug(message: str, *args) -> None:
    logger.debug(message, *args)


def info(message: str, *args) -> None:
    logger.info(message, *args)


def warn(message: str, *args) -> None:
    logger.warning(message, *args)


def error(message: str, *args, exc_info=None) -> None:
    """
    Log at ERROR.

    ``exc_info`` may be an exception instance; its traceback is appended
    to the server-side log line.
    """
    logger.error(message, *args, exc_info=exc_info)


def exception(message: str, *args) -> None:
    """Log at ERROR with the active exception's traceback appended."""
    logger.exception(message, *args)
