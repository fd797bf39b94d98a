"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Loads the runtime configuration snapshot from the process environment.

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ Variable │ Meaning            │ Accepted values      │ Default      │
    ├─────────────────────────────────────────────────────────────────────┤
    │ PORT     │ TCP port to bind   │ integer 1025..65535  │ 3000         │
    │ HOST     │ Address to bind    │ non-blank string     │ localhost    │
    │ APP_ENV  │ Environment mode   │ non-blank string     │ development  │
    └─────────────────────────────────────────────────────────────────────┘

    PORT=8080 HOST=0.0.0.0 APP_ENV=production python -m helloserver

=============================================================================
TOTAL LOADING
=============================================================================

load() never raises. Each variable is checked on its own:

    PORT="notanumber"   → WARN, port = 3000
    PORT="70000"        → WARN, port = 3000    (out of range)
    PORT="80"           → WARN, port = 3000    (privileged port)
    HOST="   "          → WARN, host = "localhost"
    APP_ENV unset       → WARN, environment = "development"

A bad PORT never affects how HOST or APP_ENV are read.

Ports below 1025 are rejected so the server never needs elevated
privileges to bind.

=============================================================================
IMMUTABILITY
=============================================================================

The Configuration is a frozen dataclass. It is created once at startup and
shared by reference with every connection; any attempt to assign to a
field raises dataclasses.FrozenInstanceError.

=============================================================================
"""

import os
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from . import log


DEFAULT_PORT = 3000
DEFAULT_HOST = "localhost"
DEFAULT_ENVIRONMENT = "development"

MIN_PORT = 1025
MAX_PORT = 65535
PORT_PATTERN = re.compile(r"[+-]?[0-9]+")

PORT_VAR = "PORT"
HOST_VAR = "HOST"
ENVIRONMENT_VAR = "APP_ENV"

# Primary endpoint advertised in startup logs
ENDPOINT_PATH = "/hello"


@dataclass(frozen=True)
class Configuration:
    """
    Validated, immutable runtime settings.

    The first three fields come from the environment. The remaining ones are
    fixed server limits; they bound resource use per connection and are not
    meant to be tuned per deployment.
    """

    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    environment: str = DEFAULT_ENVIRONMENT

    # ─────────────────────────────────────────────────────────────────────
    # SERVER LIMITS
    # ─────────────────────────────────────────────────────────────────────

    backlog: int = 128
    """Maximum number of pending connections queued by the OS."""

    keep_alive_timeout: float = 5.0
    """Seconds an idle keep-alive connection may wait for its next request."""

    request_timeout: float = 30.0
    """Seconds allowed to receive one request head and body."""

    shutdown_timeout: float = 10.0
    """Seconds in-flight requests get to finish once draining starts."""

    max_header_bytes: int = 16 * 1024
    """Largest request line or header line accepted (bytes)."""

    max_headers: int = 100
    """Largest number of header fields accepted in one request."""

    max_body_bytes: int = 1024 * 1024
    """Largest request body the server will read and discard (bytes)."""

    def __post_init__(self):
        if not MIN_PORT <= self.port <= MAX_PORT:
            raise ValueError(f"port must be in {MIN_PORT}..{MAX_PORT}, got {self.port}")
        if not self.host.strip():
            raise ValueError("host must be a non-empty string")
        if not self.environment.strip():
            raise ValueError("environment must be a non-empty string")

    @property
    def url(self) -> str:
        """Base URL the server answers on."""
        return f"http://{self.host}:{self.port}"

    @property
    def endpoint_url(self) -> str:
        """URL of the primary endpoint."""
        return self.url + ENDPOINT_PATH


def _load_port(raw: Optional[str]) -> int:
    if raw is None or raw == "":
        log.warn("%s environment variable not set, using default port: %d",
                 PORT_VAR, DEFAULT_PORT)
        return DEFAULT_PORT

    value = raw.strip()
    port = int(value) if PORT_PATTERN.fullmatch(value) else None

    if port is None or not MIN_PORT <= port <= MAX_PORT:
        log.warn(
            'Invalid %s environment variable "%s". Port must be a number between '
            "%d and %d. Using default port: %d",
            PORT_VAR, raw, MIN_PORT, MAX_PORT, DEFAULT_PORT,
        )
        return DEFAULT_PORT

    log.info("Using %s from environment variable: %d", PORT_VAR, port)
    return port


def _load_text(name: str, raw: Optional[str], default: str, label: str) -> str:
    if raw is None or raw == "":
        log.warn("%s environment variable not set, using default %s: %s",
                 name, label, default)
        return default

    value = raw.strip()
    if not value:
        log.warn(
            'Invalid %s environment variable "%s". %s must be a non-empty string. '
            "Using default %s: %s",
            name, raw, label.capitalize(), label, default,
        )
        return default

    log.info("Using %s from environment variable: %s", name, value)
    return value


def load(environ: Optional[Mapping[str, str]] = None) -> Configuration:
    """
    Build the configuration snapshot from the environment.

    Args:
        environ: Mapping to read from. Defaults to ``os.environ``; tests
                 pass a plain dict instead of patching the process.

    Returns:
        A Configuration that always satisfies its invariants.
    """
    env = os.environ if environ is None else environ

    config = Configuration(
        port=_load_port(env.get(PORT_VAR)),
        host=_load_text(HOST_VAR, env.get(HOST_VAR), DEFAULT_HOST, "host"),
        environment=_load_text(
            ENVIRONMENT_VAR, env.get(ENVIRONMENT_VAR), DEFAULT_ENVIRONMENT, "environment"
        ),
    )

    log.info(
        "Server configuration loaded - Port: %d, Host: %s, Environment: %s",
        config.port, config.host, config.environment,
    )
    return config
