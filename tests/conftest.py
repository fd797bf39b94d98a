"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from helloserver import Configuration, LifecycleManager, setup_logging
from helloserver.http import HTTPResponse, RequestContext


@pytest.fixture(autouse=True)
def logging_to_std_streams():
    """Route the server logger to sys.stdout / sys.stderr so capsys sees it."""
    setup_logging("DEBUG")
    yield


@pytest.fixture
def make_request():
    """Factory for RequestContext objects."""
    def _make(method: str = "GET", target: str = "/hello", **headers) -> RequestContext:
        header_map = {name.replace("_", "-"): value for name, value in headers.items()}
        return RequestContext(
            method=method,
            target=target,
            headers=header_map,
            client_address=("127.0.0.1", 50000),
        )
    return _make


class RecordingTransport:
    """Transport callable that records every payload handed to it."""

    def __init__(self):
        self.writes: List[bytes] = []

    def __call__(self, data: bytes) -> None:
        self.writes.append(data)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def response(transport: RecordingTransport) -> HTTPResponse:
    """Response sink wired to a recording transport."""
    return HTTPResponse(transport=transport)


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class ServerThread:
    """Runs a LifecycleManager in a background thread."""

    def __init__(self, manager: LifecycleManager, port: int):
        self.manager = manager
        self.port = port
        self.exit_code: Optional[int] = None
        self._thread: Optional[threading.Thread] = None

    def _run(self):
        self.exit_code = self.manager.start()

    def start(self):
        """Start server in background thread and wait until it accepts."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        for _ in range(50):  # 5 seconds max
            try:
                with socket.create_connection(('127.0.0.1', self.port), timeout=1.0):
                    return
            except (ConnectionRefusedError, socket.timeout):
                if not self._thread.is_alive():
                    break
                time.sleep(0.1)

        raise RuntimeError("Server failed to start")

    def stop(self, timeout: float = 15.0) -> Optional[int]:
        """Stop the server and return its exit code."""
        self.manager.stop()
        return self.join(timeout)

    def join(self, timeout: float = 15.0) -> Optional[int]:
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        return self.exit_code


def make_config(port: int, **limits) -> Configuration:
    return Configuration(port=port, host="127.0.0.1", environment="test", **limits)


@pytest.fixture
def server_factory(free_port: int):
    """Build and start servers; all are stopped at teardown."""
    started: List[ServerThread] = []

    def _start(router=None, **limits) -> ServerThread:
        manager = LifecycleManager(
            make_config(free_port, **limits), router, install_signal_handlers=False
        )
        server = ServerThread(manager, free_port)
        server.start()
        started.append(server)
        return server

    yield _start

    for server in started:
        server.stop()


@pytest.fixture
def running_server(server_factory) -> Generator[ServerThread, None, None]:
    """A server on 127.0.0.1:<free port> with default limits."""
    yield server_factory()


class HTTPClient:
    """Raw-socket client for talking to a ServerThread."""

    def __init__(self, port: int):
        self.port = port

    def connect(self, timeout: float = 5.0) -> socket.socket:
        return socket.create_connection(('127.0.0.1', self.port), timeout=timeout)

    def request(self, raw: bytes) -> bytes:
        """Send raw bytes on a new connection and return one response."""
        with self.connect() as sock:
            sock.sendall(raw)
            return self.recv_response(sock)

    def get(self, target: str = "/hello", method: str = "GET") -> bytes:
        return self.request(
            f"{method} {target} HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n".encode()
        )

    @staticmethod
    def recv_response(sock: socket.socket) -> bytes:
        """Read one complete response (head plus Content-Length body)."""
        data = b""
        while b"\r\n\r\n" not in data:
            chunk = sock.recv(4096)
            if not chunk:
                return data
            data += chunk

        head, _, body = data.partition(b"\r\n\r\n")
        length = 0
        for line in head.split(b"\r\n")[1:]:
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                length = int(value.strip())

        while len(body) < length:
            chunk = sock.recv(4096)
            if not chunk:
                break
            body += chunk
        return head + b"\r\n\r\n" + body

    @staticmethod
    def parse(raw: bytes):
        """Return (status_code, headers with lower-case names, body)."""
        head, _, body = raw.partition(b"\r\n\r\n")
        lines = head.decode("latin-1").split("\r\n")
        status_code = int(lines[0].split(" ", 2)[1])
        headers = {}
        for line in lines[1:]:
            name, _, value = line.partition(":")
            headers[name.strip().lower()] = value.strip()
        return status_code, headers, body


@pytest.fixture
def client(free_port: int) -> HTTPClient:
    return HTTPClient(free_port)
