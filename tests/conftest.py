"""
pytest configuration and fixtures.
"""

import codecs
import socket
import threading
import time
from typing import Callable, Generator, List
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chatrelay import ChatServer, ServerConfig
from chatrelay.core import Connection
from chatrelay.chat import ConnectionRegistry, Broadcaster, Session


class Peer:
    """Client end of a chat connection, read with deadlines."""

    def __init__(self, sock: socket.socket, encoding: str = "utf-8"):
        self.sock = sock
        self.encoding = encoding
        self._pending = ""
        self._decoder = codecs.getincrementaldecoder(encoding)()

    def send(self, line: str):
        self.sock.sendall((line + "\n").encode(self.encoding))

    def finish_sending(self):
        """Half-close: the server reads EOF after whatever was sent."""
        self.sock.shutdown(socket.SHUT_WR)

    def _recv(self, timeout: float) -> bytes:
        self.sock.settimeout(timeout)
        try:
            return self.sock.recv(4096)
        except ConnectionResetError:
            return b""

    def read_until(self, marker: str, timeout: float = 5.0) -> str:
        """Return everything received up to and including `marker`."""
        deadline = time.monotonic() + timeout
        while marker not in self._pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AssertionError(f"Timed out waiting for {marker!r}, got {self._pending!r}")
            try:
                chunk = self._recv(remaining)
            except socket.timeout:
                continue
            if not chunk:
                raise AssertionError(f"Closed before {marker!r}, got {self._pending!r}")
            self._pending += self._decoder.decode(chunk)

        end = self._pending.index(marker) + len(marker)
        text, self._pending = self._pending[:end], self._pending[end:]
        return text

    def read_until_closed(self, timeout: float = 5.0) -> str:
        """Return everything left until the server closes the stream."""
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AssertionError(f"Server never closed, got {self._pending!r}")
            try:
                chunk = self._recv(remaining)
            except socket.timeout:
                continue
            if not chunk:
                break
            self._pending += self._decoder.decode(chunk)

        text, self._pending = self._pending, ""
        return text

    def is_silent(self, seconds: float = 0.3) -> bool:
        """True if nothing arrives within `seconds`."""
        if self._pending:
            return False
        try:
            chunk = self._recv(seconds)
        except socket.timeout:
            return True
        self._pending += self._decoder.decode(chunk)
        return False

    def close(self):
        self.sock.close()


# =============================================================================
# CHAT COMPONENTS
# =============================================================================

@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def broadcaster(registry: ConnectionRegistry) -> Broadcaster:
    return Broadcaster(registry)


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout expires."""
    def _wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()
    return _wait_for


@pytest.fixture
def spawn() -> Generator[Callable[..., threading.Thread], None, None]:
    """Run callables on daemon threads, joined at teardown."""
    threads: List[threading.Thread] = []

    def _spawn(target: Callable, *args) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, daemon=True)
        thread.start()
        threads.append(thread)
        return thread

    yield _spawn

    for thread in threads:
        thread.join(timeout=5.0)


@pytest.fixture
def socket_pair() -> Generator[Callable[..., tuple], None, None]:
    """Factory: (Connection, Peer) joined by a local socket pair."""
    created = []

    def _socket_pair(**kwargs):
        server_sock, client_sock = socket.socketpair()
        conn = Connection(socket=server_sock, address=("127.0.0.1", 0), **kwargs)
        peer = Peer(client_sock)
        created.append((conn, peer))
        return conn, peer

    yield _socket_pair

    for conn, peer in created:
        peer.close()
        conn.close()


@pytest.fixture
def connect_session(
    registry: ConnectionRegistry,
    broadcaster: Broadcaster,
    spawn,
) -> Generator[Callable[..., tuple], None, None]:
    """
    Factory: (Session, Peer) joined by a local socket pair.

    Depends on `spawn` so peers are closed, and sessions see EOF, before
    session threads are joined.
    """
    created = []

    def _connect(**kwargs):
        server_sock, client_sock = socket.socketpair()
        conn = Connection(socket=server_sock, address=("127.0.0.1", 0))
        session = Session(conn, registry, broadcaster, **kwargs)
        peer = Peer(client_sock)
        created.append((session, peer))
        return session, peer

    yield _connect

    for session, peer in created:
        peer.close()


# =============================================================================
# RUNNING SERVER
# =============================================================================

@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestServer:
    """Chat server running in a background thread."""

    __test__ = False

    def __init__(self, server: ChatServer):
        self.server = server
        self._thread: threading.Thread = None
        self._peers: List[Peer] = []

    @property
    def port(self) -> int:
        return self.server.config.port

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def connect(self) -> Peer:
        """Open a client connection to the server."""
        sock = socket.create_connection(("127.0.0.1", self.port), timeout=5.0)
        peer = Peer(sock)
        self._peers.append(peer)
        return peer

    def stop(self):
        """Stop the server and wait for run() to return."""
        for peer in self._peers:
            peer.close()

        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    @property
    def stopped(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()


@pytest.fixture
def make_server(free_port: int) -> Generator[Callable[..., TestServer], None, None]:
    """Factory: a started chat server on a free port."""
    servers: List[TestServer] = []

    def _make_server(**overrides) -> TestServer:
        config = ServerConfig(
            host="127.0.0.1",
            port=free_port,
            log_level="WARNING",
            **overrides,
        )
        test_srv = TestServer(ChatServer(config))
        test_srv.start()
        servers.append(test_srv)
        return test_srv

    yield _make_server

    for test_srv in servers:
        test_srv.stop()


@pytest.fixture
def test_server(make_server) -> TestServer:
    """A started chat server with default settings."""
    return make_server()
