"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one client socket with the line-oriented API the chat
protocol needs: read one line, write one line, close.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client typing two lines:

    send("alice\\n")
    send("bob\\n")

may arrive at the server as any of:

    recv() → "alice\\nbob\\n"     (both combined)
    recv() → "ali"               (partial)
    recv() → "ce\\nbob\\n"        (rest of first + second)

So we keep a byte buffer and only hand out text once a "\\n" delimiter
is in it. Whatever follows the delimiter stays buffered for the next call.

=============================================================================
LINE FORMAT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────┐
    │  alice\\n            ← plain netcat / our client                 │
    │  alice\\r\\n          ← telnet; the "\\r" is dropped too           │
    │  alice<EOF>         ← last line without terminator still counts │
    └─────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► OPEN ──────► CLOSING ──────► CLOSED
     │                          ▲
     └──────────────────────────┘

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """
    Connection lifecycle states.
    """
    NEW = "new"          # Just accepted, nothing read yet
    OPEN = "open"        # At least one read or write happened
    CLOSING = "closing"  # close() in progress
    CLOSED = "closed"    # Socket released


class LineTooLongError(ValueError):
    """Raised when a client sends more than max_line_length bytes without a newline."""


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BUFFERED LINE READING                                            │
    │     └── _buffer holds partial data between recv() calls              │
    │     └── read_line() returns one decoded line or None at EOF          │
    │                                                                      │
    │  2. LINE WRITING                                                     │
    │     └── send_line() appends "\\n" and uses sendall()                 │
    │     └── Callers serialize concurrent writers (Session.deliver)       │
    │                                                                      │
    │  3. STATE TRACKING                                                   │
    │     └── Lines in/out counters for logs                               │
    │                                                                      │
    │  4. CLOSE                                                            │
    │     └── Idempotent; safe from any thread                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
        last_activity: Timestamp of last read or write.
        lines_read: Lines received from the client.
        lines_sent: Lines written to the client.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    lines_read: int = 0
    lines_sent: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = 4096
    max_line_length: int = 64 * 1024
    encoding: str = "utf-8"

    # Internal state (not shown in repr for cleaner logs)
    _buffer: bytes = field(default=b"", repr=False)
    _eof: bool = field(default=False, repr=False)

    def __post_init__(self):
        """
        Sessions have no idle timeout: reads block until the client
        sends a line, closes, or the server shuts the transport down.
        """
        self.socket.setblocking(True)
        self.socket.settimeout(None)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0]

    @property
    def client_port(self) -> int:
        """Get the client port."""
        return self.address[1]

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    # =========================================================================
    # READING
    # =========================================================================

    def read_line(self) -> Optional[str]:
        """
        Read one line from the socket.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    read_line() Flow                              │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while no "\\n" in buffer:                                      │
        │       recv() → buffer                                            │
        │       empty recv → EOF: hand out leftover bytes (if any), or None│
        │       buffer > max_line_length → LineTooLongError                │
        │                                                                  │
        │   split at first "\\n", keep the rest buffered                   │
        │   strip trailing "\\r", decode                                   │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            The line without its terminator, or None once the client has
            closed the stream and nothing is left in the buffer.

        Raises:
            LineTooLongError: If a line exceeds max_line_length bytes.
            OSError: On transport errors other than a reset.
        """
        if self.state == ConnectionState.NEW:
            self.state = ConnectionState.OPEN

        while b"\n" not in self._buffer:
            if self._eof:
                return self._take_leftover()

            chunk = self._recv()
            if not chunk:
                self._eof = True
                return self._take_leftover()

            self._buffer += chunk

            if len(self._buffer) > self.max_line_length and b"\n" not in self._buffer:
                raise LineTooLongError(
                    f"Line too long: more than {self.max_line_length} bytes"
                )

        raw, self._buffer = self._buffer.split(b"\n", 1)
        return self._decode(raw)

    def _take_leftover(self) -> Optional[str]:
        """Return the unterminated tail at EOF, once."""
        if not self._buffer:
            return None
        raw, self._buffer = self._buffer, b""
        return self._decode(raw)

    def _decode(self, raw: bytes) -> str:
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        self.lines_read += 1
        self.last_activity = time.time()
        return raw.decode(self.encoding, errors="replace")

    def _recv(self) -> bytes:
        """
        Receive data from socket with error handling.

        Returns:
            Received bytes, or empty bytes if the connection was reset or
            has already been closed locally.
        """
        if self.is_closed:
            return b""
        try:
            data = self.socket.recv(self.buffer_size)
            self.last_activity = time.time()
            return data
        except (ConnectionResetError, BrokenPipeError, ConnectionAbortedError):
            # Client disconnected abruptly
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_line(self, text: str) -> bool:
        """
        Send one line of text to the client, terminated by "\\n".

        Text containing embedded newlines (the roster notice) goes out
        in a single sendall() call.

        Args:
            text: Line content without the terminator.

        Returns:
            True if send succeeded, False if the connection is gone.
        """
        if self.is_closed:
            return False

        if self.state == ConnectionState.NEW:
            self.state = ConnectionState.OPEN

        try:
            self.socket.sendall((text + "\n").encode(self.encoding))
            self.lines_sent += 1
            self.last_activity = time.time()
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def shutdown_transport(self):
        """
        Shut the socket down in both directions without releasing it.

        A thread blocked in read_line() on this connection wakes up and
        sees EOF. Used by the server to end sessions on shutdown.
        """
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already disconnected

    def close(self):
        """
        Close the connection.

        1. shutdown(SHUT_WR): send FIN so the client sees end-of-stream
        2. close(): release the file descriptor

        Safe to call more than once.
        """
        if self.is_closed:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected, that's fine

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection from {self.client_ip}:{self.client_port} closed "
            f"after {self.age:.1f}s, {self.lines_read} lines in, {self.lines_sent} lines out"
        )

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - ensure connection is closed."""
        self.close()
        return False  # Don't suppress exceptions
