"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the chat relay server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m chatrelay --port 5000                           │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── CHAT_PORT=5000 python -m chatrelay                        │
    │                                                                      │
    │   3. Console prompt (only host and port, only when no port yet)     │
    │      └── Ingrese el puerto del servidor: 5000                      │
    │                                                                      │
    │   4. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The port has no default: a chat relay bound to a port nobody chose is
never what the operator wanted, so validate() refuses to start without one.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


DEFAULT_HOST = "localhost"
DEFAULT_MAX_SESSIONS = 10
DEFAULT_BACKLOG = 50
DEFAULT_EXIT_KEYWORD = "chao"
DEFAULT_MIN_NAME_LENGTH = 3


@dataclass
class ServerConfig:
    """
    Configuration for the chat relay server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, max_line_length, encoding

    SESSION SETTINGS
    - max_sessions, exit_keyword, min_name_length

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = DEFAULT_HOST
    """
    The address to bind to.
    - "localhost" - local clients only
    - "0.0.0.0" - every interface
    """

    port: Optional[int] = None
    """
    The port to listen on. Required; there is no sensible default.
    """

    backlog: int = DEFAULT_BACKLOG
    """
    Connections the OS may queue before accept() picks them up.
    """

    buffer_size: int = 4096
    """
    Bytes requested per recv() call.
    """

    max_line_length: int = 64 * 1024
    """
    Longest line (in bytes) a client may send. A client that exceeds it
    has its session terminated.
    """

    encoding: str = "utf-8"
    """
    Text encoding used on the wire in both directions.
    """

    # ─────────────────────────────────────────────────────────────────────
    # SESSION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    max_sessions: int = DEFAULT_MAX_SESSIONS
    """
    Worker threads, i.e. sessions served at the same time.
    Connections beyond this wait in the pool queue until a slot frees.
    """

    exit_keyword: str = DEFAULT_EXIT_KEYWORD
    """
    Line that ends a session (compared case-insensitively).
    Never accepted as a display name.
    """

    min_name_length: int = DEFAULT_MIN_NAME_LENGTH
    """
    Shortest display name accepted at registration.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        CHAT_HOST          Bind address (default: localhost)
        CHAT_PORT          Bind port (no default)
        CHAT_MAX_SESSIONS  Concurrent sessions (default: 10)
        CHAT_BACKLOG       Listen backlog (default: 50)
        CHAT_LOG_LEVEL     Logging level (default: INFO)

        =====================================================================

        Raises:
            ValueError: If a numeric variable is not an integer.
        """
        port = os.getenv("CHAT_PORT")
        return cls(
            host=os.getenv("CHAT_HOST", DEFAULT_HOST),
            port=parse_port(port) if port else None,
            max_sessions=int(os.getenv("CHAT_MAX_SESSIONS", str(DEFAULT_MAX_SESSIONS))),
            backlog=int(os.getenv("CHAT_BACKLOG", str(DEFAULT_BACKLOG))),
            log_level=os.getenv("CHAT_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup so that a bad value stops the process
        before the listener is created.

        Raises:
            ValueError: On the first invalid value found.
        """
        if self.port is None:
            raise ValueError("A port is required.")

        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        if not self.host:
            raise ValueError("host must not be empty")

        if self.max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.max_line_length < self.buffer_size:
            raise ValueError("max_line_length must be >= buffer_size")

        if not self.exit_keyword or not self.exit_keyword.strip():
            raise ValueError("exit_keyword must not be blank")

        if self.min_name_length < 1:
            raise ValueError("min_name_length must be >= 1")


def parse_port(value: str) -> int:
    """
    Parse a port number typed by a human or read from the environment.

    Raises:
        ValueError: If the value is not an integer.
    """
    try:
        return int(value.strip())
    except ValueError:
        raise ValueError(
            f"Invalid port {value!r}. Please enter a whole number."
        ) from None
