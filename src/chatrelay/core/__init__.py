"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the chat logic.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Creates, binds and listens on the TCP socket                     │
    │  • Runs the accept() loop                                           │
    │  • Stops on SIGTERM / SIGINT                                        │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Hands off new connections
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                 │
    │  • Fixed number of worker threads (max concurrent sessions)         │
    │  • Unbounded FIFO queue for connections waiting for a worker        │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Worker runs one session
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Wraps a client socket                                            │
    │  • Buffered line reading (TCP is a stream, not messages!)           │
    │  • Line writing, close                                              │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, LineTooLongError
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",      # Main TCP server - accepts connections
    "Connection",        # Wrapper for client socket - handles I/O
    "ConnectionState",   # Enum for connection lifecycle states
    "LineTooLongError",  # Client sent an oversize line
    "ThreadPool",        # Manages worker threads for concurrency
]
