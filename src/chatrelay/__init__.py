"""
=============================================================================
CHATRELAY - Private-Message Chat Relay Over Plain TCP
=============================================================================

Clients connect, pick a unique display name, pick a partner, and every
line they type is relayed to that partner as "<name>: <line>". Every
client sees the list of connected users whenever someone joins or leaves.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    chatrelay/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # Server CLI (python -m chatrelay)
    ├── server.py            # ChatServer orchestrator
    ├── config.py            # ServerConfig dataclass
    ├── client.py            # Interactive terminal client
    ├── core/                # Networking plumbing
    │   ├── socket_server.py # Listening socket, accept loop, signals
    │   ├── connection.py    # Line-oriented socket wrapper
    │   └── thread_pool.py   # Fixed-size worker pool
    └── chat/                # Chat logic
        ├── session.py       # Per-connection state machine
        ├── registry.py      # Shared name → session directory
        ├── broadcaster.py   # Roster fan-out
        └── protocol.py      # Name rules and wire texts

=============================================================================
QUICK START
=============================================================================

    # terminal 1
    python -m chatrelay --port 5000

    # terminals 2 and 3
    chatrelay-client --host localhost --port 5000

    # or embedded
    from chatrelay import ChatServer, ServerConfig
    ChatServer(ServerConfig(port=5000)).run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import ChatServer
from .config import ServerConfig

__all__ = ["ChatServer", "ServerConfig", "__version__"]
