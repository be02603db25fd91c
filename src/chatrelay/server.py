"""
=============================================================================
CHAT RELAY SERVER
=============================================================================

The orchestrator that ties the networking core and the chat components
together.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CHAT SERVER ARCHITECTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   ChatServer    │                          │
    │                        │ (Orchestrator)  │                          │
    │                        └────────┬────────┘                          │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────────┐    │
    │    │SocketServer  │    │  ThreadPool  │    │ConnectionRegistry│    │
    │    │ (accept)     │    │ (workers)    │    │  + Broadcaster   │    │
    │    └──────┬───────┘    └──────┬───────┘    └──────────────────┘    │
    │           │ on_accept(conn)   │ session.run()                       │
    │           └──────────►  Session  ◄──────┘                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION FLOW
=============================================================================

    1. SocketServer accepts a socket and wraps it in a Connection
    2. on_accept() builds a Session (state CONNECTING) and queues it
    3. A free worker runs Session.run() until the client leaves
    4. Connections beyond max_sessions wait in the queue, never refused

=============================================================================
SHUTDOWN
=============================================================================

    1. Stop accepting (Ctrl+C, SIGTERM, or shutdown())
    2. Shut down the transport of every live session; blocked reads see
       EOF and each session runs its own cleanup
    3. Shut down the thread pool

=============================================================================
"""

import logging
import threading
from typing import Optional, Set

from .config import ServerConfig
from .core import SocketServer, Connection, ThreadPool
from .chat import ConnectionRegistry, Broadcaster, Session


logger = logging.getLogger(__name__)


class ChatServer:
    """
    Text-line chat relay server.

    =========================================================================
    USAGE
    =========================================================================

        server = ChatServer(ServerConfig(port=5000))
        server.run()   # blocks until Ctrl+C / SIGTERM / server.shutdown()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Initialize the chat server.

        Args:
            config: Server configuration. Must carry a port.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(workers=self.config.max_sessions)

        # ─────────────────────────────────────────────────────────────────
        # CHAT COMPONENTS
        # ─────────────────────────────────────────────────────────────────

        self.registry = ConnectionRegistry()
        self.broadcaster = Broadcaster(self.registry)

        # ─────────────────────────────────────────────────────────────────
        # RUNTIME STATE
        # ─────────────────────────────────────────────────────────────────

        # Every session from accept until its worker finishes with it,
        # registered or not, running or still queued
        self._sessions: Set[Session] = set()
        self._sessions_lock = threading.Lock()

        self._running = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def address(self):
        """Address the listener is bound to."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start the server (blocking).

        Args:
            host: Override config host.
            port: Override config port.

        Raises:
            OSError: If the address cannot be resolved or bound.
        """
        if host:
            self.config.host = host
        if port:
            self.config.port = port

        self._setup_logging()
        self._thread_pool.start()
        self._running = True

        logger.info(f"Starting chat server on {self.config.host}:{self.config.port}")

        try:
            self._socket_server.start(self.on_accept, on_ready=self._print_startup_banner)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener accepts connections."""
        return self._socket_server.wait_until_ready(timeout)

    def shutdown(self):
        """Ask a running server to stop; run() returns once cleanup is done."""
        self._socket_server.shutdown()

    def _print_startup_banner(self):
        """Print where the server is listening."""
        host, port = self.address
        print()
        print(f"Servidor iniciado y escuchando en {host}:{port}")
        print(f"Sesiones concurrentes: {self.config.max_sessions}. Ctrl+C para detener.")
        print()

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("chatrelay").setLevel(level)

    def _shutdown(self):
        """Graceful shutdown: end every session, then stop the workers."""
        logger.info("Shutting down server...")
        self._running = False

        for session in self.sessions():
            session.shutdown()

        self._thread_pool.shutdown(wait=True, timeout=5.0)

        logger.info("Server stopped")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def on_accept(self, conn: Connection):
        """
        Build a Session for a new connection and queue it on the pool.

        Called by SocketServer on the accept thread for every client.

        Args:
            conn: The freshly accepted connection.
        """
        session = Session(
            conn,
            self.registry,
            self.broadcaster,
            exit_keyword=self.config.exit_keyword,
            min_name_length=self.config.min_name_length,
        )

        if self._thread_pool.queue_size or not self._thread_pool.idle_workers:
            logger.debug(f"[{conn.id}] All workers busy, connection queued")

        with self._sessions_lock:
            self._sessions.add(session)

        try:
            self._thread_pool.submit(self._run_session, args=(session,))
        except RuntimeError:
            # Pool already stopping; the accept loop closes the socket
            with self._sessions_lock:
                self._sessions.discard(session)
            raise

    def _run_session(self, session: Session):
        """Worker-side wrapper: run the session, then forget it."""
        try:
            session.run()
        finally:
            with self._sessions_lock:
                self._sessions.discard(session)

    # =========================================================================
    # MONITORING
    # =========================================================================

    def sessions(self) -> list:
        """Snapshot of sessions accepted and not yet finished."""
        with self._sessions_lock:
            return list(self._sessions)

    @property
    def stats(self) -> dict:
        return {
            "users": self.registry.snapshot_names(),
            "sessions": len(self.sessions()),
            "broadcasts": self.broadcaster.broadcasts_sent,
            "pool": self._thread_pool.stats,
        }


def create_app(config: Optional[ServerConfig] = None) -> ChatServer:
    """
    Create a chat server instance.

    Example:
        app = create_app(ServerConfig(port=5000))
        app.run()
    """
    return ChatServer(config)
