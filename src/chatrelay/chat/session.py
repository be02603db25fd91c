"""
=============================================================================
CHAT SESSION
=============================================================================

One Session per accepted connection. It runs on a pool worker from the
first line the client sends until the client leaves, and it is the only
code that ever reads from or writes to its connection.

=============================================================================
STATE MACHINE
=============================================================================

    CONNECTING ──► REGISTERING ──► IDLE ◄─────────► CHATTING
                        │           │   partner lost    │
                        │           │                   │
                        └───────────┴─────────┬─────────┘
                                              ▼
                                           CLOSED

    REGISTERING   each line is a requested display name
                  blank / too short / taken  → rejection, read again
                  exit keyword               → "reserved" rejection, CLOSED
                  accepted                   → IDLE + roster broadcast

    IDLE          each line is a requested partner
                  own name      → self-chat rejection
                  not online    → not-found rejection
                  online        → CHATTING, confirmation

    CHATTING      each line is a message for the partner
                  partner online → "<name>: <line>" delivered to partner
                  partner gone   → unavailable notice, back to IDLE

    any state     EOF, transport error, exit keyword → CLOSED

=============================================================================
ONE-WAY PARTNERS
=============================================================================

Selecting a partner only sets where THIS session's messages go. If alice
picks bob, bob reads "alice: ..." lines, but whatever bob types goes to
whoever bob picked, which need not be alice.

The partner is kept by name and resolved in the registry on every send,
so a partner that left is noticed on the next message.

=============================================================================
CONCURRENT WRITES
=============================================================================

    ┌──────────┐   deliver("alice: hi")
    │  alice   │ ───────────────────────┐
    └──────────┘                        ▼
    ┌──────────┐   deliver("carol: yo") ┌──────────────────────────┐
    │  carol   │ ──────────────────────►│ bob._write_lock          │──► bob's socket
    └──────────┘                        │ one whole line at a time │
    ┌──────────┐   deliver(roster)      └──────────────────────────┘
    │broadcast │ ───────────────────────▲
    └──────────┘

Any thread may call deliver() on any session. The per-session lock keeps
each line whole on the wire.

=============================================================================
"""

import logging
import threading
from enum import Enum
from typing import Optional

from ..core.connection import Connection, LineTooLongError
from .broadcaster import Broadcaster
from .protocol import (
    CHAT_STARTED,
    EXIT_KEYWORD,
    MIN_NAME_LENGTH,
    PARTNER_NOT_FOUND,
    PARTNER_UNAVAILABLE,
    SELF_CHAT,
    NameRejection,
    check_name,
    format_message,
    is_exit_keyword,
    names_match,
)
from .registry import ConnectionRegistry


logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Session lifecycle states."""
    CONNECTING = "connecting"    # Accepted, waiting for a worker
    REGISTERING = "registering"  # Reading the display name
    IDLE = "idle"                # Registered, no partner selected
    CHATTING = "chatting"        # Forwarding lines to the partner
    CLOSED = "closed"            # Cleaned up, connection released


class Session:
    """
    Server-side state machine and resources for one connected client.

    Usage (what ChatServer does for every accepted connection):

        session = Session(conn, registry, broadcaster)
        pool.submit(session.run)

    Attributes:
        state: Current SessionState.
        partner: Name of the user this session forwards to, or None.
    """

    def __init__(
        self,
        connection: Connection,
        registry: ConnectionRegistry,
        broadcaster: Broadcaster,
        exit_keyword: str = EXIT_KEYWORD,
        min_name_length: int = MIN_NAME_LENGTH,
    ):
        self._connection = connection
        self.registry = registry
        self.broadcaster = broadcaster
        self.exit_keyword = exit_keyword
        self.min_name_length = min_name_length

        self.state = SessionState.CONNECTING
        self.partner: Optional[str] = None
        self._name: Optional[str] = None

        self._write_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False

    def __repr__(self) -> str:
        return f"Session(id={self.id!r}, name={self._name!r}, state={self.state.value})"

    @property
    def id(self) -> str:
        return self._connection.id

    @property
    def name(self) -> Optional[str]:
        """Display name, None until registration succeeds."""
        return self._name

    @property
    def is_closed(self) -> bool:
        return self._closed

    # =========================================================================
    # ENTRY POINT
    # =========================================================================

    def run(self):
        """
        Drive the session until the client leaves.

        Every way out (exit keyword, EOF, transport error, bug) ends in
        close(), which runs once.
        """
        try:
            if self._register():
                self._chat_loop()
        except LineTooLongError as e:
            logger.warning(f"[{self.id}] {e}, dropping client")
        except OSError as e:
            logger.warning(f"[{self.id}] Transport error: {e}")
        except Exception as e:
            logger.exception(f"[{self.id}] Session error: {e}")
        finally:
            self.close()

    # =========================================================================
    # REGISTERING
    # =========================================================================

    def _register(self) -> bool:
        """
        Read names until one is accepted.

        Returns:
            True once registered, False if the client left first.
        """
        self.state = SessionState.REGISTERING

        while True:
            line = self._connection.read_line()
            if line is None:
                return False

            rejection = check_name(line, self.exit_keyword, self.min_name_length)
            if rejection is None and not self.registry.try_register(line, self):
                rejection = NameRejection.TAKEN

            if rejection is None:
                break

            logger.debug(f"[{self.id}] Name {line!r} rejected: {rejection.name}")
            self.deliver(rejection.render(self.exit_keyword, self.min_name_length))

            if rejection is NameRejection.RESERVED:
                return False

        self._name = line
        self.state = SessionState.IDLE
        logger.info(f"User {line} connected")

        self.broadcaster.broadcast_roster()
        return True

    # =========================================================================
    # IDLE / CHATTING
    # =========================================================================

    def _chat_loop(self):
        """Read one line per iteration until EOF or the exit keyword."""
        while True:
            line = self._connection.read_line()
            if line is None or is_exit_keyword(line, self.exit_keyword):
                return

            if self.state is SessionState.IDLE:
                self._select_partner(line)
            else:
                self._forward(line)

    def _select_partner(self, requested: str):
        if names_match(requested, self._name):
            self.deliver(SELF_CHAT)
            return

        entry = self.registry.lookup_entry(requested)
        if entry is None:
            self.deliver(PARTNER_NOT_FOUND.format(name=requested))
            return

        self.partner = entry.name
        self.state = SessionState.CHATTING
        logger.debug(f"[{self.id}] {self._name} now writes to {entry.name}")
        self.deliver(CHAT_STARTED.format(name=entry.name))

    def _forward(self, text: str):
        target = self.registry.lookup(self.partner)

        if target is None:
            # Partner left after being selected
            gone, self.partner = self.partner, None
            self.state = SessionState.IDLE
            self.deliver(PARTNER_UNAVAILABLE.format(name=gone))
            return

        logger.debug(f"[{self.id}] Forwarding {len(text)} chars from {self._name} to {self.partner}")
        if not target.deliver(format_message(self._name, text)):
            logger.debug(f"[{self.id}] Message to {self.partner} not delivered")

    # =========================================================================
    # DELIVERY
    # =========================================================================

    def deliver(self, text: str) -> bool:
        """
        Write one line to this session's client.

        The only method other sessions and the broadcaster call. Concurrent
        callers are serialized so lines never interleave.

        Returns:
            False if the client is gone or the write failed.
        """
        with self._write_lock:
            return self._connection.send_line(text)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Leave the registry, tell everyone else, release the connection.

        Runs its body once; later calls return immediately.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        self.state = SessionState.CLOSED

        if self._name is not None:
            self.registry.unregister(self._name, self)
            logger.info(f"User {self._name} disconnected")

        self.broadcaster.broadcast_roster()

        with self._write_lock:
            self._connection.close()

    def shutdown(self):
        """
        Wake a session blocked in a read so it runs its own cleanup.

        Called by the server when it stops; safe from any thread.
        """
        self._connection.shutdown_transport()
