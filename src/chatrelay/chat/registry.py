"""
=============================================================================
CONNECTION REGISTRY
=============================================================================

Process-wide directory of reachable users: display name → live session.
It is the only structure every worker thread mutates.

=============================================================================
ATOMIC CHECK-AND-SET
=============================================================================

Registration must not be "is the name free?" followed by "insert it":

    Thread A                         Thread B
    ────────                         ────────
    "Alice" free?  → yes
                                     "alice" free?  → yes
    insert "Alice"
                                     insert "alice"     ← two Alices!

Both steps happen under one lock in try_register(), so exactly one of any
number of concurrent attempts for the same name (in any letter case) wins.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                   _entries (insertion ordered)                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │   "alice"  ──►  RegistryEntry("Alice", session)                      │
    │   "bob"    ──►  RegistryEntry("bob", session)                        │
    └─────────────────────────────────────────────────────────────────────┘
        ▲ key: casefolded name      display name as typed

Readers never iterate the dict itself; they get list copies taken under
the lock (snapshot, snapshot_names), in registration order.

=============================================================================
"""

import threading
import logging
from typing import TYPE_CHECKING, Dict, List, NamedTuple, Optional

if TYPE_CHECKING:
    from .session import Session


logger = logging.getLogger(__name__)


class RegistryEntry(NamedTuple):
    name: str
    session: "Session"


class ConnectionRegistry:
    """
    Thread-safe mapping of case-insensitive display names to sessions.

    Usage:
        registry = ConnectionRegistry()

        if registry.try_register("alice", session):
            ...
        registry.lookup("ALICE")     # → session
        registry.snapshot_names()    # → ["alice"]
        registry.unregister("alice", session)
    """

    def __init__(self):
        self._entries: Dict[str, RegistryEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(name: str) -> str:
        return name.casefold()

    def try_register(self, name: str, session: "Session") -> bool:
        """
        Insert name → session iff no case-insensitive match exists.

        Args:
            name: Requested display name.
            session: The session claiming it.

        Returns:
            True if inserted, False (registry unchanged) if the name is taken.
        """
        key = self._key(name)
        with self._lock:
            if key in self._entries:
                return False
            self._entries[key] = RegistryEntry(name, session)
        logger.debug(f"Registered {name!r}")
        return True

    def unregister(self, name: str, session: Optional["Session"] = None) -> bool:
        """
        Remove the entry for name, if present.

        When `session` is given the entry is only removed if it still
        belongs to that session.

        Returns:
            True if an entry was removed.
        """
        key = self._key(name)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if session is not None and entry.session is not session:
                return False
            del self._entries[key]
        logger.debug(f"Unregistered {name!r}")
        return True

    def lookup(self, name: str) -> Optional["Session"]:
        """Case-insensitive point lookup."""
        entry = self.lookup_entry(name)
        return entry.session if entry else None

    def lookup_entry(self, name: str) -> Optional[RegistryEntry]:
        """Like lookup(), but also returns the name as it was registered."""
        with self._lock:
            return self._entries.get(self._key(name))

    def snapshot_names(self) -> List[str]:
        """Display names registered right now, in registration order."""
        with self._lock:
            return [entry.name for entry in self._entries.values()]

    def snapshot(self) -> List[RegistryEntry]:
        """
        Names and sessions registered right now, in registration order.

        Taken under one lock, so the names always describe exactly the
        sessions returned with them.
        """
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return self._key(name) in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
