"""
Roster broadcasting.

After every registration and every session close, each registered session
receives the list of connected users:

    \\nUsuarios conectados:\\nalice\\nbob\\n

Two broadcasts triggered at the same moment may reach a session in either
order, but the last one to run reflects the registry after both events, so
every session ends up holding the current roster once activity settles.
"""

import logging
import threading

from .protocol import format_roster
from .registry import ConnectionRegistry


logger = logging.getLogger(__name__)


class Broadcaster:
    """Pushes the roster notice to every session in a registry."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        self._count_lock = threading.Lock()
        self.broadcasts_sent = 0

    def broadcast_roster(self) -> int:
        """
        Snapshot the registry, format the roster and deliver it to everyone
        registered at the time of the snapshot.

        A failed delivery to one session does not stop the others.

        Returns:
            Number of sessions the notice was written to.
        """
        entries = self.registry.snapshot()
        names = [entry.name for entry in entries]
        notice = format_roster(names)

        delivered = 0
        for entry in entries:
            if entry.session.deliver(notice):
                delivered += 1

        with self._count_lock:
            self.broadcasts_sent += 1

        logger.debug(f"Roster of {len(names)} users delivered to {delivered} sessions")
        return delivered
