"""
Unit tests for roster broadcasting.
"""

from chatrelay.chat import Broadcaster, ConnectionRegistry


class RecordingSession:
    """Stands in for a Session; records every line delivered."""

    def __init__(self, reachable: bool = True):
        self.reachable = reachable
        self.lines = []

    def deliver(self, text: str) -> bool:
        self.lines.append(text)
        return self.reachable


class TestBroadcaster:
    """Tests for Broadcaster."""

    def test_everyone_gets_roster(self):
        registry = ConnectionRegistry()
        alice, bob = RecordingSession(), RecordingSession()
        registry.try_register("alice", alice)
        registry.try_register("bob", bob)

        delivered = Broadcaster(registry).broadcast_roster()

        expected = "\nUsuarios conectados:\nalice\nbob\n"
        assert delivered == 2
        assert alice.lines == [expected]
        assert bob.lines == [expected]

    def test_empty_registry(self):
        broadcaster = Broadcaster(ConnectionRegistry())

        assert broadcaster.broadcast_roster() == 0
        assert broadcaster.broadcasts_sent == 1

    def test_failed_delivery_does_not_stop_others(self):
        registry = ConnectionRegistry()
        gone, alive = RecordingSession(reachable=False), RecordingSession()
        registry.try_register("gone", gone)
        registry.try_register("alive", alive)

        delivered = Broadcaster(registry).broadcast_roster()

        assert delivered == 1
        assert len(gone.lines) == 1
        assert len(alive.lines) == 1

    def test_roster_reflects_current_registry(self):
        registry = ConnectionRegistry()
        broadcaster = Broadcaster(registry)
        alice, bob = RecordingSession(), RecordingSession()

        registry.try_register("alice", alice)
        broadcaster.broadcast_roster()
        registry.try_register("bob", bob)
        broadcaster.broadcast_roster()
        registry.unregister("alice", alice)
        broadcaster.broadcast_roster()

        assert alice.lines == [
            "\nUsuarios conectados:\nalice\n",
            "\nUsuarios conectados:\nalice\nbob\n",
        ]
        assert bob.lines == [
            "\nUsuarios conectados:\nalice\nbob\n",
            "\nUsuarios conectados:\nbob\n",
        ]
        assert broadcaster.broadcasts_sent == 3

    def test_late_registration_gets_no_roster_without_itself(self):
        """A session that registers mid-broadcast is left for its own broadcast."""
        alice, xavier = RecordingSession(), RecordingSession()
        registry = JoiningRegistry("xavier", xavier)
        registry.try_register("alice", alice)
        broadcaster = Broadcaster(registry)

        broadcaster.broadcast_roster()

        assert "xavier" in registry
        assert alice.lines == ["\nUsuarios conectados:\nalice\n"]
        assert xavier.lines == []

        broadcaster.broadcast_roster()

        assert xavier.lines == ["\nUsuarios conectados:\nalice\nxavier\n"]
        assert alice.lines[-1] == xavier.lines[-1]


class JoiningRegistry(ConnectionRegistry):
    """Registers one more session right after the first snapshot is taken."""

    def __init__(self, late_name: str, late_session: RecordingSession):
        super().__init__()
        self._late = (late_name, late_session)

    def snapshot(self):
        entries = super().snapshot()
        if self._late is not None:
            late, self._late = self._late, None
            self.try_register(*late)
        return entries

    def snapshot_names(self):
        names = super().snapshot_names()
        if self._late is not None:
            late, self._late = self._late, None
            self.try_register(*late)
        return names
