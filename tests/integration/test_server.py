"""
End-to-end tests against a running ChatServer over real TCP.
"""

from chatrelay.chat import NameRejection
from chatrelay.chat.protocol import CHAT_STARTED, PARTNER_UNAVAILABLE


def roster(*names: str) -> str:
    return "\nUsuarios conectados:\n" + "\n".join(names) + "\n\n"


def started(name: str) -> str:
    return CHAT_STARTED.format(name=name) + "\n"


class TestChatServer:
    """A full conversation between two users."""

    def test_two_users_chat(self, test_server):
        alice = test_server.connect()
        alice.send("alice")
        assert alice.read_until(roster("alice")) == roster("alice")

        bob = test_server.connect()
        bob.send("bob")
        bob.read_until(roster("alice", "bob"))
        alice.read_until(roster("alice", "bob"))

        alice.send("bob")
        alice.read_until(started("bob"))
        alice.send("hola")
        bob.read_until("alice: hola\n")

        bob.send("alice")
        bob.read_until(started("alice"))
        bob.send("hola alice")
        alice.read_until("bob: hola alice\n")

        alice.send("chao")
        assert alice.read_until_closed() == ""
        bob.read_until(roster("bob"))

        bob.send("¿alice?")
        bob.read_until(PARTNER_UNAVAILABLE.format(name="alice"))

    def test_duplicate_name_across_connections(self, test_server):
        alice = test_server.connect()
        alice.send("alice")
        alice.read_until(roster("alice"))

        impostor = test_server.connect()
        impostor.send("Alice")
        impostor.read_until(NameRejection.TAKEN.render() + "\n")
        impostor.send("alicia")
        impostor.read_until(roster("alice", "alicia"))

        assert test_server.server.registry.snapshot_names() == ["alice", "alicia"]

    def test_name_free_again_after_leaving(self, test_server, wait_for):
        first = test_server.connect()
        first.send("alice")
        first.read_until(roster("alice"))
        first.send("CHAO")
        first.read_until_closed()

        assert wait_for(lambda: len(test_server.server.registry) == 0)

        second = test_server.connect()
        second.send("alice")
        second.read_until(roster("alice"))

    def test_abrupt_disconnect_cleans_up(self, test_server, wait_for):
        alice = test_server.connect()
        alice.send("alice")
        alice.read_until(roster("alice"))

        bob = test_server.connect()
        bob.send("bob")
        bob.read_until(roster("alice", "bob"))

        bob.close()

        alice.read_until(roster("alice"))
        assert wait_for(lambda: "bob" not in test_server.server.registry)


class TestCapacity:
    """Connections beyond max_sessions wait for a free worker."""

    def test_excess_connection_waits(self, make_server):
        test_server = make_server(max_sessions=1)

        alice = test_server.connect()
        alice.send("alice")
        alice.read_until(roster("alice"))

        bob = test_server.connect()
        bob.send("bob")

        # Accepted but not served while alice holds the only worker
        assert bob.is_silent(0.5)
        assert "bob" not in test_server.server.registry

        alice.send("chao")
        alice.read_until_closed()

        bob.read_until(roster("bob"))


class TestShutdown:
    """Server shutdown with clients still connected."""

    def test_shutdown_disconnects_clients(self, test_server):
        alice = test_server.connect()
        alice.send("alice")
        alice.read_until(roster("alice"))

        test_server.server.shutdown()

        alice.read_until_closed(timeout=10.0)
        test_server._thread.join(timeout=10.0)

        assert test_server.stopped
        assert len(test_server.server.registry) == 0
        assert test_server.server.sessions() == []
