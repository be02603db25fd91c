"""
Unit tests for the line-oriented connection wrapper.
"""

import logging

import pytest

from chatrelay.core import ConnectionState, LineTooLongError


class TestReadLine:
    """Tests for Connection.read_line()."""

    def test_single_line(self, socket_pair):
        conn, peer = socket_pair()
        peer.send("alice")

        assert conn.read_line() == "alice"
        assert conn.state == ConnectionState.OPEN
        assert conn.lines_read == 1

    def test_several_lines_in_one_packet(self, socket_pair):
        conn, peer = socket_pair()
        peer.sock.sendall(b"alice\nbob\nhola\n")

        assert [conn.read_line() for _ in range(3)] == ["alice", "bob", "hola"]

    def test_line_split_across_packets(self, socket_pair):
        conn, peer = socket_pair(buffer_size=2)
        peer.sock.sendall(b"hola mundo\n")

        assert conn.read_line() == "hola mundo"

    def test_crlf_terminator(self, socket_pair):
        conn, peer = socket_pair()
        peer.sock.sendall(b"alice\r\n")

        assert conn.read_line() == "alice"

    def test_empty_line(self, socket_pair):
        conn, peer = socket_pair()
        peer.sock.sendall(b"\n")

        assert conn.read_line() == ""

    def test_eof_returns_none(self, socket_pair):
        conn, peer = socket_pair()
        peer.finish_sending()

        assert conn.read_line() is None
        assert conn.read_line() is None

    def test_unterminated_tail_at_eof(self, socket_pair):
        conn, peer = socket_pair()
        peer.sock.sendall(b"alice\nchao")
        peer.finish_sending()

        assert conn.read_line() == "alice"
        assert conn.read_line() == "chao"
        assert conn.read_line() is None

    def test_utf8(self, socket_pair):
        conn, peer = socket_pair()
        peer.send("¿qué tal? ñandú")

        assert conn.read_line() == "¿qué tal? ñandú"

    def test_invalid_bytes_replaced(self, socket_pair):
        conn, peer = socket_pair()
        peer.sock.sendall(b"ab\xffcd\n")

        assert conn.read_line() == "ab�cd"

    def test_line_too_long(self, socket_pair):
        conn, peer = socket_pair(buffer_size=8, max_line_length=16)
        peer.sock.sendall(b"x" * 64)

        with pytest.raises(LineTooLongError):
            conn.read_line()

    def test_long_line_within_limit(self, socket_pair):
        conn, peer = socket_pair(buffer_size=8, max_line_length=64)
        peer.sock.sendall(b"x" * 40 + b"\n")

        assert conn.read_line() == "x" * 40

    def test_shutdown_transport_wakes_reader(self, socket_pair, spawn):
        conn, peer = socket_pair()
        results = []

        reader = spawn(lambda: results.append(conn.read_line()))
        conn.shutdown_transport()
        reader.join(timeout=5.0)

        assert not reader.is_alive()
        assert results == [None]


class TestSendLine:
    """Tests for Connection.send_line()."""

    def test_appends_newline(self, socket_pair):
        conn, peer = socket_pair()

        assert conn.send_line("alice: hola")
        assert peer.read_until("\n") == "alice: hola\n"
        assert conn.lines_sent == 1

    def test_embedded_newlines_sent_whole(self, socket_pair):
        conn, peer = socket_pair()

        conn.send_line("\nUsuarios conectados:\nalice\n")

        assert peer.read_until("alice\n\n") == "\nUsuarios conectados:\nalice\n\n"

    def test_after_close_returns_false(self, socket_pair):
        conn, peer = socket_pair()
        conn.close()

        assert not conn.send_line("hola")

    def test_peer_gone_returns_false(self, socket_pair):
        conn, peer = socket_pair()
        peer.close()

        # The first write may still be buffered; keep writing until it fails
        results = [conn.send_line("x" * 1024) for _ in range(256)]

        assert results[-1] is False


class TestClose:
    """Tests for Connection.close()."""

    def test_peer_sees_eof(self, socket_pair):
        conn, peer = socket_pair()
        conn.send_line("bye")
        conn.close()

        assert peer.read_until_closed() == "bye\n"
        assert conn.state == ConnectionState.CLOSED
        assert conn.is_closed

    def test_idempotent(self, socket_pair):
        conn, peer = socket_pair()

        conn.close()
        conn.close()

        assert conn.state == ConnectionState.CLOSED

    def test_context_manager(self, socket_pair):
        conn, peer = socket_pair()

        with conn:
            pass

        assert conn.is_closed

    def test_read_after_close(self, socket_pair):
        conn, peer = socket_pair()
        conn.close()

        assert conn.read_line() is None

    def test_close_logs_peer_address(self, socket_pair, caplog):
        conn, peer = socket_pair()

        with caplog.at_level(logging.DEBUG, logger="chatrelay.core.connection"):
            conn.close()

        assert "Connection from 127.0.0.1:0 closed after" in caplog.text
