"""
=============================================================================
INTERACTIVE CHAT CLIENT
=============================================================================

A terminal client for the relay. Two threads share one socket:

    ┌──────────────┐   lines typed    ┌──────────────┐
    │    stdin     │ ───────────────► │              │
    │ (main thread)│                  │    server    │
    │    stdout    │ ◄─────────────── │              │
    │  (listener)  │   lines relayed  └──────────────┘
    └──────────────┘

The client knows nothing about the chat protocol beyond two prompts and
the exit keyword: the server drives the conversation, the client only
moves lines.

    chatrelay-client --host localhost --port 5000

=============================================================================
"""

import argparse
import logging
import socket
import sys
import threading
from typing import Callable, Optional, Sequence, TextIO, Tuple

from . import __version__
from .config import DEFAULT_EXIT_KEYWORD, parse_port
from .chat.protocol import is_exit_keyword


logger = logging.getLogger(__name__)


NAME_PROMPT = "\nIngrese su nombre de usuario: "
PARTNER_PROMPT = "\nIngrese el nombre del usuario con el que desea chatear:"


class ChatClient:
    """
    Line relay between a terminal and the chat server.

    Example:
        client = ChatClient("localhost", 5000)
        client.run()  # returns after "chao" or end of input
    """

    def __init__(
        self,
        host: str,
        port: int,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        encoding: str = "utf-8",
        exit_keyword: str = DEFAULT_EXIT_KEYWORD,
    ):
        self.host = host
        self.port = port
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.encoding = encoding
        self.exit_keyword = exit_keyword

        self._socket: Optional[socket.socket] = None
        self._listener: Optional[threading.Thread] = None
        self._output_lock = threading.Lock()
        self._closed = threading.Event()

    # =========================================================================
    # CONNECTION
    # =========================================================================

    def connect(self, timeout: Optional[float] = None):
        """
        Open the TCP connection.

        Raises:
            OSError: If the host cannot be resolved or reached.
        """
        self._socket = socket.create_connection((self.host, self.port), timeout=timeout)
        self._socket.settimeout(None)
        logger.debug(f"Connected to {self.host}:{self.port}")

    def start_listener(self):
        """Print every line the server sends, on a daemon thread."""
        self._listener = threading.Thread(
            target=self._listen,
            name="chat-listener",
            daemon=True,
        )
        self._listener.start()

    def _listen(self):
        reader = self._socket.makefile("r", encoding=self.encoding, errors="replace", newline="\n")
        try:
            for line in reader:
                self._write(line.rstrip("\r\n"))
        except (OSError, ValueError):
            # Socket closed under us by close()
            pass
        finally:
            reader.close()

        if not self._closed.is_set():
            self._write("\nConexión cerrada por el servidor.")

    def send_line(self, text: str):
        """Send one line to the server."""
        self._socket.sendall((text + "\n").encode(self.encoding))

    def close(self):
        """Close the socket; the listener stops on its own."""
        if self._closed.is_set():
            return
        self._closed.set()

        if self._socket is None:
            return
        try:
            self._socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone
        self._socket.close()

        if self._listener is not None:
            self._listener.join(timeout=1.0)

    # =========================================================================
    # MAIN LOOP
    # =========================================================================

    def run(self):
        """
        Connect, then send stdin to the server line by line.

        Returns after the exit keyword has been sent, at end of input, or
        when the server goes away.

        Raises:
            OSError: If the connection cannot be opened.
        """
        if self._socket is None:
            self.connect()

        self._write(f"Conectado al servidor en {self.host}:{self.port}.")
        self._write(f"Para salir, escriba <{self.exit_keyword}> en cualquier momento.")
        self.start_listener()

        lines_sent = 0
        try:
            self._write(NAME_PROMPT)
            for raw in self.stdin:
                line = raw.rstrip("\r\n")
                try:
                    self.send_line(line)
                except OSError as e:
                    logger.debug(f"Send failed: {e}")
                    break
                lines_sent += 1

                if is_exit_keyword(line, self.exit_keyword):
                    break
                if lines_sent == 1:
                    self._write(PARTNER_PROMPT)
        finally:
            self.close()

    def _write(self, text: str):
        with self._output_lock:
            self.stdout.write(text + "\n")
            self.stdout.flush()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def prompt_address(input_func: Optional[Callable[[str], str]] = None) -> Tuple[str, int]:
    """
    Ask for the server address on the console.

    Raises:
        ValueError: If the port is not an integer.
    """
    ask = input_func or input
    host = ask("Ingrese la IP del servidor: ").strip() or "localhost"
    port = parse_port(ask("Ingrese el puerto del servidor: "))
    return host, port


def main(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(
        prog="chatrelay-client",
        description="Terminal client for the chat relay",
    )
    parser.add_argument("--host", "-H", default=None, help="Server address")
    parser.add_argument("--port", "-p", type=int, default=None, help="Server port")
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"chatrelay {__version__}"
    )
    args = parser.parse_args(argv)

    try:
        if args.port is None:
            host, port = prompt_address()
            host = args.host or host
        else:
            host, port = args.host or "localhost", args.port
    except (ValueError, EOFError) as e:
        print(f"Error: {e or 'no input'}", file=sys.stderr)
        sys.exit(1)

    client = ChatClient(host, port)
    try:
        client.connect()
    except socket.gaierror:
        print(f"No se puede encontrar el host: {host}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"No se pudo conectar con {host}:{port}: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        client.run()
    except KeyboardInterrupt:
        client.close()


if __name__ == "__main__":
    main()
