"""
=============================================================================
CHAT SERVER CLI ENTRY POINT
=============================================================================

    # Everything from flags
    python -m chatrelay --host 0.0.0.0 --port 5000

    # Port from the environment
    CHAT_PORT=5000 python -m chatrelay

    # Nothing given: asks on the console
    python -m chatrelay
    Ingrese la IP del servidor (deje en blanco para localhost):
    Ingrese el puerto del servidor: 5000

    # More concurrent sessions, verbose logs
    python -m chatrelay -p 5000 --max-sessions 50 --log-level DEBUG

Precedence: flags, then CHAT_* environment variables, then the prompt,
then ServerConfig defaults. A bad port or unbindable address ends the
process with exit status 1.

=============================================================================
"""

import argparse
import sys
from typing import Callable, Optional, Sequence, Tuple

from . import __version__
from .config import ServerConfig, parse_port
from .server import ChatServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatrelay",
        description="Private-message chat relay over TCP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m chatrelay --port 5000                 # localhost:5000
  python -m chatrelay --host 0.0.0.0 --port 5000  # every interface
  python -m chatrelay -p 5000 --max-sessions 50   # 50 concurrent users
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind to (default: localhost)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (asked on the console if missing)"
    )

    parser.add_argument(
        "--backlog", "-b",
        type=int,
        default=None,
        help="Listen backlog (default: 50)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # SESSION ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-sessions", "-m",
        type=int,
        default=None,
        help="Users served at the same time; others wait (default: 10)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"chatrelay {__version__}"
    )

    return parser


def prompt_address(
    default_host: str,
    input_func: Optional[Callable[[str], str]] = None,
) -> Tuple[str, int]:
    """
    Ask for host and port on the console.

    A blank host keeps `default_host`.

    Raises:
        ValueError: If the port is not an integer.
    """
    ask = input_func or input
    host = ask("Ingrese la IP del servidor (deje en blanco para localhost): ").strip()
    port = parse_port(ask("Ingrese el puerto del servidor: "))
    return host or default_host, port


def load_config(
    args: argparse.Namespace,
    input_func: Optional[Callable[[str], str]] = None,
) -> ServerConfig:
    """
    Merge flags over environment over defaults; prompt when no port is known.

    Raises:
        ValueError: On an unparsable port or environment value.
    """
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.backlog is not None:
        config.backlog = args.backlog
    if args.max_sessions is not None:
        config.max_sessions = args.max_sessions
    if args.log_level is not None:
        config.log_level = args.log_level

    if config.port is None:
        config.host, config.port = prompt_address(config.host, input_func)

    return config


def main(argv: Optional[Sequence[str]] = None):
    """Parse arguments, build the server, run it until stopped."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        server = ChatServer(config)
    except (ValueError, EOFError) as e:
        print(f"Error: {e or 'no input'}", file=sys.stderr)
        sys.exit(1)

    try:
        server.run()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
