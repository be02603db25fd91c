"""
=============================================================================
CHAT COMPONENTS
=============================================================================

The chat logic proper, independent of sockets and threads:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  Session            one per client; registration, partner choice,   │
    │                     forwarding; the only writer of its connection   │
    ├─────────────────────────────────────────────────────────────────────┤
    │  ConnectionRegistry name → session, shared by every worker          │
    ├─────────────────────────────────────────────────────────────────────┤
    │  Broadcaster        roster notice to every registered session       │
    ├─────────────────────────────────────────────────────────────────────┤
    │  protocol           exit keyword, name rules, every wire text       │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .registry import ConnectionRegistry
from .broadcaster import Broadcaster
from .session import Session, SessionState
from .protocol import EXIT_KEYWORD, NameRejection, format_roster, format_message

__all__ = [
    "ConnectionRegistry",  # Shared name → session directory
    "Broadcaster",         # Roster fan-out
    "Session",             # Per-connection state machine
    "SessionState",        # Session lifecycle states
    "EXIT_KEYWORD",        # "chao"
    "NameRejection",       # Why a display name was refused
    "format_roster",       # Roster notice text
    "format_message",      # "<sender>: <text>"
]
