"""
=============================================================================
CHAT WIRE PROTOCOL
=============================================================================

Everything the server ever writes to a client is built here, so the texts
stay in one place and tests can compare against the same constants.

=============================================================================
CONVERSATION
=============================================================================

    Client                                  Server
      │  alice\\n                              │
      │ ─────────────────────────────────────► │  name accepted
      │                                        │
      │  \\nUsuarios conectados:\\nalice\\n\\n     │  roster, to everyone
      │ ◄───────────────────────────────────── │
      │  bob\\n                                │
      │ ─────────────────────────────────────► │  partner selected
      │  \\nAhora estás chateando con bob. ...  │
      │ ◄───────────────────────────────────── │
      │  hola\\n                               │
      │ ─────────────────────────────────────► │  "alice: hola" → bob
      │  chao\\n                               │
      │ ─────────────────────────────────────► │  session closed

=============================================================================
"""

from enum import Enum
from typing import Iterable, Optional


EXIT_KEYWORD = "chao"
MIN_NAME_LENGTH = 3

ROSTER_HEADER = "\nUsuarios conectados:\n"


class NameRejection(Enum):
    """Reasons a requested display name is refused, with the line sent back."""

    EMPTY = "El nombre de usuario no puede estar vacío. Por favor elige otro nombre."
    RESERVED = "El nombre de usuario '{keyword}' no es válido. Por favor elige otro nombre."
    TOO_SHORT = (
        "El nombre de usuario debe tener al menos {min_length} caracteres. "
        "Por favor elige otro nombre."
    )
    TAKEN = "El nombre de usuario ya está en uso. Por favor elige otro nombre."

    def render(self, keyword: str = EXIT_KEYWORD, min_length: int = MIN_NAME_LENGTH) -> str:
        return self.value.format(keyword=keyword, min_length=min_length)


SELF_CHAT = (
    "No puedes chatear contigo mismo. "
    "Ingrese otro nombre de usuario con el que desea chatear:"
)
PARTNER_NOT_FOUND = (
    "El usuario {name} no existe o no está conectado. "
    "Ingrese otro nombre de usuario:"
)
PARTNER_UNAVAILABLE = (
    "El usuario {name} ya no está disponible. "
    "Ingrese otro nombre de usuario:"
)
CHAT_STARTED = "\nAhora estás chateando con {name}. Escribe tu mensaje a continuación."


def is_exit_keyword(line: Optional[str], keyword: str = EXIT_KEYWORD) -> bool:
    """True if the line is the exit keyword, ignoring case."""
    return line is not None and line.casefold() == keyword.casefold()


def names_match(first: str, second: str) -> bool:
    return first.casefold() == second.casefold()


def check_name(
    name: str,
    keyword: str = EXIT_KEYWORD,
    min_length: int = MIN_NAME_LENGTH,
) -> Optional[NameRejection]:
    """
    Validate a requested display name, without looking at the registry.

    Checks run in this order: blank, reserved keyword, length. Whether the
    name is already taken is decided atomically by the registry.

    Returns:
        The first rejection that applies, or None if the name is acceptable.
    """
    if not name.strip():
        return NameRejection.EMPTY
    if is_exit_keyword(name, keyword):
        return NameRejection.RESERVED
    if len(name) < min_length:
        return NameRejection.TOO_SHORT
    return None


def format_roster(names: Iterable[str]) -> str:
    """
    Build the roster notice.

        >>> format_roster(["alice", "bob"])
        '\\nUsuarios conectados:\\nalice\\nbob\\n'
    """
    return ROSTER_HEADER + "\n".join(names) + "\n"


def format_message(sender: str, text: str) -> str:
    """Line a partner receives when `sender` writes `text`."""
    return f"{sender}: {text}"
