"""SQL identifier validation and quoting."""

import re

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
    """Double-quote a plain table or column name.

    Only simple identifiers are accepted; anything else raises ValueError
    so user input never reaches SQL text unchecked.
    """
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'
