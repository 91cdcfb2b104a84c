"""Split SQL script text into ordered statements."""

import re
from pathlib import Path

from sql_tutorial.models.statement import Statement

_DOLLAR_TAG_RE = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")


def split_sql(text: str) -> list[str]:
    """Split ``text`` on top-level semicolons.

    Semicolons inside quoted strings, quoted identifiers, dollar-quoted
    bodies and comments do not end a statement. Pieces holding only
    whitespace or comments are dropped.
    """
    pieces: list[str] = []
    start = 0
    i = 0
    n = len(text)
    has_code = False

    while i < n:
        ch = text[i]
        if text.startswith("--", i):
            newline = text.find("\n", i)
            i = n if newline == -1 else newline + 1
            continue
        if text.startswith("/*", i):
            close = text.find("*/", i + 2)
            i = n if close == -1 else close + 2
            continue
        if ch in ("'", '"'):
            i = _skip_quoted(text, i, ch)
            has_code = True
            continue
        if ch == "$" and not (i > 0 and (text[i - 1].isalnum() or text[i - 1] == "_")):
            match = _DOLLAR_TAG_RE.match(text, i)
            if match:
                tag = match.group(0)
                close = text.find(tag, match.end())
                i = n if close == -1 else close + len(tag)
                has_code = True
                continue
        if ch == ";":
            if has_code:
                pieces.append(text[start:i].strip())
            start = i + 1
            has_code = False
        elif not ch.isspace():
            has_code = True
        i += 1

    if has_code:
        pieces.append(text[start:].strip())
    return pieces


def _skip_quoted(text: str, i: int, quote: str) -> int:
    """Return the index just past the quoted run starting at ``i``.

    A doubled quote character is an escaped quote. Unterminated runs
    extend to the end of the text; the server reports the error.
    """
    j = i + 1
    while True:
        j = text.find(quote, j)
        if j == -1:
            return len(text)
        if text.startswith(quote * 2, j):
            j += 2
            continue
        return j + 1


def parse_script(text: str) -> list[Statement]:
    """Parse script text into Statements, in order."""
    return [Statement(sql=sql) for sql in split_sql(text)]


def load_script(path: Path | str) -> list[Statement]:
    """Read a ``.sql`` file and parse it."""
    return parse_script(Path(path).read_text(encoding="utf-8"))
