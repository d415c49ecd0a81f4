"""
Source normalization: strip engine decoration before structural parsing.

Handles the noise that psql, the mysql client, and box-drawing pagers wrap
around the plan itself:
- Separator rules (``+---+``, ``-----``, ``┌───┐``, ``---+---``)
- Table borders (leading/trailing ``|`` and ``│``)
- Trailing row-count footers in several locales (``(8 rows)``, ``(8 lignes)``)
- The ``QUERY PLAN`` / ``EXPLAIN`` column header
- psql ``+`` continuation markers
- Blank lines

Normalization never fails and never reorders content lines.
"""

from __future__ import annotations

import re

# Characters that make up separator rules and table borders
DECORATION_CHARS = frozenset("-+=─│┌┐└┘├┤┬┴┼|")

VERTICAL_BARS = "|│"

# Unit words accepted in a trailing "(<N> <unit>)" footer, by locale.
# Matched case-insensitively.
ROW_COUNT_UNITS: dict[str, str] = {
    "rows": "en",
    "row": "en",
    "lignes": "fr",
    "ligne": "fr",
    "filas": "es",
    "fila": "es",
    "zeilen": "de",
    "zeile": "de",
}

# psql / mysql column headers that precede the plan in client output
HEADER_LINES = frozenset({"QUERY PLAN", "EXPLAIN"})

# psql marks wrapped multi-line cells (FORMAT JSON output) with a trailing " +"
_CONTINUATION_RE = re.compile(r"\s+\+$")

_ROW_COUNT_RE = re.compile(
    r"\(\s*\d+\s+(?P<unit>[^\W\d_]+)\s*\)\s*$",
)


def normalize(raw: str) -> str:
    """
    Remove decoration from raw EXPLAIN text.

    Args:
        raw: Unmodified EXPLAIN output

    Returns:
        The content lines, in their original order, joined with newlines
        and trimmed as a whole. Indentation inside the text is untouched.

    Example:
        >>> normalize("Some Plan\\n(8 rows)\\n")
        'Some Plan'
    """
    lines: list[str] = []

    for line in raw.splitlines():
        if is_separator(line):
            continue

        line = strip_row_count(_CONTINUATION_RE.sub("", strip_borders(line)))
        if not line.strip():
            continue

        if not lines and line.strip() in HEADER_LINES:
            continue

        lines.append(line)

    return "\n".join(lines).strip()


def is_separator(line: str) -> bool:
    """True for lines made only of rule / border characters."""
    if not line.strip():
        return False
    return all(ch in DECORATION_CHARS or ch.isspace() for ch in line)


def strip_borders(line: str) -> str:
    """
    Drop one leading and one trailing vertical bar.

    Whitespace inside the border is kept: nested text plans rendered inside
    a bordered table still rely on it for their indentation.
    """
    body = line.lstrip()
    if body and body[0] in VERTICAL_BARS:
        line = body[1:]

    stripped = line.rstrip()
    if stripped and stripped[-1] in VERTICAL_BARS:
        line = stripped[:-1]

    return line


def strip_row_count(line: str) -> str:
    """Remove a trailing ``(<N> <unit>)`` footer in a known locale."""
    match = _ROW_COUNT_RE.search(line)
    if match is None or match.group("unit").lower() not in ROW_COUNT_UNITS:
        return line
    return line[: match.start()].rstrip()
