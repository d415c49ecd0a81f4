"""
Fixed-width result tables.

Engines without a text tree (classic MySQL ``EXPLAIN``) return a result set.
The acquisition side renders it as a padded text table; the parser reads the
same table back. Both directions live here so the textual contract stays in
one place:

    id | select_type | table | type | rows
    ---+-------------+-------+------+-----
    1  | SIMPLE      | users | ALL  | 1000
"""

from __future__ import annotations

from typing import Any, Sequence

COLUMN_SEPARATOR = " | "
RULE_SEPARATOR = "-+-"
NULL = "NULL"


def format_result_table(
    headers: Sequence[str],
    rows: Sequence[Sequence[Any]],
) -> str:
    """
    Render a result set as a fixed-width text table.

    Each column is padded to the widest of its header and values. ``None``
    cells render as ``NULL``. The header is followed by a dashed rule of
    matching widths.

    Args:
        headers: Column names
        rows: Row values, one sequence per row, same length as headers

    Returns:
        The table text, one line per row, newline-terminated.
    """
    cells = [[NULL if value is None else str(value) for value in row] for row in rows]

    widths = [len(header) for header in headers]
    for row in cells:
        if len(row) != len(headers):
            raise ValueError(f"Row has {len(row)} values, expected {len(headers)}")
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(value))

    lines = [_format_row(headers, widths)]
    lines.append(RULE_SEPARATOR.join("-" * width for width in widths))
    lines.extend(_format_row(row, widths) for row in cells)

    return "\n".join(lines) + "\n"


def split_row(line: str) -> list[str]:
    """
    Split a table line into stripped cells.

    Accepts both bordered (``| a | b |``) and borderless (``a | b``) rows.
    """
    text = line.strip()
    if text.startswith("|"):
        text = text[1:]
    if text.endswith("|"):
        text = text[:-1]
    return [cell.strip() for cell in text.split("|")]


def _format_row(values: Sequence[str], widths: Sequence[int]) -> str:
    return COLUMN_SEPARATOR.join(
        value.ljust(width) for value, width in zip(values, widths)
    )
