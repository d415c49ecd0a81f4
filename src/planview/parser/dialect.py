"""
Dialect detection for normalized plan text.

Heuristic, in priority order:
1. JSON: text starts with ``[`` or ``{``
2. Tabular: every line starts with ``->`` at column 0, every line starts
   with ``|``, or all lines carry ``|`` column separators at consistent
   offsets
3. TextTree: everything else (the most permissive format)

Detection never fails.
"""

from __future__ import annotations

import logging

from planview.parser.models import Dialect

logger = logging.getLogger(__name__)

ARROW = "->"


def detect(normalized: str) -> Dialect:
    """
    Classify normalized plan text.

    Args:
        normalized: Output of ``normalize()``

    Returns:
        The dialect whose structural parser should handle the text.
    """
    stripped = normalized.strip()
    if stripped.startswith(("[", "{")):
        return Dialect.JSON

    lines = [line for line in normalized.splitlines() if line.strip()]
    if lines and _is_tabular(lines):
        return Dialect.TABULAR

    return Dialect.TEXT_TREE


def _is_tabular(lines: list[str]) -> bool:
    if all(line.startswith(ARROW) for line in lines):
        return True
    if all(line.startswith("|") for line in lines):
        return True
    return len(lines) > 1 and _has_aligned_columns(lines)


def _pipe_offsets(line: str) -> list[int]:
    return [i for i, ch in enumerate(line) if ch == "|"]


def _has_aligned_columns(lines: list[str]) -> bool:
    """
    True when every line has the same column separators at the same offsets.

    Rows whose outer border was stripped while others kept their padding
    may be shifted as a whole. A constant shift per line is accepted as
    long as the spacing between separators matches.
    """
    reference = _pipe_offsets(lines[0])
    if not reference:
        return False

    for line in lines[1:]:
        offsets = _pipe_offsets(line)
        if len(offsets) != len(reference):
            return False
        shift = offsets[0] - reference[0]
        if any(o - r != shift for o, r in zip(offsets, reference)):
            logger.debug("Column separators not aligned in line: %r", line)
            return False

    return True
