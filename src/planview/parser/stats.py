"""
Statistics extraction from free-text plan captions.

Recognizes the ``key=value`` annotations PostgreSQL and MySQL append to each
operation line and lifts them into typed fields:

    Hash Join  (cost=1.09..2.21 rows=5 width=8) (actual time=0.040..0.045 rows=5 loops=1)
    -> Limit: 5 row(s)  (cost=0.35 rows=1) (actual time=0.02..0.03 rows=1 loops=1)

All numbers go through a single tolerant pattern: optional sign, digits,
optional fraction, optional exponent. A caption without annotations leaves
every field unset; a missing statistic is normal, not an error.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

NUMBER = r"[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?"

NUMBER_RE = re.compile(NUMBER)

# The "(actual ...)" group, up to its closing parenthesis
_ACTUAL_GROUP_RE = re.compile(r"\bactual\s+(?=(?:time|rows)=)[^()]*")
_ACTUAL_TIME_RE = re.compile(rf"\btime=(?P<first>{NUMBER})(?:\.\.(?P<second>{NUMBER}))?")

_COST_RE = re.compile(rf"\bcost=(?P<first>{NUMBER})(?:\.\.(?P<second>{NUMBER}))?")
_ROWS_RE = re.compile(rf"\brows=(?P<value>{NUMBER})")
_LOOPS_RE = re.compile(rf"\bloops=(?P<value>{NUMBER})")
_WIDTH_RE = re.compile(rf"\bwidth=(?P<value>{NUMBER})")
_NEVER_EXECUTED_RE = re.compile(r"\(never executed\)")

_EMPTY_PARENS_RE = re.compile(r"\(\s*\)")
_WHITESPACE_RE = re.compile(r"\s{2,}")

# Any of these in a line means it carries statistics, not a "Key: value" detail
STATS_ANCHOR_RE = re.compile(r"\b(?:cost|rows|loops|actual time)=|\(never executed\)")


@dataclass
class ExtractedStats:
    """Numeric fields recovered from one caption."""

    startup_cost: float | None = None
    total_cost: float | None = None
    plan_rows: int | None = None
    actual_rows: int | None = None
    actual_time: float | None = None
    loops: int = 1
    extra: dict[str, str] = field(default_factory=dict)
    matched: bool = False

    @property
    def is_empty(self) -> bool:
        """True when no annotation was recognized in the caption."""
        return not self.matched


def parse_number(text: str | None) -> float | None:
    """
    Parse a numeric literal, returning None when it is not one.

    Literals that overflow to infinity are not numbers either.
    """
    if text is None:
        return None
    match = NUMBER_RE.fullmatch(text.strip())
    if match is None:
        return None
    value = float(match.group(0))
    if not math.isfinite(value):
        return None
    return value


def parse_count(text: str | None) -> int | None:
    """Parse a row/loop count. Fractional estimates round to nearest."""
    value = parse_number(text)
    if value is None:
        return None
    return int(round(value))


def extract_stats(caption: str) -> tuple[ExtractedStats, str]:
    """
    Extract statistics from a caption.

    Args:
        caption: One plan line, without indentation or arrow marker

    Returns:
        (fields, remaining caption). The remaining caption has every matched
        ``key=value`` token removed, so it is clean prose for display.

    Example:
        >>> stats, label = extract_stats("Seq Scan on t  (cost=0.00..35.50 rows=2550 width=4)")
        >>> label
        'Seq Scan on t'
        >>> stats.startup_cost, stats.total_cost, stats.plan_rows
        (0.0, 35.5, 2550)
    """
    stats = ExtractedStats()
    text = caption

    if _NEVER_EXECUTED_RE.search(text):
        stats.extra["neverExecuted"] = "true"
        text = _NEVER_EXECUTED_RE.sub(" ", text)
        stats.matched = True

    actual = _ACTUAL_GROUP_RE.search(text)
    if actual is not None:
        _apply_actual(stats, actual.group(0))
        text = text[: actual.start()] + " " + text[actual.end():]
        stats.matched = True

    cost = _COST_RE.search(text)
    if cost is not None:
        first = parse_number(cost.group("first"))
        second = parse_number(cost.group("second"))
        if second is not None:
            stats.startup_cost = first
            stats.total_cost = second
        else:
            # Single-value form: no startup cost is synthesized
            stats.total_cost = first
        text = _remove(text, cost)
        stats.matched = True

    rows = _ROWS_RE.search(text)
    if rows is not None:
        stats.plan_rows = parse_count(rows.group("value"))
        text = _remove(text, rows)
        stats.matched = True

    width = _WIDTH_RE.search(text)
    if width is not None:
        stats.extra["width"] = width.group("value")
        text = _remove(text, width)
        stats.matched = True

    loops = _LOOPS_RE.search(text)
    if loops is not None:
        _apply_loops(stats, loops.group("value"))
        text = _remove(text, loops)
        stats.matched = True

    if stats.is_empty:
        return stats, caption
    return stats, clean_label(text)


def clean_label(text: str) -> str:
    """Collapse leftovers of removed tokens: empty parens, runs of spaces."""
    previous = None
    while previous != text:
        previous = text
        text = _EMPTY_PARENS_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _remove(text: str, match: re.Match[str]) -> str:
    return text[: match.start()] + text[match.end():]


def _apply_actual(stats: ExtractedStats, group: str) -> None:
    time = _ACTUAL_TIME_RE.search(group)
    if time is not None:
        first = time.group("first")
        second = time.group("second")
        if second is not None:
            # First value is the per-loop startup time
            stats.actual_time = parse_number(second)
            stats.extra["actualStartupTime"] = first
        else:
            stats.actual_time = parse_number(first)

    rows = _ROWS_RE.search(group)
    if rows is not None:
        stats.actual_rows = parse_count(rows.group("value"))

    loops = _LOOPS_RE.search(group)
    if loops is not None:
        _apply_loops(stats, loops.group("value"))


def _apply_loops(stats: ExtractedStats, raw: str) -> None:
    value = parse_count(raw)
    if value is not None and value >= 1:
        stats.loops = value
    else:
        stats.extra["loops"] = raw
