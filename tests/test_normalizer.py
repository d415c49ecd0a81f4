"""
Tests for source normalization.

Normalization is best-effort and never fails: decoration goes, content
lines stay in order with their indentation.
"""

from __future__ import annotations

import pytest

from planview.parser.normalizer import (
    is_separator,
    normalize,
    strip_borders,
    strip_row_count,
)


# =============================================================================
# Separators and borders
# =============================================================================

class TestSeparators:
    """Pure rule lines are removed."""

    @pytest.mark.parametrize(
        "line",
        [
            "+---+",
            "-----------------",
            "┌─────────┐",
            "└─────────┘",
            "├────┼────┤",
            "---+-------+-----",
            "=====",
            "  +----+----+  ",
        ],
    )
    def test_rule_lines_are_separators(self, line: str) -> None:
        assert is_separator(line)

    @pytest.mark.parametrize(
        "line",
        [
            "",
            "   ",
            "Seq Scan on t",
            "-> Limit",
            "| id |",
        ],
    )
    def test_content_lines_are_not_separators(self, line: str) -> None:
        assert not is_separator(line)

    def test_decoration_only_input_normalizes_to_empty(self) -> None:
        """Nothing but rules and borders leaves nothing."""
        assert normalize("+---+\n-----\n┌───┐\n│   │\n└───┘\n") == ""

    def test_box_drawn_table(self) -> None:
        """Box-drawing characters are removed entirely."""
        assert normalize("┌───┐\n│ Plan │\n└───┘\n") == "Plan"

    def test_ascii_table_keeps_inner_whitespace(self) -> None:
        """One bar comes off each side; only the text as a whole is trimmed."""
        assert normalize("+---+\n| id |\n+---+\n|  1 |\n+---+") == "id \n  1"


class TestStripBorders:
    """Single leading/trailing vertical bars."""

    def test_strips_ascii_bars(self) -> None:
        assert strip_borders("| a |") == " a "

    def test_strips_box_bars(self) -> None:
        assert strip_borders("│ a │") == " a "

    def test_strips_only_one_bar_per_side(self) -> None:
        assert strip_borders("|| a ||") == "| a |"

    def test_inner_bars_untouched(self) -> None:
        assert strip_borders("| a | b |") == " a | b "

    def test_line_without_bars_unchanged(self) -> None:
        assert strip_borders("   ->  Seq Scan") == "   ->  Seq Scan"


# =============================================================================
# Row counts
# =============================================================================

class TestRowCounts:
    """Trailing "(<N> <unit>)" footers in every supported locale."""

    @pytest.mark.parametrize(
        "footer",
        [
            "(8 rows)",
            "(1 row)",
            "(0 rows)",
            "(12 lignes)",
            "(1 ligne)",
            "(3 filas)",
            "(1 fila)",
            "(42 Zeilen)",
            "(1 Zeile)",
            "(1234567 ROWS)",
            "(5 LiGnEs)",
        ],
    )
    def test_footer_removed(self, footer: str) -> None:
        assert normalize(f"Seq Scan on t\n{footer}\n") == "Seq Scan on t"

    def test_footer_with_trailing_whitespace(self) -> None:
        assert strip_row_count("(8 rows)   ") == ""

    def test_mid_line_occurrence_untouched(self) -> None:
        """Only the end of a line is considered."""
        line = "Seq Scan (3 rows) on t"
        assert strip_row_count(line) == line

    def test_unknown_unit_untouched(self) -> None:
        assert normalize("Seq Scan on t\n(3 widgets)") == "Seq Scan on t\n(3 widgets)"

    def test_end_to_end_example(self) -> None:
        assert normalize("Some Plan\n(8 rows)\n") == "Some Plan"


# =============================================================================
# Client output
# =============================================================================

class TestClientOutput:
    """psql / mysql client decoration around the plan."""

    def test_psql_header_and_rule_removed(self) -> None:
        raw = (
            "                QUERY PLAN\n"
            "-------------------------------------------\n"
            " Seq Scan on t  (cost=0.00..1.00 rows=1 width=4)\n"
            "   Filter: (id > 1)\n"
            "(2 rows)\n"
        )
        assert normalize(raw) == (
            "Seq Scan on t  (cost=0.00..1.00 rows=1 width=4)\n"
            "   Filter: (id > 1)"
        )

    def test_header_only_dropped_as_first_line(self) -> None:
        assert normalize("Seq Scan on t\nQUERY PLAN") == "Seq Scan on t\nQUERY PLAN"

    def test_mysql_explain_header_dropped(self) -> None:
        raw = "+---------+\n| EXPLAIN |\n+---------+\n| -> Limit |\n+---------+"
        assert normalize(raw) == "-> Limit"

    def test_continuation_markers_removed(self) -> None:
        """psql marks wrapped cells with a trailing '+'."""
        raw = (
            "       QUERY PLAN\n"
            "-------------------------\n"
            " [                      +\n"
            "   {\"Plan\": {}}        +\n"
            " ]\n"
            "(1 row)\n"
        )
        assert normalize(raw) == "[\n   {\"Plan\": {}}\n ]"


# =============================================================================
# Content preservation
# =============================================================================

class TestContentPreserved:
    """Normalization never reorders or rewrites content."""

    def test_indentation_preserved(self) -> None:
        text = "Hash Join\n  ->  Seq Scan on a\n  ->  Hash\n        ->  Seq Scan on b"
        assert normalize(text) == text

    def test_blank_lines_dropped(self) -> None:
        assert normalize("\n\nA\n\n\n  B\n\n") == "A\n  B"

    def test_order_preserved(self) -> None:
        lines = [f"Node {i}" for i in range(20)]
        assert normalize("\n".join(lines)).splitlines() == lines

    def test_garbage_returned_unchanged(self) -> None:
        assert normalize("hello world") == "hello world"

    def test_empty_input(self) -> None:
        assert normalize("") == ""
