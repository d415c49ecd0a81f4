"""
Output renderers for parsed plans.

Separates presentation logic from parsing logic. The parser never formats
anything for display; everything the CLI prints is built here.

Plan text is untrusted: operation labels and detail values are escaped
before they reach rich markup or HTML.
"""

from __future__ import annotations

import html
from enum import Enum
from typing import TYPE_CHECKING

from rich.markup import escape
from rich.tree import Tree

if TYPE_CHECKING:
    from planview.exceptions import PlanViewError
    from planview.parser.models import PlanDocument, PlanNode


class OutputFormat(str, Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"


def render(document: "PlanDocument", format: OutputFormat = OutputFormat.TEXT) -> str:
    """
    Render a plan document in the specified format.

    Args:
        document: Parsed plan
        format: Output format (text, json)

    Returns:
        Formatted string
    """
    if format == OutputFormat.TEXT:
        return render_text(document)
    elif format == OutputFormat.JSON:
        return render_json(document)
    else:
        raise ValueError(f"Unknown output format: {format}")


def render_json(document: "PlanDocument") -> str:
    """Stable JSON for tooling; identical to PlanDocument.to_json()."""
    return document.to_json(indent=2)


# =============================================================================
# Text
# =============================================================================


def format_node_stats(document: "PlanDocument", node: "PlanNode") -> str:
    """
    One-line summary of a node's statistics.

    Only the values the plan actually carried are shown.
    """
    parts: list[str] = []

    if node.total_cost is not None:
        if node.startup_cost is not None:
            parts.append(f"cost={node.startup_cost:.2f}..{node.total_cost:.2f}")
        else:
            parts.append(f"cost={node.total_cost:.2f}")
    if node.plan_rows is not None:
        parts.append(f"est={node.plan_rows}")
    if node.actual_rows is not None:
        parts.append(f"rows={node.actual_rows}")
    if node.actual_time is not None:
        parts.append(f"time={node.actual_time:.3f}ms")
    if node.loops > 1:
        parts.append(f"loops={node.loops}")

    share = document.time_share(node)
    if share is not None:
        parts.append(f"{share:.1%}")

    return "  ".join(parts)


def render_text(document: "PlanDocument") -> str:
    """
    Render the plan as indented plain text.

    Shared subplans are listed after the main tree, one section each.
    """
    lines: list[str] = []

    def walk(node: "PlanNode", indent: int) -> None:
        stats = format_node_stats(document, node)
        line = "  " * indent + node.operation
        if stats:
            line += f"  ({stats})"
        if node.is_unresolved:
            line += "  [unresolved]"
        lines.append(line)
        for child in node.children:
            walk(child, indent + 1)

    walk(document.root, 0)

    for name, subplan in document.shared_subplans.items():
        lines.append("")
        lines.append(f"{subplan.kind.value} {name}:")
        walk(subplan.root, 1)

    footer = _timing_footer(document)
    if footer:
        lines.append("")
        lines.extend(footer)

    return "\n".join(lines)


def _timing_footer(document: "PlanDocument") -> list[str]:
    lines = []
    if document.planning_time is not None:
        lines.append(f"Planning Time: {document.planning_time:.3f} ms")
    if document.execution_time is not None:
        lines.append(f"Execution Time: {document.execution_time:.3f} ms")
    if document.total_time is not None:
        lines.append(f"Total Time: {document.total_time:.3f} ms")
    return lines


# =============================================================================
# Rich tree
# =============================================================================


def render_tree(document: "PlanDocument") -> Tree:
    """Build a rich Tree for terminal display."""
    tree = Tree(
        f"[bold cyan]{document.dialect.value}[/bold cyan] plan "
        f"({document.node_count} nodes)",
    )
    _build_tree(tree, document, document.root)

    if document.shared_subplans:
        shared = tree.add("[bold]Shared subplans[/bold]")
        for name, subplan in document.shared_subplans.items():
            branch = shared.add(
                f"[magenta]{subplan.kind.value}[/magenta] [bold]{escape(name)}[/bold]",
            )
            _build_tree(branch, document, subplan.root)

    for line in _timing_footer(document):
        tree.add(f"[dim]{line}[/dim]")

    return tree


def _build_tree(parent: Tree, document: "PlanDocument", node: "PlanNode") -> None:
    """Recursively add plan nodes to a rich tree."""
    parts = [f"[bold]{escape(node.operation)}[/bold]"]

    stats = format_node_stats(document, node)
    if stats:
        parts.append(f"[dim]{stats}[/dim]")

    if node.refers_to is not None:
        if node.is_unresolved:
            parts.append(f"[red]-> {escape(node.refers_to)} (unresolved)[/red]")
        else:
            parts.append(f"[green]-> {escape(node.refers_to)}[/green]")

    child_tree = parent.add("  ".join(parts))

    for child in node.children:
        _build_tree(child_tree, document, child)


# =============================================================================
# Failure fallback
# =============================================================================


def render_failure_html(source: str, error: "PlanViewError | None" = None) -> str:
    """
    HTML fragment shown when a plan cannot be parsed.

    The raw source is escaped and shown verbatim beneath an explicit notice,
    so nothing in the input is ever interpreted as markup.
    """
    notice = "This plan could not be parsed. The raw input is shown below."
    parts = [
        '<div class="plan-error">',
        f"<p><strong>{html.escape(notice)}</strong></p>",
    ]
    if error is not None:
        parts.append(f'<p class="plan-error-message">{html.escape(str(error))}</p>')
    parts.append(f"<pre>{html.escape(source)}</pre>")
    parts.append("</div>")
    return "\n".join(parts)
