"""
Output module - Separates rendering from parsing.

Provides:
- render_text: indented plain text
- render_tree: rich Tree for the CLI
- render_json: stable JSON for tooling
- render_failure_html: escaped fallback for unparseable input

Usage:
    from planview.output import render_text, render_json

    document = parse_plan(text)
    print(render_text(document))
"""

from planview.output.renderers import (
    OutputFormat,
    format_node_stats,
    render,
    render_failure_html,
    render_json,
    render_text,
    render_tree,
)

__all__ = [
    "OutputFormat",
    "format_node_stats",
    "render",
    "render_failure_html",
    "render_json",
    "render_text",
    "render_tree",
]
