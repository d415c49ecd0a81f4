"""
Parser entry points for raw EXPLAIN output.

This module runs the pipeline:
- normalize: strip borders, separator rules, row-count footers
- detect: pick the dialect unless the caller gave one
- build: structural tree + shared-subplan registry
- assemble: resolve references, derive totals, freeze the document

Error handling philosophy: fail fast with clear messages. If the input
can't be structurally parsed, say exactly why rather than returning a
partial tree. Missing statistics are not failures.

Parsing is pure: no module-level state is touched, so concurrent calls
(e.g. comparing two plans) never interfere.
"""

from __future__ import annotations

import logging
from pathlib import Path

from planview.exceptions import MalformedPlanError
from planview.parser.assembler import assemble
from planview.parser.builder import build, coerce_dialect
from planview.parser.config import DEFAULT_CONFIG, ParserConfig
from planview.parser.dialect import detect
from planview.parser.models import Dialect, PlanDocument
from planview.parser.normalizer import normalize

logger = logging.getLogger(__name__)


def parse_plan(
    source: str | bytes,
    dialect: Dialect | str | None = None,
    config: ParserConfig | None = None,
) -> PlanDocument:
    """
    Parse raw EXPLAIN output into a PlanDocument.

    Args:
        source: EXPLAIN text as received (bytes are decoded as strict UTF-8)
        dialect: Explicit format hint. Auto-detected when omitted.
        config: Parser configuration with resource limits. If None,
            uses DEFAULT_CONFIG.

    Returns:
        PlanDocument: immutable, fully assembled plan

    Raises:
        MalformedPlanError: If the dialect hint is unknown, or the input
            cannot be decoded, is empty after normalization, is invalid JSON,
            or exceeds a resource limit

    Example:
        >>> doc = parse_plan("Seq Scan on users  (cost=0.00..35.50 rows=2550 width=4)")
        >>> doc.root.operation, doc.root.total_cost
        ('Seq Scan on users', 35.5)
    """
    config = config or DEFAULT_CONFIG

    raw = _decode(source)
    _check_source_size(raw, config)

    normalized = normalize(raw)
    if not normalized:
        raise MalformedPlanError(
            "No plan content found",
            detail="The input is empty once borders, separators and row counts are removed",
            source="empty",
        )

    selected = coerce_dialect(dialect) if dialect is not None else detect(normalized)
    logger.debug("Parsing %d chars as %s", len(normalized), selected.value)

    result = build(normalized, selected, config)

    return assemble(
        result.root,
        result.shared_subplans,
        dialect=selected,
        planning_time=result.planning_time,
        execution_time=result.execution_time,
        extra=result.extra,
    )


def parse_plan_file(
    path: str | Path,
    dialect: Dialect | str | None = None,
    config: ParserConfig | None = None,
) -> PlanDocument:
    """
    Parse EXPLAIN output stored in a file.

    Convenience wrapper around parse_plan() with file-specific error
    messages.

    Raises:
        MalformedPlanError: If the file cannot be read or parsed
    """
    filepath = Path(path)

    if not filepath.exists():
        raise MalformedPlanError(
            f"File not found: {filepath}",
            source="file_read",
        )

    if not filepath.is_file():
        raise MalformedPlanError(
            f"Path is not a file: {filepath}",
            source="file_read",
        )

    try:
        content = filepath.read_bytes()
    except OSError as e:
        raise MalformedPlanError(
            f"Cannot read file: {filepath}",
            detail=str(e),
            source="file_read",
        ) from e

    return parse_plan(content, dialect=dialect, config=config)


def _decode(source: str | bytes) -> str:
    if isinstance(source, str):
        return source

    if isinstance(source, (bytes, bytearray)):
        try:
            return bytes(source).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedPlanError(
                "Plan text is not valid UTF-8",
                detail=f"Byte {e.start}: {e.reason}",
                source="encoding",
            ) from e

    raise MalformedPlanError(
        f"Unsupported source type: {type(source).__name__}",
        detail="Expected plan text as str or UTF-8 bytes",
        source="type_check",
    )


def _check_source_size(raw: str, config: ParserConfig) -> None:
    if len(raw) > config.max_source_chars:
        raise MalformedPlanError(
            f"Plan text too large: {len(raw):,} chars (max {config.max_source_chars:,})",
            detail="Use a smaller EXPLAIN output or increase max_source_chars in config",
            source="resource_limit",
        )
