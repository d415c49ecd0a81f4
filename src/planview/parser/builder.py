"""
Structural tree building for each plan dialect.

Turns normalized plan text into a tree of PlanNode plus a registry of
shared subplans. One entry point, ``build()``, dispatches on the Dialect:

- TextTree: indentation / ``->`` arrow column gives nesting. Built with an
  explicit stack of (indent, node) local to the call.
- Json: structure is explicit; keys are mapped through a fixed alias table.
- Tabular: one node per row, no nesting signal, so the tree is flat.

Nodes are assembled as mutable drafts and frozen into immutable PlanNode
models once the whole input has been consumed.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from planview.exceptions import MalformedPlanError
from planview.parser.config import DEFAULT_CONFIG, ParserConfig
from planview.parser.models import (
    REFERS_TO,
    Dialect,
    PlanNode,
    SharedSubplan,
    SubplanKind,
)
from planview.parser.stats import (
    STATS_ANCHOR_RE,
    ExtractedStats,
    extract_stats,
    parse_count,
    parse_number,
)
from planview.parser.tabular import split_row

logger = logging.getLogger(__name__)

SYNTHETIC_ROOT = "Plan"

ARROW_RE = re.compile(r"^(?P<indent>\s*)->\s*")

# "CTE recent", "InitPlan 1 (returns $0)", "SubPlan 2" -- but not "CTE Scan on x"
OPENER_RE = re.compile(
    r"^(?P<kind>CTE|InitPlan|SubPlan)\s+(?!Scan\b)(?P<name>[^\s()]+)(?:\s+\(.*\))?\s*$"
)

REFERENCE_RE = re.compile(r"\((?:CTE|InitPlan|SubPlan)\s+(?P<name>[^\s()]+)\)")
CTE_SCAN_RE = re.compile(r"\bCTE Scan on\s+(?P<name>[^\s()]+)")

DETAIL_RE = re.compile(r"^(?P<key>[A-Z][A-Za-z0-9 /_.-]*):\s*(?P<value>.*)$")

# Document-level footer lines with a dedicated PlanDocument field
PLANNING_TIME_KEYS = frozenset({"Planning Time", "Planning time"})
EXECUTION_TIME_KEYS = frozenset({"Execution Time", "Execution time", "Total runtime"})

# Cells that make up the label of a tabular row, in order
OPERATION_COLUMNS = ("operation", "select_type", "table", "type")

# JSON key -> common schema field
FIELD_ALIASES: dict[str, str] = {
    # PostgreSQL FORMAT JSON
    "Node Type": "operation",
    "Startup Cost": "startup_cost",
    "Total Cost": "total_cost",
    "Plan Rows": "plan_rows",
    "Actual Rows": "actual_rows",
    "Actual Startup Time": "actual_startup_time",
    "Actual Total Time": "actual_time",
    "Actual Loops": "loops",
    "Plans": "children",
    "CTE Name": "refersTo",
    # MySQL FORMAT=JSON (version 1)
    "rows_examined_per_scan": "plan_rows",
    # MySQL FORMAT=JSON (version 2)
    "estimated_total_cost": "total_cost",
    "estimated_rows": "plan_rows",
    "actual_rows": "actual_rows",
    "actual_first_row_ms": "actual_startup_time",
    "actual_last_row_ms": "actual_time",
    "actual_loops": "loops",
    "inputs": "children",
    # Classic tabular EXPLAIN
    "rows": "plan_rows",
    "cost": "total_cost",
    # planview's own serialization
    "operation": "operation",
    "startupCost": "startup_cost",
    "totalCost": "total_cost",
    "planRows": "plan_rows",
    "actualRows": "actual_rows",
    "actualTime": "actual_time",
    "loops": "loops",
    "children": "children",
    "extra": "extra",
    "refersTo": "refersTo",
    "depth": "depth",
}

NUMERIC_FIELDS = frozenset({
    "startup_cost",
    "total_cost",
    "plan_rows",
    "actual_rows",
    "actual_startup_time",
    "actual_time",
    "loops",
})

# Schemaless JSON objects under these key suffixes are attributes, not children
DETAIL_OBJECT_SUFFIXES = ("_info",)


@dataclass(frozen=True)
class BuildResult:
    """Structural tree, shared-subplan registry, and document footer."""

    root: PlanNode
    shared_subplans: dict[str, SharedSubplan]
    planning_time: float | None = None
    execution_time: float | None = None
    extra: dict[str, str] = field(default_factory=dict)


@dataclass
class _Draft:
    """Mutable node under construction."""

    operation: str
    stats: ExtractedStats = field(default_factory=ExtractedStats)
    extra: dict[str, str] = field(default_factory=dict)
    children: list[_Draft] = field(default_factory=list)
    subplan: tuple[SubplanKind, str] | None = None

    def add_detail(self, key: str, value: str) -> None:
        _store(self.extra, key, value)
        if REFERS_TO not in self.extra:
            name = find_reference(value)
            if name is not None:
                self.extra[REFERS_TO] = name


@dataclass
class _Skeleton:
    """Everything collected from one input before freezing."""

    config: ParserConfig
    top_level: list[_Draft] = field(default_factory=list)
    subplans: list[_Draft] = field(default_factory=list)
    planning_time: float | None = None
    execution_time: float | None = None
    extra: dict[str, str] = field(default_factory=dict)
    node_count: int = 0

    def count_node(self) -> None:
        self.node_count += 1
        if self.node_count > self.config.max_nodes:
            raise MalformedPlanError(
                f"Plan too large: more than {self.config.max_nodes:,} nodes",
                detail="Consider a simpler plan or increase max_nodes in config",
                source="resource_limit",
            )

    def check_depth(self, depth: int) -> None:
        if depth > self.config.max_depth:
            raise MalformedPlanError(
                f"Plan too deeply nested: depth {depth} (max {self.config.max_depth})",
                detail="This may indicate degenerate indentation or corrupted EXPLAIN output",
                source="resource_limit",
            )

    def add_footer(self, key: str, value: str) -> None:
        if key in PLANNING_TIME_KEYS:
            self.planning_time = _leading_number(value)
        elif key in EXECUTION_TIME_KEYS:
            self.execution_time = _leading_number(value)
        else:
            _store(self.extra, key, value)


def build(
    normalized: str,
    dialect: Dialect,
    config: ParserConfig | None = None,
) -> BuildResult:
    """
    Build the structural plan tree for the given dialect.

    Args:
        normalized: Output of ``normalize()``
        dialect: Format selected by ``detect()`` or given by the caller
        config: Resource limits. If None, uses DEFAULT_CONFIG.

    Returns:
        BuildResult with the main tree root and the shared-subplan registry.

    Raises:
        MalformedPlanError: Unknown dialect, no content lines, invalid JSON,
            or a resource limit was exceeded.
    """
    config = config or DEFAULT_CONFIG
    dialect = coerce_dialect(dialect)
    lines = [line for line in normalized.splitlines() if line.strip()]
    if not lines:
        raise MalformedPlanError(
            "No plan content found",
            detail="The input is empty once borders, separators and row counts are removed",
            source="empty",
        )

    skeleton = _Skeleton(config=config)
    if dialect is Dialect.JSON:
        _build_json(normalized, skeleton)
    elif dialect is Dialect.TABULAR:
        _build_tabular(lines, skeleton)
    else:
        _build_text_tree(lines, skeleton)

    logger.debug(
        "Built %s plan: %d nodes, %d shared subplans",
        dialect.value,
        skeleton.node_count,
        len(skeleton.subplans),
    )

    try:
        return _finish(skeleton)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = " -> ".join(str(x) for x in error["loc"]) or "node"
            errors.append(f"  {loc}: {error['msg']}")
        raise MalformedPlanError(
            "Plan statistics are inconsistent",
            detail="\n".join(errors),
            source="validation",
        ) from e


def find_reference(text: str) -> str | None:
    """Name of a CTE/InitPlan/SubPlan mentioned in a caption, if any."""
    match = REFERENCE_RE.search(text) or CTE_SCAN_RE.search(text)
    if match is None:
        return None
    return match.group("name")


def coerce_dialect(value: Dialect | str) -> Dialect:
    """Accept a Dialect or its value ("text", "json", "tabular")."""
    try:
        return Dialect(value)
    except ValueError as e:
        choices = ", ".join(d.value for d in Dialect)
        raise MalformedPlanError(
            f"Unknown dialect: {value!r}",
            detail=f"Expected one of: {choices}",
            source="dialect",
        ) from e


# =============================================================================
# TextTree
# =============================================================================


def _build_text_tree(lines: list[str], skeleton: _Skeleton) -> None:
    uses_arrows = any(ARROW_RE.match(line) for line in lines)
    stack: list[tuple[int, _Draft]] = []

    for index, line in enumerate(lines):
        indent = _indent_of(line)
        arrow = ARROW_RE.match(line)
        caption = line[arrow.end():].strip() if arrow is not None else line.strip()
        if index == 0 and indent == 0:
            indent = _first_line_indent(lines)

        opener = None if arrow is not None else OPENER_RE.match(caption)

        if index > 0 and arrow is None and opener is None and _is_detail(caption, uses_arrows):
            key, value = _split_detail(caption)
            owner = _detail_owner(stack, indent)
            if owner is None or key in PLANNING_TIME_KEYS or key in EXECUTION_TIME_KEYS:
                skeleton.add_footer(key, value)
            else:
                owner.add_detail(key, value)
            continue

        while stack and stack[-1][0] >= indent:
            stack.pop()

        if opener is not None:
            draft = _Draft(
                operation=caption,
                subplan=(SubplanKind(opener.group("kind")), opener.group("name")),
            )
            skeleton.subplans.append(draft)
        else:
            draft = _draft_from_caption(caption)
            skeleton.count_node()
            if stack:
                stack[-1][1].children.append(draft)
            else:
                skeleton.top_level.append(draft)

        stack.append((indent, draft))
        skeleton.check_depth(len(stack) - 1)


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip())


def _first_line_indent(lines: list[str]) -> int:
    """
    Indentation the first line had before normalization trimmed it.

    psql pads every line with one space, so only the first line loses its
    leading whitespace. It is placed level with the shallowest later line,
    but always above the first ``->`` operation. Plans without arrows keep
    the first line at column 0.
    """
    arrows = [_indent_of(line) for line in lines[1:] if ARROW_RE.match(line)]
    if not arrows:
        return 0
    shallowest = min(_indent_of(line) for line in lines[1:])
    return max(0, min(shallowest, min(arrows) - 1))


def _is_detail(caption: str, uses_arrows: bool) -> bool:
    """
    Decide whether a non-arrow line annotates a node instead of being one.

    In arrow-marked plans every operation after the first carries ``->``,
    so any other line is a detail. Without arrows only ``Key: value`` lines
    free of statistics are details.
    """
    if uses_arrows:
        return True
    return DETAIL_RE.match(caption) is not None and STATS_ANCHOR_RE.search(caption) is None


def _split_detail(caption: str) -> tuple[str, str]:
    match = DETAIL_RE.match(caption)
    if match is None:
        return "detail", caption
    return match.group("key").strip(), match.group("value").strip()


def _detail_owner(stack: list[tuple[int, _Draft]], indent: int) -> _Draft | None:
    for node_indent, draft in reversed(stack):
        if node_indent < indent:
            return draft
    return None


def _draft_from_caption(caption: str) -> _Draft:
    stats, label = extract_stats(caption)
    draft = _Draft(operation=label or caption, stats=stats)
    name = find_reference(caption)
    if name is not None:
        draft.extra[REFERS_TO] = name
    return draft


# =============================================================================
# Json
# =============================================================================


def _build_json(text: str, skeleton: _Skeleton) -> None:
    _check_json_nesting(text, skeleton.config)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedPlanError(
            "Invalid JSON format",
            detail=f"Line {e.lineno}, column {e.colno}: {e.msg}",
            source="json_decode",
        ) from e
    except RecursionError as e:
        raise MalformedPlanError(
            "Plan too deeply nested: JSON nesting exceeds the interpreter limit",
            detail="This may indicate corrupted EXPLAIN output",
            source="resource_limit",
        ) from e

    data = _unwrap_array(data)

    if isinstance(data.get("root"), dict):
        _build_serialized(data, skeleton)
    elif isinstance(data.get("Plan"), dict):
        _build_postgres(data, skeleton)
    else:
        root = _walk(data, 0, skeleton)
        if root is not None:
            skeleton.top_level.append(root)


def _check_json_nesting(text: str, config: ParserConfig) -> None:
    """Reject bracket nesting deeper than max_depth allows, before decoding."""
    limit = config.max_json_nesting
    depth = 0
    in_string = False
    escaped = False

    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "[{":
            depth += 1
            if depth > limit:
                raise MalformedPlanError(
                    f"Plan too deeply nested: JSON nesting over {limit} levels "
                    f"(max_depth {config.max_depth})",
                    detail="This may indicate degenerate or corrupted EXPLAIN output",
                    source="resource_limit",
                )
        elif ch in "]}":
            depth -= 1


def _unwrap_array(data: Any) -> dict[str, Any]:
    """
    Unwrap the single-element array that EXPLAIN (FORMAT JSON) returns.

    [{"Plan": {...}}] -> {"Plan": {...}}
    """
    if isinstance(data, dict):
        return data

    if not isinstance(data, list):
        raise MalformedPlanError(
            f"Expected JSON object or array, got {type(data).__name__}",
            source="structure",
        )

    if len(data) == 0:
        raise MalformedPlanError(
            "Empty array - no EXPLAIN output found",
            detail="EXPLAIN (FORMAT JSON) returns a single-element array",
            source="structure",
        )

    if len(data) > 1:
        raise MalformedPlanError(
            f"Expected single EXPLAIN output, got {len(data)} elements",
            detail="Did you concatenate multiple EXPLAIN outputs? Parse one at a time.",
            source="structure",
        )

    inner = data[0]
    if not isinstance(inner, dict):
        raise MalformedPlanError(
            f"Expected object inside array, got {type(inner).__name__}",
            source="structure",
        )

    return inner


def _build_postgres(data: dict[str, Any], skeleton: _Skeleton) -> None:
    root = _walk(data["Plan"], 0, skeleton)
    if root is not None:
        skeleton.top_level.append(root)

    for key, value in data.items():
        if key == "Plan":
            continue
        if key in PLANNING_TIME_KEYS:
            skeleton.planning_time = _as_float(value)
        elif key in EXECUTION_TIME_KEYS:
            skeleton.execution_time = _as_float(value)
        else:
            skeleton.extra[key] = _to_text(value)


def _build_serialized(data: dict[str, Any], skeleton: _Skeleton) -> None:
    root = _walk(data["root"], 0, skeleton)
    if root is not None:
        skeleton.top_level.append(root)

    registry = data.get("sharedSubplans") or {}
    if not isinstance(registry, dict):
        raise MalformedPlanError(
            f"Expected 'sharedSubplans' object, got {type(registry).__name__}",
            source="structure",
        )

    for name, entry in registry.items():
        if not isinstance(entry, dict) or not isinstance(entry.get("root"), dict):
            raise MalformedPlanError(
                f"Shared subplan '{name}' has no 'root' object",
                source="structure",
            )
        _register(skeleton, _subplan_kind(entry.get("kind")), name, _walk(entry["root"], 0, skeleton))

    skeleton.planning_time = _as_float(data.get("planningTime"))
    skeleton.execution_time = _as_float(data.get("executionTime"))
    extra = data.get("extra")
    if isinstance(extra, dict):
        skeleton.extra.update({str(k): _to_text(v) for k, v in extra.items()})


def _walk(
    obj: dict[str, Any],
    depth: int,
    skeleton: _Skeleton,
    label: str | None = None,
) -> _Draft | None:
    """
    Map one JSON plan object to a draft, recursing into its children.

    Returns None when the object is a shared-subplan body: it goes to the
    registry instead of its parent's children.
    """
    skeleton.check_depth(depth)
    skeleton.count_node()

    draft = _Draft(operation=label or "Node")
    operation: str | None = None
    has_children_key = False
    nested: list[tuple[str, dict[str, Any]]] = []
    subplan: tuple[SubplanKind, str] | None = None

    for key, value in obj.items():
        target = FIELD_ALIASES.get(key)

        if target == "children":
            has_children_key = True
            for child in value if isinstance(value, list) else [value]:
                if isinstance(child, dict):
                    built = _walk(child, depth + 1, skeleton)
                    if built is not None:
                        draft.children.append(built)
            continue
        if target == "operation" and operation is None and value is not None:
            operation = _to_text(value)
            continue
        if target == "extra" and isinstance(value, dict):
            draft.extra.update({str(k): _to_text(v) for k, v in value.items()})
            continue
        if target == REFERS_TO:
            draft.extra[REFERS_TO] = _to_text(value)
            continue
        if target == "depth":
            continue
        if target in NUMERIC_FIELDS and _set_stat(draft.stats, target, value):
            continue

        if key == "Subplan Name":
            opener = OPENER_RE.match(str(value))
            if opener is not None:
                subplan = (SubplanKind(opener.group("kind")), opener.group("name"))
        elif isinstance(value, dict) and not key.endswith(DETAIL_OBJECT_SUFFIXES):
            nested.append((key, value))
        elif isinstance(value, list) and value and all(isinstance(v, dict) for v in value):
            nested.extend((key, v) for v in value)
        draft.extra[key] = _to_text(value)

    if operation is not None:
        draft.operation = operation
    elif "table_name" in obj:
        draft.operation = f"{label or 'table'} {obj['table_name']}"
    if operation is None and not has_children_key:
        # Schemaless object (e.g. MySQL query_block): nested objects are children
        for key, value in nested:
            built = _walk(value, depth + 1, skeleton, label=key)
            if built is not None:
                draft.children.append(built)
                draft.extra.pop(key, None)

    if subplan is not None:
        _register(skeleton, subplan[0], subplan[1], draft)
        return None

    return draft


def _register(skeleton: _Skeleton, kind: SubplanKind, name: str, body: _Draft | None) -> None:
    opener = _Draft(operation=f"{kind.value} {name}", subplan=(kind, name))
    if body is not None:
        opener.children.append(body)
    skeleton.subplans.append(opener)


def _subplan_kind(value: Any) -> SubplanKind:
    try:
        return SubplanKind(value)
    except ValueError:
        return SubplanKind.CTE


def _set_stat(stats: ExtractedStats, target: str, value: Any) -> bool:
    """Apply a numeric JSON value. False when it is not numeric."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return False

    text = str(value)
    if target in ("plan_rows", "actual_rows", "loops"):
        number: float | int | None = parse_count(text)
    else:
        number = parse_number(text)
    if number is None:
        return False

    if target == "actual_startup_time":
        stats.extra["actualStartupTime"] = text
    elif target == "loops":
        if number < 1:
            stats.extra["loops"] = text
        else:
            stats.loops = int(number)
    else:
        setattr(stats, target, number)
    return True


# =============================================================================
# Tabular
# =============================================================================


def _build_tabular(lines: list[str], skeleton: _Skeleton) -> None:
    if len(lines) > 1 and "|" in lines[0]:
        header = split_row(lines[0])
        for line in lines[1:]:
            skeleton.count_node()
            cells = split_row(line)
            record = {
                header[i] if i < len(header) else f"column{i + 1}": cell
                for i, cell in enumerate(cells)
            }
            skeleton.top_level.append(_draft_from_record(record))
        return

    for line in lines:
        skeleton.count_node()
        arrow = ARROW_RE.match(line)
        caption = line[arrow.end():] if arrow is not None else line
        skeleton.top_level.append(_draft_from_caption(caption.strip()))


def _draft_from_record(record: dict[str, str]) -> _Draft:
    parts = [
        record[column]
        for column in OPERATION_COLUMNS
        if record.get(column) and record[column] != "NULL"
    ]
    if not parts:
        parts = [cell for cell in record.values() if cell]

    draft = _Draft(operation=" ".join(parts) or "Row")
    for key, cell in record.items():
        draft.extra[key] = cell
        target = FIELD_ALIASES.get(key)
        if target in NUMERIC_FIELDS:
            _set_stat(draft.stats, target, cell)
    return draft


# =============================================================================
# Freezing
# =============================================================================


def _finish(skeleton: _Skeleton) -> BuildResult:
    if not skeleton.top_level:
        raise MalformedPlanError(
            "No plan nodes found outside shared subplans",
            source="structure",
        )

    if len(skeleton.top_level) == 1:
        root = _freeze(skeleton.top_level[0], 0)
    else:
        root = _freeze(_Draft(operation=SYNTHETIC_ROOT, children=skeleton.top_level), 0)

    registry: dict[str, SharedSubplan] = {}
    for opener in skeleton.subplans:
        kind, name = opener.subplan  # type: ignore[misc]
        if name in registry:
            logger.warning("Duplicate %s definition '%s' ignored", kind.value, name)
            continue
        body = opener.children[0] if len(opener.children) == 1 else opener
        registry[name] = SharedSubplan(name=name, kind=kind, root=_freeze(body, 0))

    return BuildResult(
        root=root,
        shared_subplans=registry,
        planning_time=skeleton.planning_time,
        execution_time=skeleton.execution_time,
        extra=skeleton.extra,
    )


def _freeze(draft: _Draft, depth: int) -> PlanNode:
    stats = draft.stats
    return PlanNode(
        operation=draft.operation,
        startup_cost=stats.startup_cost,
        total_cost=stats.total_cost,
        plan_rows=stats.plan_rows,
        actual_rows=stats.actual_rows,
        actual_time=stats.actual_time,
        loops=stats.loops,
        extra={**stats.extra, **draft.extra},
        children=[_freeze(child, depth + 1) for child in draft.children],
        depth=depth,
    )


# =============================================================================
# Helpers
# =============================================================================


def _store(extra: dict[str, str], key: str, value: str) -> None:
    if key in extra and extra[key] != value:
        extra[key] = f"{extra[key]}; {value}"
    else:
        extra[key] = value


def _leading_number(text: str) -> float | None:
    parts = text.split()
    return parse_number(parts[0]) if parts else None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    return parse_number(str(value))


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, separators=(",", ":"), sort_keys=True)
