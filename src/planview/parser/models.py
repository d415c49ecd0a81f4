"""
Pydantic models for parsed query plans.

The structure is:
- PlanDocument: Top-level, immutable result of one parse call
- PlanNode: Recursive structure representing each operation in the plan
- SharedSubplan: A named sub-tree (CTE, InitPlan, SubPlan) owned by the
  document registry and referenced from the main tree by name only

Fields use snake_case in Python and camelCase aliases on the wire, so a
serialized document reads the same regardless of which engine produced
the original text.
"""

from __future__ import annotations

import json
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

REFERS_TO = "refersTo"
UNRESOLVED_REFERENCE = "unresolvedReference"


class Dialect(str, Enum):
    """Textual format of the EXPLAIN output."""

    TEXT_TREE = "text"
    JSON = "json"
    TABULAR = "tabular"


class SubplanKind(str, Enum):
    """Kinds of named sub-trees a plan can reference."""

    CTE = "CTE"
    INIT_PLAN = "InitPlan"
    SUB_PLAN = "SubPlan"


class PlanNode(BaseModel):
    """
    A single operation in the execution plan.

    Children are owned exclusively by their parent. Cross-links to shared
    subplans are never children: they are recorded as ``extra["refersTo"]``
    and resolved against ``PlanDocument.shared_subplans``.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
    )

    operation: str = Field(
        ...,
        description="Display label, e.g. 'Seq Scan on users'",
    )

    startup_cost: float | None = Field(
        default=None,
        alias="startupCost",
        description="Estimated cost to return the first row",
    )

    total_cost: float | None = Field(
        default=None,
        alias="totalCost",
        description="Estimated cost to return all rows",
    )

    plan_rows: int | None = Field(
        default=None,
        alias="planRows",
        description="Estimated number of rows",
    )

    actual_rows: int | None = Field(
        default=None,
        alias="actualRows",
        description="Actual number of rows (ANALYZE only)",
    )

    actual_time: float | None = Field(
        default=None,
        alias="actualTime",
        description="Actual time in ms to return all rows, per loop",
    )

    loops: int = Field(
        default=1,
        ge=1,
        description="Number of times this node was executed",
    )

    extra: Mapping[str, str] = Field(
        default_factory=dict,
        validate_default=True,
        description="Engine-specific fields outside the common schema",
    )

    children: tuple[PlanNode, ...] = Field(
        default_factory=tuple,
        description="Child plan nodes",
    )

    depth: int = Field(
        default=0,
        ge=0,
        description="Zero-based nesting level",
    )

    @model_validator(mode="after")
    def _check_cost_order(self) -> PlanNode:
        if (
            self.startup_cost is not None
            and self.total_cost is not None
            and self.total_cost < self.startup_cost
        ):
            raise ValueError(
                f"totalCost {self.total_cost} is lower than startupCost {self.startup_cost}"
            )
        return self

    @field_validator("extra", mode="after")
    @classmethod
    def _freeze_extra(cls, value: Mapping[str, str]) -> Mapping[str, str]:
        return MappingProxyType(dict(value))

    @field_serializer("extra")
    def _dump_extra(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    # =========================================================================
    # Computed properties
    # =========================================================================

    @property
    def refers_to(self) -> str | None:
        """Name of the shared subplan this node consumes, if any."""
        return self.extra.get(REFERS_TO)

    @property
    def is_reference(self) -> bool:
        return REFERS_TO in self.extra

    @property
    def is_unresolved(self) -> bool:
        return UNRESOLVED_REFERENCE in self.extra

    @property
    def has_analyze_data(self) -> bool:
        return self.actual_time is not None or self.actual_rows is not None

    @property
    def total_actual_time(self) -> float | None:
        """
        Time across all loop iterations.

        actual_time is per-loop, so multiply by loops for the true total.
        """
        if self.actual_time is None:
            return None
        return self.actual_time * self.loops

    def iter_nodes(self) -> Iterator[PlanNode]:
        """Yield this node and all descendants, depth-first pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


class SharedSubplan(BaseModel):
    """A named sub-tree referenced from one or more points of the plan."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    kind: SubplanKind
    root: PlanNode


class PlanDocument(BaseModel):
    """
    Final, immutable result of parsing one EXPLAIN output.

    Usage:
        document = parse_plan(text)
        for node in document.all_nodes:
            print(node.depth, node.operation, node.total_cost)

        cte = document.shared_subplans["recent_orders"]
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    root: PlanNode = Field(..., description="Root node of the main plan tree")

    shared_subplans: Mapping[str, SharedSubplan] = Field(
        default_factory=dict,
        validate_default=True,
        alias="sharedSubplans",
        description="Registry of CTE / InitPlan / SubPlan bodies by name",
    )

    total_time: float | None = Field(
        default=None,
        alias="totalTime",
        description="Derived total execution time in ms",
    )

    dialect: Dialect = Field(..., description="Format the plan was parsed from")

    planning_time: float | None = Field(
        default=None,
        alias="planningTime",
        description="Planning time reported by the engine in ms",
    )

    execution_time: float | None = Field(
        default=None,
        alias="executionTime",
        description="Execution time reported by the engine in ms",
    )

    extra: Mapping[str, str] = Field(
        default_factory=dict,
        validate_default=True,
        description="Document-level lines such as JIT or trigger summaries",
    )

    @field_validator("shared_subplans", "extra", mode="after")
    @classmethod
    def _freeze_mapping(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @field_serializer("shared_subplans")
    def _dump_shared_subplans(self, value: Mapping[str, SharedSubplan]) -> dict[str, SharedSubplan]:
        return dict(value)

    @field_serializer("extra")
    def _dump_extra(self, value: Mapping[str, str]) -> dict[str, str]:
        return dict(value)

    # =========================================================================
    # Computed properties
    # =========================================================================

    @property
    def all_nodes(self) -> list[PlanNode]:
        """All nodes of the main tree as a flat pre-order list."""
        return list(self.root.iter_nodes())

    @property
    def node_count(self) -> int:
        """Number of nodes in the main tree and every shared subplan."""
        count = len(self.all_nodes)
        for subplan in self.shared_subplans.values():
            count += sum(1 for _ in subplan.root.iter_nodes())
        return count

    @property
    def has_analyze_data(self) -> bool:
        return self.total_time is not None or self.execution_time is not None

    def find_nodes(self, operation: str) -> list[PlanNode]:
        """Find main-tree nodes whose label contains the given text."""
        return [n for n in self.all_nodes if operation in n.operation]

    def resolve(self, node: PlanNode) -> SharedSubplan | None:
        """Follow a node's reference into the registry."""
        if node.refers_to is None:
            return None
        return self.shared_subplans.get(node.refers_to)

    def time_share(self, node: PlanNode) -> float | None:
        """Fraction of the document's total time spent in this node."""
        node_time = node.total_actual_time
        if node_time is None or not self.total_time:
            return None
        return node_time / self.total_time

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible structure with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)

    def to_json(self, indent: int | None = 2) -> str:
        """Stable JSON serialization (sorted keys)."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)
