"""
Plan assembly: structural tree + registry -> immutable PlanDocument.

Resolves every shared-subplan reference against the registry and computes
the derived total time. An unresolved reference is the one recoverable
anomaly in the pipeline: it is marked on the node and assembly continues.
"""

from __future__ import annotations

import logging
import warnings

from planview.exceptions import UnresolvedReferenceWarning
from planview.parser.models import (
    UNRESOLVED_REFERENCE,
    Dialect,
    PlanDocument,
    PlanNode,
    SharedSubplan,
)

logger = logging.getLogger(__name__)


def assemble(
    root: PlanNode,
    shared_subplans: dict[str, SharedSubplan],
    *,
    dialect: Dialect = Dialect.TEXT_TREE,
    planning_time: float | None = None,
    execution_time: float | None = None,
    extra: dict[str, str] | None = None,
) -> PlanDocument:
    """
    Build the final document.

    Args:
        root: Main plan tree
        shared_subplans: Registry of CTE / InitPlan / SubPlan bodies by name
        dialect: Format the tree was built from
        planning_time: Engine-reported planning time, if any
        execution_time: Engine-reported execution time, if any
        extra: Document-level fields outside the common schema

    Returns:
        The immutable PlanDocument. References with no registry entry carry
        ``extra["unresolvedReference"]``.
    """
    registry = {
        name: subplan.model_copy(update={"root": _resolve(subplan.root, shared_subplans)})
        for name, subplan in shared_subplans.items()
    }
    resolved_root = _resolve(root, shared_subplans)

    return PlanDocument(
        root=resolved_root,
        shared_subplans=registry,
        total_time=compute_total_time(resolved_root),
        dialect=dialect,
        planning_time=planning_time,
        execution_time=execution_time,
        extra=dict(extra or {}),
    )


def compute_total_time(root: PlanNode) -> float | None:
    """
    Root actual time, else the sum of the root's children, else None.

    Text plans with several top-level statements get a synthetic root with
    no statistics of its own; their times add up.
    """
    if root.actual_time is not None:
        return root.actual_time

    times = [child.actual_time for child in root.children if child.actual_time is not None]
    if not times:
        return None
    return sum(times)


def _resolve(node: PlanNode, registry: dict[str, SharedSubplan]) -> PlanNode:
    """Return the node, or a copy with unresolved markers where needed."""
    children = [_resolve(child, registry) for child in node.children]
    changed = any(new is not old for new, old in zip(children, node.children))

    extra = node.extra
    name = node.refers_to
    if name is not None and name not in registry:
        logger.warning("Node %r refers to undefined subplan %r", node.operation, name)
        warnings.warn(
            f"'{node.operation}' refers to undefined subplan '{name}'",
            UnresolvedReferenceWarning,
            stacklevel=3,
        )
        if extra.get(UNRESOLVED_REFERENCE) != name:
            extra = {**extra, UNRESOLVED_REFERENCE: name}
            changed = True
    elif name is not None and UNRESOLVED_REFERENCE in extra:
        extra = {k: v for k, v in extra.items() if k != UNRESOLVED_REFERENCE}
        changed = True

    if not changed:
        return node
    return PlanNode(
        **node.model_dump(exclude={"children", "extra"}),
        children=children,
        extra=extra,
    )
