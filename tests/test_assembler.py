"""Tests for plan assembly: reference resolution and derived totals."""

from __future__ import annotations

import logging
import warnings

import pytest

from planview.exceptions import UnresolvedReferenceWarning
from planview.parser import Dialect, PlanNode, SharedSubplan, SubplanKind, assemble
from planview.parser.assembler import compute_total_time
from planview.parser.models import UNRESOLVED_REFERENCE


def reference(name: str) -> PlanNode:
    return PlanNode(operation=f"CTE Scan on {name}", extra={"refersTo": name})


def registry(*names: str) -> dict[str, SharedSubplan]:
    return {
        name: SharedSubplan(name=name, kind=SubplanKind.CTE, root=PlanNode(operation=f"Seq Scan on {name}"))
        for name in names
    }


class TestTotalTime:
    """Root time, else the sum of top-level children, else unset."""

    def test_root_time(self) -> None:
        root = PlanNode(operation="Limit", actual_time=3.0, children=[PlanNode(operation="Sort", actual_time=2.0)])
        assert compute_total_time(root) == 3.0

    def test_sum_of_children(self) -> None:
        root = PlanNode(
            operation="Plan",
            children=[
                PlanNode(operation="Seq Scan on a", actual_time=1.5),
                PlanNode(operation="Seq Scan on b"),
                PlanNode(operation="Seq Scan on c", actual_time=2.5),
            ],
        )
        assert compute_total_time(root) == 4.0

    def test_unset(self) -> None:
        assert compute_total_time(PlanNode(operation="Seq Scan", children=[PlanNode(operation="x")])) is None


class TestAssemble:
    """Reference resolution against the registry."""

    def test_resolved_references(self) -> None:
        root = PlanNode(operation="Hash Join", children=[reference("recent"), reference("recent")])

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            document = assemble(root, registry("recent"))

        assert all(not n.is_unresolved for n in document.all_nodes)
        targets = {id(document.resolve(n)) for n in document.root.children}
        assert targets == {id(document.shared_subplans["recent"])}

    def test_unchanged_tree_is_not_copied(self) -> None:
        root = PlanNode(operation="Hash Join", children=[reference("recent")])
        document = assemble(root, registry("recent"))

        assert document.root is root

    def test_unresolved_reference_is_marked(self, caplog: pytest.LogCaptureFixture) -> None:
        root = PlanNode(operation="Hash Join", children=[reference("missing")])

        with caplog.at_level(logging.WARNING, logger="planview"):
            with pytest.warns(UnresolvedReferenceWarning, match="missing"):
                document = assemble(root, {})

        node = document.root.children[0]
        assert node.is_unresolved
        assert node.extra[UNRESOLVED_REFERENCE] == "missing"
        assert node.extra["refersTo"] == "missing"
        assert "undefined subplan 'missing'" in caplog.text

    def test_unresolved_inside_shared_subplan(self) -> None:
        subplans = {
            "outer": SharedSubplan(name="outer", kind=SubplanKind.CTE, root=reference("inner")),
        }

        with pytest.warns(UnresolvedReferenceWarning):
            document = assemble(PlanNode(operation="Result", children=[reference("outer")]), subplans)

        assert document.shared_subplans["outer"].root.is_unresolved
        assert not document.root.children[0].is_unresolved

    def test_stale_marker_removed(self) -> None:
        node = PlanNode(operation="CTE Scan on x", extra={"refersTo": "x", UNRESOLVED_REFERENCE: "x"})
        document = assemble(node, registry("x"))

        assert not document.root.is_unresolved
        assert document.root.refers_to == "x"

    def test_document_fields(self) -> None:
        root = PlanNode(operation="Seq Scan", actual_time=0.5)
        document = assemble(
            root,
            {},
            dialect=Dialect.JSON,
            planning_time=0.1,
            execution_time=0.7,
            extra={"Triggers": "[]"},
        )

        assert document.dialect is Dialect.JSON
        assert document.total_time == 0.5
        assert document.planning_time == 0.1
        assert document.execution_time == 0.7
        assert document.extra == {"Triggers": "[]"}
