"""Shared flow graph fixtures."""

from typing import List, Optional, Tuple

import pytest

from schemas.flow_graph import FlowEdge, FlowGraph, FlowNode, NodeKind


def make_graph(
    nodes: List[Tuple[str, str, str]],
    edges: List[Tuple[str, str, Optional[str]]],
) -> FlowGraph:
    """Build a FlowGraph from (id, label, type) and (from, to, label) tuples."""
    return FlowGraph(
        nodes=[FlowNode(id=node_id, label=label, type=NodeKind(kind)) for node_id, label, kind in nodes],
        edges=[FlowEdge(source=source, target=target, label=label) for source, target, label in edges],
    )


def centers(layout) -> dict:
    """Node centers computed from a layout's top-left positions."""
    return {
        node_id: (p.x + p.width / 2, p.y + p.height / 2)
        for node_id, p in layout.positions.items()
    }


@pytest.fixture
def decision_graph() -> FlowGraph:
    """start(1) -> action(2) -> condition(3) {yes -> end(4), no -> end(5)}"""
    return make_graph(
        [
            ("1", "User registers", "start"),
            ("2", "Verify email", "action"),
            ("3", "Is email valid?", "condition"),
            ("4", "Enter the system", "end"),
            ("5", "Ask user to retry", "end"),
        ],
        [
            ("1", "2", None),
            ("2", "3", None),
            ("3", "4", "Yes"),
            ("3", "5", "No"),
        ],
    )


@pytest.fixture
def no_first_graph() -> FlowGraph:
    """Same shape as decision_graph but the "no" edge is listed first."""
    return make_graph(
        [
            ("1", "Order placed", "start"),
            ("2", "Check stock", "action"),
            ("3", "In stock?", "condition"),
            ("4", "Backorder", "end"),
            ("5", "Ship order", "end"),
        ],
        [
            ("1", "2", None),
            ("2", "3", None),
            ("3", "4", "no"),
            ("3", "5", "YES"),
        ],
    )


@pytest.fixture
def nested_graph() -> FlowGraph:
    """Two nested conditions whose branches converge on a single end node."""
    return make_graph(
        [
            ("1", "Receive claim", "start"),
            ("2", "Claim valid?", "condition"),
            ("3", "High value?", "condition"),
            ("4", "Reject claim", "action"),
            ("5", "Manager review", "action"),
            ("6", "Auto approve", "action"),
            ("7", "Close claim", "end"),
        ],
        [
            ("1", "2", None),
            ("2", "4", "No"),
            ("2", "3", "Yes"),
            ("3", "6", "No"),
            ("3", "5", "Yes"),
            ("4", "7", None),
            ("5", "7", None),
            ("6", "7", None),
        ],
    )


@pytest.fixture
def retry_graph() -> FlowGraph:
    """A "no" branch that loops back to an earlier step."""
    return make_graph(
        [
            ("1", "Start", "start"),
            ("2", "Enter password", "action"),
            ("3", "Password correct?", "condition"),
            ("4", "Logged in", "end"),
        ],
        [
            ("1", "2", None),
            ("2", "3", None),
            ("3", "4", "Yes"),
            ("3", "2", "No"),
        ],
    )
