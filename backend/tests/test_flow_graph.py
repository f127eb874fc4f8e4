"""Tests for flow graph validation and helpers."""

import pytest
from pydantic import ValidationError

from schemas.flow_graph import (
    BranchSide,
    FlowEdge,
    FlowGraph,
    StructuralError,
    branch_from_label,
    validate_flow_graph,
    validate_flow_topology,
)
from conftest import make_graph


def test_valid_graph_has_no_errors(decision_graph):
    assert validate_flow_topology(decision_graph) == []
    validate_flow_graph(decision_graph)


def test_missing_start_and_end_are_reported():
    graph = make_graph([("a", "Do work", "action")], [])
    errors = validate_flow_topology(graph)
    assert "Missing start node" in errors
    assert "Missing end node" in errors


def test_two_start_nodes_rejected():
    graph = make_graph(
        [("1", "A", "start"), ("2", "B", "start"), ("3", "C", "end")],
        [("1", "3", None), ("2", "3", None)],
    )
    errors = validate_flow_topology(graph)
    assert any("exactly 1 start node" in e for e in errors)


def test_dangling_edge_reported_with_node_id():
    graph = make_graph(
        [("1", "Start", "start"), ("2", "End", "end")],
        [("1", "2", None), ("2", "99", None)],
    )
    with pytest.raises(StructuralError) as exc_info:
        validate_flow_graph(graph)
    assert "Edge references unknown node: 99" in exc_info.value.errors


def test_duplicate_node_ids_rejected():
    graph = make_graph(
        [("1", "Start", "start"), ("1", "Again", "action"), ("2", "End", "end")],
        [("1", "2", None)],
    )
    assert any("Duplicate node id '1'" in e for e in validate_flow_topology(graph))


def test_condition_needs_exactly_two_edges():
    graph = make_graph(
        [("1", "Start", "start"), ("2", "Ok?", "condition"), ("3", "End", "end")],
        [("1", "2", None), ("2", "3", "yes")],
    )
    errors = validate_flow_topology(graph)
    assert errors == ["Condition node '2' must have exactly 2 outgoing edges (has 1)"]


def test_malformed_label_pair_is_structural_only_in_strict_mode():
    graph = make_graph(
        [
            ("1", "Start", "start"),
            ("2", "Approved?", "condition"),
            ("3", "Pay", "end"),
            ("4", "Refuse", "end"),
        ],
        [("1", "2", None), ("2", "3", "approved"), ("2", "4", "rejected")],
    )
    errors = validate_flow_topology(graph)
    assert len(errors) == 1
    assert "must have one 'yes' and one 'no' edge" in errors[0]
    assert validate_flow_topology(graph, require_branch_labels=False) == []


def test_structural_error_message_joins_all_errors():
    error = StructuralError(["Missing start node", "Missing end node"])
    assert str(error) == "Missing start node; Missing end node"
    assert isinstance(error, ValueError)


@pytest.mark.parametrize("label,expected", [
    ("Yes", BranchSide.YES),
    ("  no ", BranchSide.NO),
    ("NO", BranchSide.NO),
    ("maybe", None),
    ("", None),
    (None, None),
])
def test_branch_from_label(label, expected):
    assert branch_from_label(label) == expected


def test_edges_parse_from_and_to_keys():
    graph = FlowGraph.model_validate({
        "nodes": [
            {"id": "1", "label": "Start", "type": "start"},
            {"id": "2", "label": "End", "type": "end"},
        ],
        "edges": [{"from": "1", "to": "2", "label": "Yes"}],
    })
    edge = graph.edges[0]
    assert (edge.source, edge.target) == ("1", "2")
    assert edge.branch == BranchSide.YES


def test_edge_ids_default_to_position():
    graph = FlowGraph(
        nodes=[],
        edges=[FlowEdge(source="a", target="b"), FlowEdge(source="b", target="c", id="custom")],
    )
    assert graph.edge_id(0) == "e0"
    assert graph.edge_id(1) == "custom"


def test_outgoing_keeps_insertion_order(decision_graph):
    outgoing = decision_graph.outgoing("3")
    assert [edge_id for edge_id, _ in outgoing] == ["e2", "e3"]
    assert [e.target for _, e in outgoing] == ["4", "5"]


def test_unknown_node_type_rejected():
    with pytest.raises(ValidationError):
        FlowGraph.model_validate({
            "nodes": [{"id": "1", "label": "X", "type": "subprocess"}],
            "edges": [],
        })


def test_graph_models_are_frozen(decision_graph):
    with pytest.raises(ValidationError):
        decision_graph.nodes[0].label = "changed"


def test_duplicate_edge_ids_rejected():
    graph = FlowGraph(
        nodes=[],
        edges=[FlowEdge(source="1", target="2", id="dup"), FlowEdge(source="2", target="3", id="dup")],
    )
    assert "Duplicate edge id 'dup' (2 edges)" in validate_flow_topology(graph)


def test_explicit_edge_id_clashing_with_generated_id_rejected():
    graph = make_graph(
        [("1", "Start", "start"), ("2", "Work", "action"), ("3", "End", "end")],
        [("1", "2", None), ("2", "3", None)],
    )
    clashing = graph.model_copy(update={
        "edges": [FlowEdge(source="1", target="2", id="e1"), graph.edges[1]],
    })
    assert validate_flow_topology(graph) == []
    assert validate_flow_topology(clashing) == ["Duplicate edge id 'e1' (2 edges)"]
