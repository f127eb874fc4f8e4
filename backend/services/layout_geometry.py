"""
Layout geometry shared by the layout engine and branch-side normalization.

Footprints, spacing constants and the axis conventions for both orientations.
Coordinates are node centers unless stated otherwise.
"""

from typing import Dict, Optional, Tuple

import networkx as nx

from schemas.flow_graph import BranchSide, FlowGraph, NodeKind, Orientation

Point = Tuple[float, float]

CONDITION_SIZE: Tuple[float, float] = (120, 120)
NODE_SIZE: Tuple[float, float] = (180, 60)

NODE_SEP = 60   # between neighbours within a rank
RANK_SEP = 80   # between consecutive ranks
MARGIN = 40     # around the whole drawing

YES_WEIGHT = 2
DEFAULT_WEIGHT = 1


def node_size(kind: NodeKind) -> Tuple[float, float]:
    """(width, height) of a node; depends on its kind only."""
    if kind == NodeKind.CONDITION:
        return CONDITION_SIZE
    return NODE_SIZE


def secondary_axis(orientation: Orientation) -> int:
    """Index into a Point of the axis that separates siblings within a rank."""
    return 0 if orientation == Orientation.TOP_TO_BOTTOM else 1


def primary_axis(orientation: Orientation) -> int:
    return 1 - secondary_axis(orientation)


def extent(kind: NodeKind, axis: int) -> float:
    return node_size(kind)[axis]


def edge_weight(branch: Optional[BranchSide]) -> int:
    return YES_WEIGHT if branch == BranchSide.YES else DEFAULT_WEIGHT


def build_flow_digraph(graph: FlowGraph) -> nx.DiGraph:
    """
    DiGraph of the flow with node kinds and sizes, and edge weights.
    Parallel edges collapse into one edge carrying the heaviest weight.
    """
    digraph = nx.DiGraph()
    for node in graph.nodes:
        width, height = node_size(node.type)
        digraph.add_node(node.id, kind=node.type, width=width, height=height)

    for edge in graph.edges:
        weight = edge_weight(edge.branch)
        if digraph.has_edge(edge.source, edge.target):
            current = digraph[edge.source][edge.target]["weight"]
            digraph[edge.source][edge.target]["weight"] = max(current, weight)
        else:
            digraph.add_edge(edge.source, edge.target, weight=weight)
    return digraph


def to_top_left(center: Point, kind: NodeKind) -> Point:
    width, height = node_size(kind)
    return (center[0] - width / 2, center[1] - height / 2)


def shift_to_margin(centers: Dict[str, Point], kinds: Dict[str, NodeKind]) -> Dict[str, Point]:
    """Translate the drawing so its top-left bounding corner sits at (MARGIN, MARGIN)."""
    if not centers:
        return {}
    min_x = min(c[0] - node_size(kinds[n])[0] / 2 for n, c in centers.items())
    min_y = min(c[1] - node_size(kinds[n])[1] / 2 for n, c in centers.items())
    dx, dy = MARGIN - min_x, MARGIN - min_y
    return {n: (c[0] + dx, c[1] + dy) for n, c in centers.items()}
