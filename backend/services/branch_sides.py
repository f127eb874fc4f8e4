"""
Branch Sides

Keeps the "yes" branch of every condition node on one side of its "no"
branch, and assigns the yes/no anchor each condition edge leaves from.

The preferred side for "yes" is the positive secondary axis: right of "no"
in top-to-bottom layouts, below "no" in left-to-right layouts.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

import networkx as nx

from schemas.flow_graph import BranchSide, FlowEdge, FlowGraph, NodeKind, Orientation
from services.layout_geometry import NODE_SEP, Point, build_flow_digraph, extent, secondary_axis

logger = logging.getLogger(__name__)

PREFERRED_YES_DIRECTION = 1


def labelled_branches(graph: FlowGraph, condition_id: str) -> Optional[Tuple[FlowEdge, FlowEdge]]:
    """(yes_edge, no_edge) when the condition has a clean yes/no label pair, else None."""
    out = [e for _, e in graph.outgoing(condition_id)]
    if len(out) != 2:
        return None
    by_branch = {e.branch: e for e in out}
    if set(by_branch) != {BranchSide.YES, BranchSide.NO}:
        return None
    return by_branch[BranchSide.YES], by_branch[BranchSide.NO]


def upstream_nodes(digraph: nx.DiGraph, condition_id: str) -> Set[str]:
    """Nodes the condition can be reached from; a branch only re-enters them through a loop."""
    return nx.ancestors(digraph, condition_id)


def branch_partition(
    graph: FlowGraph, condition_id: str, digraph: Optional[nx.DiGraph] = None
) -> Tuple[Set[str], Set[str], Set[str]]:
    """
    Split the nodes downstream of a condition into (yes_only, no_only, shared).

    Each branch is searched forward from its immediate target; the search
    never passes through the condition itself nor loops back into its
    ancestors. Nodes reached from both branches are convergence nodes and
    belong to neither side.
    """
    pair = labelled_branches(graph, condition_id)
    if pair is None:
        return set(), set(), set()
    if digraph is None:
        digraph = build_flow_digraph(graph)

    blocked = upstream_nodes(digraph, condition_id) | {condition_id}
    allowed = digraph.subgraph(n for n in digraph if n not in blocked)

    def reach(root: str) -> Set[str]:
        if root not in allowed:
            return set()
        return {root} | nx.descendants(allowed, root)

    yes_edge, no_edge = pair
    reach_yes = reach(yes_edge.target)
    reach_no = reach(no_edge.target)
    shared = reach_yes & reach_no
    return reach_yes - shared, reach_no - shared, shared


def _normalize_condition(
    graph: FlowGraph,
    digraph: nx.DiGraph,
    condition_id: str,
    centers: Dict[str, Point],
    kinds: Dict[str, NodeKind],
    axis: int,
) -> bool:
    pair = labelled_branches(graph, condition_id)
    if pair is None:
        return False
    yes_edge, no_edge = pair
    yes_root, no_root = yes_edge.target, no_edge.target
    if yes_root == no_root or condition_id in (yes_root, no_root):
        return False

    yes_pos = centers[yes_root][axis] * PREFERRED_YES_DIRECTION
    no_pos = centers[no_root][axis] * PREFERRED_YES_DIRECTION
    if yes_pos > no_pos:
        return False

    yes_set, no_set, _ = branch_partition(graph, condition_id, digraph)
    if not yes_set and not no_set:
        return False

    min_gap = (extent(kinds[yes_root], axis) + extent(kinds[no_root], axis)) / 2 + NODE_SEP
    separation = max(no_pos - yes_pos, min_gap)
    needed = separation + (no_pos - yes_pos)

    if yes_set and no_set:
        yes_shift, no_shift = needed / 2, -needed / 2
    elif yes_set:
        yes_shift, no_shift = needed, 0.0
    else:
        yes_shift, no_shift = 0.0, -needed

    for node_id, shift in [(n, yes_shift) for n in yes_set] + [(n, no_shift) for n in no_set]:
        point = list(centers[node_id])
        point[axis] += shift * PREFERRED_YES_DIRECTION
        centers[node_id] = (point[0], point[1])

    logger.debug(
        f"Normalized branches of '{condition_id}': moved {len(yes_set)} yes / {len(no_set)} no nodes"
    )
    return True


def normalize_branch_sides(
    graph: FlowGraph, centers: Dict[str, Point], orientation: Orientation
) -> Dict[str, Point]:
    """
    Return a copy of the node centers with every cleanly labelled condition's
    "yes" subtree on the preferred side of its "no" subtree.

    Condition nodes are handled one at a time in creation order, each with
    its own subtree partition; passes repeat until nothing moves, so running
    this on an already normalized layout returns the same positions.
    """
    axis = secondary_axis(orientation)
    digraph = build_flow_digraph(graph)
    kinds = {n.id: n.type for n in graph.nodes}
    conditions = [n.id for n in graph.nodes if n.type == NodeKind.CONDITION]
    normalized = dict(centers)

    for _ in range(2 * len(conditions) + 1):
        changed = False
        for condition_id in conditions:
            if _normalize_condition(graph, digraph, condition_id, normalized, kinds, axis):
                changed = True
        if not changed:
            break
    return normalized


def assign_branch_anchors(
    graph: FlowGraph, centers: Dict[str, Point], orientation: Orientation
) -> Dict[Tuple[str, str], BranchSide]:
    """
    Anchor side for every edge leaving a condition node, keyed by (from, to).

    Labels decide when they form a clean yes/no pair. Otherwise the target
    further along the preferred side gets "yes" and the other "no", so a
    condition never has two anchors of the same side.
    """
    axis = secondary_axis(orientation)
    anchors: Dict[Tuple[str, str], BranchSide] = {}

    for node in graph.nodes:
        if node.type != NodeKind.CONDITION:
            continue
        out: List[FlowEdge] = [e for _, e in graph.outgoing(node.id)]
        if len(out) != 2:
            logger.warning(f"Condition node '{node.id}' has {len(out)} outgoing edges; no anchors assigned")
            continue

        pair = labelled_branches(graph, node.id)
        if pair is not None:
            yes_edge, no_edge = pair
            anchors[(yes_edge.source, yes_edge.target)] = BranchSide.YES
            anchors[(no_edge.source, no_edge.target)] = BranchSide.NO
            continue

        logger.warning(
            f"Condition node '{node.id}' lacks a clean yes/no label pair "
            f"({out[0].label!r}, {out[1].label!r}); anchoring branches by position"
        )
        first, second = out
        first_pos = centers[first.target][axis] * PREFERRED_YES_DIRECTION
        second_pos = centers[second.target][axis] * PREFERRED_YES_DIRECTION
        no_edge, yes_edge = (first, second) if first_pos <= second_pos else (second, first)
        anchors[(no_edge.source, no_edge.target)] = BranchSide.NO
        anchors[(yes_edge.source, yes_edge.target)] = BranchSide.YES

    return anchors
