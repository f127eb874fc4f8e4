"""
Layered Layout Engine

Computes deterministic node positions and branch anchors for a flow graph.
The engine is a pure function of (graph, orientation): nothing is kept
between calls, so an orientation toggle is simply a fresh layout.

Pipeline:
  1. Cycle breaking   (DFS from the start node, back edges reversed for ranking only)
  2. Rank assignment  (longest path over the acyclic copy)
  3. Virtual nodes    (edges spanning several ranks get one per intermediate rank)
  4. Rank ordering    (weighted barycenter sweeps, fewest crossings kept)
  5. Coordinates      (weighted isotonic placement along the secondary axis)
  6. Branch sides     (yes subtree moved to the preferred side, anchors assigned)
"""

import logging
from typing import Dict, Hashable, List, Set, Tuple

import networkx as nx

from schemas.flow_graph import BranchSide, FlowGraph, Orientation, validate_flow_graph
from schemas.layout import BranchAnchor, FlowLayout, NodePosition
from services.branch_sides import assign_branch_anchors, normalize_branch_sides
from services.layout_geometry import (
    MARGIN,
    NODE_SEP,
    RANK_SEP,
    Point,
    build_flow_digraph,
    node_size,
    primary_axis,
    secondary_axis,
    shift_to_margin,
    to_top_left,
)

logger = logging.getLogger(__name__)

ORDER_SWEEPS = 4
VIRTUAL = "virtual"


class LayoutEngine:
    """
    Deterministic layered layout for flow graphs.
    Produces top-left positions per node and yes/no anchors per condition edge.
    """

    def layout(self, graph: FlowGraph, orientation: Orientation = Orientation.TOP_TO_BOTTOM) -> FlowLayout:
        """
        Lay out a flow graph.

        Args:
            graph: Flow graph; label pairs on condition nodes may be malformed
            orientation: TB (ranks are rows) or LR (ranks are columns)

        Returns:
            FlowLayout with a position per node and the branch-anchor list

        Raises:
            StructuralError: if the graph has dangling edges or other structural errors
        """
        validate_flow_graph(graph, require_branch_labels=False)

        digraph = build_flow_digraph(graph)
        order = {n.id: i for i, n in enumerate(graph.nodes)}
        roots = self._dfs_roots(graph)

        dag = self._break_cycles(digraph, roots)
        ranks = self._assign_ranks(dag, order)
        layered, ranks = self._insert_virtual_nodes(dag, ranks)
        layers = self._order_layers(layered, ranks, roots)
        centers = self._assign_coordinates(layered, layers, orientation)

        kinds = {n.id: n.type for n in graph.nodes}
        centers = {node_id: centers[node_id] for node_id in order}
        centers = normalize_branch_sides(graph, centers, orientation)
        centers = shift_to_margin(centers, kinds)
        anchors = assign_branch_anchors(graph, centers, orientation)

        logger.debug(
            f"Laid out {len(graph.nodes)} nodes in {len(layers)} ranks ({orientation.value})"
        )
        return self._build_layout(graph, centers, anchors, orientation)

    def _dfs_roots(self, graph: FlowGraph) -> List[str]:
        """Start node first, then every node in creation order."""
        start = graph.start_node()
        roots = [start.id] if start else []
        roots.extend(n.id for n in graph.nodes if not start or n.id != start.id)
        return roots

    def _break_cycles(self, digraph: nx.DiGraph, roots: List[str]) -> nx.DiGraph:
        """
        Acyclic copy of the graph: edges closing a cycle during a DFS are
        reversed, self-loops dropped. The rendered graph keeps every edge.
        """
        on_stack, done = set(), set()
        back_edges: Set[Tuple[str, str]] = set()

        for root in roots:
            if root in on_stack or root in done:
                continue
            on_stack.add(root)
            stack = [(root, iter(digraph.successors(root)))]
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    on_stack.discard(node)
                    done.add(node)
                    stack.pop()
                elif child in on_stack:
                    back_edges.add((node, child))
                elif child not in done:
                    on_stack.add(child)
                    stack.append((child, iter(digraph.successors(child))))

        dag = nx.DiGraph()
        dag.add_nodes_from(digraph.nodes(data=True))
        for source, target, data in digraph.edges(data=True):
            if source == target:
                continue
            if (source, target) in back_edges:
                source, target = target, source
            if dag.has_edge(source, target):
                dag[source][target]["weight"] = max(dag[source][target]["weight"], data["weight"])
            else:
                dag.add_edge(source, target, weight=data["weight"])
        return dag

    def _assign_ranks(self, dag: nx.DiGraph, order: Dict[str, int]) -> Dict[Hashable, int]:
        """Longest-path rank: rank[v] = max(rank[u] + 1) over predecessors u."""
        ranks: Dict[Hashable, int] = {}
        for node in nx.lexicographical_topological_sort(dag, key=lambda n: order[n]):
            ranks[node] = max((ranks[p] + 1 for p in dag.predecessors(node)), default=0)
        return ranks

    def _insert_virtual_nodes(
        self, dag: nx.DiGraph, ranks: Dict[Hashable, int]
    ) -> Tuple[nx.DiGraph, Dict[Hashable, int]]:
        layered = nx.DiGraph()
        layered.add_nodes_from(dag.nodes(data=True))
        ranks = dict(ranks)

        for source, target, data in dag.edges(data=True):
            span = ranks[target] - ranks[source]
            previous = source
            for step in range(1, span):
                virtual = (VIRTUAL, source, target, step)
                layered.add_node(virtual, kind=None, width=0, height=0)
                ranks[virtual] = ranks[source] + step
                layered.add_edge(previous, virtual, weight=data["weight"])
                previous = virtual
            layered.add_edge(previous, target, weight=data["weight"])
        return layered, ranks

    # ---------- Ordering ----------

    def _order_layers(
        self, layered: nx.DiGraph, ranks: Dict[Hashable, int], roots: List[str]
    ) -> List[List[Hashable]]:
        layers: List[List[Hashable]] = [[] for _ in range(max(ranks.values()) + 1)]
        seen: Set[Hashable] = set()
        for root in roots:
            for node in nx.dfs_preorder_nodes(layered, root):
                if node not in seen:
                    seen.add(node)
                    layers[ranks[node]].append(node)

        best = [list(layer) for layer in layers]
        best_crossings = self._count_crossings(layered, best)
        for _ in range(ORDER_SWEEPS):
            for r in range(1, len(layers)):
                layers[r] = self._sort_layer(layered, layers[r], layers[r - 1], upstream=True)
            for r in range(len(layers) - 2, -1, -1):
                layers[r] = self._sort_layer(layered, layers[r], layers[r + 1], upstream=False)

            crossings = self._count_crossings(layered, layers)
            # later sweeps carry the yes-weight tie-break, so they win ties
            if crossings <= best_crossings:
                best = [list(layer) for layer in layers]
                best_crossings = crossings
        return best

    def _sort_layer(
        self, layered: nx.DiGraph, layer: List[Hashable], fixed: List[Hashable], upstream: bool
    ) -> List[Hashable]:
        fixed_index = {node: i for i, node in enumerate(fixed)}
        current = {node: i for i, node in enumerate(layer)}

        def sort_key(node):
            if upstream:
                links = [(u, w) for u, _, w in layered.in_edges(node, data="weight")]
            else:
                links = [(v, w) for _, v, w in layered.out_edges(node, data="weight")]
            total = sum(w for other, w in links if other in fixed_index)
            weighted = sum(w * fixed_index[other] for other, w in links if other in fixed_index)
            barycenter = weighted / total if total else float(current[node])
            pull = max((w for _, _, w in layered.in_edges(node, data="weight")), default=0)
            return (barycenter, pull, current[node])

        return sorted(layer, key=sort_key)

    def _count_crossings(self, layered: nx.DiGraph, layers: List[List[Hashable]]) -> int:
        crossings = 0
        for upper, lower in zip(layers, layers[1:]):
            upper_index = {node: i for i, node in enumerate(upper)}
            lower_index = {node: i for i, node in enumerate(lower)}
            segments = [
                (upper_index[u], lower_index[v])
                for u in upper for v in layered.successors(u) if v in lower_index
            ]
            for i, (a1, b1) in enumerate(segments):
                for a2, b2 in segments[i + 1:]:
                    if (a1 - a2) * (b1 - b2) < 0:
                        crossings += 1
        return crossings

    # ---------- Coordinates ----------

    def _assign_coordinates(
        self, layered: nx.DiGraph, layers: List[List[Hashable]], orientation: Orientation
    ) -> Dict[Hashable, Point]:
        sec_axis, prim_axis = secondary_axis(orientation), primary_axis(orientation)

        def size(node, axis):
            data = layered.nodes[node]
            return (data["width"], data["height"])[axis]

        secondary: Dict[Hashable, float] = {}
        primary: Dict[Hashable, float] = {}
        rank_start = MARGIN

        for layer in layers:
            depth = max(size(node, prim_axis) for node in layer)
            for node in layer:
                primary[node] = rank_start + depth / 2
            rank_start += depth + RANK_SEP

            targets, weights, gaps = [], [], []
            for i, node in enumerate(layer):
                placed = [(u, w) for u, _, w in layered.in_edges(node, data="weight") if u in secondary]
                total = sum(w for _, w in placed)
                if total:
                    targets.append(sum(w * secondary[u] for u, w in placed) / total)
                    weights.append(total)
                else:
                    targets.append(0.0)
                    weights.append(1)
                if i:
                    previous = layer[i - 1]
                    sep = NODE_SEP if not self._is_virtual(node) and not self._is_virtual(previous) else NODE_SEP / 2
                    gaps.append((size(previous, sec_axis) + size(node, sec_axis)) / 2 + sep)

            for node, value in zip(layer, self._place_in_order(targets, weights, gaps)):
                secondary[node] = value

        centers: Dict[Hashable, Point] = {}
        for node in primary:
            point = [0.0, 0.0]
            point[prim_axis] = primary[node]
            point[sec_axis] = secondary[node]
            centers[node] = (point[0], point[1])
        return centers

    def _place_in_order(self, targets: List[float], weights: List[float], gaps: List[float]) -> List[float]:
        """
        Weighted least-squares placement keeping order and minimum gaps:
        minimise sum w_i (x_i - t_i)^2 subject to x_{i+1} - x_i >= gap_i.
        Offsetting by the cumulative gaps turns this into isotonic regression,
        solved with pool-adjacent-violators.
        """
        offsets = [0.0]
        for gap in gaps:
            offsets.append(offsets[-1] + gap)

        blocks: List[List[float]] = []  # [value, weight, count]
        for target, weight, offset in zip(targets, weights, offsets):
            blocks.append([target - offset, weight, 1])
            while len(blocks) > 1 and blocks[-2][0] > blocks[-1][0]:
                value2, weight2, count2 = blocks.pop()
                value1, weight1, count1 = blocks.pop()
                merged = (value1 * weight1 + value2 * weight2) / (weight1 + weight2)
                blocks.append([merged, weight1 + weight2, count1 + count2])

        values: List[float] = []
        for value, _, count in blocks:
            values.extend([value] * int(count))
        return [value + offset for value, offset in zip(values, offsets)]

    def _is_virtual(self, node: Hashable) -> bool:
        return isinstance(node, tuple) and node[0] == VIRTUAL

    # ---------- Output ----------

    def _build_layout(
        self,
        graph: FlowGraph,
        centers: Dict[str, Point],
        anchors: Dict[Tuple[str, str], BranchSide],
        orientation: Orientation,
    ) -> FlowLayout:
        positions: Dict[str, NodePosition] = {}
        right = bottom = 0.0
        for node in graph.nodes:
            width, height = node_size(node.type)
            x, y = to_top_left(centers[node.id], node.type)
            positions[node.id] = NodePosition(node_id=node.id, x=x, y=y, width=width, height=height)
            right = max(right, x + width)
            bottom = max(bottom, y + height)

        return FlowLayout(
            orientation=orientation,
            positions=positions,
            anchors=[
                BranchAnchor(source=source, target=target, side=side)
                for (source, target), side in anchors.items()
            ],
            width=right + MARGIN,
            height=bottom + MARGIN,
        )
