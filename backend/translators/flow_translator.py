"""
Flow Render Translator

Combines a FlowGraph, its FlowLayout and optionally a simulation snapshot
into the node/edge payload a rendering surface draws.
Orientation and simulation state are passed in explicitly.
"""

from typing import Dict, Any, Optional
from schemas.flow_graph import FlowGraph, FlowNode, NodeKind, Orientation, BranchSide
from schemas.layout import FlowLayout
from schemas.simulation import SimulationState, SimulationStatus

class FlowRenderTranslator:
    """
    Deterministic translator from FlowGraph + FlowLayout to render format.
    Handles handle sides, styling and simulation highlighting.
    """

    def __init__(self):
        # Node styling configurations
        self.node_styles = {
            NodeKind.START: {
                "borderRadius": "30px",
                "border": "1px solid #22c55e",
                "color": "#dcfce7"
            },
            NodeKind.END: {
                "borderRadius": "30px",
                "border": "1px solid #ef4444",
                "color": "#fee2e2"
            },
            NodeKind.ACTION: {
                "borderRadius": "8px",
                "border": "1px solid #3b82f6",
                "color": "#dbeafe"
            },
            NodeKind.CONDITION: {
                "background": "transparent",
                "border": "none",
                "color": "#fef9c3"
            }
        }

        self.marker_end = {
            "type": "arrowclosed",
            "color": "#3b82f6"
        }

        # Side each handle sits on, per orientation
        self.handle_sides = {
            Orientation.TOP_TO_BOTTOM: {
                "target": "top",
                "source": "bottom",
                BranchSide.YES: "right",
                BranchSide.NO: "left",
            },
            Orientation.LEFT_TO_RIGHT: {
                "target": "left",
                "source": "right",
                BranchSide.YES: "bottom",
                BranchSide.NO: "top",
            },
        }

    def translate(
        self,
        graph: FlowGraph,
        layout: FlowLayout,
        simulation: Optional[SimulationState] = None
    ) -> Dict[str, Any]:
        """
        Convert a laid-out FlowGraph to render format.

        Args:
            graph: Flow graph the layout was computed for
            layout: Positions and branch anchors
            simulation: Optional snapshot used to highlight active/visited elements

        Returns:
            Dict containing nodes, edges and metadata
        """
        render_nodes = [
            self._convert_node(node, layout, simulation)
            for node in graph.nodes
        ]

        render_edges = []
        for index, edge in enumerate(graph.edges):
            edge_id = graph.edge_id(index)
            react_edge = {
                "id": edge_id,
                "source": edge.source,
                "target": edge.target,
                "type": "animated",
                "animated": False,
                "markerEnd": self.marker_end.copy(),
                "data": {"simulation": self._edge_simulation_state(edge_id, simulation)}
            }
            if edge.label:
                react_edge["label"] = edge.label
            anchor = layout.anchor_for(edge.source, edge.target)
            if anchor is not None:
                react_edge["sourceHandle"] = anchor.value
            render_edges.append(react_edge)

        return {
            "nodes": render_nodes,
            "edges": render_edges,
            "metadata": {
                "orientation": layout.orientation.value,
                "width": layout.width,
                "height": layout.height,
                "simulation_status": simulation.status.value if simulation else SimulationStatus.IDLE.value
            }
        }

    def _convert_node(
        self,
        node: FlowNode,
        layout: FlowLayout,
        simulation: Optional[SimulationState]
    ) -> Dict[str, Any]:
        """Convert FlowNode to render node format"""
        position = layout.positions[node.id]
        sides = self.handle_sides[layout.orientation]

        style = self.node_styles[node.type].copy()
        style["width"] = position.width
        style["height"] = position.height

        render_node = {
            "id": node.id,
            "type": node.type.value,
            "position": {"x": position.x, "y": position.y},
            "data": {
                "label": node.label,
                "simulation": self._node_simulation_state(node.id, simulation)
            },
            "style": style,
            "targetPosition": sides["target"],
            "sourcePosition": sides["source"]
        }

        if node.type == NodeKind.CONDITION:
            render_node["handles"] = {
                BranchSide.YES.value: sides[BranchSide.YES],
                BranchSide.NO.value: sides[BranchSide.NO]
            }

        return render_node

    def _node_simulation_state(self, node_id: str, simulation: Optional[SimulationState]) -> str:
        if simulation is None or simulation.status == SimulationStatus.IDLE:
            return "idle"
        if simulation.active_node_id == node_id:
            return "active"
        if node_id in simulation.visited_node_ids:
            return "visited"
        return "dimmed"

    def _edge_simulation_state(self, edge_id: str, simulation: Optional[SimulationState]) -> str:
        if simulation is None or simulation.status == SimulationStatus.IDLE:
            return "idle"
        if edge_id in simulation.visited_edge_ids:
            return "visited"
        return "dimmed"
