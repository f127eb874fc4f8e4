# schemas/flow_graph.py
from __future__ import annotations
from typing import List, Optional, Dict, Tuple
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field

# ---------- Core Enums ----------

class NodeKind(str, Enum):
    START = "start"
    END = "end"
    ACTION = "action"
    CONDITION = "condition"

class BranchSide(str, Enum):
    YES = "yes"
    NO = "no"

class Orientation(str, Enum):
    TOP_TO_BOTTOM = "TB"
    LEFT_TO_RIGHT = "LR"

# ---------- Errors ----------

class StructuralError(ValueError):
    """Raised when a flow graph violates a structural invariant."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))

# ---------- Graph Models ----------

def branch_from_label(label: Optional[str]) -> Optional[BranchSide]:
    """Map a user-visible edge label to a branch side ("Yes" -> yes)."""
    if not label:
        return None
    normalized = label.strip().lower()
    if normalized == BranchSide.YES.value:
        return BranchSide.YES
    if normalized == BranchSide.NO.value:
        return BranchSide.NO
    return None

class FlowNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    type: NodeKind = Field(default=NodeKind.ACTION)

class FlowEdge(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    source: str = Field(alias="from")
    target: str = Field(alias="to")
    label: Optional[str] = None
    id: Optional[str] = None

    @property
    def branch(self) -> Optional[BranchSide]:
        return branch_from_label(self.label)

class FlowGraph(BaseModel):
    model_config = ConfigDict(frozen=True)

    nodes: List[FlowNode] = Field(default_factory=list)
    edges: List[FlowEdge] = Field(default_factory=list)

    def edge_id(self, index: int) -> str:
        """Stable edge id: explicit id if given, else its position ("e0", "e1", ...)."""
        return self.edges[index].id or f"e{index}"

    def start_node(self) -> Optional[FlowNode]:
        return next((n for n in self.nodes if n.type == NodeKind.START), None)

    def outgoing(self, node_id: str) -> List[Tuple[str, FlowEdge]]:
        """Outgoing edges of a node as (edge_id, edge), in insertion order."""
        return [
            (self.edge_id(i), e) for i, e in enumerate(self.edges)
            if e.source == node_id
        ]

    def adjacency(self) -> Dict[str, List[Tuple[str, FlowEdge]]]:
        adjacency: Dict[str, List[Tuple[str, FlowEdge]]] = {n.id: [] for n in self.nodes}
        for i, e in enumerate(self.edges):
            adjacency.setdefault(e.source, []).append((self.edge_id(i), e))
        return adjacency

# ---------- Validation Helpers ----------

def validate_flow_topology(graph: FlowGraph, require_branch_labels: bool = True) -> List[str]:
    """
    Validate structural constraints for flow graphs:
    - exactly one START node, at least one END node
    - node ids and edge ids are unique
    - every edge references existing nodes
    - CONDITION: exactly 2 outgoing, labelled "yes" and "no" (when require_branch_labels)
    """
    errs: List[str] = []

    starts = [n for n in graph.nodes if n.type == NodeKind.START]
    if not starts:
        errs.append("Missing start node")
    elif len(starts) > 1:
        errs.append(f"Flow must have exactly 1 start node (has {len(starts)}: {', '.join(n.id for n in starts)})")

    if not any(n.type == NodeKind.END for n in graph.nodes):
        errs.append("Missing end node")

    seen: Dict[str, int] = {}
    for n in graph.nodes:
        seen[n.id] = seen.get(n.id, 0) + 1
    for node_id, count in seen.items():
        if count > 1:
            errs.append(f"Duplicate node id '{node_id}' ({count} nodes)")

    edge_ids: Dict[str, int] = {}
    for i in range(len(graph.edges)):
        edge_id = graph.edge_id(i)
        edge_ids[edge_id] = edge_ids.get(edge_id, 0) + 1
    for edge_id, count in edge_ids.items():
        if count > 1:
            errs.append(f"Duplicate edge id '{edge_id}' ({count} edges)")

    outgoing: Dict[str, List[FlowEdge]] = {n.id: [] for n in graph.nodes}
    for e in graph.edges:
        if e.source not in seen:
            errs.append(f"Edge references unknown node: {e.source}")
            continue
        if e.target not in seen:
            errs.append(f"Edge references unknown node: {e.target}")
            continue
        outgoing[e.source].append(e)

    for n in graph.nodes:
        if n.type != NodeKind.CONDITION:
            continue
        out = outgoing.get(n.id, [])
        if len(out) != 2:
            errs.append(f"Condition node '{n.id}' must have exactly 2 outgoing edges (has {len(out)})")
            continue
        if require_branch_labels:
            branches = {e.branch for e in out}
            if branches != {BranchSide.YES, BranchSide.NO}:
                labels = ", ".join(repr(e.label) for e in out)
                errs.append(f"Condition node '{n.id}' must have one 'yes' and one 'no' edge (has {labels})")

    return errs

def validate_flow_graph(graph: FlowGraph, require_branch_labels: bool = True) -> None:
    """Raise StructuralError listing every violated invariant."""
    errors = validate_flow_topology(graph, require_branch_labels=require_branch_labels)
    if errors:
        raise StructuralError(errors)

# ---------- Request Models ----------

class ValidateRequest(BaseModel):
    graph: FlowGraph
    require_branch_labels: bool = True

class ValidateResponse(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
