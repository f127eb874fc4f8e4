# schemas/layout.py
from __future__ import annotations
from typing import List, Optional, Dict
from pydantic import BaseModel, Field

from schemas.flow_graph import BranchSide, FlowGraph, Orientation

# ---------- Layout Models ----------

class NodePosition(BaseModel):
    node_id: str
    x: float
    y: float
    width: float
    height: float

class BranchAnchor(BaseModel):
    source: str
    target: str
    side: BranchSide

class FlowLayout(BaseModel):
    orientation: Orientation
    positions: Dict[str, NodePosition] = Field(default_factory=dict)
    anchors: List[BranchAnchor] = Field(default_factory=list)
    width: float = 0
    height: float = 0

    def anchor_for(self, source: str, target: str) -> Optional[BranchSide]:
        for anchor in self.anchors:
            if anchor.source == source and anchor.target == target:
                return anchor.side
        return None

# ---------- Request Models ----------

class LayoutRequest(BaseModel):
    graph: FlowGraph
    orientation: Optional[Orientation] = None

class RenderRequest(LayoutRequest):
    session_id: Optional[str] = None  # highlight the state of this simulation session
