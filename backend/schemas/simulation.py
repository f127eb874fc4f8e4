# schemas/simulation.py
from __future__ import annotations
from typing import Optional, Set
from enum import Enum
from pydantic import BaseModel, Field

from schemas.flow_graph import BranchSide, FlowGraph

# ---------- Core Enums ----------

class SimulationStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETE = "complete"

# ---------- State Models ----------

class SimulationState(BaseModel):
    status: SimulationStatus = SimulationStatus.IDLE
    active_node_id: Optional[str] = None
    visited_node_ids: Set[str] = Field(default_factory=set)
    visited_edge_ids: Set[str] = Field(default_factory=set)

# ---------- Session Models ----------

class SimulationSessionCreate(BaseModel):
    graph: FlowGraph

class SimulationSessionResponse(BaseModel):
    session_id: str
    state: SimulationState

class ChooseBranchRequest(BaseModel):
    branch: BranchSide

# ---------- Timing ----------

class SimulationTiming(BaseModel):
    """Delays, in seconds, between simulation steps."""
    start_delay: float = 0.05
    step_delay: float = 0.8
    choice_delay: float = 0.05
