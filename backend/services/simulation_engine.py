"""
Simulation Engine

Walks a flow graph step by step as an observable state machine:

    idle -> running -> paused (at a condition) -> running -> ... -> complete
                   +-> stopped (user pause, resumable)

Start and action nodes auto-advance along their first outgoing edge after a
delay; condition nodes wait for choose("yes" | "no"). Branch identity comes
from the user-visible edge label, never from layout anchors.

The engine owns at most one pending timer. Every operation that could make
a pending step stale cancels it first, and each scheduled step carries the
run generation it was scheduled in so a late callback is ignored.
"""

import logging
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from schemas.flow_graph import (
    BranchSide, FlowEdge, FlowGraph, NodeKind, branch_from_label, validate_flow_graph
)
from schemas.simulation import SimulationState, SimulationStatus, SimulationTiming
from services.scheduler import AsyncioScheduler, Scheduler, TimerHandle

logger = logging.getLogger(__name__)

StateListener = Callable[[SimulationState], None]


class SimulationEngine:
    """
    Interactive traversal of a validated flow graph.
    """

    def __init__(
        self,
        graph: FlowGraph,
        scheduler: Optional[Scheduler] = None,
        timing: Optional[SimulationTiming] = None,
    ):
        self._scheduler = scheduler or AsyncioScheduler()
        self._timing = timing or SimulationTiming()
        self._listeners: List[StateListener] = []
        self._pending: Optional[TimerHandle] = None
        self._generation = 0
        self._closed = False

        self._status = SimulationStatus.IDLE
        self._active_node_id: Optional[str] = None
        self._visited_nodes: Set[str] = set()
        self._visited_edges: Set[str] = set()

        self._load(graph)

    def _load(self, graph: FlowGraph) -> None:
        validate_flow_graph(graph)
        self.graph = graph
        self._kinds: Dict[str, NodeKind] = {n.id: n.type for n in graph.nodes}
        self._adjacency: Dict[str, List[Tuple[str, FlowEdge]]] = graph.adjacency()
        start = graph.start_node()
        self._start_id = start.id if start else None

    # ---------- Observation ----------

    @property
    def state(self) -> SimulationState:
        return SimulationState(
            status=self._status,
            active_node_id=self._active_node_id,
            visited_node_ids=set(self._visited_nodes),
            visited_edge_ids=set(self._visited_edges),
        )

    @property
    def has_pending_timer(self) -> bool:
        return self._pending is not None

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener called with a state snapshot after every transition."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Simulation state listener failed")

    # ---------- Timer ----------

    def _cancel_timer(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _schedule(self, delay: float, node_id: str) -> None:
        self._cancel_timer()
        generation = self._generation

        def fire() -> None:
            if self._closed or generation != self._generation:
                logger.debug(f"Ignoring stale simulation step to '{node_id}'")
                return
            self._pending = None
            self.advance(node_id)

        self._pending = self._scheduler.call_later(delay, fire)

    # ---------- Operations ----------

    def start(self) -> None:
        """Clear the previous run and begin at the start node after a short delay."""
        if self._closed:
            return
        if self._start_id is None:
            logger.warning("Cannot start simulation: graph has no start node")
            return

        self._cancel_timer()
        self._generation += 1
        self._status = SimulationStatus.RUNNING
        self._active_node_id = None
        self._visited_nodes = set()
        self._visited_edges = set()
        self._schedule(self._timing.start_delay, self._start_id)
        self._notify()

    def advance(self, node_id: str) -> None:
        """Make node_id the active node and apply the behaviour of its kind."""
        if self._closed:
            return
        kind = self._kinds.get(node_id)
        if kind is None:
            logger.warning(f"Cannot advance to unknown node '{node_id}'")
            return

        self._cancel_timer()
        self._active_node_id = node_id
        self._visited_nodes.add(node_id)
        outgoing = self._adjacency.get(node_id, [])

        if kind == NodeKind.END or not outgoing:
            self._status = SimulationStatus.COMPLETE
        elif kind == NodeKind.CONDITION:
            self._status = SimulationStatus.PAUSED
        elif kind in (NodeKind.START, NodeKind.ACTION):
            edge_id, edge = outgoing[0]
            self._visited_edges.add(edge_id)
            self._status = SimulationStatus.RUNNING
            self._schedule(self._timing.step_delay, edge.target)
        else:
            raise ValueError(f"Unhandled node kind: {kind}")

        self._notify()

    def choose(self, branch: Union[BranchSide, str]) -> None:
        """Take the yes/no edge of the condition the run is paused at."""
        side = branch if isinstance(branch, BranchSide) else branch_from_label(branch)
        if self._closed or side is None:
            return
        if self._status != SimulationStatus.PAUSED or self._active_node_id is None:
            logger.debug(f"Ignoring choose({side.value}) while {self._status.value}")
            return

        chosen = next(
            ((edge_id, edge) for edge_id, edge in self._adjacency.get(self._active_node_id, [])
             if edge.branch == side),
            None,
        )
        if chosen is None:
            logger.debug(f"Node '{self._active_node_id}' has no '{side.value}' branch")
            return

        edge_id, edge = chosen
        self._visited_edges.add(edge_id)
        self._status = SimulationStatus.RUNNING
        self._schedule(self._timing.choice_delay, edge.target)
        self._notify()

    def pause(self) -> None:
        """Cancel the pending step and move to stopped, keeping the active node and visited sets."""
        if self._closed:
            return
        self._cancel_timer()
        self._generation += 1
        self._status = SimulationStatus.STOPPED
        self._notify()

    def resume(self) -> None:
        """Re-enter the active node immediately."""
        if self._closed or self._active_node_id is None:
            return
        self.advance(self._active_node_id)

    def reset(self) -> None:
        if self._closed:
            return
        self._cancel_timer()
        self._generation += 1
        self._status = SimulationStatus.IDLE
        self._active_node_id = None
        self._visited_nodes = set()
        self._visited_edges = set()
        self._notify()

    def replace_graph(self, graph: FlowGraph) -> None:
        """Swap in a new graph; the current run is discarded."""
        if self._closed:
            return
        self._load(graph)
        self.reset()

    def close(self) -> None:
        """Teardown: cancel the pending step and ignore everything afterwards."""
        self._cancel_timer()
        self._generation += 1
        self._closed = True
        self._listeners.clear()
