import uuid
import logging
from typing import Callable, Dict, List, Optional

from schemas.flow_graph import BranchSide, FlowGraph
from schemas.simulation import SimulationSessionResponse, SimulationStatus, SimulationTiming
from services.scheduler import Scheduler
from services.simulation_engine import SimulationEngine

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when a simulation session id is unknown"""
    pass


class SessionLimitError(RuntimeError):
    """Raised when the maximum number of live sessions is reached"""
    pass


class SimulationSessionService:
    """
    Owns the live simulation engines of the service.
    Every engine is closed when its session is deleted or the service shuts down.
    """

    def __init__(
        self,
        timing: Optional[SimulationTiming] = None,
        max_sessions: int = 100,
        scheduler_factory: Optional[Callable[[], Scheduler]] = None,
    ):
        self.timing = timing or SimulationTiming()
        self.max_sessions = max_sessions
        self.scheduler_factory = scheduler_factory
        self.sessions: Dict[str, SimulationEngine] = {}

    def create_session(self, graph: FlowGraph) -> SimulationSessionResponse:
        """
        Validate the graph and open an idle simulation for it.

        At the session limit the least recently used session that is not
        running is closed to make room.
        """
        scheduler = self.scheduler_factory() if self.scheduler_factory else None
        engine = SimulationEngine(graph, scheduler=scheduler, timing=self.timing)

        if len(self.sessions) >= self.max_sessions and not self._evict_inactive_session():
            engine.close()
            raise SessionLimitError(f"Too many running simulation sessions (limit is {self.max_sessions})")

        session_id = str(uuid.uuid4())
        self.sessions[session_id] = engine
        logger.info(f"Opened simulation session {session_id} ({len(graph.nodes)} nodes)")
        return SimulationSessionResponse(session_id=session_id, state=engine.state)

    def get_engine(self, session_id: str) -> SimulationEngine:
        engine = self.sessions.get(session_id)
        if engine is None:
            raise SessionNotFoundError(session_id)
        # most recently used sessions live at the end
        self.sessions[session_id] = self.sessions.pop(session_id)
        return engine

    def _evict_inactive_session(self) -> bool:
        session_id = next(
            (sid for sid, engine in self.sessions.items() if engine.state.status != SimulationStatus.RUNNING),
            None,
        )
        if session_id is None:
            return False
        logger.info(f"Evicting inactive simulation session {session_id}")
        self.close_session(session_id)
        return True

    def get_session(self, session_id: str) -> SimulationSessionResponse:
        return SimulationSessionResponse(session_id=session_id, state=self.get_engine(session_id).state)

    def start(self, session_id: str) -> SimulationSessionResponse:
        self.get_engine(session_id).start()
        return self.get_session(session_id)

    def pause(self, session_id: str) -> SimulationSessionResponse:
        self.get_engine(session_id).pause()
        return self.get_session(session_id)

    def resume(self, session_id: str) -> SimulationSessionResponse:
        self.get_engine(session_id).resume()
        return self.get_session(session_id)

    def reset(self, session_id: str) -> SimulationSessionResponse:
        self.get_engine(session_id).reset()
        return self.get_session(session_id)

    def choose(self, session_id: str, branch: BranchSide) -> SimulationSessionResponse:
        self.get_engine(session_id).choose(branch)
        return self.get_session(session_id)

    def replace_graph(self, session_id: str, graph: FlowGraph) -> SimulationSessionResponse:
        self.get_engine(session_id).replace_graph(graph)
        return self.get_session(session_id)

    def close_session(self, session_id: str) -> None:
        engine = self.sessions.pop(session_id, None)
        if engine is None:
            raise SessionNotFoundError(session_id)
        engine.close()
        logger.info(f"Closed simulation session {session_id}")

    def close_all(self) -> None:
        session_ids: List[str] = list(self.sessions)
        for session_id in session_ids:
            self.sessions.pop(session_id).close()
        if session_ids:
            logger.info(f"Closed {len(session_ids)} simulation sessions")
