"""Tests for the simulation session service."""

import pytest

from schemas.flow_graph import BranchSide, StructuralError
from schemas.simulation import SimulationStatus
from services.scheduler import ManualScheduler
from services.simulation_sessions import (
    SessionLimitError,
    SessionNotFoundError,
    SimulationSessionService,
)


@pytest.fixture
def schedulers():
    return []


@pytest.fixture
def service(schedulers):
    def factory():
        scheduler = ManualScheduler()
        schedulers.append(scheduler)
        return scheduler

    return SimulationSessionService(max_sessions=2, scheduler_factory=factory)


def test_create_session_returns_idle_state(service, decision_graph):
    session = service.create_session(decision_graph)
    assert session.state.status == SimulationStatus.IDLE
    assert session.session_id in service.sessions


def test_session_ids_are_unique(service, decision_graph):
    first = service.create_session(decision_graph)
    second = service.create_session(decision_graph)
    assert first.session_id != second.session_id


def test_full_run_through_service(service, schedulers, decision_graph):
    session_id = service.create_session(decision_graph).session_id
    assert service.start(session_id).state.status == SimulationStatus.RUNNING

    schedulers[0].run_all()
    assert service.get_session(session_id).state.status == SimulationStatus.PAUSED

    service.choose(session_id, BranchSide.NO)
    schedulers[0].run_all()
    state = service.get_session(session_id).state
    assert state.status == SimulationStatus.COMPLETE
    assert state.active_node_id == "5"


def test_pause_resume_and_reset(service, schedulers, decision_graph):
    session_id = service.create_session(decision_graph).session_id
    service.start(session_id)
    schedulers[0].advance(0.05)

    assert service.pause(session_id).state.status == SimulationStatus.STOPPED
    assert service.resume(session_id).state.status == SimulationStatus.RUNNING
    assert service.reset(session_id).state.status == SimulationStatus.IDLE


def test_replace_graph_validates(service, decision_graph, retry_graph):
    session_id = service.create_session(decision_graph).session_id
    assert service.replace_graph(session_id, retry_graph).state.status == SimulationStatus.IDLE
    assert service.get_engine(session_id).graph is retry_graph


def test_invalid_graph_is_not_registered(service, decision_graph):
    broken = decision_graph.model_copy(update={"edges": decision_graph.edges[:3]})
    with pytest.raises(StructuralError):
        service.create_session(broken)
    assert service.sessions == {}


def test_unknown_session_raises(service):
    with pytest.raises(SessionNotFoundError):
        service.start("missing")
    with pytest.raises(SessionNotFoundError):
        service.close_session("missing")


def test_session_limit_counts_running_sessions(service, decision_graph):
    for _ in range(2):
        service.start(service.create_session(decision_graph).session_id)
    with pytest.raises(SessionLimitError):
        service.create_session(decision_graph)


def test_close_session_cancels_pending_step(service, schedulers, decision_graph):
    session_id = service.create_session(decision_graph).session_id
    service.start(session_id)
    service.close_session(session_id)
    assert session_id not in service.sessions
    assert schedulers[0].run_all() == 0


def test_close_all(service, schedulers, decision_graph):
    for _ in range(2):
        service.start(service.create_session(decision_graph).session_id)
    service.close_all()
    assert service.sessions == {}
    assert all(s.pending == 0 for s in schedulers)


def test_completed_sessions_make_room(service, schedulers, decision_graph):
    finished = []
    for scheduler_index in range(2):
        session_id = service.create_session(decision_graph).session_id
        service.start(session_id)
        schedulers[scheduler_index].run_all()
        service.choose(session_id, BranchSide.YES)
        schedulers[scheduler_index].run_all()
        assert service.get_session(session_id).state.status == SimulationStatus.COMPLETE
        finished.append(session_id)

    new_id = service.create_session(decision_graph).session_id
    assert new_id in service.sessions
    assert finished[0] not in service.sessions
    assert finished[1] in service.sessions
    assert len(service.sessions) == 2


def test_least_recently_used_session_is_evicted(service, decision_graph):
    first = service.create_session(decision_graph).session_id
    second = service.create_session(decision_graph).session_id
    service.get_session(first)

    service.create_session(decision_graph)
    assert first in service.sessions
    assert second not in service.sessions


def test_running_sessions_are_never_evicted(service, schedulers, decision_graph):
    running = service.create_session(decision_graph).session_id
    service.start(running)
    idle = service.create_session(decision_graph).session_id

    service.create_session(decision_graph)
    assert running in service.sessions
    assert idle not in service.sessions
    assert schedulers[0].pending == 1
