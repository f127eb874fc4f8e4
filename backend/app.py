from fastapi import FastAPI, HTTPException, Request
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from typing import Dict, Any
import logging

from utils.config import load_settings

# Load configuration (.env supported) and configure logging
settings = load_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

from services.layout_engine import LayoutEngine
from services.simulation_sessions import (
    SimulationSessionService, SessionNotFoundError, SessionLimitError
)
from translators.flow_translator import FlowRenderTranslator
from schemas.flow_graph import (
    FlowGraph, StructuralError, ValidateRequest, ValidateResponse, validate_flow_topology
)
from schemas.layout import FlowLayout, LayoutRequest, RenderRequest
from schemas.simulation import (
    SimulationSessionCreate, SimulationSessionResponse, ChooseBranchRequest
)

def get_user_friendly_error(error_message: str) -> str:
    """Convert structural error messages to user-friendly ones."""
    error_lower = error_message.lower()

    if "missing start node" in error_lower:
        return "The flow needs a starting point. Please describe how the process begins."

    if "missing end node" in error_lower:
        return "The flow never finishes. Please describe how the process ends."

    if "edge references unknown node" in error_lower:
        return f"{error_message}. Some arrows point to steps that do not exist; try rephrasing."

    if "must have exactly 2 outgoing edges" in error_lower:
        return "A decision needs exactly two outcomes. Please say what happens when the answer is yes and when it is no."

    if "must have one 'yes' and one 'no' edge" in error_lower:
        return "Each decision must have one 'Yes' and one 'No' path. Please label both outcomes."

    # Default: return original with context
    return f"Flow validation failed: {error_message}. Try describing the process step-by-step in sequence."

# Initialize services
layout_engine = LayoutEngine()
render_translator = FlowRenderTranslator()
simulation_sessions = SimulationSessionService(
    timing=settings.simulation_timing,
    max_sessions=settings.max_simulation_sessions
)

# Lifespan event handler
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close every live simulation on shutdown so no timer outlives the app"""
    logger.info("Starting up Flow Diagram API...")
    yield
    logger.info("Shutting down Flow Diagram API...")
    simulation_sessions.close_all()

app = FastAPI(
    title="Flow Diagram API",
    version="1.0.0",
    lifespan=lifespan
)

logger.info(f"CORS enabled for origins: {settings.allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

# Add validation error handler
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": f"Validation error: {exc.errors()}"})


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def structural_http_error(error: StructuralError) -> HTTPException:
    logger.warning(f"Structural error: {error}")
    return HTTPException(status_code=400, detail=get_user_friendly_error(str(error)))

def session_not_found(session_id: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Simulation session '{session_id}' not found")


# ============================================================================
# LAYOUT ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    return {"message": "Flow Diagram API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

@app.post("/validate", response_model=ValidateResponse)
async def validate_graph(request: ValidateRequest):
    """Check a flow graph against the structural invariants"""
    errors = validate_flow_topology(request.graph, require_branch_labels=request.require_branch_labels)
    return ValidateResponse(valid=not errors, errors=errors)

@app.post("/layout", response_model=FlowLayout)
async def layout_graph(request: LayoutRequest):
    """Compute node positions and branch anchors"""
    orientation = request.orientation or settings.default_orientation
    try:
        layout = layout_engine.layout(request.graph, orientation)
        logger.info(f"Layout computed: {len(request.graph.nodes)} nodes, {orientation.value}")
        return layout
    except StructuralError as e:
        raise structural_http_error(e)
    except Exception as e:
        logger.error(f"Error computing layout: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Layout failed: {str(e)}")

@app.post("/render")
async def render_graph(request: RenderRequest) -> Dict[str, Any]:
    """Layout plus render payload, optionally highlighted with a simulation's state"""
    orientation = request.orientation or settings.default_orientation
    try:
        simulation = None
        if request.session_id:
            simulation = simulation_sessions.get_engine(request.session_id).state
        layout = layout_engine.layout(request.graph, orientation)
        return render_translator.translate(request.graph, layout, simulation)
    except SessionNotFoundError:
        raise session_not_found(request.session_id)
    except StructuralError as e:
        raise structural_http_error(e)
    except Exception as e:
        logger.error(f"Error rendering flow: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Render failed: {str(e)}")


# ============================================================================
# SIMULATION ENDPOINTS
# ============================================================================

@app.post("/simulations", response_model=SimulationSessionResponse)
async def create_simulation(request: SimulationSessionCreate):
    """Open an idle simulation session for a graph"""
    try:
        return simulation_sessions.create_session(request.graph)
    except StructuralError as e:
        raise structural_http_error(e)
    except SessionLimitError as e:
        logger.warning(str(e))
        raise HTTPException(status_code=429, detail=str(e))

@app.get("/simulations/{session_id}", response_model=SimulationSessionResponse)
async def get_simulation(session_id: str):
    try:
        return simulation_sessions.get_session(session_id)
    except SessionNotFoundError:
        raise session_not_found(session_id)

@app.post("/simulations/{session_id}/start", response_model=SimulationSessionResponse)
async def start_simulation(session_id: str):
    try:
        return simulation_sessions.start(session_id)
    except SessionNotFoundError:
        raise session_not_found(session_id)

@app.post("/simulations/{session_id}/pause", response_model=SimulationSessionResponse)
async def pause_simulation(session_id: str):
    try:
        return simulation_sessions.pause(session_id)
    except SessionNotFoundError:
        raise session_not_found(session_id)

@app.post("/simulations/{session_id}/resume", response_model=SimulationSessionResponse)
async def resume_simulation(session_id: str):
    try:
        return simulation_sessions.resume(session_id)
    except SessionNotFoundError:
        raise session_not_found(session_id)

@app.post("/simulations/{session_id}/reset", response_model=SimulationSessionResponse)
async def reset_simulation(session_id: str):
    try:
        return simulation_sessions.reset(session_id)
    except SessionNotFoundError:
        raise session_not_found(session_id)

@app.post("/simulations/{session_id}/choose", response_model=SimulationSessionResponse)
async def choose_branch(session_id: str, request: ChooseBranchRequest):
    """Pick the yes/no branch at the condition the simulation is paused on"""
    try:
        return simulation_sessions.choose(session_id, request.branch)
    except SessionNotFoundError:
        raise session_not_found(session_id)

@app.put("/simulations/{session_id}/graph", response_model=SimulationSessionResponse)
async def replace_simulation_graph(session_id: str, graph: FlowGraph):
    """Swap the session's graph; the current run is reset"""
    try:
        return simulation_sessions.replace_graph(session_id, graph)
    except SessionNotFoundError:
        raise session_not_found(session_id)
    except StructuralError as e:
        raise structural_http_error(e)

@app.delete("/simulations/{session_id}")
async def delete_simulation(session_id: str):
    try:
        simulation_sessions.close_session(session_id)
        return {"message": "Simulation session closed"}
    except SessionNotFoundError:
        raise session_not_found(session_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
