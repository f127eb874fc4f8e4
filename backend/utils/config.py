"""
Service configuration loaded from the environment (.env supported).
"""
import os
from typing import List
from dotenv import load_dotenv
from pydantic import BaseModel

from schemas.flow_graph import Orientation
from schemas.simulation import SimulationTiming

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:5174",
    "http://localhost:3000",
    "http://localhost:8000",
]


class Settings(BaseModel):
    log_level: str = "INFO"
    port: int = 8000
    allowed_origins: List[str] = DEFAULT_ALLOWED_ORIGINS
    default_orientation: Orientation = Orientation.TOP_TO_BOTTOM
    simulation_timing: SimulationTiming = SimulationTiming()
    max_simulation_sessions: int = 100


def _ms_env(name: str, default_ms: int) -> float:
    return int(os.getenv(name, default_ms)) / 1000


def load_settings() -> Settings:
    """Read settings from environment variables, falling back to defaults."""
    load_dotenv()

    origins = os.getenv("ALLOWED_ORIGINS")
    return Settings(
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        port=int(os.getenv("PORT", 8000)),
        allowed_origins=[o.strip() for o in origins.split(",") if o.strip()] if origins else DEFAULT_ALLOWED_ORIGINS,
        default_orientation=Orientation(os.getenv("DEFAULT_ORIENTATION", Orientation.TOP_TO_BOTTOM.value).upper()),
        simulation_timing=SimulationTiming(
            start_delay=_ms_env("SIM_START_DELAY_MS", 50),
            step_delay=_ms_env("SIM_STEP_DELAY_MS", 800),
            choice_delay=_ms_env("SIM_CHOICE_DELAY_MS", 50),
        ),
        max_simulation_sessions=int(os.getenv("MAX_SIMULATION_SESSIONS", 100)),
    )
