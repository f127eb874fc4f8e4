"""Tests for environment-driven settings."""

import pytest

from schemas.flow_graph import Orientation
from utils.config import DEFAULT_ALLOWED_ORIGINS, load_settings

ENV_VARS = [
    "LOG_LEVEL",
    "PORT",
    "ALLOWED_ORIGINS",
    "DEFAULT_ORIENTATION",
    "SIM_START_DELAY_MS",
    "SIM_STEP_DELAY_MS",
    "SIM_CHOICE_DELAY_MS",
    "MAX_SIMULATION_SESSIONS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = load_settings()
    assert settings.log_level == "INFO"
    assert settings.port == 8000
    assert settings.allowed_origins == DEFAULT_ALLOWED_ORIGINS
    assert settings.default_orientation == Orientation.TOP_TO_BOTTOM
    assert settings.simulation_timing.start_delay == 0.05
    assert settings.simulation_timing.step_delay == 0.8
    assert settings.simulation_timing.choice_delay == 0.05
    assert settings.max_simulation_sessions == 100


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example,")
    monkeypatch.setenv("DEFAULT_ORIENTATION", "lr")
    monkeypatch.setenv("SIM_STEP_DELAY_MS", "250")
    monkeypatch.setenv("MAX_SIMULATION_SESSIONS", "5")

    settings = load_settings()
    assert settings.log_level == "DEBUG"
    assert settings.port == 9000
    assert settings.allowed_origins == ["https://a.example", "https://b.example"]
    assert settings.default_orientation == Orientation.LEFT_TO_RIGHT
    assert settings.simulation_timing.step_delay == 0.25
    assert settings.max_simulation_sessions == 5

