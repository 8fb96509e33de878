"""Shared fixtures and fakes for ddaloop tests."""

from __future__ import annotations

import pytest

from ddaloop.config.settings import PolicyConfig
from ddaloop.engine.effector import Hazard
from ddaloop.engine.metrics import MetricsSnapshot
from ddaloop.engine.policy import LLMPolicyEngine
from ddaloop.engine.profile import DifficultyProfile

from fakes import FakeBlock, FakeCharacter, FakeClient, FakeClock, FakeTerrain


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("GEMINI_API_KEY", "ANTHROPIC_API_KEY", "DDALOOP_PROVIDER", "DDALOOP_MODEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def profile():
    return DifficultyProfile()


@pytest.fixture
def struggling_profile():
    return DifficultyProfile(values={
        "enemyDensity": 0.6, "gapFrequency": 0.4, "runSpeed": 6.0,
        "jumpStrength": 10.0, "sawProbability": 0.5, "spikeProbability": 0.4,
        "coinDensity": 0.4, "platformHeightVariance": 1.5,
    })


@pytest.fixture
def struggling_metrics():
    return MetricsSnapshot(
        distance_traveled=35.0, death_count=5, total_run_time=30.0,
        avg_time_between_deaths=6.0, coins_collected=2, jumps_count=12,
    )


@pytest.fixture
def dominant_metrics():
    return MetricsSnapshot(
        distance_traveled=450.0, death_count=0, total_run_time=120.0,
        avg_time_between_deaths=120.0, coins_collected=38, jumps_count=144,
    )


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def policy(struggling_profile, fake_client):
    return LLMPolicyEngine(struggling_profile, client=fake_client, config=PolicyConfig())


@pytest.fixture
def terrain():
    return FakeTerrain(
        start_blocks=[FakeBlock("start", 1.0)],
        middle_blocks=[
            FakeBlock("saw_pit", 0.2, frozenset({Hazard.SAW, Hazard.ENEMY})),
            FakeBlock("spike_row", 0.3, frozenset({Hazard.SPIKE, Hazard.ENEMY})),
            FakeBlock("water", 0.4, frozenset({Hazard.ENEMY})),
            FakeBlock("flat", 0.5),
        ],
        end_blocks=[FakeBlock("end", 1.0, frozenset({Hazard.SAW}))],
    )


@pytest.fixture
def character():
    return FakeCharacter()
