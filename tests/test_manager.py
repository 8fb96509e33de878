"""Tests for the DDA cycle orchestration."""

from __future__ import annotations

import json

import pytest

from ddaloop.config.settings import TriggerConfig
from ddaloop.engine.analyzer import DDAAnalyzer
from ddaloop.engine.effector import DifficultyEffector
from ddaloop.engine.events import GameEvents
from ddaloop.engine.manager import DDAManager
from ddaloop.engine.metrics import PlayerMetricsCollector
from ddaloop.engine.policy import LLMPolicyEngine
from ddaloop.state.session_log import (
    CYCLE_COMPLETE,
    CYCLE_FAILED,
    CYCLE_START,
    SESSION_RESET,
    SESSION_START,
    SessionLog,
)

from fakes import BlockingClient, FakeClient


class BrokenEffector(DifficultyEffector):
    def apply_profile(self, profile):
        raise RuntimeError("game object destroyed")


@pytest.fixture
def make_manager(clock, character, terrain, struggling_profile, tmp_path):
    def _make(client=None, profile=struggling_profile, effector=None, **trigger):
        collector = PlayerMetricsCollector(clock=clock)
        manager = DDAManager(
            collector=collector,
            analyzer=DDAAnalyzer(),
            policy=LLMPolicyEngine(profile, client=client or FakeClient()),
            effector=effector or DifficultyEffector(character=character, terrain=terrain),
            session_log=SessionLog(tmp_path / "logs"),
            config=TriggerConfig(**trigger),
            clock=clock,
        )
        events = GameEvents()
        collector.attach(events)
        manager.attach(events)
        return manager, events
    return _make


def _events(manager):
    return [entry.event for entry in manager.session_log.entries]


class TestTrigger:
    @pytest.mark.asyncio
    async def test_first_death_does_not_trigger(self, make_manager):
        manager, events = make_manager()
        events.death_changed.emit(True)
        assert manager.total_deaths == 1
        assert not manager.cycle_in_progress

    @pytest.mark.asyncio
    async def test_second_death_runs_cycle(self, make_manager, character):
        manager, events = make_manager()
        changed = []
        manager.difficulty_changed.connect(changed.append)

        events.death_changed.emit(True)
        events.death_changed.emit(True)
        assert manager.cycle_in_progress
        await manager.wait_idle()

        assert manager.adjustment_count == 1
        assert changed == [manager.current_profile]
        assert character.jump_strength == 11.5
        assert _events(manager) == [SESSION_START, CYCLE_START, CYCLE_COMPLETE]

    @pytest.mark.asyncio
    async def test_not_dead_ignored(self, make_manager):
        manager, events = make_manager()
        events.death_changed.emit(False)
        assert manager.total_deaths == 0

    @pytest.mark.asyncio
    async def test_cooldown(self, make_manager, clock):
        manager, events = make_manager(min_seconds_between_adjustments=5.0)
        events.death_changed.emit(True)
        events.death_changed.emit(True)
        await manager.wait_idle()

        clock.advance(2.0)
        assert manager.on_death_changed(True) is None

        clock.advance(3.0)
        task = manager.on_death_changed(True)
        assert task is not None
        await task
        assert manager.adjustment_count == 2

    @pytest.mark.asyncio
    async def test_disabled(self, make_manager):
        manager, events = make_manager(enabled=False)
        for _ in range(5):
            events.death_changed.emit(True)
        assert not manager.should_trigger()
        assert manager.start_cycle() is None
        assert manager.adjustment_count == 0

    @pytest.mark.asyncio
    async def test_death_counted_by_collector_before_snapshot(self, make_manager):
        manager, events = make_manager()
        events.score_changed.emit(10.0)
        events.death_changed.emit(True)
        events.death_changed.emit(True)
        await manager.wait_idle()
        start = next(e for e in manager.session_log.entries if e.event == CYCLE_START)
        assert start.data["metrics"]["deathCount"] == 2
        assert start.data["symptom"] == "very.low"


class TestCycle:
    @pytest.mark.asyncio
    async def test_no_overlapping_cycles(self, make_manager):
        client = BlockingClient()
        manager, events = make_manager(client=client)
        events.death_changed.emit(True)
        events.death_changed.emit(True)
        assert manager.cycle_in_progress

        events.death_changed.emit(True)
        assert manager.start_cycle() is None

        client.release.set()
        await manager.wait_idle()
        assert len(client.prompts) == 1
        assert manager.adjustment_count == 1

    @pytest.mark.asyncio
    async def test_null_profile_logged_as_failure(self, make_manager):
        manager, _ = make_manager(profile=None)
        changed = []
        manager.difficulty_changed.connect(changed.append)

        assert await manager.run_cycle() is None
        assert _events(manager)[-1] == CYCLE_FAILED
        assert manager.adjustment_count == 0
        assert changed == []

    @pytest.mark.asyncio
    async def test_apply_failure_logged_as_failure(self, make_manager):
        manager, _ = make_manager(effector=BrokenEffector())
        assert await manager.run_cycle() is None
        assert _events(manager)[-1] == CYCLE_FAILED
        assert manager.adjustment_count == 0

    @pytest.mark.asyncio
    async def test_unchanged_profile_still_applied(self, make_manager, character):
        manager, _ = make_manager(client=FakeClient(reply="no idea"))
        profile = await manager.run_cycle()
        assert profile is manager.current_profile
        assert character.run_speed == 6.0
        assert manager.adjustment_count == 1

    @pytest.mark.asyncio
    async def test_complete_entry_has_profile(self, make_manager):
        manager, _ = make_manager()
        profile = await manager.run_cycle()
        complete = manager.session_log.entries[-1]
        assert complete.event == CYCLE_COMPLETE
        assert complete.data == {"cycle": 1, "profile": profile.to_dict()}


class TestSession:
    @pytest.mark.asyncio
    async def test_reset_session(self, make_manager):
        manager, events = make_manager()
        events.score_changed.emit(5.0)
        events.death_changed.emit(True)
        events.death_changed.emit(True)
        await manager.wait_idle()

        manager.reset_session()
        assert manager.total_deaths == 0
        assert manager.adjustment_count == 0
        assert manager.collector.snapshot().death_count == 0
        assert manager.policy.examples == []
        assert _events(manager) == [SESSION_RESET]

        events.death_changed.emit(True)
        assert not manager.cycle_in_progress

    @pytest.mark.asyncio
    async def test_close_saves_log_and_detaches(self, make_manager, tmp_path):
        manager, events = make_manager()
        changed = []
        manager.difficulty_changed.connect(changed.append)
        await manager.run_cycle()
        manager.close()

        files = list((tmp_path / "logs").glob("dda_session_*.json"))
        assert len(files) == 1
        saved = json.loads(files[0].read_text())
        assert [e["event"] for e in saved] == [SESSION_START, CYCLE_START, CYCLE_COMPLETE]

        events.death_changed.emit(True)
        assert manager.total_deaths == 0
        assert len(manager.difficulty_changed) == 0
