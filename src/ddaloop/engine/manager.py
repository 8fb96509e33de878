"""Orchestrates the MAPE-K loop.

Monitor (PlayerMetricsCollector) -> Analyze (DDAAnalyzer) ->
Plan (LLMPolicyEngine) -> Execute (DifficultyEffector).

A cycle is triggered by player deaths, between runs, once enough deaths
have accumulated and the cooldown since the last adjustment has passed.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Optional

from loguru import logger

from ddaloop.config.settings import TriggerConfig
from ddaloop.engine.analyzer import DDAAnalyzer
from ddaloop.engine.effector import DifficultyEffector
from ddaloop.engine.events import GameEvents, Signal
from ddaloop.engine.metrics import PlayerMetricsCollector
from ddaloop.engine.policy import LLMPolicyEngine
from ddaloop.engine.profile import DifficultyProfile
from ddaloop.state.session_log import (
    CYCLE_COMPLETE,
    CYCLE_FAILED,
    CYCLE_START,
    SESSION_RESET,
    SESSION_START,
    SessionLog,
)


class DDAManager:
    def __init__(
        self,
        collector: PlayerMetricsCollector,
        analyzer: DDAAnalyzer,
        policy: LLMPolicyEngine,
        effector: DifficultyEffector,
        session_log: SessionLog,
        config: Optional[TriggerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.collector = collector
        self.analyzer = analyzer
        self.policy = policy
        self.effector = effector
        self.session_log = session_log
        self.config = config or TriggerConfig()
        self.enabled = self.config.enabled
        self._clock = clock

        self.difficulty_changed: Signal[Callable[[DifficultyProfile], None]] = Signal(
            "difficulty_changed"
        )

        self._total_deaths = 0
        self._adjustment_count = 0
        self._last_adjustment_time: Optional[float] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._unsubscribers: list[Callable[[], None]] = []

        self.session_log.append(
            SESSION_START, f"DDA Manager initialized. Enabled: {self.enabled}"
        )

    @property
    def current_profile(self) -> Optional[DifficultyProfile]:
        return self.policy.current_profile

    @property
    def total_deaths(self) -> int:
        return self._total_deaths

    @property
    def adjustment_count(self) -> int:
        return self._adjustment_count

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_task is not None and not self._cycle_task.done()

    # --- Wiring ---

    def attach(self, events: GameEvents) -> None:
        # Attach after the collector so a death is counted before the snapshot
        self.detach()
        self._unsubscribers = [events.death_changed.connect(self.on_death_changed)]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def on_death_changed(self, is_dead: bool) -> Optional[asyncio.Task]:
        if not is_dead:
            return None

        self._total_deaths += 1
        logger.debug(f"Death #{self._total_deaths} detected.")
        if self.should_trigger():
            return self.start_cycle()
        return None

    def should_trigger(self) -> bool:
        if not self.enabled:
            return False
        if self._total_deaths < self.config.deaths_before_first_adjustment:
            return False
        if self._last_adjustment_time is not None:
            elapsed = self._clock() - self._last_adjustment_time
            if elapsed < self.config.min_seconds_between_adjustments:
                return False
        return True

    # --- Cycle ---

    def start_cycle(self) -> Optional[asyncio.Task]:
        """Run Monitor and Analyze now and schedule Plan/Execute.

        Returns the task that completes the cycle, or None when skipped.
        """
        if not self.enabled:
            logger.warning("DDA is disabled.")
            return None
        if self.policy.is_processing:
            logger.info("LLM already processing. Skipping cycle.")
            return None

        metrics = self.collector.snapshot()
        symptom = self.analyzer.classify(metrics)
        cycle = self._adjustment_count + 1

        logger.info(
            f"=== DDA Cycle #{cycle} === Symptom: {symptom.label} "
            f"Metrics: {metrics.to_dict()}"
        )
        self.session_log.append(CYCLE_START, {
            "cycle": cycle,
            "symptom": symptom.label,
            "metrics": metrics.to_dict(),
        })

        pending = self.policy.request_adjustment(metrics, symptom)
        self._cycle_task = asyncio.get_running_loop().create_task(
            self._finish_cycle(pending)
        )
        return self._cycle_task

    async def run_cycle(self) -> Optional[DifficultyProfile]:
        """Manually run one full cycle and return the resulting profile."""
        task = self.start_cycle()
        if task is None:
            return None
        return await task

    async def wait_idle(self) -> None:
        """Wait for an in-flight cycle, if any, to finish."""
        if self._cycle_task is not None:
            await self._cycle_task

    async def _finish_cycle(self, pending: asyncio.Future) -> Optional[DifficultyProfile]:
        profile = await pending
        if profile is None:
            self.session_log.append(CYCLE_FAILED, "LLM returned null profile.")
            return None

        try:
            self.effector.apply_profile(profile)
            self._adjustment_count += 1
            self._last_adjustment_time = self._clock()
            self.session_log.append(CYCLE_COMPLETE, {
                "cycle": self._adjustment_count,
                "profile": profile.to_dict(),
            })
            self.difficulty_changed.emit(profile)
        except Exception as e:
            logger.exception("DDA cycle failed while applying the profile.")
            self.session_log.append(CYCLE_FAILED, f"Apply failed: {e}")
            return None

        logger.info("=== Cycle Complete. Profile applied. ===")
        return profile

    # --- Session ---

    def reset_session(self) -> None:
        """Start a fresh evaluation session without restarting the process."""
        self._total_deaths = 0
        self._adjustment_count = 0
        self._last_adjustment_time = None
        self.collector.reset_all()
        self.policy.clear_example_buffer()
        self.session_log.clear()
        self.session_log.append(SESSION_RESET, "Session metrics reset.")

    def close(self) -> None:
        self.detach()
        self.difficulty_changed.clear()
        self.session_log.save()
