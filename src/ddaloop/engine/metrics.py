"""Player performance telemetry (the Monitor step)."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from ddaloop.engine.events import GameEvents


@dataclass(frozen=True)
class MetricsSnapshot:
    distance_traveled: float = 0.0
    death_count: int = 0
    total_run_time: float = 0.0
    avg_time_between_deaths: float = 0.0
    coins_collected: int = 0
    jumps_count: int = 0

    @property
    def jumps_per_second(self) -> float:
        if self.total_run_time <= 0:
            return 0.0
        return self.jumps_count / self.total_run_time

    def to_dict(self) -> dict:
        return {
            "distanceTraveled": round(self.distance_traveled, 1),
            "deathCount": self.death_count,
            "totalRunTime": round(self.total_run_time, 1),
            "avgTimeBetweenDeaths": round(self.avg_time_between_deaths, 1),
            "coinsCollected": self.coins_collected,
            "jumpsCount": self.jumps_count,
            "jumpsPerSecond": round(self.jumps_per_second, 2),
        }


class PlayerMetricsCollector:
    """Accumulates per-run and per-session counters from game notifications.

    Distance, run time and jumps are per run. Deaths, the inter-death time
    sum and coins are cumulative until ``reset_all``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._unsubscribers: list[Callable[[], None]] = []
        self.reset_all()

    # --- Event sinks ---

    def record_distance(self, distance: float) -> None:
        if distance > self._distance:
            self._running = True
        self._distance = distance

    def record_death(self) -> None:
        now = self._clock()
        since = self._last_death_time if self._last_death_time is not None else self._run_start
        self._death_count += 1
        self._time_between_deaths_sum += now - since
        self._last_death_time = now
        self._running = False
        logger.debug(f"Death #{self._death_count} at distance {self._distance:.1f}")

    def record_coin_delta(self, delta: int) -> None:
        self._coins += delta

    def record_coin_count(self, value: int) -> None:
        """Convert an absolute coin counter into a delta against the run baseline."""
        self.record_coin_delta(value - self._last_coin_count)
        self._last_coin_count = value

    def record_jump(self) -> None:
        if self._running:
            self._jumps += 1

    def tick(self, dt: float) -> None:
        if self._running:
            self._run_time += dt

    def reset_run(self, coin_count: int = 0) -> None:
        """Start a new run. ``coin_count`` is the game's coin counter right now."""
        self._distance = 0.0
        self._run_time = 0.0
        self._jumps = 0
        self._run_start = self._clock()
        self._running = False
        self._last_coin_count = coin_count
        logger.debug(f"Run reset. Cumulative deaths: {self._death_count}")

    def reset_all(self) -> None:
        self._death_count = 0
        self._time_between_deaths_sum = 0.0
        self._last_death_time: Optional[float] = None
        self._coins = 0
        self.reset_run()

    # --- Wiring ---

    def _on_death_changed(self, is_dead: bool) -> None:
        if is_dead:
            self.record_death()

    def attach(self, events: GameEvents) -> None:
        self.detach()
        self._unsubscribers = [
            events.score_changed.connect(self.record_distance),
            events.death_changed.connect(self._on_death_changed),
            events.coin_changed.connect(self.record_coin_count),
            events.jumped.connect(self.record_jump),
            events.run_reset.connect(self.reset_run),
            events.tick.connect(self.tick),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # --- Read side ---

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def avg_time_between_deaths(self) -> float:
        if self._death_count <= 0:
            return self._run_time
        return self._time_between_deaths_sum / self._death_count

    def snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot(
            distance_traveled=self._distance,
            death_count=self._death_count,
            total_run_time=self._run_time,
            avg_time_between_deaths=self.avg_time_between_deaths,
            coins_collected=self._coins,
            jumps_count=self._jumps,
        )
