"""Performance classification (the Analyze step)."""

from __future__ import annotations

from enum import IntEnum
from typing import Optional, Sequence

from loguru import logger

from ddaloop.config.settings import AnalyzerConfig
from ddaloop.engine.metrics import MetricsSnapshot


class PerformanceSymptom(IntEnum):
    """Ordered from worst (player struggling) to best (player dominating)."""
    VERY_LOW = 0
    LOW = 1
    SLIGHTLY_LOW = 2
    NORMAL = 3
    SLIGHTLY_HIGH = 4
    HIGH = 5
    SHARPLY_HIGH = 6

    @property
    def label(self) -> str:
        """Wire form used in prompts, e.g. ``slightly.high``."""
        return self.name.lower().replace("_", ".")

    @classmethod
    def from_label(cls, label: str) -> "PerformanceSymptom":
        return cls[label.strip().upper().replace(".", "_")]


# Best to worst, matching the order of the threshold ladders.
_LADDER = (
    PerformanceSymptom.SHARPLY_HIGH,
    PerformanceSymptom.HIGH,
    PerformanceSymptom.SLIGHTLY_HIGH,
    PerformanceSymptom.NORMAL,
    PerformanceSymptom.SLIGHTLY_LOW,
    PerformanceSymptom.LOW,
)


class DDAAnalyzer:
    """Fuses a death-rate and a survival-time classification into one symptom."""

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        config = config or AnalyzerConfig()
        self.death_rate_thresholds: Sequence[float] = tuple(config.death_rate_thresholds)
        self.survival_time_thresholds: Sequence[float] = tuple(config.survival_time_thresholds)

    def classify(self, metrics: MetricsSnapshot) -> PerformanceSymptom:
        by_death_rate = self.classify_death_rate(metrics)
        by_survival = self.classify_survival_time(metrics)

        # Midpoint of the two levels; ties round half to even.
        combined = round((by_death_rate + by_survival) / 2)
        result = PerformanceSymptom(max(0, min(6, combined)))

        logger.debug(
            f"DeathRate={by_death_rate.name}, Survival={by_survival.name}, "
            f"Combined={result.name}"
        )
        return result

    def symptom_label(self, metrics: MetricsSnapshot) -> str:
        return self.classify(metrics).label

    def classify_death_rate(self, metrics: MetricsSnapshot) -> PerformanceSymptom:
        if metrics.distance_traveled <= 0:
            # No distance covered yet
            if metrics.death_count > 0:
                return PerformanceSymptom.VERY_LOW
            return PerformanceSymptom.NORMAL

        death_rate = metrics.death_count / metrics.distance_traveled * 100
        for threshold, symptom in zip(self.death_rate_thresholds, _LADDER):
            if death_rate <= threshold:
                return symptom
        return PerformanceSymptom.VERY_LOW

    def classify_survival_time(self, metrics: MetricsSnapshot) -> PerformanceSymptom:
        sharply_high, high = self.survival_time_thresholds[:2]

        if metrics.death_count <= 0:
            # No deaths yet, only the time alive says anything
            if metrics.total_run_time >= sharply_high:
                return PerformanceSymptom.SHARPLY_HIGH
            if metrics.total_run_time >= high:
                return PerformanceSymptom.HIGH
            return PerformanceSymptom.NORMAL

        for threshold, symptom in zip(self.survival_time_thresholds, _LADDER):
            if metrics.avg_time_between_deaths >= threshold:
                return symptom
        return PerformanceSymptom.VERY_LOW
