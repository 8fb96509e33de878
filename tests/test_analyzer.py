"""Tests for symptom classification."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ddaloop.config.settings import AnalyzerConfig
from ddaloop.engine.analyzer import DDAAnalyzer, PerformanceSymptom
from ddaloop.engine.metrics import MetricsSnapshot


@pytest.fixture
def analyzer():
    return DDAAnalyzer()


def _metrics(distance=100.0, deaths=0, run_time=30.0, avg_gap=None):
    if avg_gap is None:
        avg_gap = run_time / deaths if deaths else run_time
    return MetricsSnapshot(
        distance_traveled=distance,
        death_count=deaths,
        total_run_time=run_time,
        avg_time_between_deaths=avg_gap,
    )


class TestPerformanceSymptom:
    @pytest.mark.parametrize("symptom, label", [
        (PerformanceSymptom.VERY_LOW, "very.low"),
        (PerformanceSymptom.SLIGHTLY_LOW, "slightly.low"),
        (PerformanceSymptom.NORMAL, "normal"),
        (PerformanceSymptom.SHARPLY_HIGH, "sharply.high"),
    ])
    def test_label_round_trip(self, symptom, label):
        assert symptom.label == label
        assert PerformanceSymptom.from_label(label) is symptom

    def test_ordered_worst_to_best(self):
        assert list(PerformanceSymptom) == sorted(PerformanceSymptom)
        assert PerformanceSymptom.VERY_LOW < PerformanceSymptom.SHARPLY_HIGH


class TestClassify:
    def test_struggling_player(self, analyzer, struggling_metrics):
        assert analyzer.classify(struggling_metrics) <= PerformanceSymptom.LOW

    def test_dominant_player(self, analyzer, dominant_metrics):
        assert analyzer.classify(dominant_metrics) is PerformanceSymptom.SHARPLY_HIGH
        assert analyzer.symptom_label(dominant_metrics) == "sharply.high"

    def test_midpoint_rounds_half_up_to_even(self, analyzer):
        # slightly.low (2) + low (1) -> 1.5 -> 2
        metrics = _metrics(deaths=5, avg_gap=4.0)
        assert analyzer.classify_death_rate(metrics) is PerformanceSymptom.SLIGHTLY_LOW
        assert analyzer.classify_survival_time(metrics) is PerformanceSymptom.LOW
        assert analyzer.classify(metrics) is PerformanceSymptom.SLIGHTLY_LOW

    def test_midpoint_rounds_half_down_to_even(self, analyzer):
        # normal (3) + slightly.low (2) -> 2.5 -> 2
        metrics = _metrics(deaths=3, avg_gap=6.0)
        assert analyzer.classify_death_rate(metrics) is PerformanceSymptom.NORMAL
        assert analyzer.classify_survival_time(metrics) is PerformanceSymptom.SLIGHTLY_LOW
        assert analyzer.classify(metrics) is PerformanceSymptom.SLIGHTLY_LOW

    def test_more_deaths_never_improves_symptom(self, analyzer):
        previous = PerformanceSymptom.SHARPLY_HIGH
        for deaths in range(0, 25):
            symptom = analyzer.classify(_metrics(deaths=deaths, avg_gap=6.0 if deaths else None))
            assert symptom <= previous
            previous = symptom


class TestDeathRate:
    def test_zero_distance_without_deaths_is_normal(self, analyzer):
        assert analyzer.classify_death_rate(_metrics(distance=0.0)) is PerformanceSymptom.NORMAL

    def test_zero_distance_with_deaths_is_very_low(self, analyzer):
        metrics = _metrics(distance=0.0, deaths=1)
        assert analyzer.classify_death_rate(metrics) is PerformanceSymptom.VERY_LOW

    @pytest.mark.parametrize("deaths, expected", [
        (0, PerformanceSymptom.SHARPLY_HIGH),
        (1, PerformanceSymptom.HIGH),
        (2, PerformanceSymptom.SLIGHTLY_HIGH),
        (4, PerformanceSymptom.NORMAL),
        (6, PerformanceSymptom.SLIGHTLY_LOW),
        (8, PerformanceSymptom.LOW),
        (9, PerformanceSymptom.VERY_LOW),
    ])
    def test_thresholds_inclusive(self, analyzer, deaths, expected):
        assert analyzer.classify_death_rate(_metrics(deaths=deaths)) is expected


class TestSurvivalTime:
    @pytest.mark.parametrize("run_time, expected", [
        (60.0, PerformanceSymptom.SHARPLY_HIGH),
        (45.0, PerformanceSymptom.HIGH),
        (10.0, PerformanceSymptom.NORMAL),
    ])
    def test_no_deaths_uses_run_time(self, analyzer, run_time, expected):
        assert analyzer.classify_survival_time(_metrics(run_time=run_time)) is expected

    @pytest.mark.parametrize("avg_gap, expected", [
        (60.0, PerformanceSymptom.SHARPLY_HIGH),
        (25.0, PerformanceSymptom.SLIGHTLY_HIGH),
        (10.0, PerformanceSymptom.NORMAL),
        (3.0, PerformanceSymptom.LOW),
        (2.9, PerformanceSymptom.VERY_LOW),
    ])
    def test_average_gap(self, analyzer, avg_gap, expected):
        assert analyzer.classify_survival_time(_metrics(deaths=2, avg_gap=avg_gap)) is expected


class TestConfiguredThresholds:
    def test_custom_ladders(self):
        analyzer = DDAAnalyzer(AnalyzerConfig(
            death_rate_thresholds=[1, 2, 3, 4, 5, 6],
            survival_time_thresholds=[100, 80, 60, 40, 20, 10],
        ))
        metrics = _metrics(deaths=1, avg_gap=50.0)
        assert analyzer.classify_death_rate(metrics) is PerformanceSymptom.SHARPLY_HIGH
        assert analyzer.classify_survival_time(metrics) is PerformanceSymptom.NORMAL

    def test_unordered_ladder_rejected(self):
        with pytest.raises(ValidationError):
            AnalyzerConfig(death_rate_thresholds=[8, 6, 4, 2, 1, 0.5])

    def test_wrong_length_rejected(self):
        with pytest.raises(ValidationError):
            AnalyzerConfig(survival_time_thresholds=[60, 40])
