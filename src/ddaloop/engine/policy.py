"""LLM-backed difficulty policy (the Plan step).

The prompt follows the SPAR layout: Situation, Purpose, Action, Examples,
Request. Each successful answer becomes a few-shot example for the next
request, up to a fixed buffer size.
"""

from __future__ import annotations

import asyncio
import json
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from ddaloop.config.settings import PolicyConfig
from ddaloop.engine.analyzer import PerformanceSymptom
from ddaloop.engine.metrics import MetricsSnapshot
from ddaloop.engine.profile import DifficultyProfile, ProfileParseError
from ddaloop.engine.providers import ProviderClient, ProviderError, strip_code_fences

DEFAULT_TIMEOUT_SECONDS = 10.0

SYSTEM_PROMPT = """# Situation
You are a Dynamic Difficulty Adjustment mechanism for a 2D platformer game called RedRunner. You receive player performance metrics, a symptom classification, and current game variable values with their allowed thresholds.

# Purpose
Generate a JSON object with adjusted float values for game variables. Adjust values to balance difficulty based on the player's performance symptom. Keep all values within their defined thresholds. The goal is to maintain player flow: not too easy, not too hard.

# Action
Follow these reasoning steps:
1. Read the symptom level to understand player state.
2. For each game variable, determine if it helps the player or harms the player:
   - Player-HELPING: jumpStrength, coinDensity (higher = easier)
   - Player-HARMING: enemyDensity, gapFrequency, runSpeed, sawProbability, spikeProbability, platformHeightVariance (higher = harder)
3. If symptom is low/very.low (player struggling):
   - Decrease player-harming variables
   - Increase player-helping variables
4. If symptom is high/sharply.high (player dominating):
   - Increase player-harming variables
   - Decrease player-helping variables
5. For slight symptoms (slightly.low, slightly.high): make smaller adjustments.
6. For normal: make no or minimal changes.
7. Consider the current values. Prefer gradual changes (10-20% shifts) over sudden jumps.
8. Ensure all output values are within the threshold [min, max] for each variable.

Respond with ONLY a valid JSON object, no markdown, no explanation."""


def _example_variables(values: dict[str, float], bounds: bool) -> list[dict]:
    thresholds = {
        "enemyDensity": [0.0, 1.0], "gapFrequency": [0.0, 0.8],
        "runSpeed": [3.0, 12.0], "jumpStrength": [6.0, 15.0],
        "sawProbability": [0.0, 1.0], "spikeProbability": [0.0, 1.0],
        "coinDensity": [0.1, 1.0], "platformHeightVariance": [0.0, 3.0],
    }
    if bounds:
        return [
            {"description": k, "threshold": thresholds[k], "value": v}
            for k, v in values.items()
        ]
    return [{"description": k, "value": v} for k, v in values.items()]


def _default_examples() -> list["ExampleRecord"]:
    struggling_in = {
        "symptom": "low",
        "metrics": {
            "distanceTraveled": 35.0, "deathCount": 5, "totalRunTime": 30.0,
            "avgTimeBetweenDeaths": 6.0, "coinsCollected": 2, "jumpsPerSecond": 0.4,
        },
        "game_variables": _example_variables({
            "enemyDensity": 0.6, "gapFrequency": 0.4, "runSpeed": 6.0,
            "jumpStrength": 10.0, "sawProbability": 0.5, "spikeProbability": 0.4,
            "coinDensity": 0.4, "platformHeightVariance": 1.5,
        }, bounds=True),
    }
    struggling_out = {"game_variables": _example_variables({
        "enemyDensity": 0.4, "gapFrequency": 0.25, "runSpeed": 4.5,
        "jumpStrength": 12.0, "sawProbability": 0.3, "spikeProbability": 0.25,
        "coinDensity": 0.65, "platformHeightVariance": 0.8,
    }, bounds=False)}

    dominating_in = {
        "symptom": "sharply.high",
        "metrics": {
            "distanceTraveled": 450.0, "deathCount": 0, "totalRunTime": 120.0,
            "avgTimeBetweenDeaths": 120.0, "coinsCollected": 38, "jumpsPerSecond": 1.2,
        },
        "game_variables": _example_variables({
            "enemyDensity": 0.4, "gapFrequency": 0.2, "runSpeed": 5.0,
            "jumpStrength": 10.0, "sawProbability": 0.3, "spikeProbability": 0.3,
            "coinDensity": 0.5, "platformHeightVariance": 0.5,
        }, bounds=True),
    }
    dominating_out = {"game_variables": _example_variables({
        "enemyDensity": 0.6, "gapFrequency": 0.4, "runSpeed": 7.0,
        "jumpStrength": 8.5, "sawProbability": 0.5, "spikeProbability": 0.45,
        "coinDensity": 0.35, "platformHeightVariance": 1.2,
    }, bounds=False)}

    return [
        ExampleRecord(json.dumps(struggling_in), json.dumps(struggling_out)),
        ExampleRecord(json.dumps(dominating_in), json.dumps(dominating_out)),
    ]


class PolicyState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"


@dataclass(frozen=True)
class ExampleRecord:
    input: str
    output: str

    def render(self) -> str:
        return f"// Input\n{self.input}\n// Output\n{self.output}"


class LLMPolicyEngine:
    """Owns the current profile and the few-shot example buffer.

    At most one request is in flight. Every failure path resolves to the
    unchanged current profile; only a missing profile resolves to None.
    """

    def __init__(
        self,
        profile: Optional[DifficultyProfile],
        client: Optional[ProviderClient] = None,
        config: Optional[PolicyConfig] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.config = config or PolicyConfig()
        self.client = client
        self.timeout = timeout
        self.system_prompt = self.config.system_prompt or SYSTEM_PROMPT
        self._profile = profile.copy() if profile is not None else None
        self._examples: deque[ExampleRecord] = deque(
            maxlen=self.config.example_buffer_size
        )
        self._state = PolicyState.IDLE

    @property
    def current_profile(self) -> Optional[DifficultyProfile]:
        return self._profile

    @property
    def state(self) -> PolicyState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._state == PolicyState.REQUESTING

    @property
    def examples(self) -> list[ExampleRecord]:
        return list(self._examples)

    def set_profile(self, profile: DifficultyProfile) -> None:
        self._profile = profile.copy()

    def clear_example_buffer(self) -> None:
        self._examples.clear()

    # --- Prompt ---

    def build_prompt(self, metrics: MetricsSnapshot, symptom: PerformanceSymptom) -> str:
        sections = [self.system_prompt, "", "# Examples"]
        examples = list(self._examples) or _default_examples()
        sections.extend(example.render() + "\n" for example in examples)

        game_variables = self._profile.to_dict()["game_variables"] if self._profile else []
        request = {
            "symptom": symptom.label,
            "metrics": metrics.to_dict(),
            "game_variables": game_variables,
        }
        sections.extend(["# Request", "// Input", json.dumps(request), "// Output", ""])
        return "\n".join(sections)

    # --- Request ---

    def request_adjustment(
        self, metrics: MetricsSnapshot, symptom: PerformanceSymptom,
    ) -> asyncio.Future:
        """Start an adjustment request and return a future for its profile.

        The guards run synchronously, so a second call made while a request
        is outstanding is rejected right away.
        """
        loop = asyncio.get_running_loop()

        if self.is_processing:
            logger.info("Already processing a request. Skipping.")
            return _resolved(loop, self._profile)

        if self.client is None:
            logger.warning("API key not set. Returning current profile unchanged.")
            return _resolved(loop, self._profile)

        if self._profile is None:
            logger.error("No DifficultyProfile assigned.")
            return _resolved(loop, None)

        self._state = PolicyState.REQUESTING
        return loop.create_task(self._request(metrics, symptom))

    async def _request(
        self, metrics: MetricsSnapshot, symptom: PerformanceSymptom,
    ) -> DifficultyProfile:
        try:
            return await self._plan(metrics, symptom)
        except Exception:
            logger.exception("Unexpected error while planning an adjustment.")
            return self._profile
        finally:
            self._state = PolicyState.IDLE

    async def _plan(
        self, metrics: MetricsSnapshot, symptom: PerformanceSymptom,
    ) -> DifficultyProfile:
        prompt = self.build_prompt(metrics, symptom)
        if self.config.log_prompts:
            logger.info(
                f"Provider: {self.client.provider.value}, Model: {self.client.model}"
            )
            logger.info(f"Prompt:\n{prompt}")

        try:
            raw = await asyncio.wait_for(self.client.generate(prompt), self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"API request timed out after {self.timeout}s.")
            return self._profile
        except ProviderError as e:
            logger.warning(f"API request failed: {e}")
            return self._profile

        if self.config.log_responses:
            logger.info(f"Response:\n{raw}")

        output = strip_code_fences(raw or "")
        if not output:
            logger.warning("Could not extract text from API response.")
            return self._profile

        adjusted = self._profile.copy()
        try:
            report = adjusted.update_from_json(output)
        except ProfileParseError as e:
            logger.warning(f"Failed to parse LLM output ({e}). Using current profile.")
            return self._profile

        adjusted.clamp()
        self._profile = adjusted
        self._remember(metrics, symptom, adjusted)
        logger.info(
            f"Applied LLM adjustments for {len(report.applied)} variable(s)"
            + (f", ignored {report.unknown}" if report.unknown else "")
        )
        return self._profile

    def _remember(
        self,
        metrics: MetricsSnapshot,
        symptom: PerformanceSymptom,
        profile: DifficultyProfile,
    ) -> None:
        request = json.dumps({"symptom": symptom.label, "metrics": metrics.to_dict()})
        self._examples.append(ExampleRecord(request, json.dumps(profile.to_output_dict())))


def _resolved(loop: asyncio.AbstractEventLoop, value) -> asyncio.Future:
    future = loop.create_future()
    future.set_result(value)
    return future
