"""Difficulty profile: bounded game variables and their JSON representation.

A profile is an ordered, fixed set of named variables built from a schema.
The same JSON shape is used in prompts sent to the model and in session
logs::

    {"game_variables": [
        {"description": "enemyDensity", "threshold": [0.0, 1.0], "value": 0.5},
        ...
    ]}

Model answers are parsed leniently: either that list shape (thresholds
optional) or a flat ``{"enemyDensity": 0.4, ...}`` object is accepted.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional, Sequence

from loguru import logger

from ddaloop.config.settings import VariableBounds

ENEMY_DENSITY = "enemyDensity"
GAP_FREQUENCY = "gapFrequency"
RUN_SPEED = "runSpeed"
JUMP_STRENGTH = "jumpStrength"
SAW_PROBABILITY = "sawProbability"
SPIKE_PROBABILITY = "spikeProbability"
COIN_DENSITY = "coinDensity"
PLATFORM_HEIGHT_VARIANCE = "platformHeightVariance"


class ProfileParseError(ValueError):
    """Raised when model output cannot be read as a profile at all."""


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class VariableSpec:
    name: str
    min: float
    max: float
    default: float


REFERENCE_SCHEMA: tuple[VariableSpec, ...] = (
    VariableSpec(ENEMY_DENSITY, 0.0, 1.0, 0.5),
    VariableSpec(GAP_FREQUENCY, 0.0, 0.8, 0.3),
    VariableSpec(RUN_SPEED, 3.0, 12.0, 5.0),
    VariableSpec(JUMP_STRENGTH, 6.0, 15.0, 10.0),
    VariableSpec(SAW_PROBABILITY, 0.0, 1.0, 0.4),
    VariableSpec(SPIKE_PROBABILITY, 0.0, 1.0, 0.3),
    VariableSpec(COIN_DENSITY, 0.1, 1.0, 0.5),
    VariableSpec(PLATFORM_HEIGHT_VARIANCE, 0.0, 3.0, 0.5),
)


def build_schema(
    overrides: Optional[Mapping[str, VariableBounds]] = None,
    base: Sequence[VariableSpec] = REFERENCE_SCHEMA,
) -> tuple[VariableSpec, ...]:
    """Apply configured bound/default overrides on top of the base schema."""
    overrides = dict(overrides or {})
    schema = []
    for spec in base:
        bounds = overrides.pop(spec.name, None)
        if bounds is None:
            schema.append(spec)
            continue
        low = spec.min if bounds.min is None else bounds.min
        high = spec.max if bounds.max is None else bounds.max
        if low > high:
            raise ValueError(f"{spec.name}: min {low} is greater than max {high}")
        default = spec.default if bounds.default is None else bounds.default
        schema.append(VariableSpec(spec.name, low, high, clamp(default, low, high)))
    for name in overrides:
        logger.warning(f"Ignoring bounds for unknown difficulty variable '{name}'")
    return tuple(schema)


class DifficultyVariable:
    """One tunable knob. ``value`` is clamped to ``[min, max]`` on every write."""

    __slots__ = ("name", "min", "max", "_value")

    def __init__(self, name: str, value: float, min: float, max: float):
        if min > max:
            raise ValueError(f"{name}: min {min} is greater than max {max}")
        self.name = name
        self.min = float(min)
        self.max = float(max)
        self.value = value

    @property
    def value(self) -> float:
        return self._value

    @value.setter
    def value(self, value: float) -> None:
        self._value = clamp(float(value), self.min, self.max)

    def clamp(self) -> None:
        self.value = self._value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DifficultyVariable):
            return NotImplemented
        return (self.name, self.value, self.min, self.max) == (
            other.name, other.value, other.min, other.max,
        )

    def __repr__(self) -> str:
        return (
            f"DifficultyVariable({self.name!r}, {self.value}, "
            f"min={self.min}, max={self.max})"
        )


@dataclass
class ParseReport:
    """Outcome of a partial parse of model output."""
    applied: dict[str, float] = field(default_factory=dict)
    unknown: list[str] = field(default_factory=list)
    rejected: dict[str, Any] = field(default_factory=dict)


class DifficultyProfile:
    """Ordered set of difficulty variables built from a schema."""

    def __init__(
        self,
        schema: Sequence[VariableSpec] = REFERENCE_SCHEMA,
        values: Optional[Mapping[str, float]] = None,
    ):
        self.schema = tuple(schema)
        self._variables = {
            spec.name: DifficultyVariable(spec.name, spec.default, spec.min, spec.max)
            for spec in self.schema
        }
        for name, value in (values or {}).items():
            if not self.set(name, value):
                raise KeyError(f"Unknown difficulty variable: {name}")

    # --- Access ---

    def names(self) -> list[str]:
        return list(self._variables)

    def variables(self) -> list[DifficultyVariable]:
        return list(self._variables.values())

    def get(self, name: str) -> Optional[DifficultyVariable]:
        return self._variables.get(name)

    def value(self, name: str) -> float:
        return self._variables[name].value

    def values(self) -> dict[str, float]:
        return {name: var.value for name, var in self._variables.items()}

    def set(self, name: str, value: float) -> bool:
        var = self._variables.get(name)
        if var is None:
            return False
        var.value = value
        return True

    def clamp(self) -> None:
        for var in self._variables.values():
            var.clamp()

    def copy(self) -> DifficultyProfile:
        """Runtime copy that can be modified without touching this instance."""
        return DifficultyProfile(self.schema, self.values())

    def __iter__(self) -> Iterator[DifficultyVariable]:
        return iter(self._variables.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DifficultyProfile):
            return NotImplemented
        return self.variables() == other.variables()

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v:g}" for k, v in self.values().items())
        return f"DifficultyProfile({inner})"

    # --- Serialization ---

    def to_dict(self) -> dict:
        return {
            "game_variables": [
                {"description": v.name, "threshold": [v.min, v.max], "value": v.value}
                for v in self._variables.values()
            ]
        }

    def to_output_dict(self) -> dict:
        """The answer shape the model is asked to produce (no thresholds)."""
        return {
            "game_variables": [
                {"description": v.name, "value": round(v.value, 4)}
                for v in self._variables.values()
            ]
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(
        cls, text: str, schema: Sequence[VariableSpec] = REFERENCE_SCHEMA,
    ) -> DifficultyProfile:
        profile = cls(schema)
        profile.update_from_json(text)
        return profile

    def update_from_json(self, text: str) -> ParseReport:
        """Overwrite known variables from model output, best effort per field."""
        pairs = _extract_pairs(_load_object(text))
        report = ParseReport()
        for name, raw in pairs:
            if name not in self._variables:
                report.unknown.append(name)
                logger.warning(f"Ignoring unknown difficulty variable '{name}'")
                continue
            number = _as_number(raw)
            if number is None:
                report.rejected[name] = raw
                logger.warning(f"Ignoring non-numeric value for '{name}': {raw!r}")
                continue
            self.set(name, number)
            report.applied[name] = self.value(name)
        return report


def _load_object(text: str) -> dict:
    if not text or not text.strip():
        raise ProfileParseError("empty profile text")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Models sometimes wrap the object in prose
        match = re.search(r"\{[\s\S]*\}", text)
        if not match:
            raise ProfileParseError("no JSON object found in text")
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise ProfileParseError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProfileParseError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _extract_pairs(data: dict) -> list[tuple[str, Any]]:
    items = data.get("game_variables")
    if items is None:
        return list(data.items())
    if isinstance(items, dict):
        return list(items.items())
    if not isinstance(items, list):
        raise ProfileParseError("'game_variables' must be a list or object")

    pairs = []
    for item in items:
        if not isinstance(item, dict) or "description" not in item:
            logger.warning(f"Skipping malformed game variable entry: {item!r}")
            continue
        pairs.append((str(item["description"]), item.get("value")))
    return pairs


def _as_number(raw: Any) -> Optional[float]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
    elif isinstance(raw, str):
        try:
            number = float(raw.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number
