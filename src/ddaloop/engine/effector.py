"""Applies a difficulty profile to game systems (the Execute step)."""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional, Protocol, Sequence

from loguru import logger

from ddaloop.engine.profile import (
    ENEMY_DENSITY,
    JUMP_STRENGTH,
    RUN_SPEED,
    SAW_PROBABILITY,
    SPIKE_PROBABILITY,
    DifficultyProfile,
)

# Profile value that reproduces a block's original probability.
REFERENCE_MIDPOINT = 0.5
# Scaled blocks never drop to zero so they stay selectable.
MIN_PROBABILITY = 0.01


class Hazard(str, Enum):
    SAW = "saw"
    SPIKE = "spike"
    ENEMY = "enemy"


# Checked in this order; the first match decides which variable scales a block.
_HAZARD_VARIABLES = (
    (Hazard.SAW, SAW_PROBABILITY),
    (Hazard.SPIKE, SPIKE_PROBABILITY),
    (Hazard.ENEMY, ENEMY_DENSITY),
)


class Block(Protocol):
    name: str

    @property
    def probability(self) -> float: ...

    def set_probability(self, value: float) -> None: ...

    def has_hazard(self, hazard: Hazard) -> bool: ...


class TerrainSettings(Protocol):
    start_blocks: Sequence[Block]
    middle_blocks: Sequence[Block]
    end_blocks: Sequence[Block]


class PlayerCharacter(Protocol):
    @property
    def run_speed(self) -> float: ...

    @property
    def jump_strength(self) -> float: ...

    def set_run_speed(self, value: float) -> None: ...

    def set_jump_strength(self, value: float) -> None: ...


class DifficultyEffector:
    """Pushes profile values into the character and terrain block weights.

    Block probabilities are always rescaled from the value cached the first
    time a block is seen, so repeated applies never compound.
    """

    def __init__(
        self,
        character: Optional[PlayerCharacter] = None,
        terrain: Optional[TerrainSettings] = None,
    ):
        self.character = character
        self.terrain = terrain
        # id(block) -> (block, original probability); the block is held so
        # its id cannot be reused while cached.
        self._baseline: dict[int, tuple[Block, float]] = {}

    def apply_profile(self, profile: Optional[DifficultyProfile]) -> None:
        """Apply all variables. Call between runs, never mid-run."""
        if profile is None:
            logger.warning("Cannot apply null profile.")
            return

        self._cache_baseline()
        self._apply_character(profile)
        self._apply_blocks(profile)
        logger.info(f"Profile applied: {profile.to_json()}")

    def baseline(self, block: Block) -> Optional[float]:
        entry = self._baseline.get(id(block))
        return entry[1] if entry else None

    # --- Internals ---

    def _cache_baseline(self) -> None:
        if self.terrain is None:
            return
        for group in (
            self.terrain.start_blocks,
            self.terrain.middle_blocks,
            self.terrain.end_blocks,
        ):
            for block in group or ():
                if block is not None and id(block) not in self._baseline:
                    self._baseline[id(block)] = (block, block.probability)

    def _apply_character(self, profile: DifficultyProfile) -> None:
        if self.character is None:
            logger.warning("No character assigned; skipping runSpeed and jumpStrength.")
            return

        old_speed = self.character.run_speed
        self.character.set_run_speed(profile.value(RUN_SPEED))
        _log_change(RUN_SPEED, old_speed, profile.value(RUN_SPEED))

        old_jump = self.character.jump_strength
        self.character.set_jump_strength(profile.value(JUMP_STRENGTH))
        _log_change(JUMP_STRENGTH, old_jump, profile.value(JUMP_STRENGTH))

    def _apply_blocks(self, profile: DifficultyProfile) -> None:
        if self.terrain is None:
            logger.warning("No terrain settings assigned; skipping block probabilities.")
            return

        # Start and end blocks are cached but left alone
        for block in self.terrain.middle_blocks or ():
            if block is None:
                continue
            variable = _scaling_variable(block)
            if variable is None:
                continue

            original = self._baseline[id(block)][1]
            scale = profile.value(variable) / REFERENCE_MIDPOINT
            probability = max(MIN_PROBABILITY, original * scale)

            _log_change(f"block[{block.name}] ({variable})", block.probability, probability)
            block.set_probability(probability)


def _scaling_variable(block: Block) -> Optional[str]:
    for hazard, variable in _HAZARD_VARIABLES:
        if block.has_hazard(hazard):
            return variable
    return None


def _log_change(variable: str, old: float, new: float) -> None:
    if not math.isclose(old, new, abs_tol=1e-6):
        logger.info(f"{variable}: {old:.2f} -> {new:.2f} (delta: {new - old:+.2f})")
