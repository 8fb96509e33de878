"""Game-side proxies that turn effector writes into outbound notifications.

The game process describes its character and terrain blocks once; the
effector then mutates these proxies, and every setter call is forwarded
to the game as a notification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

from ddaloop.engine.effector import Hazard

from .protocol import Notification

Notify = Callable[[Notification], None]


class RemoteCharacter:
    def __init__(self, notify: Notify, run_speed: float = 5.0, jump_strength: float = 10.0):
        self._notify = notify
        self._run_speed = run_speed
        self._jump_strength = jump_strength

    @property
    def run_speed(self) -> float:
        return self._run_speed

    @property
    def jump_strength(self) -> float:
        return self._jump_strength

    def set_run_speed(self, value: float) -> None:
        self._run_speed = value
        self._notify(Notification("setRunSpeed", {"value": value}))

    def set_jump_strength(self, value: float) -> None:
        self._jump_strength = value
        self._notify(Notification("setJumpStrength", {"value": value}))


class RemoteBlock:
    def __init__(
        self,
        notify: Notify,
        name: str,
        probability: float,
        hazards: Iterable[str] = (),
    ):
        self._notify = notify
        self.name = name
        self._probability = probability
        self.hazards = frozenset(Hazard(h) for h in hazards)

    @property
    def probability(self) -> float:
        return self._probability

    def set_probability(self, value: float) -> None:
        self._probability = value
        self._notify(Notification("setBlockProbability", {"id": self.name, "probability": value}))

    def has_hazard(self, hazard: Hazard) -> bool:
        return hazard in self.hazards


@dataclass
class RemoteTerrain:
    start_blocks: list[RemoteBlock] = field(default_factory=list)
    middle_blocks: list[RemoteBlock] = field(default_factory=list)
    end_blocks: list[RemoteBlock] = field(default_factory=list)

    @classmethod
    def from_params(cls, blocks: list[dict], notify: Notify) -> RemoteTerrain:
        """Build from ``[{id, group, probability, hazards}]`` descriptions."""
        if not isinstance(blocks, list):
            raise ValueError("'blocks' must be a list")
        terrain = cls()
        groups = {
            "start": terrain.start_blocks,
            "middle": terrain.middle_blocks,
            "end": terrain.end_blocks,
        }
        for spec in blocks:
            if not isinstance(spec, dict):
                raise ValueError(f"Block description must be an object, got {spec!r}")
            group = spec.get("group", "middle")
            if group not in groups:
                raise ValueError(f"Unknown block group: {group}")
            groups[group].append(RemoteBlock(
                notify,
                name=str(spec["id"]),
                probability=float(spec["probability"]),
                hazards=spec.get("hazards", ()),
            ))
        return terrain
