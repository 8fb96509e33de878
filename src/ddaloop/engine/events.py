"""Typed observer channels for game notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

from loguru import logger

T = TypeVar("T", bound=Callable[..., None])


class Signal(Generic[T]):
    """A list of handlers called in subscription order.

    ``connect`` returns a callable that removes the handler again, so
    owners can drop their subscriptions when they are torn down.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._handlers: list[T] = []

    def connect(self, handler: T) -> Callable[[], None]:
        self._handlers.append(handler)
        return lambda: self.disconnect(handler)

    def disconnect(self, handler: T) -> None:
        try:
            self._handlers.remove(handler)
        except ValueError:
            logger.debug(f"Handler already disconnected from signal '{self.name}'")

    def emit(self, *args) -> None:
        for handler in list(self._handlers):
            handler(*args)

    def clear(self) -> None:
        self._handlers.clear()

    def __len__(self) -> int:
        return len(self._handlers)


@dataclass
class GameEvents:
    """Inbound notifications published by the game layer."""
    score_changed: Signal[Callable[[float], None]] = field(
        default_factory=lambda: Signal("score_changed"))
    death_changed: Signal[Callable[[bool], None]] = field(
        default_factory=lambda: Signal("death_changed"))
    coin_changed: Signal[Callable[[int], None]] = field(
        default_factory=lambda: Signal("coin_changed"))
    jumped: Signal[Callable[[], None]] = field(
        default_factory=lambda: Signal("jumped"))
    run_reset: Signal[Callable[[int], None]] = field(
        default_factory=lambda: Signal("run_reset"))
    tick: Signal[Callable[[float], None]] = field(
        default_factory=lambda: Signal("tick"))
