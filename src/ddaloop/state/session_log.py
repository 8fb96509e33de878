"""Append-only DDA session log, written to disk once at teardown."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

SESSION_START = "DDA_SESSION_START"
SESSION_RESET = "DDA_SESSION_RESET"
CYCLE_START = "DDA_CYCLE_START"
CYCLE_COMPLETE = "DDA_CYCLE_COMPLETE"
CYCLE_FAILED = "DDA_CYCLE_FAILED"


@dataclass
class SessionEntry:
    timestamp: str
    event: str
    data: Any


class SessionLog:
    def __init__(
        self,
        log_dir: Path,
        enabled: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.log_dir = log_dir
        self.enabled = enabled
        self._clock = clock
        self._entries: list[SessionEntry] = []

    @property
    def entries(self) -> list[SessionEntry]:
        return list(self._entries)

    def append(self, event: str, data: Any = None) -> None:
        if not self.enabled:
            return
        timestamp = self._clock().isoformat(timespec="milliseconds")
        self._entries.append(SessionEntry(timestamp=timestamp, event=event, data=data))

    def clear(self) -> None:
        self._entries.clear()

    def save(self) -> Optional[Path]:
        """Write all entries as a JSON array. Returns the path, or None."""
        if not self.enabled or not self._entries:
            return None

        filename = f"dda_session_{self._clock():%Y%m%d_%H%M%S}.json"
        path = self.log_dir / filename
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w") as f:
                json.dump([asdict(e) for e in self._entries], f, indent=2)
        except (OSError, TypeError) as e:
            logger.warning(f"Failed to save session log: {e}")
            return None

        logger.info(f"Session log saved to: {path}")
        return path
