"""JSON-lines messages exchanged with the game process."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Request:
    """Game event or control call sent by the game."""
    id: int
    method: str
    params: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> Request:
        return cls(
            id=data.get("id", 0),
            method=data["method"],
            params=data.get("params") or {},
        )


def parse_request(line: str) -> Request:
    """Decode one input line. Raises ValueError for anything unusable."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("method"), str):
        raise ValueError("Request must be an object with a 'method' string")
    if not isinstance(data.get("params") or {}, dict):
        raise ValueError("'params' must be an object")
    return Request.from_dict(data)


@dataclass
class Response:
    """Reply to one request, carrying either a result or an error."""
    id: int
    result: Optional[dict] = None
    error: Optional[str] = None

    def to_json_line(self) -> str:
        d = {"id": self.id}
        if self.error is not None:
            d["error"] = self.error
        else:
            d["result"] = self.result
        return json.dumps(d) + "\n"


@dataclass
class Notification:
    """Mutation pushed to the game (no id, no reply expected).

    Methods: setRunSpeed, setJumpStrength, setBlockProbability,
    difficultyChanged.
    """
    method: str
    params: dict = field(default_factory=dict)

    def to_json_line(self) -> str:
        return json.dumps({"method": self.method, "params": self.params}) + "\n"
