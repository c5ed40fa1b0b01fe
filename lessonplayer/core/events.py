from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

EventType = Literal[
    "STEP_RENDERED",
    "STEP_COMPLETED",
    "STEP_TORN_DOWN",
    "STEP_FAILED",
    "MODULE_COMPLETED",
    "MODULE_EXITED",
    "MODULE_LOAD_FAILED",
]


@dataclass(frozen=True, slots=True)
class PlayerEvent:
    type: EventType
    step_index: int | None
    payload: dict[str, Any]
    ts: datetime

    @staticmethod
    def now(*, type: EventType, step_index: int | None, payload: dict[str, Any] | None = None) -> "PlayerEvent":
        return PlayerEvent(type=type, step_index=step_index, payload=payload or {}, ts=datetime.now(timezone.utc))

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "step_index": self.step_index, "payload": self.payload, "ts": self.ts.isoformat()}
