from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompletionSignal:
    """One-shot result emitted by a step to the sequencer."""

    success: bool
    score: int | None = None

    @staticmethod
    def from_payload(payload: Mapping[str, Any] | None) -> "CompletionSignal":
        if payload is None:
            return CompletionSignal(success=True)
        score = payload.get("score")
        return CompletionSignal(
            success=bool(payload.get("success", True)),
            score=int(score) if isinstance(score, (int, float)) else None,
        )

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success}
        if self.score is not None:
            out["score"] = self.score
        return out


class CompletionGuard:
    """Forward only the first completion of a step instance.

    Later calls (two game-end paths racing, a double click) are dropped.
    A closed guard drops everything; the sequencer closes it on teardown.
    """

    def __init__(self, callback: Callable[[CompletionSignal], None] | None, *, step_id: str = "") -> None:
        self._callback = callback
        self._step_id = step_id
        self._fired = False
        self._closed = False

    @property
    def fired(self) -> bool:
        return self._fired

    def close(self) -> None:
        self._closed = True

    def __call__(self, payload: Mapping[str, Any] | None = None) -> bool:
        if self._closed:
            logger.debug("Step %s signalled completion after teardown; ignored", self._step_id)
            return False
        if self._fired:
            logger.debug("Step %s attempted to signal completion twice; ignored", self._step_id)
            return False
        self._fired = True

        if self._callback is None:
            logger.warning("Step %s finished, but no completion handler was provided", self._step_id)
            return True
        self._callback(CompletionSignal.from_payload(payload))
        return True
