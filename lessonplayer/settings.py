from __future__ import annotations

import os
from dataclasses import dataclass

from lessonplayer.core.localizer import normalize_lang
from lessonplayer.core.scheduler import DEFAULT_FRAME_MS


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_number(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} must be >= 0")
    return value


@dataclass(frozen=True, slots=True)
class PlayerSettings:
    """Player behavior knobs.

    - `advance_on_complete`: a step's completion moves to the next step. When
      False, completion only unlocks the Next button.
    - `next_unlock_seconds`: lock Next for this long on every step (0 = off);
      completing the step unlocks it early.
    """

    default_lang: str = "en"
    advance_on_complete: bool = True
    next_unlock_seconds: int = 0
    frame_ms: float = DEFAULT_FRAME_MS

    @staticmethod
    def from_env() -> "PlayerSettings":
        return PlayerSettings(
            default_lang=normalize_lang(os.environ.get("LESSONPLAYER_DEFAULT_LANG", "en")),
            advance_on_complete=_env_flag("LESSONPLAYER_ADVANCE_ON_COMPLETE", True),
            next_unlock_seconds=int(_env_number("LESSONPLAYER_NEXT_UNLOCK_SECONDS", 0)),
            frame_ms=_env_number("LESSONPLAYER_FRAME_MS", DEFAULT_FRAME_MS) or DEFAULT_FRAME_MS,
        )
