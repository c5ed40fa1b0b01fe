from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from lessonplayer.core.localizer import DEFAULT_LANG, resolve

PlayerMode = Literal["student", "preview"]


class TextLookup(Protocol):
    def get_text(self, key: str, lang: str, *args: object) -> str: ...


@dataclass(frozen=True, slots=True)
class StepContext:
    """Mode/language awareness handed to steps that need it."""

    lang: str = DEFAULT_LANG
    mode: PlayerMode = "student"
    user_id: str | None = None
    module_id: str | None = None
    step_index: int = 0
    step_count: int = 0
    texts: TextLookup | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def commit(self) -> bool:
        """Preview sessions simulate completion instead of persisting it."""

        return self.mode == "student"

    def text(self, value: Any) -> str:
        return resolve(value, self.lang)

    def ui(self, key: str, *args: object) -> str:
        if self.texts is None:
            return key
        return self.texts.get_text(key, self.lang, *args)
