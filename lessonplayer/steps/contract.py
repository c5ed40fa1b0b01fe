from __future__ import annotations

import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ValidationError

from lessonplayer.core.completion import CompletionGuard
from lessonplayer.core.context import StepContext
from lessonplayer.core.scheduler import Scheduler
from lessonplayer.core.view import Container, ScopedWindow

StepCategory = Literal["content", "assessment", "simulation", "game"]

Cleanup = Callable[[], None]


class StepConfigError(ValueError):
    pass


@dataclass(slots=True)
class RenderContext:
    """Everything a renderer may touch.

    The container is owned exclusively by the step until its cleanup has run.
    Timers must go through `scheduler` and window listeners through `window`
    so teardown can release whatever the step forgot.
    """

    container: Container
    config: dict[str, Any]
    on_complete: CompletionGuard
    context: StepContext
    scheduler: Scheduler
    window: ScopedWindow
    rng: random.Random = field(default_factory=random.Random)


Renderer = Callable[[RenderContext], "Cleanup | None"]


def _accept_any(config: dict[str, Any]) -> dict[str, Any]:
    return config


@dataclass(frozen=True, slots=True)
class StepDescriptor:
    id: str
    render: Renderer
    default_config: Mapping[str, Any] = field(default_factory=dict)
    display_name: str = ""
    category: StepCategory = "content"
    description: str = ""
    validate_config: Callable[[dict[str, Any]], dict[str, Any]] = _accept_any
    init: Callable[[], None] | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.id

    @property
    def requires_cleanup(self) -> bool:
        return self.category == "game"


M = TypeVar("M", bound=BaseModel)


def parse_config(model: type[M], config: Mapping[str, Any]) -> M:
    """Validate a raw step config with a pydantic model, mapping failures to StepConfigError."""

    try:
        return model.model_validate(dict(config))
    except ValidationError as e:
        raise StepConfigError(str(e)) from e


def pydantic_validator(model: type[BaseModel]) -> Callable[[dict[str, Any]], dict[str, Any]]:
    def _validate(config: dict[str, Any]) -> dict[str, Any]:
        # Normalized form; models that need unknown keys declare extra="allow".
        return parse_config(model, config).model_dump(by_alias=True)

    return _validate
