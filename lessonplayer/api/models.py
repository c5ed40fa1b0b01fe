from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# A plain string, or a mapping of language code ("en", "ru", "kg") to string.
LocalizedText = str | dict[str, str]


class Step(BaseModel):
    """One entry of a module's step list.

    Only `type` is shared. Type-specific settings live either under `config`
    or, as older modules store them, directly on the step.
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1)
    config: dict[str, Any] = Field(default_factory=dict)

    def step_config(self) -> dict[str, Any]:
        return {**(self.model_extra or {}), **self.config}


class Module(BaseModel):
    id: str = Field(..., min_length=1)
    title: LocalizedText = ""
    steps: list[Step] = Field(default_factory=list)


class ModuleDocument(BaseModel):
    """Body of PUT /modules/{module_id}; the id comes from the path."""

    title: LocalizedText = ""
    steps: list[Step] = Field(default_factory=list)


class ModuleListResponse(BaseModel):
    modules: list[str]


class StepTypeInfo(BaseModel):
    id: str
    display_name: str
    category: str
    default_config: dict[str, Any] = Field(default_factory=dict)
    loaded: bool = False


class StepTypeListResponse(BaseModel):
    step_types: list[StepTypeInfo]


class PlayerCreateRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    module_id: str = Field(..., min_length=1)
    lang: str = "en"
    mode: Literal["student", "preview"] = "student"


class UiEventRequest(BaseModel):
    type: str = Field(..., min_length=1)
    target: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


class PlayerView(BaseModel):
    session_id: str
    module_id: str
    user_id: str
    lang: str
    state: str
    step_index: int | None = None
    step_count: int = 0
    step_type: str | None = None
    next_locked: bool = False
    navigated_to: str | None = None
    view: list[dict[str, Any]] = Field(default_factory=list)
    events: list[dict[str, Any]] = Field(default_factory=list)


class ProgressResponse(BaseModel):
    user_id: str
    module_id: str
    completed: bool
    completed_at: datetime | None = None
