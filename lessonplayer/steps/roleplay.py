from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lessonplayer.core.view import block
from lessonplayer.steps.contract import RenderContext, StepDescriptor, parse_config, pydantic_validator


class RoleplayConfig(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str = ""
    prompt: str = ""
    options: list[str] = Field(..., min_length=1)
    correct_option: int = Field(0, alias="correctOption", ge=0)
    feedback: str = ""

    @model_validator(mode="after")
    def _correct_option_in_range(self) -> "RoleplayConfig":
        if self.correct_option >= len(self.options):
            raise ValueError(f"correctOption {self.correct_option} is out of range for {len(self.options)} options")
        return self


def render_roleplay(ctx: RenderContext) -> None:
    """One situation, one choice. There is no retry; a wrong pick scores zero."""

    cfg = parse_config(RoleplayConfig, ctx.config)
    ui = ctx.context.ui
    container = ctx.container

    def _option_id(i: int) -> str:
        return f"rp-option-{i}"

    def _choose(index: int) -> None:
        for i in range(len(cfg.options)):
            container.update(_option_id(i), disabled=True)
        container.update(_option_id(cfg.correct_option), state="correct")

        if index == cfg.correct_option:
            container.update("rp-feedback", text=cfg.feedback or ui("correct"), tone="success")
            ctx.on_complete({"success": True, "score": 1})
            return

        container.update(_option_id(index), state="wrong")
        container.update("rp-feedback", text=ui("roleplay_wrong"), tone="error")
        ctx.on_complete({"success": False, "score": 0})

    container.render(
        block(
            "card",
            "roleplay",
            block("heading", "rp-title", text=cfg.title or ui("roleplay_title")),
            block("paragraph", "rp-prompt", text=cfg.prompt),
            block(
                "choices",
                "rp-options",
                *(block("button", _option_id(i), label=o) for i, o in enumerate(cfg.options)),
            ),
            block("feedback", "rp-feedback", text="", tone=None),
        )
    )
    for i in range(len(cfg.options)):
        container.on("click", lambda _e, i=i: _choose(i), target=_option_id(i))


ROLEPLAY = StepDescriptor(
    id="roleplay",
    render=render_roleplay,
    display_name="Roleplay",
    category="simulation",
    description="Pick the best reply in a single situation.",
    default_config={
        "prompt": {"en": "A guest asks for a late checkout. What do you say?"},
        "options": [
            {"en": "Certainly, I can extend it until 2 PM."},
            {"en": "No way."},
        ],
        "correctOption": 0,
        "feedback": {"en": "Polite and helpful. Well done!"},
    },
    validate_config=pydantic_validator(RoleplayConfig),
)
