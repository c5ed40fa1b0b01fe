from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from lessonplayer.core.view import block
from lessonplayer.steps.contract import RenderContext, StepDescriptor, parse_config, pydantic_validator


class IntentCheckConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    question: str = ""
    options: list[str] = Field(..., min_length=1)


def render_intent_check(ctx: RenderContext) -> None:
    # There is no wrong answer; the learner may change their mind after the first pick.
    cfg = parse_config(IntentCheckConfig, ctx.config)
    container = ctx.container

    def _option_id(i: int) -> str:
        return f"intent-option-{i}"

    def _choose(index: int) -> None:
        for i in range(len(cfg.options)):
            container.update(_option_id(i), selected=i == index)
        container.update("intent", choice=cfg.options[index])
        container.update("intent-notice", text=ctx.context.ui("saved"))
        ctx.on_complete({"success": True})

    container.render(
        block(
            "card",
            "intent",
            block("heading", "intent-question", text=cfg.question),
            block(
                "choices",
                "intent-options",
                *(block("button", _option_id(i), label=o, selected=False) for i, o in enumerate(cfg.options)),
            ),
            block("paragraph", "intent-notice", text=""),
            choice=None,
        )
    )
    for i in range(len(cfg.options)):
        container.on("click", lambda _e, i=i: _choose(i), target=_option_id(i))


INTENT_CHECK = StepDescriptor(
    id="intentCheck",
    render=render_intent_check,
    display_name="Intent Check",
    category="content",
    description="Ask the learner what they want to get out of the module.",
    default_config={
        "question": {"en": "What is your goal for this module?"},
        "options": [{"en": "Travel"}, {"en": "Work"}, {"en": "Just curious"}],
    },
    validate_config=pydantic_validator(IntentCheckConfig),
)
