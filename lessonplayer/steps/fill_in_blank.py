from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lessonplayer.core.view import block
from lessonplayer.steps.contract import RenderContext, StepDescriptor, parse_config, pydantic_validator

BLANK = "___"


class BlankOption(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    is_correct: bool = Field(False, alias="isCorrect")
    feedback: str = ""


class FillInTheBlankConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    prompt: str = ""
    question: str = BLANK
    options: list[BlankOption] = Field(..., min_length=1)

    @field_validator("options")
    @classmethod
    def _needs_a_correct_option(cls, v: list[BlankOption]) -> list[BlankOption]:
        if not any(o.is_correct for o in v):
            raise ValueError("at least one option must be marked isCorrect")
        return v


def render_fill_in_blank(ctx: RenderContext) -> None:
    cfg = parse_config(FillInTheBlankConfig, ctx.config)
    ui = ctx.context.ui
    correct_text = next(o.text for o in cfg.options if o.is_correct)
    attempts = 0

    def _option_id(i: int) -> str:
        return f"fib-option-{i}"

    def _paint() -> None:
        before, _, after = cfg.question.partition(BLANK)
        # A retry repaints from scratch, listeners included.
        ctx.container.clear()
        ctx.container.render(
            block(
                "card",
                "fib",
                block("heading", "fib-prompt", text=cfg.prompt or ui("complete_sentence")),
                block("sentence", "fib-question", before=before, blank=BLANK, after=after),
                block(
                    "choices",
                    "fib-choices",
                    *(block("button", _option_id(i), label=o.text) for i, o in enumerate(cfg.options)),
                ),
                block("feedback", "fib-feedback", text="", tone=None),
            )
        )
        for i, option in enumerate(cfg.options):
            ctx.container.on("click", lambda _e, i=i, option=option: _choose(i, option), target=_option_id(i))

    def _choose(index: int, option: BlankOption) -> None:
        nonlocal attempts
        attempts += 1
        for i in range(len(cfg.options)):
            ctx.container.update(_option_id(i), disabled=True)

        if option.is_correct:
            ctx.container.update(_option_id(index), state="correct")
            ctx.container.update("fib-question", blank=correct_text)
            ctx.container.update("fib-feedback", text=ui("correct"), tone="success")
            ctx.on_complete({"success": True, "score": 1 if attempts == 1 else 0})
            return

        ctx.container.update(_option_id(index), state="wrong")
        for i, other in enumerate(cfg.options):
            if other.is_correct:
                ctx.container.update(_option_id(i), state="correct")
        ctx.container.update("fib-feedback", text=option.feedback or ui("not_quite"), tone="error")
        ctx.container.append(block("button", "fib-retry", label=ui("try_again")), parent="fib")
        ctx.container.on("click", lambda _e: _paint(), target="fib-retry")

    _paint()


FILL_IN_THE_BLANK = StepDescriptor(
    id="fillInTheBlank",
    render=render_fill_in_blank,
    display_name="Fill In The Blank",
    category="assessment",
    description="Choose the correct word to complete the sentence.",
    default_config={
        "prompt": "Complete the sentence:",
        "question": "This is a ___.",
        "options": [{"text": "test", "isCorrect": True}, {"text": "wrong", "isCorrect": False}],
    },
    validate_config=pydantic_validator(FillInTheBlankConfig),
)
