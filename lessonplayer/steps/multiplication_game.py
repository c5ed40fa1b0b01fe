from __future__ import annotations

import random

from pydantic import BaseModel, ConfigDict, Field

from lessonplayer.core.scheduler import Handle
from lessonplayer.core.view import block
from lessonplayer.steps.contract import Cleanup, RenderContext, StepDescriptor, parse_config, pydantic_validator

NEXT_QUESTION_MS = 800
OPTION_COUNT = 4
MAX_MULTIPLIER = 10


class MultiplicationGameConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = ""
    factor: int = Field(5, ge=1)
    questions: int = Field(10, ge=1)


def make_options(answer: int, rng: random.Random, count: int = OPTION_COUNT) -> list[int]:
    """`count` distinct choices near `answer`, the answer among them, in random order."""

    options = {answer}
    while len(options) < count:
        options.add(answer + rng.randint(-5, 4))
    out = sorted(options)
    rng.shuffle(out)
    return out


def render_multiplication_game(ctx: RenderContext) -> Cleanup:
    cfg = parse_config(MultiplicationGameConfig, ctx.config)
    ui = ctx.context.ui
    container = ctx.container
    score = 0
    asked = 0
    answer = 0
    options: list[int] = []
    pending: Handle | None = None

    def _option_id(i: int) -> str:
        return f"mg-option-{i}"

    def _ask() -> None:
        nonlocal asked, answer, options, pending
        pending = None
        if asked >= cfg.questions:
            _finish()
            return
        asked += 1
        multiplier = ctx.rng.randint(1, MAX_MULTIPLIER)
        answer = cfg.factor * multiplier
        options = make_options(answer, ctx.rng)
        container.update("mg-question", text=f"{cfg.factor} × {multiplier} = ?", number=asked)
        container.set_children(
            "mg-options",
            [block("button", _option_id(i), label=str(o), value=o) for i, o in enumerate(options)],
        )

    def _choose(index: int) -> None:
        nonlocal score, pending
        correct = options[index] == answer
        if correct:
            score += 1
        for i in range(len(options)):
            container.update(_option_id(i), disabled=True)
        container.update(_option_id(index), state="correct" if correct else "wrong")
        container.update("mg-score", text=ui("score_of", score, cfg.questions))
        pending = ctx.scheduler.call_later(NEXT_QUESTION_MS, _ask)

    def _finish() -> None:
        container.render(
            block(
                "screen",
                "mg-over",
                block("heading", "mg-over-title", text=ui("you_finished")),
                block("text", "mg-final-score", text=ui("final_score", score, cfg.questions)),
            )
        )
        ctx.on_complete({"success": True, "score": score})

    container.render(
        block(
            "game",
            "multiplication",
            block("heading", "mg-title", text=cfg.title or ui("times_table", cfg.factor)),
            block("text", "mg-score", text=ui("score_of", 0, cfg.questions)),
            block("heading", "mg-question", text="", number=0),
            block("choices", "mg-options"),
        )
    )
    # Option ids are reused by every question, so these listeners outlive the buttons.
    for i in range(OPTION_COUNT):
        container.on("click", lambda _e, i=i: _choose(i), target=_option_id(i))
    _ask()

    def cleanup() -> None:
        nonlocal pending
        if pending is not None:
            pending.cancel()
            pending = None

    return cleanup


MULTIPLICATION_GAME = StepDescriptor(
    id="multiplicationGame",
    render=render_multiplication_game,
    display_name="Multiplication Game",
    category="game",
    description="Answer a run of times-table questions against one factor.",
    default_config={"title": {"en": "Table of 5"}, "factor": 5, "questions": 10},
    validate_config=pydantic_validator(MultiplicationGameConfig),
)
