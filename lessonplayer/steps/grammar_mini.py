from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field

from lessonplayer.core.view import block
from lessonplayer.steps.contract import RenderContext, StepDescriptor, parse_config, pydantic_validator

_BOLD = re.compile(r"\*\*(.*?)\*\*")


class QuizItem(BaseModel):
    question: str
    options: list[str] = Field(..., min_length=1)
    answer: str


class GrammarMiniConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    focus: str = ""
    explanation: str = ""
    examples: list[str] = Field(default_factory=list)
    quiz: list[QuizItem] = Field(default_factory=list)


def _example_block(index: int, text: str):
    # "**word**" marks emphasis; the client decides how to show it.
    return block("list_item", f"gm-example-{index}", text=_BOLD.sub(r"\1", text), emphasis=_BOLD.findall(text))


def render_grammar_mini(ctx: RenderContext) -> None:
    cfg = parse_config(GrammarMiniConfig, ctx.config)
    ui = ctx.context.ui
    answered: dict[int, bool] = {}

    def _option_id(q: int, o: int) -> str:
        return f"gm-q{q}-option-{o}"

    questions = [
        block(
            "quiz_item",
            f"gm-q{q}",
            block("paragraph", f"gm-q{q}-text", text=item.question),
            *(block("button", _option_id(q, o), label=opt) for o, opt in enumerate(item.options)),
            block("feedback", f"gm-q{q}-feedback", text="", tone=None),
        )
        for q, item in enumerate(cfg.quiz)
    ]
    footer = [] if cfg.quiz else [block("button", "gm-continue", label=ui("continue"))]

    ctx.container.render(
        block(
            "card",
            "grammar",
            block("heading", "gm-focus", text=ui("grammar_focus", cfg.focus)),
            block("paragraph", "gm-explanation", text=cfg.explanation),
            block("heading", "gm-examples-title", text=ui("examples"), level=4),
            block("list", "gm-examples", *(_example_block(i, ex) for i, ex in enumerate(cfg.examples))),
            block("heading", "gm-quiz-title", text=ui("quick_quiz"), level=4),
            block("list", "gm-quiz", *questions),
            *footer,
        )
    )

    def _answer(q: int, o: int) -> None:
        if q in answered:
            return
        item = cfg.quiz[q]
        for i in range(len(item.options)):
            ctx.container.update(_option_id(q, i), disabled=True)

        correct = item.options[o] == item.answer
        answered[q] = correct
        if correct:
            ctx.container.update(_option_id(q, o), state="correct")
            ctx.container.update(f"gm-q{q}-feedback", text=ui("correct"), tone="success")
        else:
            ctx.container.update(_option_id(q, o), state="wrong")
            ctx.container.update(f"gm-q{q}-feedback", text=ui("answer_is", item.answer), tone="error")

        if len(answered) == len(cfg.quiz):
            ctx.on_complete({"success": True, "score": sum(answered.values())})

    for q, item in enumerate(cfg.quiz):
        for o in range(len(item.options)):
            ctx.container.on("click", lambda _e, q=q, o=o: _answer(q, o), target=_option_id(q, o))
    if not cfg.quiz:
        ctx.container.on("click", lambda _e: ctx.on_complete({"success": True}), target="gm-continue")


GRAMMAR_MINI = StepDescriptor(
    id="grammarMini",
    render=render_grammar_mini,
    display_name="Grammar Mini",
    category="content",
    description="Short grammar explanation followed by a quick check.",
    default_config={
        "focus": {"en": "Present Simple"},
        "explanation": {"en": "Use the present simple for habits."},
        "examples": {"en": ["She **walks** to school."]},
        "quiz": [{"question": "He ___ coffee.", "options": ["drink", "drinks"], "answer": "drinks"}],
    },
    validate_config=pydantic_validator(GrammarMiniConfig),
)
