from __future__ import annotations

from lessonplayer.core.view import UiEvent, block
from lessonplayer.steps.contract import RenderContext, StepDescriptor


def render_reflection(ctx: RenderContext) -> None:
    """Free-text prompt. Submitting a non-empty answer completes the step.

    The answer travels in a `submit` event on `reflection-form`
    (`data={"text": ...}`); it is kept in the block props but not persisted.
    """

    prompt = ctx.context.text(ctx.config.get("prompt"))
    ui = ctx.context.ui

    ctx.container.render(
        block(
            "form",
            "reflection-form",
            block("heading", "reflection-title", text=ui("reflection_title")),
            block("paragraph", "reflection-prompt", text=prompt),
            block("textarea", "reflection-answer", value="", placeholder=ui("reflection_placeholder")),
            block("paragraph", "reflection-hint", text=""),
            block("button", "reflection-submit", label=ui("submit")),
        )
    )

    def _submit(event: UiEvent) -> None:
        answer = str(event.data.get("text", "")).strip()
        if not answer:
            ctx.container.update("reflection-hint", text=ui("reflection_empty"))
            return
        ctx.container.update("reflection-answer", value=answer)
        ctx.container.update("reflection-hint", text="")
        ctx.on_complete({"success": True})

    ctx.container.on("submit", _submit, target="reflection-form")


REFLECTION = StepDescriptor(
    id="reflection",
    render=render_reflection,
    display_name="Reflection",
    category="content",
    description="Asks the learner to write down a short reflection.",
    default_config={"prompt": {"en": "What did you learn today?"}},
)
