from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from lessonplayer.core.view import block
from lessonplayer.steps.contract import RenderContext, StepDescriptor, parse_config, pydantic_validator


class PrimerConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = ""
    src: str = ""
    text: str = ""


def render_primer(ctx: RenderContext) -> None:
    cfg = parse_config(PrimerConfig, ctx.config)

    children = [block("heading", "primer-title", text=cfg.title)]
    if cfg.src:
        children.append(block("image", "primer-image", src=cfg.src, alt="Primer"))
    children.append(block("paragraph", "primer-text", text=cfg.text))
    children.append(block("button", "primer-continue", label=ctx.context.ui("continue")))
    ctx.container.render(block("card", "primer", *children))

    ctx.container.on("click", lambda _e: ctx.on_complete({"success": True}), target="primer-continue")


PRIMER = StepDescriptor(
    id="primer",
    render=render_primer,
    display_name="Primer",
    category="content",
    description="Introductory slide with an image and text.",
    default_config={
        "title": {"en": "Lesson Title"},
        "src": "images/placeholder.png",
        "text": {"en": "Introduction text here."},
    },
    validate_config=pydantic_validator(PrimerConfig),
)
