from __future__ import annotations

from lessonplayer.core.view import block
from lessonplayer.steps.contract import RenderContext, StepDescriptor


def render_mission(ctx: RenderContext) -> None:
    title = ctx.context.text(ctx.config.get("title"))
    description = ctx.context.text(ctx.config.get("description"))

    ctx.container.render(
        block(
            "card",
            "mission",
            block("heading", "mission-title", text=title),
            block("paragraph", "mission-description", text=description),
            block("button", "mission-accept", label=ctx.context.ui("accept_mission")),
        )
    )
    ctx.container.on("click", lambda _e: ctx.on_complete({"success": True}), target="mission-accept")


MISSION = StepDescriptor(
    id="mission",
    render=render_mission,
    display_name="Mission",
    category="content",
    default_config={"title": {"en": "Your Mission"}, "description": {"en": ""}},
)
