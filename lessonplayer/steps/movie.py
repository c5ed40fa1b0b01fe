from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from lessonplayer.core.view import block
from lessonplayer.steps.contract import RenderContext, StepDescriptor, parse_config, pydantic_validator


class MovieConfig(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str = ""
    url: str = Field(..., min_length=1, alias="videoUrl")
    caption: str = ""


def render_movie(ctx: RenderContext) -> None:
    cfg = parse_config(MovieConfig, ctx.config)

    ctx.container.render(
        block(
            "card",
            "movie",
            block("heading", "movie-title", text=cfg.title),
            block("video", "movie-player", src=cfg.url),
            block("paragraph", "movie-caption", text=cfg.caption),
            block("button", "movie-done", label=ctx.context.ui("done_watching")),
        )
    )
    ctx.container.on("click", lambda _e: ctx.on_complete({"success": True}), target="movie-done")


MOVIE = StepDescriptor(
    id="movie",
    render=render_movie,
    display_name="Movie",
    category="content",
    description="Embedded video with a caption.",
    default_config={"title": {"en": "Watch"}, "videoUrl": "https://example.com/video.mp4", "caption": ""},
    validate_config=pydantic_validator(MovieConfig),
)
