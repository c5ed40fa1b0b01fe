from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from lessonplayer.core.view import UiEvent, block
from lessonplayer.games.engine import ArcadeGame, GameConfig
from lessonplayer.games.slasher import SlasherGame, SlasherItem
from lessonplayer.steps.contract import Cleanup, RenderContext, StepDescriptor, parse_config, pydantic_validator

PLAYFIELD_HEIGHT = 600
GREAT_JOB_SCORE = 50


class SlasherItemConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    is_target: bool = Field(False, alias="isTarget")


class SlasherConfig(GameConfig):
    default_goal: ClassVar[dict[str, Any]] = {"type": "time", "value": 60}

    instruction: str = ""
    target_category: str = Field("", alias="targetCategory")
    distractor_category: str = Field("", alias="distractorCategory")
    speed: float = Field(2.0, gt=0)
    target_bias: float = Field(0.5, alias="targetBias", ge=0, le=1)
    items: list[SlasherItemConfig] = Field(..., min_length=1)


def _coord(value: Any, current: float) -> float:
    # Pointer payloads come straight from the client; anything unusable keeps the old position.
    try:
        return float(value)
    except (TypeError, ValueError):
        return current


def render_slasher(ctx: RenderContext) -> Cleanup:
    """Start screen, then the round, then a "Round Over" screen.

    "Play again" starts a fresh round in place; the step has already
    reported completion by then, so replays never advance the module twice.
    """

    cfg = parse_config(SlasherConfig, ctx.config)
    ui = ctx.context.ui
    container = ctx.container
    timed = cfg.goal.type == "time"

    def _paint(_game: ArcadeGame, reason: str) -> None:
        if reason == "end":
            _paint_round_over()
            return
        state = game.state
        container.update("sl-score", text=str(state.score))
        if timed:
            container.update("sl-time", text=str(state.time_remaining))
        avatar = game.avatar_rect()
        container.set_children(
            "sl-area",
            [
                block("avatar", "sl-player", x=avatar.x, y=avatar.y, width=avatar.width, height=avatar.height),
                *(block("item", **e.as_dict()) for e in state.entities),
            ],
        )

    game = SlasherGame(
        items=[SlasherItem(text=i.text, is_target=i.is_target) for i in cfg.items],
        speed=cfg.speed,
        target_bias=cfg.target_bias,
        scheduler=ctx.scheduler,
        goal=cfg.goal,
        on_finish=ctx.on_complete,
        width=ctx.window.width,
        height=PLAYFIELD_HEIGHT,
        rng=ctx.rng,
        on_update=_paint,
    )

    def _paint_start() -> None:
        container.render(
            block(
                "game",
                "slasher",
                block(
                    "hud",
                    "sl-hud",
                    block("label", "sl-score-title", text=ui("score")),
                    block("text", "sl-score", text="0"),
                    block("label", "sl-category", text=cfg.target_category),
                    block("label", "sl-time-title", text=ui("time") if timed else ""),
                    block("text", "sl-time", text=str(cfg.goal.value) if timed else ""),
                ),
                block(
                    "overlay",
                    "sl-start",
                    block("heading", "sl-instruction", text=cfg.instruction),
                    block("paragraph", "sl-hint", text=ui("slasher_hint", cfg.distractor_category)),
                    block("button", "sl-start-button", label=ui("start")),
                ),
                block("playfield", "sl-area", width=game.width, height=game.height),
            )
        )
        container.on("click", _start, target="sl-start-button")
        container.on("pointer_move", _move, target="sl-area")
        container.on("pointer_down", _slice, target="sl-area")

    def _paint_round_over() -> None:
        score = game.state.score
        children = [
            block("heading", "sl-over-title", text=ui("round_over")),
            block("text", "sl-final-score", text=f"{ui('score')} {score}"),
            block("button", "sl-again", label=ui("play_again")),
        ]
        if score > GREAT_JOB_SCORE:
            children.append(block("paragraph", "sl-great", text=ui("great_job")))
        container.render(block("screen", "slasher-over", *children))
        container.on("click", _play_again, target="sl-again")

    def _start(_event: UiEvent) -> None:
        if game.state.playing:
            return
        container.remove("sl-start")
        game.start()

    def _play_again(_event: UiEvent) -> None:
        _paint_start()
        _start(_event)

    def _move(event: UiEvent) -> None:
        game.move_to(_coord(event.data.get("x"), game.pointer_x), _coord(event.data.get("y"), game.pointer_y))

    def _slice(event: UiEvent) -> None:
        if "x" in event.data or "y" in event.data:
            _move(event)
        game.slice()

    def _on_resize(_event: UiEvent) -> None:
        game.resize(ctx.window.width, PLAYFIELD_HEIGHT)
        if container.find("sl-area") is not None:
            container.update("sl-area", width=game.width)

    ctx.window.add_listener("resize", _on_resize)
    _paint_start()

    def cleanup() -> None:
        game.stop()
        ctx.window.remove_listener("resize", _on_resize)

    return cleanup


SLASHER = StepDescriptor(
    id="genericSlasher",
    render=render_slasher,
    display_name="Slasher Game",
    category="game",
    description="A frantic sorting game where players slice correct items and avoid distractors.",
    default_config={
        "instruction": "Slice the Primary Sources!",
        "targetCategory": "Primary Sources",
        "distractorCategory": "Secondary Sources",
        "goal": {"type": "time", "value": 60},
        "speed": 2,
        "items": [
            {"text": "Diary", "isTarget": True},
            {"text": "Photograph", "isTarget": True},
            {"text": "Textbook", "isTarget": False},
            {"text": "Encyclopedia", "isTarget": False},
        ],
    },
    validate_config=pydantic_validator(SlasherConfig),
)
