from __future__ import annotations

from typing import Any, ClassVar

from pydantic import Field, field_validator

from lessonplayer.core.view import UiEvent, block
from lessonplayer.games.engine import ArcadeGame, GameConfig
from lessonplayer.games.letter_racing import LetterRacingGame
from lessonplayer.steps.contract import Cleanup, RenderContext, StepDescriptor, parse_config, pydantic_validator

KEY_DIRECTIONS = {"ArrowLeft": -1, "ArrowRight": 1}


class LetterRacingConfig(GameConfig):
    default_goal: ClassVar[dict[str, Any]] = {"type": "score", "value": 10}

    letters: list[str] = Field(default_factory=lambda: list("ABCDE"), min_length=1)
    wrong_penalty: int = Field(1, alias="wrongPenalty", ge=0)
    speed: float = Field(5.0, gt=0)

    @field_validator("letters", mode="before")
    @classmethod
    def _split_string(cls, v: Any) -> Any:
        # "ABCDE" is shorthand for ["A", "B", "C", "D", "E"].
        if isinstance(v, str):
            return [c for c in v if not c.isspace()]
        return v


def render_letter_racing(ctx: RenderContext) -> Cleanup:
    cfg = parse_config(LetterRacingConfig, ctx.config)
    ui = ctx.context.ui
    container = ctx.container
    timed = cfg.goal.type == "time"

    def _paint(_game: ArcadeGame, reason: str) -> None:
        state = game.state
        container.update("lr-target", text=game.target)
        container.update("lr-score", text=str(state.time_remaining if timed else state.score))
        car = game.avatar_rect()
        container.set_children(
            "lr-field",
            [
                block("car", "lr-car", x=car.x, y=car.y, width=car.width, height=car.height, lane=game.car_lane),
                *(block("letter", **e.as_dict()) for e in state.entities),
            ],
        )
        if reason == "end":
            text = ui("you_win") if state.success else ui("game_over")
            container.append(block("overlay", "lr-result", text=text), parent="lr-field")
            for button_id in ("lr-left", "lr-right"):
                container.update(button_id, disabled=True)

    game = LetterRacingGame(
        letters=cfg.letters,
        wrong_penalty=cfg.wrong_penalty,
        speed=cfg.speed,
        scheduler=ctx.scheduler,
        goal=cfg.goal,
        on_finish=ctx.on_complete,
        width=ctx.window.width,
        height=ctx.window.height,
        rng=ctx.rng,
        on_update=_paint,
    )

    container.render(
        block(
            "game",
            "letter-racing",
            block("label", "lr-target-title", text=ui("catch_letter")),
            block("text", "lr-target", text=""),
            block("label", "lr-goal-title", text=ui("time") if timed else ui("score")),
            block("text", "lr-score", text=str(cfg.goal.value if timed else 0)),
            block("playfield", "lr-field", width=game.width, height=game.height, lanes=3),
            block("button", "lr-left", label="◀"),
            block("button", "lr-right", label="▶"),
        )
    )

    def _on_key(event: UiEvent) -> None:
        direction = KEY_DIRECTIONS.get(str(event.data.get("key", "")))
        if direction is not None:
            game.move(direction)

    def _on_resize(_event: UiEvent) -> None:
        game.resize(ctx.window.width, ctx.window.height)
        container.update("lr-field", width=game.width, height=game.height)

    container.on("click", lambda _e: game.move(-1), target="lr-left")
    container.on("click", lambda _e: game.move(1), target="lr-right")
    ctx.window.add_listener("keydown", _on_key)
    ctx.window.add_listener("resize", _on_resize)

    game.start()
    container.update("lr-target", text=game.target)

    def cleanup() -> None:
        game.stop()
        ctx.window.remove_listener("keydown", _on_key)
        ctx.window.remove_listener("resize", _on_resize)

    return cleanup


LETTER_RACING = StepDescriptor(
    id="letterRacingGame",
    render=render_letter_racing,
    display_name="Letter Racing",
    category="game",
    description="Steer the car to catch the target letter.",
    default_config={"letters": "ABCDE", "goal": {"type": "score", "value": 10}},
    validate_config=pydantic_validator(LetterRacingConfig),
)
