from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lessonplayer.core.view import block
from lessonplayer.steps.contract import RenderContext, StepDescriptor, parse_config, pydantic_validator

WRONG_RESET_MS = 800
CORRECT_MESSAGE_MS = 1000
COMPLETE_DELAY_MS = 1000

Side = Literal["left", "right"]


class Pair(BaseModel):
    left: str
    right: str


class MatchingGameConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = ""
    instruction: str = ""
    pairs: list[Pair] = Field(..., min_length=1)

    @field_validator("pairs", mode="before")
    @classmethod
    def _accept_two_item_lists(cls, v: Any) -> Any:
        # Older modules store pairs as ["term", "match"].
        if isinstance(v, list):
            return [
                {"left": p[0], "right": p[1]} if isinstance(p, (list, tuple)) and len(p) == 2 else p
                for p in v
            ]
        return v


def _is_image(text: str) -> bool:
    return text.startswith(("http://", "https://", "data:"))


def render_matching_game(ctx: RenderContext) -> None:
    cfg = parse_config(MatchingGameConfig, ctx.config)
    ui = ctx.context.ui
    container = ctx.container

    lefts = list(enumerate(p.left for p in cfg.pairs))
    rights = list(enumerate(p.right for p in cfg.pairs))
    ctx.rng.shuffle(lefts)
    ctx.rng.shuffle(rights)

    selected: tuple[Side, int] | None = None
    matched: set[int] = set()

    def _tile_id(side: Side, pair_id: int) -> str:
        return f"match-{side}-{pair_id}"

    def _tile(side: Side, pair_id: int, text: str):
        kind = "image_button" if _is_image(text) else "button"
        props = {"src": text} if kind == "image_button" else {"label": text}
        return block(kind, _tile_id(side, pair_id), state="idle", **props)

    container.render(
        block(
            "card",
            "matching",
            block("heading", "match-instruction", text=cfg.instruction or cfg.title or ui("match_title")),
            block("column", "match-left", *(_tile("left", i, t) for i, t in lefts)),
            block("column", "match-right", *(_tile("right", i, t) for i, t in rights)),
            block("feedback", "match-msg", text="", tone=None),
        )
    )

    def _set_state(side: Side, pair_id: int, state: str) -> None:
        container.update(_tile_id(side, pair_id), state=state)

    def _clear_message() -> None:
        if len(matched) < len(cfg.pairs):
            container.update("match-msg", text="", tone=None)

    def _correct(pair_id: int) -> None:
        matched.add(pair_id)
        for side in ("left", "right"):
            container.update(_tile_id(side, pair_id), state="matched", disabled=True)
        if len(matched) == len(cfg.pairs):
            container.update("match-msg", text=ui("match_done"), tone="success")
            ctx.scheduler.call_later(COMPLETE_DELAY_MS, lambda: ctx.on_complete({"success": True}))
            return
        container.update("match-msg", text=ui("match_correct"), tone="success")
        ctx.scheduler.call_later(CORRECT_MESSAGE_MS, _clear_message)

    def _wrong(first: tuple[Side, int], second: tuple[Side, int]) -> None:
        for side, pair_id in (first, second):
            _set_state(side, pair_id, "wrong")
        container.update("match-msg", text=ui("match_wrong"), tone="error")

        def _reset() -> None:
            for side, pair_id in (first, second):
                if pair_id not in matched:
                    _set_state(side, pair_id, "idle")
            _clear_message()

        ctx.scheduler.call_later(WRONG_RESET_MS, _reset)

    def _select(side: Side, pair_id: int) -> None:
        nonlocal selected
        if pair_id in matched:
            return
        if selected == (side, pair_id):
            _set_state(side, pair_id, "idle")
            selected = None
            return
        if selected is None or selected[0] == side:
            if selected is not None:
                _set_state(*selected, "idle")
            selected = (side, pair_id)
            _set_state(side, pair_id, "selected")
            return

        previous, selected = selected, None
        if previous[1] == pair_id:
            _correct(pair_id)
        else:
            _wrong(previous, (side, pair_id))

    for pair_id in range(len(cfg.pairs)):
        for side in ("left", "right"):
            container.on("click", lambda _e, s=side, p=pair_id: _select(s, p), target=_tile_id(side, pair_id))


MATCHING_GAME = StepDescriptor(
    id="matchingGame",
    render=render_matching_game,
    display_name="Matching Game",
    category="assessment",
    description="Practice vocabulary matching.",
    default_config={
        "instruction": "Match the terms correctly.",
        "pairs": [{"left": "Apple", "right": "Manzana"}, {"left": "Banana", "right": "Plátano"}],
    },
    validate_config=pydantic_validator(MatchingGameConfig),
)
