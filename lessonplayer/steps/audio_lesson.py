from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from lessonplayer.core.scheduler import Handle
from lessonplayer.core.view import block
from lessonplayer.steps.contract import Cleanup, RenderContext, StepDescriptor, parse_config, pydantic_validator

HIGHLIGHT_MS = 500
PLAY_ALL_GAP_MS = 1500


class AudioItem(BaseModel):
    word: str
    translation: str = ""


class AudioLessonConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = "Key Vocabulary"
    items: list[AudioItem] = Field(..., min_length=1)


def render_audio_lesson(ctx: RenderContext) -> Cleanup:
    """Vocabulary list with per-word playback and a "Play All" run.

    The words being played are published as `now_playing` on the root block;
    the client does the actual speech.
    """

    cfg = parse_config(AudioLessonConfig, ctx.config)
    ui = ctx.context.ui
    container = ctx.container
    highlight: Handle | None = None
    run: Handle | None = None

    def _item_id(i: int) -> str:
        return f"audio-item-{i}"

    def _unhighlight(index: int) -> None:
        nonlocal highlight
        highlight = None
        container.update(_item_id(index), playing=False)

    def _play(index: int) -> None:
        nonlocal highlight
        if highlight is not None:
            highlight.cancel()
            for i in range(len(cfg.items)):
                container.update(_item_id(i), playing=False)
        container.update(_item_id(index), playing=True)
        container.update("audio", now_playing=cfg.items[index].word)
        highlight = ctx.scheduler.call_later(HIGHLIGHT_MS, lambda: _unhighlight(index))

    def _stop() -> None:
        nonlocal run
        if run is not None:
            run.cancel()
            run = None
        container.update("audio", playing_all=False)

    def _play_all() -> None:
        nonlocal run
        _stop()
        position = 0

        def _tick() -> None:
            nonlocal position
            if position >= len(cfg.items):
                _stop()
                return
            _play(position)
            position += 1

        container.update("audio", playing_all=True)
        _tick()
        run = ctx.scheduler.call_every(PLAY_ALL_GAP_MS, _tick)

    container.render(
        block(
            "card",
            "audio",
            block("heading", "audio-title", text=cfg.title),
            block(
                "list",
                "audio-items",
                *(
                    block(
                        "item",
                        _item_id(i),
                        block("text", f"{_item_id(i)}-word", text=item.word),
                        block("text", f"{_item_id(i)}-translation", text=item.translation),
                        block("button", f"{_item_id(i)}-play", label="▶"),
                        playing=False,
                    )
                    for i, item in enumerate(cfg.items)
                ),
            ),
            block("button", "audio-play-all", label=ui("play_all")),
            block("button", "audio-stop", label=ui("stop")),
            block("button", "audio-continue", label=ui("continue")),
            now_playing=None,
            playing_all=False,
        )
    )
    for i in range(len(cfg.items)):
        container.on("click", lambda _e, i=i: _play(i), target=f"{_item_id(i)}-play")
    container.on("click", lambda _e: _play_all(), target="audio-play-all")
    container.on("click", lambda _e: _stop(), target="audio-stop")
    container.on("click", lambda _e: ctx.on_complete({"success": True}), target="audio-continue")

    def cleanup() -> None:
        nonlocal highlight
        _stop()
        if highlight is not None:
            highlight.cancel()
            highlight = None

    return cleanup


AUDIO_LESSON = StepDescriptor(
    id="audioLesson",
    render=render_audio_lesson,
    display_name="Audio Lesson",
    category="content",
    description="Listen to key words one by one or all in a row.",
    default_config={
        "title": {"en": "Key Vocabulary"},
        "items": [
            {"word": "Hello", "translation": {"en": "Greeting", "ru": "Привет"}},
            {"word": "Thank you", "translation": {"en": "Gratitude", "ru": "Спасибо"}},
        ],
    },
    validate_config=pydantic_validator(AudioLessonConfig),
)
