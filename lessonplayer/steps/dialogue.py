from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from lessonplayer.core.scheduler import Handle
from lessonplayer.core.view import Block, block
from lessonplayer.steps.contract import Cleanup, RenderContext, StepDescriptor, parse_config, pydantic_validator
from lessonplayer.steps.roleplay_sequence import reading_time_ms

# The learner's own lines; everyone else is shown on the other side.
PLAYER_ROLE = "guest"


class DialogueLine(BaseModel):
    role: str = "host"
    text: str


class DialogueConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = ""
    lines: list[DialogueLine] = Field(..., min_length=1)


def render_dialogue(ctx: RenderContext) -> Cleanup:
    """Speaker bubbles with a listen button each.

    Only one line is spoken at a time; listening to another line cuts the
    current one short.
    """

    cfg = parse_config(DialogueConfig, ctx.config)
    ui = ctx.context.ui
    container = ctx.container
    speaking: tuple[int, Handle] | None = None

    def _line_id(i: int) -> str:
        return f"dlg-line-{i}"

    def _bubble(i: int, line: DialogueLine) -> Block:
        mine = line.role.strip().lower() == PLAYER_ROLE
        return block(
            "bubble",
            _line_id(i),
            block("label", f"{_line_id(i)}-speaker", text=ui("dialogue_you") if mine else line.role.title()),
            block("paragraph", f"{_line_id(i)}-text", text=line.text),
            block("button", f"{_line_id(i)}-speak", label=ui("listen")),
            side="right" if mine else "left",
            speaking=False,
        )

    def _stop_speaking() -> None:
        nonlocal speaking
        if speaking is None:
            return
        index, handle = speaking
        speaking = None
        handle.cancel()
        container.update(_line_id(index), speaking=False)

    def _speak(index: int) -> None:
        nonlocal speaking
        _stop_speaking()
        text = cfg.lines[index].text
        container.update(_line_id(index), speaking=True)
        container.update("dialogue", last_spoken=text)
        speaking = (index, ctx.scheduler.call_later(reading_time_ms(text), _stop_speaking))

    container.render(
        block(
            "card",
            "dialogue",
            block("heading", "dlg-title", text=cfg.title),
            block("thread", "dlg-lines", *(_bubble(i, line) for i, line in enumerate(cfg.lines))),
            block("button", "dlg-continue", label=ui("continue")),
            last_spoken=None,
        )
    )
    for i in range(len(cfg.lines)):
        container.on("click", lambda _e, i=i: _speak(i), target=f"{_line_id(i)}-speak")
    container.on("click", lambda _e: ctx.on_complete({"success": True}), target="dlg-continue")

    return _stop_speaking


DIALOGUE = StepDescriptor(
    id="dialogue",
    render=render_dialogue,
    display_name="Dialogue",
    category="content",
    description="A short conversation to read and listen to, line by line.",
    default_config={
        "title": {"en": "At the Front Desk"},
        "lines": [
            {"role": "host", "text": {"en": "Welcome! How can I help you?"}},
            {"role": "guest", "text": {"en": "I have a reservation."}},
        ],
    },
    validate_config=pydantic_validator(DialogueConfig),
)
