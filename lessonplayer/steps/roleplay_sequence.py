from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from statemachine import State, StateMachine

from lessonplayer.core.scheduler import Handle
from lessonplayer.core.view import block
from lessonplayer.steps.contract import Cleanup, RenderContext, StepDescriptor, parse_config, pydantic_validator

PLAYER = "You"
TYPE_MS_PER_CHAR = 25
CORRECT_ADVANCE_MS = 1000
RETRY_DELAY_MS = 2000


def reading_time_ms(text: str) -> int:
    return max(2000, len(text) * 50)


class RoleplayOption(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str
    is_correct: bool = Field(False, alias="isCorrect")
    feedback: str = ""


class Scene(BaseModel):
    model_config = ConfigDict(extra="allow")

    character: str = ""
    dialogue: str = ""
    prompt: str = ""
    avatar: str = ""
    mood: str = ""
    background: str = ""
    options: list[RoleplayOption] = Field(default_factory=list)

    @property
    def is_player_turn(self) -> bool:
        return self.character == PLAYER


class RoleplayConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    scenario: str = ""
    scenes: list[Scene] = Field(default_factory=list)


class RoleplayFSM(StateMachine):
    """Dialogue flow for one roleplay step.

    NPC lines advance on a timer; a player turn waits for a choice. A wrong
    choice parks in `feedback` until `retry` returns to the same choice set.
    """

    npc_line = State("NPC line", value="npc_line", initial=True)
    player_choice = State("Player choice", value="player_choice")
    feedback = State("Feedback", value="feedback")
    finished = State("Finished", value="finished", final=True)

    choose = player_choice.to(feedback)
    retry = feedback.to(player_choice)
    to_npc = npc_line.to(npc_line) | feedback.to(npc_line)
    to_choice = npc_line.to(player_choice) | feedback.to(player_choice)
    conclude = npc_line.to(finished) | feedback.to(finished)

    def __init__(self, *, player_first: bool = False):
        super().__init__(start_value="player_choice" if player_first else "npc_line")


def render_roleplay_sequence(ctx: RenderContext) -> Cleanup:
    cfg = parse_config(RoleplayConfig, ctx.config)
    ui = ctx.context.ui
    container = ctx.container
    scenes = cfg.scenes

    fsm = RoleplayFSM(player_first=bool(scenes) and scenes[0].is_player_turn)
    scene_index = 0
    first_try_correct = 0
    missed: set[int] = set()
    typing: Handle | None = None

    container.render(
        block(
            "card",
            "roleplay",
            block("heading", "rp-scenario", text=cfg.scenario),
            block("progress", "rp-progress", value=0),
            block("list", "rp-scenes"),
            state=fsm.current_state.id,
            scene=0,
        )
    )

    def _sync() -> None:
        percent = round(scene_index / len(scenes) * 100) if scenes else 100
        container.update("rp-progress", value=percent)
        container.update("roleplay", state=fsm.current_state.id, scene=scene_index)

    def _options_of(index: int) -> list[str]:
        return [f"rp-s{index}-option-{i}" for i in range(len(scenes[index].options))]

    def _show_scene(*, entering: bool) -> None:
        if scene_index >= len(scenes):
            fsm.conclude()
            _sync()
            container.append(
                block("banner", "rp-complete", text=ui("sequence_complete"), tone="success"),
                parent="roleplay",
            )
            ctx.on_complete({"success": True, "score": first_try_correct})
            return

        scene = scenes[scene_index]
        if scene.is_player_turn:
            if entering:
                fsm.to_choice()
            _sync()
            _show_choices(scene_index, scene)
        else:
            if entering:
                fsm.to_npc()
            _sync()
            _show_npc_line(scene_index, scene)

    def _show_npc_line(index: int, scene: Scene) -> None:
        nonlocal typing
        text_id = f"rp-s{index}-text"
        container.append(
            block(
                "dialogue",
                f"rp-scene-{index}",
                block("paragraph", text_id, text=""),
                character=scene.character,
                avatar=scene.avatar or None,
                mood=scene.mood or None,
                background=scene.background or None,
            ),
            parent="rp-scenes",
        )
        revealed = 0

        def _type() -> None:
            nonlocal revealed
            revealed += 1
            container.update(text_id, text=scene.dialogue[:revealed])
            if revealed >= len(scene.dialogue):
                _typed()

        def _typed() -> None:
            if typing is not None:
                typing.cancel()
            ctx.scheduler.call_later(reading_time_ms(scene.dialogue), _next_scene)

        if scene.dialogue:
            typing = ctx.scheduler.call_every(TYPE_MS_PER_CHAR, _type)
        else:
            _typed()

    def _show_choices(index: int, scene: Scene) -> None:
        option_ids = _options_of(index)
        container.append(
            block(
                "choice",
                f"rp-scene-{index}",
                block("paragraph", f"rp-s{index}-prompt", text=scene.prompt or scene.dialogue),
                *(block("button", oid, label=o.text) for oid, o in zip(option_ids, scene.options)),
                block("feedback", f"rp-s{index}-feedback", text="", tone=None),
            ),
            parent="rp-scenes",
        )
        for i, oid in enumerate(option_ids):
            container.on("click", lambda _e, i=i: _choose(index, i), target=oid)

    def _choose(index: int, option_index: int) -> None:
        nonlocal first_try_correct
        if index != scene_index or fsm.current_state.id != "player_choice":
            return
        option = scenes[index].options[option_index]
        option_ids = _options_of(index)
        fsm.choose()
        for oid in option_ids:
            container.update(oid, disabled=True)

        if option.is_correct:
            if index not in missed:
                first_try_correct += 1
            container.update(option_ids[option_index], state="correct")
            _sync()
            ctx.scheduler.call_later(CORRECT_ADVANCE_MS, _next_scene)
            return

        missed.add(index)
        container.update(option_ids[option_index], state="wrong")
        container.update(f"rp-s{index}-feedback", text=option.feedback, tone="error")
        _sync()

        def _retry() -> None:
            for oid in option_ids:
                container.update(oid, disabled=False, state=None)
            container.update(f"rp-s{index}-feedback", text="", tone=None)
            fsm.retry()
            _sync()

        ctx.scheduler.call_later(RETRY_DELAY_MS, _retry)

    def _next_scene() -> None:
        nonlocal scene_index
        scene_index += 1
        _show_scene(entering=True)

    def cleanup() -> None:
        if typing is not None:
            typing.cancel()

    _show_scene(entering=False)
    return cleanup


ROLEPLAY_SEQUENCE = StepDescriptor(
    id="roleplaySequence",
    render=render_roleplay_sequence,
    display_name="Roleplay Sequence",
    category="simulation",
    description="Interactive roleplay with multiple scenes and branching choices.",
    default_config={
        "scenario": "Greeting a Friend",
        "scenes": [
            {"character": "Friend", "dialogue": "Hi! How are you?"},
            {"character": "You", "prompt": "How do you reply?", "options": [{"text": "I'm good, thanks!", "isCorrect": True}]},
        ],
    },
    validate_config=pydantic_validator(RoleplayConfig),
)
