from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from lessonplayer.core.view import Container, UiEvent, block
from lessonplayer.player.sequencer import COURSE_SCREEN, NavigationError
from lessonplayer.registry.singleton import register_step_type
from lessonplayer.settings import PlayerSettings
from lessonplayer.steps.contract import RenderContext, StepDescriptor
from lessonplayer.stores.progress_store import is_complete
from lessonplayer.stores.streams import PROGRESS_EVENTS_STREAM, read_events

STATIC_MODULE = {
    "id": "static3",
    "title": {"en": "Greetings", "ru": "Приветствия"},
    "steps": [
        {"type": "primer", "title": {"en": "Welcome", "ru": "Добро пожаловать"}, "text": "Hi"},
        {"type": "mission", "config": {"title": "Say hello", "description": "Greet a friend"}},
        {"type": "reflection", "config": {"prompt": "How did it go?"}},
    ],
}


def _module(module_id: str, *steps: dict) -> dict:
    return {"id": module_id, "title": module_id, "steps": list(steps)}


def _click(target: str) -> UiEvent:
    return UiEvent(type="click", target=target)


async def _eventually(predicate: Callable[[], bool], *, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.mark.asyncio
async def test_next_three_times_completes_module_with_one_progress_write(make_player, r) -> None:
    player, navigator = make_player(STATIC_MODULE)
    await player.open(Container("host"), "static3")

    for _ in range(3):
        await player.next()

    assert player.state == "complete"
    assert player.closed
    assert navigator.history == [COURSE_SCREEN]
    assert is_complete(r=r, user_id="u1", module_id="static3")
    assert len(read_events(r=r, stream_key=PROGRESS_EVENTS_STREAM)) == 1
    assert player.count("MODULE_COMPLETED") == 1
    assert player.completion_ack is not None
    assert "Module complete!" in player.container.text_content()

    with pytest.raises(NavigationError):
        await player.next()


@pytest.mark.asyncio
async def test_full_traversal_pairs_every_render_with_a_teardown(make_player) -> None:
    player, _ = make_player(STATIC_MODULE)
    await player.open(Container("host"), "static3")

    player.dispatch(_click("primer-continue"))
    await player.wait_idle()
    player.dispatch(_click("mission-accept"))
    await player.wait_idle()
    player.dispatch(UiEvent(type="submit", target="reflection-form", data={"text": "It went well"}))
    await player.wait_idle()

    assert player.state == "complete"
    assert player.count("STEP_RENDERED") == 3
    assert player.count("STEP_TORN_DOWN") == 3
    assert player.count("STEP_COMPLETED") == 3
    rendered = [e.step_index for e in player.events if e.type == "STEP_RENDERED"]
    torn_down = [e.step_index for e in player.events if e.type == "STEP_TORN_DOWN"]
    assert rendered == torn_down == [0, 1, 2]


@pytest.mark.asyncio
async def test_chrome_shows_progress_and_localized_labels(make_player) -> None:
    player, _ = make_player(STATIC_MODULE, lang="ru")
    host = Container("host")
    await player.open(host, "static3")

    assert host.require("player-title").props["text"] == "Приветствия"
    assert host.require("player-progress").props["text"] == "Шаг 1 из 3"
    assert host.require("player-back").props["label"] == "Назад к курсу"
    assert host.require("player-next").props["label"] == "Далее"
    # The step renders inside the chrome's stage slot.
    assert host.require("primer-title").props["text"] == "Добро пожаловать"

    await player.next()
    await player.next()
    assert host.require("player-next").props["label"] == "Завершить"
    assert host.require("player-back").props["label"] == "Назад"


@pytest.mark.asyncio
async def test_chrome_buttons_navigate(make_player) -> None:
    player, navigator = make_player(STATIC_MODULE)
    await player.open(Container("host"), "static3")

    player.dispatch(_click("player-next"))
    await player.wait_idle()
    assert player.session.current_index == 1

    player.dispatch(_click("player-back"))
    await player.wait_idle()
    assert player.session.current_index == 0

    player.dispatch(_click("player-back"))
    await player.wait_idle()
    assert player.state == "exited"
    assert navigator.history == [COURSE_SCREEN]


@pytest.mark.asyncio
async def test_unknown_step_type_keeps_next_and_back_working(make_player) -> None:
    player, _ = make_player(
        _module(
            "with-foo",
            {"type": "primer", "title": "Before"},
            {"type": "foo", "whatever": 1},
            {"type": "mission", "title": "After"},
        )
    )
    host = Container("host")
    await player.open(host, "with-foo")

    await player.next()
    error = host.require("step-error")
    assert error.props["text"] == "Unsupported step type: foo"
    assert not host.require("player-next").props["disabled"]
    assert player.count("STEP_FAILED") == 1

    await player.back()
    assert host.require("primer-title").props["text"] == "Before"

    await player.next()
    await player.next()
    assert player.session.current_index == 2
    assert host.require("mission-title").props["text"] == "After"
    assert player.state == "rendering_step"


@pytest.mark.asyncio
async def test_renderer_exception_is_contained(make_player) -> None:
    def _explode(ctx: RenderContext) -> None:
        ctx.container.render(block("paragraph", "half-drawn", text="partial"))
        ctx.scheduler.call_every(100, lambda: None)
        raise RuntimeError("renderer bug")

    register_step_type(StepDescriptor(id="explode", render=_explode))
    player, _ = make_player(_module("boom", {"type": "explode"}, {"type": "primer", "title": "Next one"}))
    host = Container("host")
    await player.open(host, "boom")

    assert host.find("half-drawn") is None
    assert host.require("step-error").props["text"] == "This step could not be displayed."
    assert player.scheduler.pending() == 0
    failed = [e for e in player.events if e.type == "STEP_FAILED"]
    assert failed[0].payload["error"] == "renderer bug"

    await player.next()
    assert host.require("primer-title").props["text"] == "Next one"


@pytest.mark.asyncio
async def test_click_handler_exception_replaces_step_with_error(make_player) -> None:
    def _render(ctx: RenderContext) -> None:
        ctx.container.render(block("button", "bad-btn", label="Press"))
        ctx.scheduler.call_every(500, lambda: None)

        def _press(_e: UiEvent) -> None:
            raise RuntimeError("handler bug")

        ctx.container.on("click", _press, target="bad-btn")

    register_step_type(StepDescriptor(id="bad-click", render=_render))
    player, _ = make_player(_module("bad-click", {"type": "bad-click"}, {"type": "primer", "title": "Recovered"}))
    host = Container("host")
    await player.open(host, "bad-click")

    assert player.dispatch(_click("bad-btn"))

    assert host.find("bad-btn") is None
    assert host.require("step-error").props["text"] == "This step could not be displayed."
    failed = [e for e in player.events if e.type == "STEP_FAILED"]
    assert failed[0].payload["error"] == "handler bug"
    assert player.scheduler.pending() == 0

    await player.next()
    assert host.require("primer-title").props["text"] == "Recovered"


@pytest.mark.asyncio
async def test_frame_callback_exception_replaces_step_with_error(make_player, scheduler) -> None:
    def _render(ctx: RenderContext) -> None:
        ctx.container.render(block("playfield", "bad-field"))

        def _frame(_ts: float) -> None:
            raise RuntimeError("frame bug")

        ctx.scheduler.request_frame(_frame)
        ctx.scheduler.call_every(1000, lambda: None)
        ctx.window.add_listener("keydown", lambda _e: None)

    register_step_type(StepDescriptor(id="bad-frame", render=_render, category="game"))
    player, _ = make_player(_module("bad-frame", {"type": "bad-frame"}, {"type": "primer", "title": "Recovered"}))
    host = Container("host")
    await player.open(host, "bad-frame")

    scheduler.advance_frames(1)

    assert host.find("bad-field") is None
    assert host.require("step-error") is not None
    assert player.count("STEP_FAILED") == 1
    assert scheduler.pending() == 0
    assert player.window.listener_count() == 0
    assert player.state == "rendering_step"

    await player.back()
    assert player.state == "exited"


@pytest.mark.asyncio
async def test_garbage_pointer_payload_does_not_break_the_game(make_player) -> None:
    player, _ = make_player(
        _module("pointer", {"type": "genericSlasher", "items": [{"text": "Diary", "isTarget": True}]})
    )
    host = Container("host")
    await player.open(host, "pointer")
    player.dispatch(_click("sl-start-button"))

    player.dispatch(UiEvent(type="pointer_move", target="sl-area", data={"x": "left", "y": None}))

    assert host.find("step-error") is None
    assert player.count("STEP_FAILED") == 0


@pytest.mark.asyncio
async def test_invalid_step_config_renders_inline_error(make_player) -> None:
    player, _ = make_player(
        _module("bad-config", {"type": "fillInTheBlank", "options": [{"text": "a", "isCorrect": False}]})
    )
    host = Container("host")
    await player.open(host, "bad-config")

    assert host.find("step-error") is not None
    assert player.count("STEP_FAILED") == 1
    assert player.state == "rendering_step"


@pytest.mark.asyncio
async def test_double_completion_advances_once(make_player) -> None:
    def _render(ctx: RenderContext) -> None:
        ctx.container.render(block("button", "twice", label="Go"))

        def _finish(_e: UiEvent) -> None:
            ctx.on_complete({"success": True, "score": 1})
            ctx.on_complete({"success": True, "score": 2})

        ctx.container.on("click", _finish, target="twice")

    register_step_type(StepDescriptor(id="twice", render=_render))
    player, _ = make_player(_module("double", {"type": "twice"}, {"type": "primer"}, {"type": "primer"}))
    await player.open(Container("host"), "double")

    player.dispatch(_click("twice"))
    await player.wait_idle()

    assert player.session.current_index == 1
    completed = [e for e in player.events if e.type == "STEP_COMPLETED"]
    assert len(completed) == 1
    assert completed[0].payload == {"type": "twice", "success": True, "score": 1}


@pytest.mark.asyncio
async def test_module_load_failure_renders_error_state(make_player) -> None:
    player, navigator = make_player()
    host = Container("host")

    await player.mount(host, "does-not-exist")

    assert player.state == "failed"
    assert host.require("player-error").props["text"] == "Failed to load module."
    assert player.count("MODULE_LOAD_FAILED") == 1
    assert navigator.history == []


@pytest.mark.asyncio
async def test_mount_returns_once_the_module_completes(make_player) -> None:
    player, navigator = make_player(_module("one", {"type": "primer", "title": "Only"}))
    host = Container("host")

    mounted = asyncio.create_task(player.mount(host, "one"))
    await _eventually(lambda: host.find("primer-continue") is not None)
    assert not mounted.done()

    player.dispatch(_click("primer-continue"))
    await asyncio.wait_for(mounted, timeout=2)

    assert player.state == "complete"
    assert navigator.history == [COURSE_SCREEN]


@pytest.mark.asyncio
async def test_back_from_first_step_exits_to_course(make_player) -> None:
    player, navigator = make_player(STATIC_MODULE)
    await player.open(Container("host"), "static3")

    await player.back()

    assert player.state == "exited"
    assert navigator.history == [COURSE_SCREEN]
    assert player.count("STEP_TORN_DOWN") == 1
    exited = [e for e in player.events if e.type == "MODULE_EXITED"]
    assert exited[0].payload == {"reason": "back"}


@pytest.mark.asyncio
async def test_completion_only_unlocks_next_when_auto_advance_is_off(make_player) -> None:
    player, _ = make_player(STATIC_MODULE, settings=PlayerSettings(advance_on_complete=False))
    await player.open(Container("host"), "static3")

    player.dispatch(_click("primer-continue"))
    await player.wait_idle()
    assert player.session.current_index == 0
    assert player.count("STEP_COMPLETED") == 1

    await player.next()
    assert player.session.current_index == 1


@pytest.mark.asyncio
async def test_next_lock_counts_down_and_completion_unlocks_early(make_player, scheduler) -> None:
    player, _ = make_player(STATIC_MODULE, settings=PlayerSettings(next_unlock_seconds=3, advance_on_complete=False))
    host = Container("host")
    await player.open(host, "static3")

    assert player.next_locked
    assert host.require("player-next").props == {"label": "Next (3s)", "disabled": True}

    await player.next()
    assert player.session.current_index == 0

    scheduler.advance(1000)
    assert host.require("player-next").props["label"] == "Next (2s)"
    scheduler.advance(2000)
    assert not player.next_locked
    assert host.require("player-next").props == {"label": "Next", "disabled": False}

    await player.next()
    assert player.session.current_index == 1
    assert player.next_locked

    player.dispatch(_click("mission-accept"))
    assert not player.next_locked
    assert scheduler.pending() == 0


@pytest.mark.asyncio
async def test_preview_mode_does_not_persist_completion(make_player, r) -> None:
    player, navigator = make_player(_module("preview", {"type": "primer"}), mode="preview")
    await player.open(Container("host"), "preview")

    await player.next()

    assert player.state == "complete"
    assert navigator.history == [COURSE_SCREEN]
    assert not is_complete(r=r, user_id="u1", module_id="preview")
    assert read_events(r=r, stream_key=PROGRESS_EVENTS_STREAM) == []


@pytest.mark.asyncio
async def test_empty_module_completes_immediately(make_player, r) -> None:
    player, navigator = make_player(_module("empty"))
    await player.open(Container("host"), "empty")

    assert player.state == "complete"
    assert navigator.history == [COURSE_SCREEN]
    assert is_complete(r=r, user_id="u1", module_id="empty")
