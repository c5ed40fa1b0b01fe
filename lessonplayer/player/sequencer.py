"""Module player: walks a module's steps and owns each step's lifecycle.

Per step: look up the renderer in the registry (loading it on first use),
localize and validate the step config, render it into the stage container
with a step-scoped scheduler/window and a completion guard, and on advance
run its cleanup before anything else touches the stage.

Navigation (`next`, `back`, `leave`, completion-driven advance) is
serialized by one asyncio lock, so teardown of step N always finishes
before step N+1 renders.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any, Protocol

from lessonplayer.api.models import Module, Step
from lessonplayer.core.completion import CompletionGuard, CompletionSignal
from lessonplayer.core.context import PlayerMode, StepContext, TextLookup
from lessonplayer.core.events import EventType, PlayerEvent
from lessonplayer.core.localizer import localize_config, normalize_lang, resolve
from lessonplayer.core.scheduler import AsyncioScheduler, Handle, Scheduler, ScopedScheduler
from lessonplayer.core.view import Container, ScopedWindow, UiEvent, Window, block
from lessonplayer.player.fsm import PlayerFSM
from lessonplayer.registry.registry import StepRegistry, UnknownStepType
from lessonplayer.registry.singleton import get_registry
from lessonplayer.settings import PlayerSettings
from lessonplayer.steps.contract import Cleanup, RenderContext

logger = logging.getLogger(__name__)

COURSE_SCREEN = "coursePlayerScreen"
WINDOW_EVENTS = frozenset({"keydown", "keyup", "resize"})


class NavigationError(RuntimeError):
    pass


class ModuleStore(Protocol):
    def get_module(self, module_id: str) -> Module | Coroutine[Any, Any, Module]: ...


class ProgressStore(Protocol):
    def mark_complete(self, user_id: str, module_id: str) -> Any: ...

    def is_complete(self, user_id: str, module_id: str) -> Any: ...


class Navigator(Protocol):
    def navigate_to(self, screen: str) -> None: ...


async def _resolved(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _no_cleanup() -> None:
    pass


@dataclass(slots=True)
class ActiveStep:
    """Everything the current step allocated; released by one teardown."""

    index: int
    type: str
    guard: CompletionGuard
    scheduler: ScopedScheduler
    window: ScopedWindow
    cleanup: Cleanup = _no_cleanup
    broken: bool = False
    completion: CompletionSignal | None = None


@dataclass(slots=True)
class PlayerSession:
    module_id: str
    title: str = ""
    steps: list[Step] = field(default_factory=list)
    current_index: int = 0
    active: ActiveStep | None = None

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def is_last(self) -> bool:
        return self.current_index >= len(self.steps) - 1


class ModulePlayer:
    def __init__(
        self,
        *,
        module_store: ModuleStore,
        progress_store: ProgressStore,
        navigator: Navigator,
        registry: StepRegistry | None = None,
        scheduler: Scheduler | None = None,
        texts: TextLookup | None = None,
        window: Window | None = None,
        settings: PlayerSettings | None = None,
        user_id: str | None = None,
        lang: str | None = None,
        mode: PlayerMode = "student",
        rng: random.Random | None = None,
    ) -> None:
        self.module_store = module_store
        self.progress_store = progress_store
        self.navigator = navigator
        self.settings = settings or PlayerSettings()
        self.registry = registry or get_registry()
        self.scheduler = scheduler or AsyncioScheduler(frame_ms=self.settings.frame_ms)
        self.texts = texts
        self.window = window or Window()
        self.user_id = user_id
        self.lang = normalize_lang(lang or self.settings.default_lang)
        self.mode: PlayerMode = mode
        self.rng = rng or random.Random()

        self.fsm = PlayerFSM()
        self.session: PlayerSession | None = None
        self.container = Container("player")
        self.stage = Container("stage")
        self.events: list[PlayerEvent] = []
        self.completion_ack: Any = None

        self._lock = asyncio.Lock()
        self._closed = asyncio.Event()
        self._pending: set[asyncio.Task[Any]] = set()
        self._listeners: list[Callable[[PlayerEvent], None]] = []
        self._lock_remaining = 0
        self._lock_handle: Handle | None = None

        self.stage.subscribe(lambda _stage: self._mirror_stage())

    # -- host API --------------------------------------------------------

    @property
    def state(self) -> str:
        return self.fsm.state_id

    @property
    def closed(self) -> bool:
        return self.fsm.closed

    @property
    def next_locked(self) -> bool:
        return self._lock_remaining > 0

    async def mount(self, container: Container, module_id: str) -> None:
        """Render the module into `container`; returns once it completes, fails or is left."""

        await self.open(container, module_id)
        await self._closed.wait()

    async def open(self, container: Container, module_id: str) -> None:
        """Fetch the module and render its first step, without waiting for the end."""

        async with self._lock:
            if self.session is not None:
                raise NavigationError("Player is already mounted")
            self.container = container
            self.session = PlayerSession(module_id=module_id)

            try:
                module = await _resolved(self.module_store.get_module(module_id))
            except Exception as e:
                logger.error("Failed to load module %s: %s", module_id, e)
                self.fsm.load_failed()
                self.container.clear()
                self.container.render(block("error", "player-error", text=self._ui("load_failed")))
                self._record("MODULE_LOAD_FAILED", None, {"module_id": module_id, "error": str(e)})
                self._closed.set()
                return

            self.session.title = resolve(module.title, self.lang)
            self.session.steps = list(module.steps)
            self.fsm.loaded()
            self._paint_chrome()

            if not self.session.steps:
                self.fsm.step_finished()
                self.fsm.finish()
                await self._complete()
                return
            await self._render_current()

    async def next(self) -> None:
        async with self._lock:
            self._require_step()
            if self.next_locked:
                logger.debug("Next ignored while locked (%ds left)", self._lock_remaining)
                return
            await self._advance()

    async def back(self) -> None:
        async with self._lock:
            session = self._require_step()
            self._teardown()
            if session.current_index == 0:
                self.fsm.leave()
                self._record("MODULE_EXITED", 0, {"reason": "back"})
                self._closed.set()
                self.navigator.navigate_to(COURSE_SCREEN)
                return
            session.current_index -= 1
            self.fsm.retreat()
            await self._render_current()

    async def leave(self) -> None:
        """The host navigated away: release the current step and stop."""

        async with self._lock:
            if self.fsm.closed:
                return
            index = self.session.current_index if self.session else None
            self._teardown()
            self.fsm.leave()
            self._record("MODULE_EXITED", index, {"reason": "leave"})
            self._closed.set()

    def dispatch(self, event: UiEvent) -> bool:
        """Route user input to the window, the current step or the player chrome."""

        if self.fsm.closed and event.type not in WINDOW_EVENTS:
            return False
        if event.type not in WINDOW_EVENTS and event.target is not None and self.stage.find(event.target) is None:
            return self.container.dispatch(event)

        active = self.session.active if self.session else None
        try:
            if event.type in WINDOW_EVENTS:
                return self.window.dispatch(event)
            return self.stage.dispatch(event)
        except Exception as e:
            if active is None:
                raise
            self._step_crashed(active, e)
            return True

    def subscribe(self, callback: Callable[[PlayerEvent], None]) -> Callable[[], None]:
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback) if callback in self._listeners else None

    async def wait_idle(self) -> None:
        """Wait for navigation triggered by completions or chrome clicks to settle."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def count(self, event_type: EventType) -> int:
        return sum(1 for e in self.events if e.type == event_type)

    # -- lifecycle -------------------------------------------------------

    def _require_step(self) -> PlayerSession:
        if self.session is None or self.fsm.current_state.id != "rendering_step":
            raise NavigationError(f"No step to navigate from (player is {self.state})")
        return self.session

    async def _advance(self) -> None:
        session = self.session
        assert session is not None
        self.fsm.step_finished()
        self._teardown()
        if session.current_index + 1 < session.step_count:
            session.current_index += 1
            self.fsm.advance()
            await self._render_current()
        else:
            self.fsm.finish()
            await self._complete()

    async def _render_current(self) -> None:
        session = self.session
        assert session is not None
        index = session.current_index
        step = session.steps[index]

        active: ActiveStep
        guard = CompletionGuard(
            lambda signal: self._step_completed(active, signal),
            step_id=f"{session.module_id}#{index}:{step.type}",
        )
        active = ActiveStep(
            index=index,
            type=step.type,
            guard=guard,
            scheduler=ScopedScheduler(self.scheduler, on_error=lambda e: self._step_crashed(active, e)),
            window=ScopedWindow(self.window),
        )
        session.active = active
        self.stage.clear()
        self._start_next_lock()
        self._update_chrome()

        try:
            descriptor = await self.registry.load(step.type)
            config = descriptor.validate_config(localize_config(step.step_config(), self.lang))
            result = descriptor.render(
                RenderContext(
                    container=self.stage,
                    config=config,
                    on_complete=active.guard,
                    context=StepContext(
                        lang=self.lang,
                        mode=self.mode,
                        user_id=self.user_id,
                        module_id=session.module_id,
                        step_index=index,
                        step_count=session.step_count,
                        texts=self.texts,
                    ),
                    scheduler=active.scheduler,
                    window=active.window,
                    rng=self.rng,
                )
            )
        except UnknownStepType as e:
            self._show_broken_step(active, self._ui("unknown_step", step.type), e)
        except Exception as e:
            logger.exception("Step %d (%s) failed to render", index, step.type)
            self._show_broken_step(active, self._ui("broken_step"), e)
        else:
            if result is None:
                if descriptor.requires_cleanup:
                    logger.warning("Game step %s returned no cleanup; relying on scoped teardown", step.type)
                result = _no_cleanup
            active.cleanup = result

        self._record("STEP_RENDERED", index, {"type": step.type, "broken": active.broken})

    def _show_broken_step(self, active: ActiveStep, message: str, error: Exception) -> None:
        active.broken = True
        active.guard.close()
        active.scheduler.dispose()
        active.window.dispose()
        self.stage.clear()
        self.stage.render(block("error", "step-error", text=message, step_type=active.type))
        self._stop_next_lock()
        self._update_chrome()
        self._record("STEP_FAILED", active.index, {"type": active.type, "error": str(error)})

    def _step_crashed(self, active: ActiveStep, error: Exception) -> None:
        """A handler or timer of a running step raised; replace the step with the inline error."""

        logger.error("Step %d (%s) raised while running", active.index, active.type, exc_info=error)
        if self.session is None or self.session.active is not active or active.broken:
            return
        self._show_broken_step(active, self._ui("broken_step"), error)

    def _step_completed(self, active: ActiveStep, signal: CompletionSignal) -> None:
        if self.session is None or self.session.active is not active:
            return
        active.completion = signal
        self._record("STEP_COMPLETED", active.index, {"type": active.type, **signal.as_dict()})
        self._stop_next_lock()
        self._update_chrome()
        if self.settings.advance_on_complete:
            self._spawn(self._advance_after_completion(active))

    async def _advance_after_completion(self, active: ActiveStep) -> None:
        async with self._lock:
            # Navigation may have moved on while this was queued.
            if self.session is None or self.session.active is not active or self.fsm.closed:
                return
            if self.fsm.current_state.id != "rendering_step":
                return
            await self._advance()

    def _teardown(self) -> None:
        session = self.session
        active = session.active if session else None
        self._stop_next_lock()
        if active is None:
            return
        session.active = None
        active.guard.close()
        try:
            active.cleanup()
        except Exception:
            logger.exception("Cleanup of step %d (%s) raised", active.index, active.type)
        leaked_timers = active.scheduler.dispose()
        leaked_listeners = active.window.dispose()
        self.stage.clear()
        self._record(
            "STEP_TORN_DOWN",
            active.index,
            {"type": active.type, "leaked_timers": leaked_timers, "leaked_listeners": leaked_listeners},
        )

    async def _complete(self) -> None:
        session = self.session
        assert session is not None
        try:
            if self.mode == "student" and self.user_id:
                self.completion_ack = await _resolved(self.progress_store.mark_complete(self.user_id, session.module_id))
            self._record("MODULE_COMPLETED", None, {"module_id": session.module_id, "ack": self.completion_ack})
            self.container.clear()
            self.container.render(block("banner", "player-complete", text=self._ui("module_complete")))
        finally:
            self._closed.set()
            self.navigator.navigate_to(COURSE_SCREEN)

    # -- next lock -------------------------------------------------------

    def _start_next_lock(self) -> None:
        self._stop_next_lock()
        seconds = self.settings.next_unlock_seconds
        if seconds <= 0:
            return
        self._lock_remaining = seconds
        self._lock_handle = self.scheduler.call_every(1000, self._tick_next_lock)

    def _tick_next_lock(self) -> None:
        self._lock_remaining = max(0, self._lock_remaining - 1)
        if self._lock_remaining == 0:
            self._stop_next_lock()
        self._update_chrome()

    def _stop_next_lock(self) -> None:
        self._lock_remaining = 0
        if self._lock_handle is not None:
            self._lock_handle.cancel()
            self._lock_handle = None

    # -- chrome ----------------------------------------------------------

    def _ui(self, key: str, *args: object) -> str:
        if self.texts is None:
            return key
        return self.texts.get_text(key, self.lang, *args)

    def _paint_chrome(self) -> None:
        session = self.session
        assert session is not None
        self.container.clear()
        self.container.render(
            block(
                "player",
                "player",
                block(
                    "header",
                    "player-header",
                    block("heading", "player-title", text=session.title),
                    block("label", "player-progress", text=""),
                ),
                block("stage", "player-stage"),
                block(
                    "nav",
                    "player-nav",
                    block("button", "player-back", label=""),
                    block("button", "player-next", label=""),
                ),
            )
        )
        self.container.on("click", lambda _e: self._spawn(self.back()), target="player-back")
        self.container.on("click", lambda _e: self._spawn(self.next()), target="player-next")

    def _update_chrome(self) -> None:
        session = self.session
        if session is None or self.container.find("player-nav") is None:
            return
        index = session.current_index
        self.container.update("player-progress", text=self._ui("step_progress", index + 1, session.step_count))
        self.container.update("player-back", label=self._ui("back_to_course" if index == 0 else "back"))
        if self.next_locked:
            self.container.update("player-next", label=self._ui("next_locked", self._lock_remaining), disabled=True)
        else:
            self.container.update("player-next", label=self._ui("finish" if session.is_last else "next"), disabled=False)

    def _mirror_stage(self) -> None:
        if self.container.find("player-stage") is not None:
            self.container.set_children("player-stage", self.stage.blocks)

    # -- plumbing --------------------------------------------------------

    def _record(self, type: EventType, step_index: int | None, payload: dict[str, Any] | None = None) -> None:
        event = PlayerEvent.now(type=type, step_index=step_index, payload=payload)
        self.events.append(event)
        logger.debug("player %s: %s step=%s %s", self.session.module_id if self.session else "-", type, step_index, payload or {})
        for cb in list(self._listeners):
            cb(event)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, NavigationError):
            logger.debug("Ignored navigation: %s", error)
        elif error is not None:
            logger.error("Player navigation failed", exc_info=error)
