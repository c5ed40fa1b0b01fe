"""In-process registry of hosted module players.

Each session owns one `ModulePlayer` plus its root container. Player events
and view changes are pushed to websocket watchers, coalesced to at most one
`player_updated` message per `BROADCAST_INTERVAL_S`.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

import redis

from lessonplayer.api.models import PlayerCreateRequest, PlayerView
from lessonplayer.core.events import PlayerEvent
from lessonplayer.core.scheduler import Scheduler
from lessonplayer.core.view import Container
from lessonplayer.player.sequencer import ModulePlayer
from lessonplayer.registry.registry import StepRegistry
from lessonplayer.settings import PlayerSettings
from lessonplayer.stores.module_store import RedisModuleStore
from lessonplayer.stores.progress_store import RedisProgressStore
from lessonplayer.text_catalog import get_text_catalog
from lessonplayer.websocket_hub import PlayerWebSocketHub, hub as default_hub

logger = logging.getLogger(__name__)

BROADCAST_INTERVAL_S = 0.05
CLOSED_SESSION_TTL_S = 30.0
CLOSING_EVENTS = frozenset({"MODULE_COMPLETED", "MODULE_EXITED", "MODULE_LOAD_FAILED"})


class SessionNotFound(KeyError):
    pass


class RecordingNavigator:
    """Navigator that remembers where the player asked to go."""

    def __init__(self, on_navigate: Callable[[str], None] | None = None) -> None:
        self.history: list[str] = []
        self._on_navigate = on_navigate

    @property
    def last(self) -> str | None:
        return self.history[-1] if self.history else None

    def navigate_to(self, screen: str) -> None:
        self.history.append(screen)
        if self._on_navigate is not None:
            self._on_navigate(screen)


@dataclass(slots=True)
class HostedPlayer:
    session_id: str
    user_id: str
    module_id: str
    player: ModulePlayer
    navigator: RecordingNavigator
    container: Container
    unsubscribe: list[Callable[[], None]] = field(default_factory=list)

    def view(self) -> PlayerView:
        player = self.player
        session = player.session
        step_index: int | None = None
        step_type: str | None = None
        step_count = 0
        if session is not None and session.steps:
            step_count = session.step_count
            step_index = session.current_index
            step_type = session.steps[session.current_index].type
        return PlayerView(
            session_id=self.session_id,
            module_id=self.module_id,
            user_id=self.user_id,
            lang=player.lang,
            state=player.state,
            step_index=step_index,
            step_count=step_count,
            step_type=step_type,
            next_locked=player.next_locked,
            navigated_to=self.navigator.last,
            view=self.container.snapshot(),
            events=[e.as_dict() for e in player.events],
        )


class SessionManager:
    """Hosted players by session id.

    A player that completes, exits or fails to load stays readable for
    `closed_ttl_s` seconds (so the request that finished it, and watchers
    catching up, still see the final view) and is then retired.
    """

    def __init__(
        self,
        *,
        hub: PlayerWebSocketHub | None = None,
        settings: PlayerSettings | None = None,
        registry: StepRegistry | None = None,
        scheduler_factory: Callable[[], Scheduler] | None = None,
        closed_ttl_s: float = CLOSED_SESSION_TTL_S,
    ) -> None:
        self.hub = hub or default_hub
        self.settings = settings
        self.registry = registry
        self.scheduler_factory = scheduler_factory
        self.closed_ttl_s = closed_ttl_s
        self._sessions: dict[str, HostedPlayer] = {}
        self._dirty: set[str] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, *, r: redis.Redis, request: PlayerCreateRequest) -> HostedPlayer:
        session_id = str(uuid.uuid4())
        settings = self.settings or PlayerSettings.from_env()
        navigator = RecordingNavigator(on_navigate=lambda screen: self._announce_navigation(session_id, screen))
        player = ModulePlayer(
            module_store=RedisModuleStore(r),
            progress_store=RedisProgressStore(r),
            navigator=navigator,
            registry=self.registry,
            scheduler=self.scheduler_factory() if self.scheduler_factory else None,
            texts=get_text_catalog(),
            settings=settings,
            user_id=request.user_id,
            lang=request.lang,
            mode=request.mode,
        )
        container = Container(f"player:{session_id}")
        hosted = HostedPlayer(
            session_id=session_id,
            user_id=request.user_id,
            module_id=request.module_id,
            player=player,
            navigator=navigator,
            container=container,
        )
        self._sessions[session_id] = hosted
        hosted.unsubscribe.append(player.subscribe(lambda e: self._on_player_event(session_id, e)))
        hosted.unsubscribe.append(container.subscribe(lambda _c: self._mark_dirty(session_id)))

        logger.info("Opening player %s: user=%s module=%s", session_id, request.user_id, request.module_id)
        await player.open(container, request.module_id)
        return hosted

    def get(self, session_id: str) -> HostedPlayer:
        hosted = self._sessions.get(session_id)
        if hosted is None:
            raise SessionNotFound(session_id)
        return hosted

    async def close(self, session_id: str) -> HostedPlayer:
        """Navigate away from the session: tear down its step and forget it."""

        hosted = self._sessions.pop(session_id, None)
        if hosted is None:
            raise SessionNotFound(session_id)
        await hosted.player.leave()
        await hosted.player.wait_idle()
        await self._release(hosted)
        logger.info("Closed player %s (%s)", session_id, hosted.player.state)
        return hosted

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.close(session_id)
        for task in list(self._tasks):
            task.cancel()

    async def _release(self, hosted: HostedPlayer) -> None:
        for off in hosted.unsubscribe:
            off()
        hosted.unsubscribe.clear()
        self._dirty.discard(hosted.session_id)
        await self.hub.close_session(hosted.session_id)

    def _on_player_event(self, session_id: str, event: PlayerEvent) -> None:
        self._mark_dirty(session_id)
        if event.type in CLOSING_EVENTS:
            self._spawn(self._retire(session_id))

    async def _retire(self, session_id: str) -> None:
        # Outlive the final coalesced broadcast before dropping the session.
        await asyncio.sleep(self.closed_ttl_s + BROADCAST_INTERVAL_S)
        hosted = self._sessions.get(session_id)
        if hosted is None or not hosted.player.closed:
            return
        del self._sessions[session_id]
        await hosted.player.wait_idle()
        await self._release(hosted)
        logger.info("Retired player %s (%s)", session_id, hosted.player.state)

    # -- broadcasting ----------------------------------------------------

    def _spawn(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _mark_dirty(self, session_id: str) -> None:
        if session_id in self._dirty:
            return
        self._dirty.add(session_id)
        self._spawn(self._flush(session_id))

    async def _flush(self, session_id: str) -> None:
        await asyncio.sleep(BROADCAST_INTERVAL_S)
        self._dirty.discard(session_id)
        hosted = self._sessions.get(session_id)
        if hosted is None:
            return
        session = hosted.player.session
        await self.hub.send(
            session_id,
            {
                "type": "player_updated",
                "session_id": session_id,
                "state": hosted.player.state,
                "step_index": session.current_index if session else None,
                "version": hosted.container.version,
            },
        )

    def _announce_navigation(self, session_id: str, screen: str) -> None:
        self._spawn(self.hub.send(session_id, {"type": "navigate", "session_id": session_id, "screen": screen}))


_MANAGER: SessionManager | None = None


def get_session_manager() -> SessionManager:
    global _MANAGER
    if _MANAGER is None:
        _MANAGER = SessionManager()
    return _MANAGER


def reset_session_manager_for_tests(manager: SessionManager | None = None) -> None:
    global _MANAGER
    _MANAGER = manager
