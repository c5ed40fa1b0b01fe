"""Real-time arcade runtime shared by the game steps.

One `ArcadeGame` instance owns a frame loop, a spawn cadence (wall-clock
timer or every N frames) and, for timed goals, a 1 s countdown that runs
independently of the frame rate. Once `state.playing` is False nothing
spawns, moves or reschedules.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from lessonplayer.core.scheduler import Handle, Scheduler

logger = logging.getLogger(__name__)

UpdateReason = Literal["frame", "tick", "score", "end"]


class GameGoal(BaseModel):
    type: Literal["score", "time"]
    value: int = Field(..., gt=0)


class GameConfig(BaseModel):
    """Base config for game steps: exactly one termination mode.

    `goal` is the canonical form. A bare `duration` (seconds) is accepted as
    shorthand for a time goal; giving both is rejected.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    default_goal: ClassVar[dict[str, Any]] = {"type": "score", "value": 10}

    goal: GameGoal

    @model_validator(mode="before")
    @classmethod
    def _single_termination_mode(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        goal = data.get("goal")
        duration = data.pop("duration", None)
        if goal is not None and duration is not None:
            raise ValueError("configure either 'goal' or 'duration', not both")
        if goal is None:
            data["goal"] = {"type": "time", "value": duration} if duration is not None else dict(cls.default_goal)
        return data


@dataclass(frozen=True, slots=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def overlaps(self, other: "Rect") -> bool:
        # Touching edges count as a hit.
        return not (
            self.right < other.x
            or self.x > other.right
            or self.bottom < other.y
            or self.y > other.bottom
        )


@dataclass(slots=True)
class Entity:
    id: int
    x: float
    y: float
    width: float
    height: float
    kind: str
    is_target: bool = False
    vx: float = 0.0
    vy: float = 0.0
    lane: int | None = None
    consumed: bool = False

    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": f"e{self.id}",
            "x": round(self.x, 2),
            "y": round(self.y, 2),
            "width": round(self.width, 2),
            "height": round(self.height, 2),
            "label": self.kind,
            "target": self.is_target,
            "lane": self.lane,
        }


@dataclass(slots=True)
class GameState:
    playing: bool = False
    score: int = 0
    time_remaining: int | None = None
    entities: list[Entity] = field(default_factory=list)
    frame: int = 0
    finished: bool = False
    success: bool | None = None


class ArcadeGame:
    """Base game loop. Subclasses provide `spawn()` and usually `avatar_rect()`."""

    spawn_every_ms: float | None = None
    spawn_every_frames: int | None = None
    collide_each_frame: bool = True

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        goal: GameGoal,
        on_finish: Callable[[dict[str, Any]], Any],
        width: float,
        height: float,
        rng: random.Random | None = None,
        on_update: Callable[["ArcadeGame", UpdateReason], None] | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.goal = goal
        self.width = float(width)
        self.height = float(height)
        self.rng = rng or random.Random()
        self.state = GameState()
        self._on_finish = on_finish
        self._on_update = on_update
        self._ids = 0
        self._frame_handle: Handle | None = None
        self._spawn_handle: Handle | None = None
        self._countdown_handle: Handle | None = None
        self._timers: list[Handle] = []
        self.layout(self.width, self.height)

    # -- hooks -----------------------------------------------------------

    def layout(self, width: float, height: float) -> None:
        """Recompute playfield geometry. In-flight entities are not reflowed."""

    def spawn(self) -> Entity | None:
        raise NotImplementedError

    def avatar_rect(self) -> Rect | None:
        return None

    def on_hit(self, entity: Entity) -> None:
        self.add_points(1 if entity.is_target else -1)

    def on_miss(self, entity: Entity) -> None:
        pass

    def on_start(self) -> None:
        pass

    def _notify(self, reason: UpdateReason) -> None:
        if self._on_update is not None:
            self._on_update(self, reason)

    # -- lifecycle -------------------------------------------------------

    def start(self) -> None:
        if self.state.playing:
            return
        self.state = GameState(
            playing=True,
            time_remaining=self.goal.value if self.goal.type == "time" else None,
        )
        self.on_start()
        self._frame_handle = self.scheduler.request_frame(self._frame)
        if self.spawn_every_ms:
            self._spawn_handle = self.scheduler.call_every(self.spawn_every_ms, self._spawn_tick)
        if self.goal.type == "time":
            self._countdown_handle = self.scheduler.call_every(1000, self._countdown)

    def every(self, interval_ms: float, callback: Callable[[], None]) -> Handle:
        """Extra game timer, cancelled together with the loop."""

        def _guarded() -> None:
            if self.state.playing:
                callback()

        handle = self.scheduler.call_every(interval_ms, _guarded)
        self._timers.append(handle)
        return handle

    def finish(self, success: bool) -> None:
        if not self.state.playing:
            return
        self._halt()
        self.state.finished = True
        self.state.success = success
        logger.debug("Game finished success=%s score=%d", success, self.state.score)
        self._notify("end")
        self._on_finish({"success": success, "score": self.state.score})

    def stop(self) -> None:
        """Abandon the round without reporting completion."""

        self._halt()

    def resize(self, width: float, height: float) -> None:
        self.width = float(width)
        self.height = float(height)
        self.layout(self.width, self.height)

    @property
    def running_handles(self) -> int:
        handles = [self._frame_handle, self._spawn_handle, self._countdown_handle, *self._timers]
        return sum(1 for h in handles if h is not None and h.active)

    # -- mechanics -------------------------------------------------------

    def new_entity(self, **kwargs: Any) -> Entity:
        self._ids += 1
        return Entity(id=self._ids, **kwargs)

    def add_points(self, delta: int) -> int:
        self.state.score = max(0, self.state.score + int(delta))
        self._notify("score")
        if self.goal.type == "score" and self.state.score >= self.goal.value:
            self.finish(True)
        return self.state.score

    def resolve_collisions(self, hitbox: Rect | None = None) -> int:
        box = hitbox or self.avatar_rect()
        if box is None or not self.state.playing:
            return 0
        hits = 0
        for entity in list(self.state.entities):
            if not self.state.playing:
                break
            if entity.consumed or not box.overlaps(entity.rect()):
                continue
            entity.consumed = True
            self.state.entities.remove(entity)
            hits += 1
            self.on_hit(entity)
        return hits

    def out_of_bounds(self, entity: Entity) -> bool:
        return entity.y > self.height or entity.x > self.width or entity.x + entity.width < 0

    def _spawn_tick(self) -> None:
        if not self.state.playing:
            return
        entity = self.spawn()
        if entity is not None:
            self.state.entities.append(entity)

    def _advance_entities(self) -> None:
        survivors: list[Entity] = []
        for entity in self.state.entities:
            entity.x += entity.vx
            entity.y += entity.vy
            if self.out_of_bounds(entity):
                self.on_miss(entity)
                if not self.state.playing:
                    return
                continue
            survivors.append(entity)
        self.state.entities[:] = survivors

    def _frame(self, timestamp: float) -> None:
        self._frame_handle = None
        if not self.state.playing:
            return
        self.state.frame += 1
        if self.spawn_every_frames and self.state.frame % self.spawn_every_frames == 0:
            self._spawn_tick()
        self._advance_entities()
        if self.collide_each_frame and self.state.playing:
            self.resolve_collisions()
        if not self.state.playing:
            return
        self._notify("frame")
        self._frame_handle = self.scheduler.request_frame(self._frame)

    def _countdown(self) -> None:
        if not self.state.playing or self.state.time_remaining is None:
            return
        self.state.time_remaining = max(0, self.state.time_remaining - 1)
        self._notify("tick")
        if self.state.time_remaining <= 0:
            self.finish(True)

    def _halt(self) -> None:
        self.state.playing = False
        for handle in (self._frame_handle, self._spawn_handle, self._countdown_handle, *self._timers):
            if handle is not None:
                handle.cancel()
        self._frame_handle = None
        self._spawn_handle = None
        self._countdown_handle = None
        self._timers.clear()
        self.state.entities.clear()
