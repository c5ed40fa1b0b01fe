from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from lessonplayer.games.engine import ArcadeGame, Entity, Rect

SPAWN_EVERY_MS = 1500
TARGET_POINTS = 10
DISTRACTOR_PENALTY = 5
AVATAR_WIDTH = 80
AVATAR_HEIGHT = 100
ITEM_HEIGHT = 44


@dataclass(frozen=True, slots=True)
class SlasherItem:
    text: str
    is_target: bool


class SlasherGame(ArcadeGame):
    """Sorting game: items fall, the player slices the ones in the target category.

    Collisions are only checked on a slice, never per frame. Falling past the
    bottom of the playfield is a free miss.
    """

    spawn_every_ms = SPAWN_EVERY_MS
    collide_each_frame = False

    def __init__(
        self,
        *,
        items: Sequence[SlasherItem],
        speed: float = 2.0,
        target_bias: float = 0.5,
        **kwargs: Any,
    ) -> None:
        if not items:
            raise ValueError("items must not be empty")
        self.items = list(items)
        self.targets = [i for i in self.items if i.is_target]
        self.speed = float(speed)
        self.target_bias = min(1.0, max(0.0, float(target_bias)))
        super().__init__(**kwargs)
        self.pointer_x = self.width / 2
        self.pointer_y = self.height * 0.8

    def layout(self, width: float, height: float) -> None:
        self.spawn_span = max(0.0, width - 100)

    def pick_item(self) -> SlasherItem:
        if self.targets and self.rng.random() < self.target_bias:
            return self.rng.choice(self.targets)
        return self.rng.choice(self.items)

    def spawn(self) -> Entity:
        item = self.pick_item()
        item_width = 12 * len(item.text) + 40
        center = self.rng.random() * self.spawn_span + 50
        return self.new_entity(
            x=center - item_width / 2,
            y=-50.0,
            width=item_width,
            height=ITEM_HEIGHT,
            kind=item.text,
            is_target=item.is_target,
            vy=self.speed + self.rng.random(),
        )

    def move_to(self, x: float, y: float) -> None:
        if not self.state.playing:
            return
        self.pointer_x = min(max(0.0, float(x)), self.width)
        self.pointer_y = min(max(0.0, float(y)), self.height)

    def avatar_rect(self) -> Rect:
        return Rect(
            self.pointer_x - AVATAR_WIDTH / 2,
            self.pointer_y - AVATAR_HEIGHT / 2,
            AVATAR_WIDTH,
            AVATAR_HEIGHT,
        )

    def slice(self) -> int:
        """Hit every unsliced item overlapping the avatar. Returns the number of hits."""

        return self.resolve_collisions(self.avatar_rect())

    def on_hit(self, entity: Entity) -> None:
        self.add_points(TARGET_POINTS if entity.is_target else -DISTRACTOR_PENALTY)
