from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from lessonplayer.games.engine import ArcadeGame, Entity, Rect

LANES = 3
SPAWN_EVERY_FRAMES = 50
TARGET_CHANCE = 0.4
TARGET_ROTATION_MS = 15_000
# A letter this close to the top blocks new spawns in its lane.
SPAWN_CLEARANCE = 50


class LetterRacingGame(ArcadeGame):
    """Three-lane driving game: steer the car under the falling target letter.

    The car sits in one of three lanes and moves one lane at a time. Letters
    fall straight down their lane; catching the current target scores +1,
    catching anything else costs `wrong_penalty`.
    """

    spawn_every_frames = SPAWN_EVERY_FRAMES

    def __init__(
        self,
        *,
        letters: Sequence[str],
        wrong_penalty: int = 1,
        speed: float = 5.0,
        **kwargs: Any,
    ) -> None:
        if not letters:
            raise ValueError("letters must not be empty")
        self.letters = list(letters)
        self.wrong_penalty = max(0, int(wrong_penalty))
        self.speed = float(speed)
        self.car_lane = 1
        self.target = self.letters[0]
        super().__init__(**kwargs)

    def layout(self, width: float, height: float) -> None:
        self.lane_width = width / LANES
        self.lane_centers = [self.lane_width * i + self.lane_width / 2 for i in range(LANES)]
        self.car_width = self.lane_width * 0.6
        self.car_height = self.car_width * 1.5
        self.car_y = height - self.car_height - 10
        self.letter_size = self.lane_width * 0.25

    def on_start(self) -> None:
        self.car_lane = 1
        self.change_target()
        if self.goal.type == "score":
            self.every(TARGET_ROTATION_MS, self.change_target)

    def change_target(self) -> None:
        self.target = self.rng.choice(self.letters)

    def move(self, direction: int) -> None:
        if not self.state.playing:
            return
        self.car_lane = min(LANES - 1, max(0, self.car_lane + (1 if direction > 0 else -1)))

    def make_letter(self, lane: int, char: str, *, y: float = -20.0) -> Entity:
        size = self.letter_size
        return self.new_entity(
            x=self.lane_centers[lane] - size / 2,
            y=y,
            width=size,
            height=size,
            kind=char,
            is_target=char == self.target,
            vy=self.speed,
            lane=lane,
        )

    def spawn(self) -> Entity | None:
        lane = self.rng.randrange(LANES)
        if any(e.lane == lane and e.y < SPAWN_CLEARANCE for e in self.state.entities):
            return None
        char = self.target if self.rng.random() < TARGET_CHANCE else self.rng.choice(self.letters)
        return self.make_letter(lane, char)

    def avatar_rect(self) -> Rect:
        return Rect(
            self.lane_centers[self.car_lane] - self.car_width / 2,
            self.car_y,
            self.car_width,
            self.car_height,
        )

    def on_hit(self, entity: Entity) -> None:
        # The target may have rotated since the letter spawned.
        if entity.kind == self.target:
            self.add_points(1)
        elif self.wrong_penalty:
            self.add_points(-self.wrong_penalty)
