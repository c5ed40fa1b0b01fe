from __future__ import annotations

from datetime import UTC, datetime

import redis

from lessonplayer.stores.streams import PROGRESS_EVENTS_STREAM, publish_event

PROGRESS_KEY_PREFIX = "lessonplayer:progress:"  # + {user_id} -> hash module_id -> completed_at


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _progress_key(user_id: str) -> str:
    return f"{PROGRESS_KEY_PREFIX}{user_id}"


def mark_complete(*, r: redis.Redis, user_id: str, module_id: str) -> str:
    """Record the module as completed and return the stream entry id as the ack.

    Completion is a flag; marking twice keeps the first timestamp.
    """

    completed_at = _now().isoformat()
    r.hsetnx(_progress_key(user_id), module_id, completed_at)
    return publish_event(
        r=r,
        stream_key=PROGRESS_EVENTS_STREAM,
        fields={"type": "module_completed", "user_id": user_id, "module_id": module_id, "completed_at": completed_at},
    )


def is_complete(*, r: redis.Redis, user_id: str, module_id: str) -> bool:
    return bool(r.hexists(_progress_key(user_id), module_id))


def completed_at(*, r: redis.Redis, user_id: str, module_id: str) -> datetime | None:
    raw = r.hget(_progress_key(user_id), module_id)
    if raw is None:
        return None
    return datetime.fromisoformat(str(raw))


class RedisProgressStore:
    def __init__(self, r: redis.Redis) -> None:
        self.r = r

    def mark_complete(self, user_id: str, module_id: str) -> str:
        return mark_complete(r=self.r, user_id=user_id, module_id=module_id)

    def is_complete(self, user_id: str, module_id: str) -> bool:
        return is_complete(r=self.r, user_id=user_id, module_id=module_id)
