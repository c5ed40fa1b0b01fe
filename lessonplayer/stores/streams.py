from __future__ import annotations

from collections.abc import Mapping
from typing import cast

import redis

PROGRESS_EVENTS_STREAM = "lessonplayer:progress-events"


def publish_event(*, r: redis.Redis, stream_key: str, fields: Mapping[str, object]) -> str:
    """Append an entry to a stream and return its id."""

    # Stream fields are flat strings; None becomes "".
    stream_id = r.xadd(stream_key, {str(k): "" if v is None else str(v) for k, v in fields.items()})
    return cast(str, stream_id)


def read_events(*, r: redis.Redis, stream_key: str, count: int | None = None) -> list[tuple[str, dict[str, str]]]:
    entries = r.xrange(stream_key, count=count)
    return [(cast(str, entry_id), dict(fields)) for entry_id, fields in entries]
