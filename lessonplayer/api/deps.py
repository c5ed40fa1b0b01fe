from __future__ import annotations

from collections.abc import Generator

import redis

from lessonplayer.infra.redis_client import create_redis

_SHARED: redis.Redis | None = None


def get_redis() -> Generator[redis.Redis, None, None]:
    """Per-request client for module and progress routes."""

    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_shared_redis() -> redis.Redis:
    """Process-wide client handed to player sessions, which outlive a request."""

    global _SHARED
    if _SHARED is None:
        _SHARED = create_redis()
    return _SHARED


def close_shared_redis() -> None:
    global _SHARED
    if _SHARED is not None:
        _SHARED.close()
        _SHARED = None
