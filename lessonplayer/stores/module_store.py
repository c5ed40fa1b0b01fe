from __future__ import annotations

import redis
from pydantic import ValidationError

from lessonplayer.api.models import Module

MODULES_SET_KEY = "lessonplayer:modules"
MODULE_KEY_PREFIX = "lessonplayer:module:"  # + {module_id}


class ModuleLoadError(RuntimeError):
    pass


def _module_key(module_id: str) -> str:
    return f"{MODULE_KEY_PREFIX}{module_id}"


def save_module(*, r: redis.Redis, module: Module) -> None:
    r.set(_module_key(module.id), module.model_dump_json())
    r.sadd(MODULES_SET_KEY, module.id)


def get_module(*, r: redis.Redis, module_id: str) -> Module | None:
    raw = r.get(_module_key(module_id))
    if raw is None:
        return None
    try:
        return Module.model_validate_json(raw)
    except ValidationError as e:
        raise ModuleLoadError(f"Module {module_id} is stored in an unreadable format") from e


def list_module_ids(*, r: redis.Redis) -> list[str]:
    ids = r.smembers(MODULES_SET_KEY) or set()
    return sorted(str(i) for i in ids)


class RedisModuleStore:
    """Read-only module snapshot source for a player session."""

    def __init__(self, r: redis.Redis) -> None:
        self.r = r

    def get_module(self, module_id: str) -> Module:
        module = get_module(r=self.r, module_id=module_id)
        if module is None:
            raise ModuleLoadError(f"Module not found: {module_id}")
        return module
