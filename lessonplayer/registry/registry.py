from __future__ import annotations

import asyncio
import importlib
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from lessonplayer.steps.contract import StepCategory, StepDescriptor

logger = logging.getLogger(__name__)

# Either "package.module:attribute" or a (sync or async) zero-arg callable.
Loader = str | Callable[[], "StepDescriptor | Awaitable[StepDescriptor]"]


class UnknownStepType(LookupError):
    def __init__(self, type_id: str) -> None:
        super().__init__(f"Unknown step type: {type_id!r}")
        self.type_id = type_id


class StepLoadError(RuntimeError):
    pass


@dataclass(slots=True)
class StepEntry:
    """Registry row: metadata known up front, descriptor once loaded."""

    id: str
    display_name: str
    category: StepCategory
    default_config: Mapping[str, Any] = field(default_factory=dict)
    loader: Loader | None = None
    descriptor: StepDescriptor | None = None

    @property
    def loaded(self) -> bool:
        return self.descriptor is not None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "category": self.category,
            "default_config": dict(self.default_config),
            "loaded": self.loaded,
        }


def _import_descriptor(target: str) -> StepDescriptor:
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise StepLoadError(f"Loader must look like 'package.module:attribute', got {target!r}")
    module = importlib.import_module(module_name)
    try:
        found = getattr(module, attr)
    except AttributeError as e:
        raise StepLoadError(f"{module_name} has no attribute {attr!r}") from e
    if not isinstance(found, StepDescriptor):
        raise StepLoadError(f"{target} is not a StepDescriptor")
    return found


class StepRegistry:
    """Maps a step type id to a renderer, loading renderer modules on first use.

    Loads are memoized: concurrent `load()` calls for a type that is not yet
    materialized share a single in-flight task, so a loader runs at most once.
    """

    def __init__(self) -> None:
        self._entries: dict[str, StepEntry] = {}
        self._inflight: dict[str, asyncio.Task[StepDescriptor]] = {}

    def register(self, descriptor: StepDescriptor) -> None:
        if not descriptor.id:
            raise ValueError("StepDescriptor.id is required")
        entry = StepEntry(
            id=descriptor.id,
            display_name=descriptor.label,
            category=descriptor.category,
            default_config=descriptor.default_config,
            descriptor=descriptor,
        )
        self._entries[descriptor.id] = entry
        self._inflight.pop(descriptor.id, None)
        if descriptor.init is not None:
            descriptor.init()

    def register_lazy(
        self,
        type_id: str,
        loader: Loader,
        *,
        display_name: str = "",
        category: StepCategory = "content",
        default_config: Mapping[str, Any] | None = None,
    ) -> None:
        if not type_id:
            raise ValueError("type_id is required")
        self._entries[type_id] = StepEntry(
            id=type_id,
            display_name=display_name or type_id,
            category=category,
            default_config=default_config or {},
            loader=loader,
        )
        self._inflight.pop(type_id, None)

    def __contains__(self, type_id: object) -> bool:
        return isinstance(type_id, str) and type_id in self._entries

    def lookup(self, type_id: str) -> StepEntry:
        entry = self._entries.get(type_id)
        if entry is None:
            raise UnknownStepType(type_id)
        return entry

    def list_types(self) -> list[StepEntry]:
        return sorted(self._entries.values(), key=lambda e: e.id)

    async def load(self, type_id: str) -> StepDescriptor:
        entry = self.lookup(type_id)
        if entry.descriptor is not None:
            return entry.descriptor

        task = self._inflight.get(type_id)
        if task is None:
            task = asyncio.ensure_future(self._materialize(entry))
            self._inflight[type_id] = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._inflight.get(type_id) is task:
                del self._inflight[type_id]

    async def _materialize(self, entry: StepEntry) -> StepDescriptor:
        loader = entry.loader
        if loader is None:
            raise StepLoadError(f"Step type {entry.id!r} has no loader")

        logger.debug("Loading step type %s", entry.id)
        if isinstance(loader, str):
            descriptor = await asyncio.to_thread(_import_descriptor, loader)
        else:
            result = loader()
            descriptor = await result if isinstance(result, Awaitable) else result

        if descriptor.id != entry.id:
            raise StepLoadError(f"Loader for {entry.id!r} produced descriptor {descriptor.id!r}")

        if descriptor.init is not None:
            descriptor.init()
        entry.descriptor = descriptor
        entry.display_name = descriptor.label
        entry.category = descriptor.category
        entry.default_config = descriptor.default_config
        logger.info("Loaded step type %s", entry.id)
        return descriptor
