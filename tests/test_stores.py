from __future__ import annotations

import pytest

from lessonplayer.api.models import Module
from lessonplayer.stores.module_store import (
    MODULE_KEY_PREFIX,
    ModuleLoadError,
    RedisModuleStore,
    get_module,
    list_module_ids,
    save_module,
)
from lessonplayer.stores.progress_store import RedisProgressStore, completed_at, is_complete
from lessonplayer.stores.streams import PROGRESS_EVENTS_STREAM, read_events


def test_module_round_trip_keeps_legacy_step_fields(r) -> None:
    module = Module.model_validate(
        {
            "id": "m1",
            "title": {"en": "Greetings", "ru": "Приветствия"},
            "steps": [
                {"type": "primer", "title": "Hi", "text": "Welcome"},
                {"type": "movie", "config": {"videoUrl": "https://example.com/v.mp4"}},
            ],
        }
    )
    save_module(r=r, module=module)

    loaded = get_module(r=r, module_id="m1")

    assert loaded is not None
    assert loaded.steps[0].step_config() == {"title": "Hi", "text": "Welcome"}
    assert loaded.steps[1].step_config() == {"videoUrl": "https://example.com/v.mp4"}
    assert list_module_ids(r=r) == ["m1"]


def test_missing_and_corrupt_modules(r) -> None:
    assert get_module(r=r, module_id="nope") is None
    with pytest.raises(ModuleLoadError):
        RedisModuleStore(r).get_module("nope")

    r.set(f"{MODULE_KEY_PREFIX}bad", "{not json")
    with pytest.raises(ModuleLoadError):
        get_module(r=r, module_id="bad")


def test_mark_complete_is_idempotent_and_publishes_events(r) -> None:
    store = RedisProgressStore(r)

    first_ack = store.mark_complete("u1", "m1")
    first_at = completed_at(r=r, user_id="u1", module_id="m1")
    second_ack = store.mark_complete("u1", "m1")

    assert store.is_complete("u1", "m1")
    assert not is_complete(r=r, user_id="u1", module_id="m2")
    assert completed_at(r=r, user_id="u1", module_id="m1") == first_at
    assert first_ack != second_ack

    events = read_events(r=r, stream_key=PROGRESS_EVENTS_STREAM)
    assert [e[0] for e in events] == [first_ack, second_ack]
    assert events[0][1]["type"] == "module_completed"
    assert events[0][1]["module_id"] == "m1"
