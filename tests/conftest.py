from __future__ import annotations

import os
import random
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import fakeredis
import pytest

from lessonplayer.api.models import Module
from lessonplayer.core.scheduler import ManualScheduler
from lessonplayer.player.sequencer import ModulePlayer
from lessonplayer.player.sessions import RecordingNavigator, SessionManager, reset_session_manager_for_tests
from lessonplayer.registry.singleton import get_registry, reset_registry_for_tests
from lessonplayer.settings import PlayerSettings
from lessonplayer.stores.module_store import RedisModuleStore, save_module
from lessonplayer.stores.progress_store import RedisProgressStore
from lessonplayer.text_catalog import get_text_catalog, init_text_catalog, reset_text_catalog_for_tests

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    In CI the file is only read when LESSONPLAYER_LOAD_DOTENV_FOR_TESTS=1.
    """

    if os.environ.get("CI") and os.environ.get("LESSONPLAYER_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = PROJECT_ROOT / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


@pytest.fixture(autouse=True)
def _fresh_singletons() -> Generator[None, None, None]:
    """Every test starts with the built-in registry, the packaged catalog and no sessions."""

    reset_registry_for_tests()
    reset_text_catalog_for_tests()
    reset_session_manager_for_tests()
    init_text_catalog()
    yield
    reset_registry_for_tests()
    reset_session_manager_for_tests()


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture()
def make_player(r: fakeredis.FakeRedis, scheduler: ManualScheduler) -> Callable[..., tuple[ModulePlayer, RecordingNavigator]]:
    """Build a player over fakeredis stores and the manual scheduler.

    The module is saved first, so `player.open(container, module["id"])` finds it.
    """

    def _make(
        module: dict[str, Any] | None = None,
        *,
        settings: PlayerSettings | None = None,
        mode: str = "student",
        user_id: str = "u1",
        lang: str = "en",
    ) -> tuple[ModulePlayer, RecordingNavigator]:
        if module is not None:
            save_module(r=r, module=Module.model_validate(module))
        navigator = RecordingNavigator()
        player = ModulePlayer(
            module_store=RedisModuleStore(r),
            progress_store=RedisProgressStore(r),
            navigator=navigator,
            registry=get_registry(),
            scheduler=scheduler,
            texts=get_text_catalog(),
            settings=settings or PlayerSettings(),
            user_id=user_id,
            lang=lang,
            mode=mode,  # type: ignore[arg-type]
            rng=random.Random(7),
        )
        return player, navigator

    return _make


@pytest.fixture()
def client_and_redis() -> Generator[tuple[Any, fakeredis.FakeRedis], None, None]:
    """TestClient with both redis dependencies pointed at one fakeredis."""

    from fastapi.testclient import TestClient

    from lessonplayer.api.deps import get_redis, get_shared_redis
    from lessonplayer.main import app

    r = fakeredis.FakeRedis(decode_responses=True)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    reset_session_manager_for_tests(SessionManager(settings=PlayerSettings()))
    app.dependency_overrides[get_redis] = _override
    app.dependency_overrides[get_shared_redis] = lambda: r
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
