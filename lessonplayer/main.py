import logging

from fastapi import FastAPI

from lessonplayer import __version__
from lessonplayer.api.deps import close_shared_redis
from lessonplayer.api.routes import router
from lessonplayer.player.sessions import get_session_manager
from lessonplayer.registry.singleton import get_registry
from lessonplayer.text_catalog import init_text_catalog

app = FastAPI(title="lessonplayer", version=__version__)
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    catalog = init_text_catalog()
    registry = get_registry()
    logger.info("lessonplayer ready: %d step types, UI text in %s", len(registry.list_types()), sorted(catalog.languages()))


@app.on_event("shutdown")
async def _shutdown() -> None:
    await get_session_manager().close_all()
    close_shared_redis()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "lessonplayer", "version": __version__}
