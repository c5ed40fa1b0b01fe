from __future__ import annotations

import logging

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from lessonplayer.api.deps import get_redis, get_shared_redis
from lessonplayer.api.models import (
    Module,
    ModuleDocument,
    ModuleListResponse,
    PlayerCreateRequest,
    PlayerView,
    ProgressResponse,
    StepTypeInfo,
    StepTypeListResponse,
    UiEventRequest,
)
from lessonplayer.core.view import UiEvent
from lessonplayer.player.sequencer import NavigationError
from lessonplayer.player.sessions import HostedPlayer, SessionNotFound, get_session_manager
from lessonplayer.registry.registry import StepLoadError
from lessonplayer.registry.singleton import get_registry
from lessonplayer.stores.module_store import ModuleLoadError, get_module, list_module_ids, save_module
from lessonplayer.stores.progress_store import completed_at, is_complete
from lessonplayer.websocket_hub import hub

logger = logging.getLogger(__name__)

router = APIRouter()


def _hosted(session_id: str) -> HostedPlayer:
    try:
        return get_session_manager().get(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Player session not found") from e


@router.websocket("/ws/player/{session_id}")
async def player_updates_ws(websocket: WebSocket, session_id: str) -> None:
    await hub.connect(session_id, websocket)
    try:
        # Nothing is read from clients; receiving keeps the socket alive.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(session_id, websocket)
    except Exception:
        await hub.disconnect(session_id, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/modules", response_model=ModuleListResponse)
async def list_modules_route(r: redis.Redis = Depends(get_redis)) -> ModuleListResponse:
    return ModuleListResponse(modules=list_module_ids(r=r))


@router.put("/modules/{module_id}", response_model=Module)
async def put_module_route(module_id: str, payload: ModuleDocument, r: redis.Redis = Depends(get_redis)) -> Module:
    module = Module(id=module_id, title=payload.title, steps=payload.steps)
    save_module(r=r, module=module)
    return module


@router.get("/modules/{module_id}", response_model=Module)
async def get_module_route(module_id: str, r: redis.Redis = Depends(get_redis)) -> Module:
    try:
        module = get_module(r=r, module_id=module_id)
    except ModuleLoadError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    if module is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Module not found")
    return module


@router.get("/step-types", response_model=StepTypeListResponse)
async def list_step_types_route(load: bool = False) -> StepTypeListResponse:
    """Registered step types. `?load=true` imports every renderer so default configs are filled in."""

    registry = get_registry()
    if load:
        for entry in registry.list_types():
            try:
                await registry.load(entry.id)
            except StepLoadError as e:
                logger.warning("Step type %s failed to load: %s", entry.id, e)
    return StepTypeListResponse(step_types=[StepTypeInfo(**entry.as_dict()) for entry in registry.list_types()])


@router.post("/players", response_model=PlayerView, status_code=status.HTTP_201_CREATED)
async def create_player_route(payload: PlayerCreateRequest, r: redis.Redis = Depends(get_shared_redis)) -> PlayerView:
    hosted = await get_session_manager().open(r=r, request=payload)
    return hosted.view()


@router.get("/players/{session_id}", response_model=PlayerView)
async def get_player_route(session_id: str) -> PlayerView:
    return _hosted(session_id).view()


@router.post("/players/{session_id}/next", response_model=PlayerView)
async def next_route(session_id: str) -> PlayerView:
    hosted = _hosted(session_id)
    try:
        await hosted.player.next()
    except NavigationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    await hosted.player.wait_idle()
    return hosted.view()


@router.post("/players/{session_id}/back", response_model=PlayerView)
async def back_route(session_id: str) -> PlayerView:
    hosted = _hosted(session_id)
    try:
        await hosted.player.back()
    except NavigationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    await hosted.player.wait_idle()
    return hosted.view()


@router.post("/players/{session_id}/events", response_model=PlayerView)
async def ui_event_route(session_id: str, payload: UiEventRequest) -> PlayerView:
    hosted = _hosted(session_id)
    if hosted.player.closed:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Player is {hosted.player.state}")
    hosted.player.dispatch(UiEvent(type=payload.type, target=payload.target, data=payload.data))
    await hosted.player.wait_idle()
    return hosted.view()


@router.delete("/players/{session_id}", response_model=PlayerView)
async def close_player_route(session_id: str) -> PlayerView:
    try:
        hosted = await get_session_manager().close(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Player session not found") from e
    return hosted.view()


@router.get("/progress/{user_id}/{module_id}", response_model=ProgressResponse)
async def progress_route(user_id: str, module_id: str, r: redis.Redis = Depends(get_redis)) -> ProgressResponse:
    return ProgressResponse(
        user_id=user_id,
        module_id=module_id,
        completed=is_complete(r=r, user_id=user_id, module_id=module_id),
        completed_at=completed_at(r=r, user_id=user_id, module_id=module_id),
    )
