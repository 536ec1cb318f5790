"""
REST + WebSocket endpoints for the game session.
"""
import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi import WebSocket, WebSocketDisconnect

from smirkle.camera import FrameSampler
from smirkle.classifier import DeepFaceClassifier
from smirkle.config import Settings
from smirkle.controller import GameController
from smirkle.persistence import InMemoryPersistence
from smirkle.progression import level_info
from smirkle.videos import embed_url

router = APIRouter(prefix="/game")
settings = Settings()
logger = logging.getLogger(__name__)

_controller: Optional[GameController] = None


def build_controller(s: Settings) -> GameController:
    return GameController(
        s,
        sampler=FrameSampler(s),
        classifier=DeepFaceClassifier(s),
        persistence=InMemoryPersistence(level_threshold=s.LEVEL_THRESHOLD),
        user_id=s.USER_ID,
    )


def get_controller() -> GameController:
    global _controller
    if _controller is None:
        _controller = build_controller(settings)
    return _controller


async def shutdown_controller() -> None:
    global _controller
    if _controller is not None:
        await _controller.close()
        _controller = None


def _dump(snapshot) -> dict:
    return snapshot.model_dump(mode="json")


@router.post("/start")
async def game_start(controller: GameController = Depends(get_controller)):
    """
    Begin the pre-flight check (IDLE) or signal readiness (PRECHECK).

    Camera problems come back in the snapshot's `error` field; the session
    stays out of play.
    """
    logger.debug("[api] /game/start")
    try:
        return _dump(await controller.start())
    except Exception as e:
        logger.exception("[api] start failed")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/ready")
async def game_ready(controller: GameController = Depends(get_controller)):
    return _dump(controller.ready())


@router.post("/pause")
async def game_pause(controller: GameController = Depends(get_controller)):
    return _dump(controller.pause())


@router.post("/resume")
async def game_resume(controller: GameController = Depends(get_controller)):
    return _dump(controller.resume())


@router.post("/stop")
async def game_stop(controller: GameController = Depends(get_controller)):
    return _dump(controller.stop())


@router.post("/restart")
async def game_restart(controller: GameController = Depends(get_controller)):
    return _dump(controller.restart())


@router.post("/skip")
async def game_skip(controller: GameController = Depends(get_controller)):
    snap = controller.skip_video()
    body = _dump(snap)
    body["embed_url"] = embed_url(snap.video_id) if snap.video_id else None
    return body


@router.get("/status")
async def game_status(controller: GameController = Depends(get_controller)):
    return _dump(controller.snapshot())


@router.get("/summary")
async def game_summary(controller: GameController = Depends(get_controller)):
    if controller.last_summary is None:
        raise HTTPException(status_code=404, detail="No finished session yet")
    return controller.last_summary.model_dump(mode="json")


@router.get("/profile")
async def game_profile(controller: GameController = Depends(get_controller)):
    try:
        profile = await controller.persistence.load_profile(controller.user_id)
    except Exception as e:
        logger.exception("[api] profile load failed")
        raise HTTPException(status_code=503, detail=f"Profile unavailable: {e}")
    body = profile.model_dump(mode="json")
    body["level_info"] = level_info(profile.lifetime_score, settings.LEVEL_THRESHOLD).model_dump()
    return body


@router.websocket("/ws")
async def game_ws(websocket: WebSocket, controller: GameController = Depends(get_controller)):
    """Push a snapshot on every session change."""
    await websocket.accept()
    updates: asyncio.Queue = asyncio.Queue()
    unsubscribe = controller.subscribe(updates.put_nowait)
    try:
        await websocket.send_json(_dump(controller.snapshot()))
        while True:
            snap = await updates.get()
            await websocket.send_json(_dump(snap))
    except WebSocketDisconnect:
        logger.debug("[api] websocket client left")
    finally:
        unsubscribe()
