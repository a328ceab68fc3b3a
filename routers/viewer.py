from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.auth import require_api_token
from core.config import logger
from models.gallery import ImageRecord
from routers.galleries import EMPTY_GALLERY_MESSAGE
from utils.galleries import load_gallery, with_signed_urls
from utils.storage import SizeTier, StorageError
from utils.viewer import viewer_sessions

router = APIRouter(prefix="/api", tags=["viewer"])


class OpenViewerPayload(BaseModel):
    index: int = 0
    last_viewed_id: Optional[int] = None


def open_viewer(images: list[ImageRecord], payload: OpenViewerPayload):
    """Start a viewer session over ``images``; an empty gallery never opens."""
    try:
        signed = with_signed_urls(images, SizeTier.ORIGINAL)
    except StorageError as ex:
        logger.warning(f"viewer open failed: {ex}")
        return JSONResponse({"error": "Storage unavailable"}, status_code=503)
    started = viewer_sessions.start(signed, payload.index, last_viewed_id=payload.last_viewed_id)
    if started is None:
        return {"session_id": None, "open": False, "empty_message": EMPTY_GALLERY_MESSAGE}
    sid, session = started
    return {"session_id": sid, **session.snapshot()}


@router.post("/galleries/{gallery_id}/viewer", dependencies=[Depends(require_api_token)])
async def api_open_viewer(gallery_id: str, payload: Optional[OpenViewerPayload] = None):
    payload = payload or OpenViewerPayload()
    try:
        gallery = load_gallery(gallery_id)
    except StorageError as ex:
        logger.warning(f"gallery {gallery_id} unavailable: {ex}")
        return JSONResponse({"error": "Storage unavailable"}, status_code=503)
    if gallery is None:
        return JSONResponse({"error": "not found"}, status_code=404)
    return open_viewer(gallery.images, payload)


def _session_or_404(sid: str):
    session = viewer_sessions.get(sid)
    if session is None:
        return None, JSONResponse({"error": "viewer session not found"}, status_code=404)
    return session, None


@router.get("/viewer/{sid}")
async def api_viewer_state(sid: str):
    session, err = _session_or_404(sid)
    if err:
        return err
    return {"session_id": sid, **session.snapshot()}


@router.post("/viewer/{sid}/next")
async def api_viewer_next(sid: str):
    session, err = _session_or_404(sid)
    if err:
        return err
    moved = session.navigate_next()
    return {"session_id": sid, "moved": moved, **session.snapshot()}


@router.post("/viewer/{sid}/previous")
async def api_viewer_previous(sid: str):
    session, err = _session_or_404(sid)
    if err:
        return err
    moved = session.navigate_previous()
    return {"session_id": sid, "moved": moved, **session.snapshot()}


@router.post("/viewer/{sid}/jump")
async def api_viewer_jump(sid: str, index: int = Body(..., embed=True)):
    session, err = _session_or_404(sid)
    if err:
        return err
    moved = session.jump_to(index)
    return {"session_id": sid, "moved": moved, **session.snapshot()}


@router.post("/viewer/{sid}/key")
async def api_viewer_key(sid: str, key: str = Body(..., embed=True)):
    session, err = _session_or_404(sid)
    if err:
        return err
    handled = session.handle_key(key)
    snapshot = session.snapshot()
    if not session.is_open:
        viewer_sessions.discard(sid)
    return {"session_id": sid, "handled": handled, **snapshot}


@router.post("/viewer/{sid}/close")
async def api_viewer_close(sid: str):
    session, err = _session_or_404(sid)
    if err:
        return err
    last_viewed_id = session.close()
    viewer_sessions.discard(sid)
    return {"session_id": sid, "open": False, "last_viewed_id": last_viewed_id}
