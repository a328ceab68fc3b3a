from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from core.auth import require_api_token
from core.config import FRONTEND_ORIGIN, logger
from models.share_link import CreateShareLinkPayload
from routers.galleries import grid_payload
from routers.viewer import OpenViewerPayload, open_viewer
from utils.galleries import load_gallery
from utils.share_links import ShareAccess, can_comment, can_download, check_access, create_share_link, load_share_link
from utils.storage import SizeTier, StorageError, issue_download_url

router = APIRouter(prefix="/api", tags=["share"])

_ACCESS_ERRORS = {
    ShareAccess.NOT_FOUND: ("not found", 404),
    ShareAccess.EXPIRED: ("expired", 410),
    ShareAccess.PASSWORD_REQUIRED: ("password required", 401),
    ShareAccess.WRONG_PASSWORD: ("invalid password", 403),
}


def _resolve(token: str, password: Optional[str]):
    """(link, gallery, error_response) for a share token."""
    try:
        link = load_share_link(token)
        access = check_access(link, password)
        if access is not ShareAccess.GRANTED:
            msg, code = _ACCESS_ERRORS[access]
            return None, None, JSONResponse({"error": msg}, status_code=code)
        gallery = load_gallery(link.gallery_id)
    except StorageError as ex:
        logger.warning(f"share {token[:6]}... unavailable: {ex}")
        return None, None, JSONResponse({"error": "Storage unavailable"}, status_code=503)
    if gallery is None:
        return None, None, JSONResponse({"error": "gallery no longer exists"}, status_code=404)
    return link, gallery, None


@router.post("/galleries/{gallery_id}/share", dependencies=[Depends(require_api_token)])
async def api_create_share(gallery_id: str, payload: CreateShareLinkPayload):
    try:
        if load_gallery(gallery_id) is None:
            return JSONResponse({"error": "not found"}, status_code=404)
        link = create_share_link(gallery_id, payload)
    except StorageError as ex:
        logger.warning(f"share create failed for {gallery_id}: {ex}")
        return JSONResponse({"error": "Storage unavailable"}, status_code=503)
    return {
        "ok": True,
        "token": link.token,
        "link": f"{FRONTEND_ORIGIN}/share/{link.token}",
        "permissions": link.permissions.value,
        "protected": link.protected,
        "expires_at": link.expires_at,
    }


@router.get("/share/{token}")
async def api_view_share(
    token: str,
    last_viewed: Optional[int] = None,
    x_share_password: Optional[str] = Header(None),
):
    link, gallery, err = _resolve(token, x_share_password)
    if err:
        return err
    try:
        grid = grid_payload(gallery.images, last_viewed, SizeTier.THUMBNAIL)
    except StorageError as ex:
        logger.warning(f"share {token[:6]}... signing failed: {ex}")
        return JSONResponse({"error": "Storage unavailable"}, status_code=503)
    return {
        "gallery": {"id": gallery.id, "name": gallery.name, "description": gallery.description, "mode": gallery.mode.value},
        "permissions": {
            "level": link.permissions.value,
            "download": can_download(link) and gallery.settings.allow_download,
            "comment": can_comment(link) and gallery.settings.allow_comments,
        },
        **grid,
    }


@router.post("/share/{token}/viewer")
async def api_share_viewer(
    token: str,
    payload: Optional[OpenViewerPayload] = None,
    x_share_password: Optional[str] = Header(None),
):
    link, gallery, err = _resolve(token, x_share_password)
    if err:
        return err
    return open_viewer(gallery.images, payload or OpenViewerPayload())


@router.get("/share/{token}/download/{image_id}")
async def api_share_download(token: str, image_id: int, x_share_password: Optional[str] = Header(None)):
    link, gallery, err = _resolve(token, x_share_password)
    if err:
        return err
    if not (can_download(link) and gallery.settings.allow_download):
        return JSONResponse({"error": "downloads are not allowed for this link"}, status_code=403)
    img = next((i for i in gallery.images if i.id == image_id), None)
    if img is None or not img.key:
        return JSONResponse({"error": "image not found"}, status_code=404)
    try:
        url = issue_download_url(img.key)
    except StorageError as ex:
        logger.warning(f"share download signing failed for {img.key}: {ex}")
        return JSONResponse({"error": "Storage unavailable"}, status_code=503)
    return {"url": url, "filename": img.title or img.key.rsplit("/", 1)[-1]}
