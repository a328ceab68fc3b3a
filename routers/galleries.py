from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from core.auth import require_api_token
from core.config import logger
from models.gallery import AddImagePayload, CreateGalleryPayload, ImageRecord
from utils.formatting import format_file_size
from utils.galleries import add_image, create_gallery, load_gallery, with_signed_urls
from utils.storage import SizeTier, StorageError
from utils.viewer import ViewerSession

router = APIRouter(prefix="/api", tags=["galleries"], dependencies=[Depends(require_api_token)])

EMPTY_GALLERY_MESSAGE = "No photos in this gallery yet"


def image_item(img: ImageRecord) -> dict:
    item = img.model_dump()
    if img.file_size_bytes is not None:
        item["file_size_label"] = format_file_size(img.file_size_bytes)
    return item


def grid_payload(images: list[ImageRecord], last_viewed: Optional[int], tier: SizeTier = SizeTier.THUMBNAIL) -> dict:
    """Images for the masonry grid plus the id the grid should scroll to."""
    signed = with_signed_urls(images, tier)
    scroll_to = ViewerSession(images, last_viewed_id=last_viewed).scroll_target()
    payload = {
        "images": [image_item(i) for i in signed],
        "scroll_to": scroll_to,
    }
    if not images:
        payload["empty_message"] = EMPTY_GALLERY_MESSAGE
    return payload


@router.post("/galleries")
async def api_create_gallery(payload: CreateGalleryPayload):
    try:
        gallery = create_gallery(payload)
    except StorageError as ex:
        logger.warning(f"gallery create failed: {ex}")
        return JSONResponse({"error": "Storage unavailable"}, status_code=503)
    return {"ok": True, "gallery": gallery.model_dump(mode="json")}


@router.get("/galleries/{gallery_id}")
async def api_get_gallery(gallery_id: str, last_viewed: Optional[int] = None, size: SizeTier = SizeTier.THUMBNAIL):
    try:
        gallery = load_gallery(gallery_id)
        if gallery is None:
            return JSONResponse({"error": "not found"}, status_code=404)
        grid = grid_payload(gallery.images, last_viewed, size)
    except StorageError as ex:
        logger.warning(f"gallery {gallery_id} unavailable: {ex}")
        return JSONResponse({"error": "Storage unavailable"}, status_code=503)
    info = gallery.model_dump(mode="json", exclude={"images"})
    return {"gallery": info, **grid}


@router.post("/galleries/{gallery_id}/images")
async def api_add_image(gallery_id: str, payload: AddImagePayload):
    try:
        gallery = load_gallery(gallery_id)
        if gallery is None:
            return JSONResponse({"error": "not found"}, status_code=404)
        record = add_image(gallery, payload)
    except StorageError as ex:
        logger.warning(f"add image to {gallery_id} failed: {ex}")
        return JSONResponse({"error": "Storage unavailable"}, status_code=503)
    return {"ok": True, "image": image_item(record)}
