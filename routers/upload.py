from typing import List, Optional
import io
import asyncio

from fastapi import APIRouter, UploadFile, File, Form, Depends
from fastapi.responses import JSONResponse
from PIL import Image, UnidentifiedImageError

from core.auth import require_api_token
from core.config import MAX_FILES_PER_UPLOAD, MAX_UPLOAD_BYTES, SUPPORTED_UPLOAD_TYPES, logger
from models.gallery import AddImagePayload
from models.upload import UploadUrlRequest
from utils.galleries import add_image, load_gallery
from utils.storage import StorageError, generate_unique_filename, issue_upload_url, upload_bytes

# SECURITY: File magic bytes for image validation
IMAGE_MAGIC_BYTES = {
    b'\xff\xd8\xff': 'image/jpeg',  # JPEG
    b'\x89PNG\r\n\x1a\n': 'image/png',  # PNG
}


def _sniff_content_type(data: bytes) -> Optional[str]:
    """Content type from magic bytes, or None when the payload is not a supported image."""
    if not data or len(data) < 8:
        return None
    for magic, ct in IMAGE_MAGIC_BYTES.items():
        if data[:len(magic)] == magic:
            return ct
    return None


def _dimensions(data: bytes) -> tuple[int, int]:
    """Decode the image fully; raises if Pillow cannot read it."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.size


router = APIRouter(prefix="/api", tags=["upload"], dependencies=[Depends(require_api_token)])


@router.post("/uploads/presign")
async def presign_upload(payload: UploadUrlRequest):
    try:
        res = issue_upload_url(payload.filename, payload.content_type, payload.size_bytes)
    except StorageError as ex:
        logger.warning(f"presign upload failed for {payload.filename}: {ex}")
        return JSONResponse({"error": "Upload signing unavailable"}, status_code=503)
    return {"ok": True, "upload_url": res["url"], "key": res["key"], "fields": res["fields"]}


@router.post("/uploads")
async def upload(
    files: List[UploadFile] = File(...),
    gallery_id: Optional[str] = Form(None),
):
    if not files:
        return JSONResponse({"error": "no files"}, status_code=400)
    if len(files) > MAX_FILES_PER_UPLOAD:
        return JSONResponse({"error": f"too many files (max {MAX_FILES_PER_UPLOAD})"}, status_code=400)

    gallery = None
    if gallery_id:
        try:
            gallery = load_gallery(gallery_id)
        except StorageError as ex:
            logger.warning(f"gallery {gallery_id} unavailable: {ex}")
            return JSONResponse({"error": "Storage unavailable"}, status_code=503)
        if gallery is None:
            return JSONResponse({"error": "gallery not found"}, status_code=404)

    prepared = []
    for uf in files:
        raw = await uf.read()
        if len(raw) > MAX_UPLOAD_BYTES:
            return JSONResponse({"error": f"{uf.filename}: file too large"}, status_code=413)
        ct = _sniff_content_type(raw)
        if ct is None or ct not in SUPPORTED_UPLOAD_TYPES:
            return JSONResponse({"error": f"{uf.filename}: only JPEG and PNG files are supported"}, status_code=415)
        # SECURITY: magic bytes alone are not enough; the payload must decode
        try:
            size = _dimensions(raw)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as ex:
            logger.warning(f"rejecting undecodable upload {uf.filename}: {ex}")
            return JSONResponse({"error": f"{uf.filename}: not a valid image"}, status_code=415)
        prepared.append((uf.filename or "upload", generate_unique_filename(uf.filename or "upload.jpg"), raw, ct, size))

    tasks = [asyncio.to_thread(upload_bytes, key, raw, content_type=ct) for _, key, raw, ct, _ in prepared]
    try:
        urls = await asyncio.gather(*tasks)
    except StorageError as ex:
        logger.warning(f"upload failed: {ex}")
        return JSONResponse({"error": "Upload failed"}, status_code=502)

    uploaded = []
    for (name, key, raw, ct, (width, height)), url in zip(prepared, urls):
        item = {"key": key, "url": url, "filename": name, "size_bytes": len(raw)}
        if gallery is not None:
            try:
                rec = add_image(gallery, AddImagePayload(
                    key=key,
                    width=width,
                    height=height,
                    format=key.rsplit(".", 1)[-1],
                    title=name,
                    file_size_bytes=len(raw),
                ))
            except StorageError as ex:
                logger.warning(f"add image to {gallery_id} failed: {ex}")
                return JSONResponse({"error": "Storage unavailable", "uploaded": uploaded}, status_code=503)
            item["image_id"] = rec.id
        uploaded.append(item)

    logger.info(f"Uploaded {len(uploaded)} file(s){' to gallery ' + gallery_id if gallery else ''}")
    return {"ok": True, "uploaded": uploaded}
