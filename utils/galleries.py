import secrets
from datetime import datetime, timezone
from typing import Optional

from core.config import logger
from models.gallery import AddImagePayload, CreateGalleryPayload, Gallery, ImageRecord
from utils.storage import SizeTier, resolve_url_for_size, read_json_key, write_json_key


def _gallery_key(gallery_id: str) -> str:
    return f"galleries/{gallery_id}/gallery.json"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_gallery(payload: CreateGalleryPayload) -> Gallery:
    gallery = Gallery(
        id=secrets.token_hex(8),
        name=payload.name.strip(),
        description=payload.description,
        mode=payload.mode,
        settings=payload.settings,
        created_at=_now_iso(),
    )
    save_gallery(gallery)
    logger.info(f"Gallery created: {gallery.id} ({gallery.name})")
    return gallery


def save_gallery(gallery: Gallery):
    write_json_key(_gallery_key(gallery.id), gallery.model_dump(mode="json"))


def load_gallery(gallery_id: str) -> Optional[Gallery]:
    if not gallery_id or "/" in gallery_id:
        return None
    data = read_json_key(_gallery_key(gallery_id))
    if not data:
        return None
    return Gallery.model_validate(data)


def add_image(gallery: Gallery, payload: AddImagePayload) -> ImageRecord:
    """Append an uploaded object to the gallery. Ids are sequential and never reused."""
    next_id = max((img.id for img in gallery.images), default=-1) + 1
    record = ImageRecord(
        id=next_id,
        key=payload.key,
        width=payload.width,
        height=payload.height,
        url=payload.key,
        format=payload.format.lower().lstrip("."),
        blur_placeholder=payload.blur_placeholder,
        title=payload.title,
        description=payload.description,
        uploaded_at=_now_iso(),
        file_size_bytes=payload.file_size_bytes,
    )
    gallery.images.append(record)
    save_gallery(gallery)
    return record


def with_signed_urls(images: list[ImageRecord], tier: SizeTier = SizeTier.PREVIEW) -> list[ImageRecord]:
    """Copy records with ``url`` replaced by a signed URL for ``tier``."""
    out = []
    for img in images:
        if not img.key:
            out.append(img)
            continue
        out.append(img.model_copy(update={"url": resolve_url_for_size(img.key, tier)}))
    return out
