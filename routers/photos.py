from typing import List

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from core.auth import require_api_token
from core.config import DOWNLOAD_URL_TTL_SEC, logger
from utils.storage import (
    ObjectStatus,
    SizeTier,
    StorageError,
    delete_many,
    derive_key_triple,
    get_object_metadata,
    probe,
    resolve_url_for_size,
)

router = APIRouter(prefix="/api", tags=["photos"], dependencies=[Depends(require_api_token)])


def _clean_key(key: str) -> str:
    return (key or '').strip().lstrip('/')


def _escapes_root(key: str) -> bool:
    """True for keys with '..' segments, which would leave the local static dir."""
    return any(part == '..' for part in key.replace('\\', '/').split('/'))


@router.get("/photos/url/{key:path}")
async def api_photos_url(key: str, size: SizeTier = SizeTier.ORIGINAL, ttl: int = DOWNLOAD_URL_TTL_SEC):
    key = _clean_key(key)
    if not key or _escapes_root(key):
        return JSONResponse({"error": "invalid key"}, status_code=400)
    if ttl <= 0 or ttl > 7 * 24 * 3600:
        return JSONResponse({"error": "ttl out of range"}, status_code=400)
    try:
        url = resolve_url_for_size(key, size, ttl_seconds=ttl)
    except StorageError as ex:
        logger.warning(f"Presign error for {key}: {ex}")
        return JSONResponse({"error": "Unavailable"}, status_code=503)
    return {"url": url, "size": size.value, "expires_in": ttl}


@router.get("/photos/exists/{key:path}")
async def api_photos_exists(key: str):
    key = _clean_key(key)
    if not key or _escapes_root(key):
        return JSONResponse({"error": "invalid key"}, status_code=400)
    status = probe(key)
    if status is ObjectStatus.ERROR:
        return JSONResponse({"exists": False, "status": status.value}, status_code=503)
    return {"exists": status is ObjectStatus.FOUND, "status": status.value}


@router.get("/photos/meta/{key:path}")
async def api_photos_meta(key: str):
    key = _clean_key(key)
    if not key or _escapes_root(key):
        return JSONResponse({"error": "invalid key"}, status_code=400)
    meta = get_object_metadata(key)
    if meta is None:
        return JSONResponse({"error": "Not found"}, status_code=404)
    return meta


@router.post("/photos/delete")
async def api_photos_delete(keys: List[str] = Body(..., embed=True), include_variants: bool = Body(True, embed=True)):
    keys = [k for k in (_clean_key(k) for k in keys) if k]
    if not keys:
        return JSONResponse({"error": "no keys"}, status_code=400)
    bad = [k for k in keys if _escapes_root(k)]
    if bad:
        return JSONResponse({"error": "invalid key", "keys": bad}, status_code=400)

    to_delete: list[str] = []
    for k in keys:
        if include_variants:
            triple = derive_key_triple(k)
            candidates = [triple.original, triple.preview, triple.thumbnail]
        else:
            candidates = [k]
        for c in candidates:
            if c not in to_delete:
                to_delete.append(c)

    results = await delete_many(to_delete)
    deleted = [r.key for r in results if r.ok]
    errors = [{"key": r.key, "error": r.error} for r in results if not r.ok]
    return {"ok": not errors, "deleted": deleted, "errors": errors}
