import os
import re
import json
import time
import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from core.config import (
    s3,
    s3_presign_client,
    R2_BUCKET,
    STATIC_DIR,
    UPLOAD_URL_TTL_SEC,
    DOWNLOAD_URL_TTL_SEC,
    logger,
)

THUMB_SUFFIX = "_thumb"
PREVIEW_SUFFIX = "_preview"

_NOT_FOUND_CODES = ("404", "NoSuchKey", "NotFound")


class StorageError(Exception):
    """Raised when the object store rejects or fails a request."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class SizeTier(str, Enum):
    ORIGINAL = "original"
    PREVIEW = "preview"
    THUMBNAIL = "thumbnail"


class ObjectStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(frozen=True)
class StorageKeyTriple:
    original: str
    preview: str
    thumbnail: str


@dataclass(frozen=True)
class DeleteResult:
    key: str
    ok: bool
    error: Optional[str] = None


def _with_suffix(original_key: str, suffix: str) -> str:
    # Only the last "." separates the extension; a key without one degrades to "<suffix>.<key>"
    name, _, extension = (original_key or "").rpartition(".")
    return f"{name}{suffix}.{extension}"


def derive_thumbnail_key(original_key: str) -> str:
    return _with_suffix(original_key, THUMB_SUFFIX)


def derive_preview_key(original_key: str) -> str:
    return _with_suffix(original_key, PREVIEW_SUFFIX)


def derive_key_triple(original_key: str) -> StorageKeyTriple:
    return StorageKeyTriple(
        original=original_key,
        preview=derive_preview_key(original_key),
        thumbnail=derive_thumbnail_key(original_key),
    )


# Every tier must appear here; a lookup miss is a programming error, never a silent default
_TIER_KEY_RULES = {
    SizeTier.ORIGINAL: lambda k: k,
    SizeTier.PREVIEW: derive_preview_key,
    SizeTier.THUMBNAIL: derive_thumbnail_key,
}


def key_for_tier(key: str, tier: SizeTier) -> str:
    return _TIER_KEY_RULES[SizeTier(tier)](key)


def generate_unique_filename(filename: str) -> str:
    """Build a collision-resistant storage key from a user supplied filename.

    Non-alphanumeric characters of the base name become ``_`` and a
    millisecond timestamp is appended: ``"My Photo.jpg"`` -> ``"my_photo_1712345678901.jpg"``.
    """
    name = filename or ""
    timestamp = int(time.time() * 1000)
    extension = name.split(".")[-1].lower()
    base = name[:name.rfind(".")] if "." in name else ""
    sanitized = re.sub(r"[^a-zA-Z0-9]", "_", base).lower()
    return f"{sanitized}_{timestamp}.{extension}"


def _presign_client():
    if s3_presign_client is not None:
        return s3_presign_client
    return s3.meta.client


def issue_upload_url(filename: str, content_type: str, max_bytes: int) -> dict:
    """Return a signed PUT URL for a fresh key.

    The size limit travels with the signed request; the store enforces it.
    """
    if not s3 or not R2_BUCKET:
        raise StorageError("object storage is not configured")

    key = generate_unique_filename(filename)
    try:
        url = _presign_client().generate_presigned_url(
            "put_object",
            Params={
                "Bucket": R2_BUCKET,
                "Key": key,
                "ContentType": content_type,
                "ContentLength": int(max_bytes),
                "Metadata": {
                    "originalFilename": filename,
                    "uploadedAt": datetime.now(timezone.utc).isoformat(),
                },
            },
            ExpiresIn=UPLOAD_URL_TTL_SEC,
        )
    except (ClientError, BotoCoreError) as ex:
        logger.warning(f"upload presign failed for {key}: {ex}")
        raise StorageError(f"could not sign upload for {filename}", key=key) from ex

    logger.info(f"Upload URL issued: {key} ({content_type}, <= {max_bytes} bytes)")
    return {
        "url": url,
        "key": key,
        "fields": {
            "Content-Type": content_type,
            "Content-Length": str(int(max_bytes)),
        },
    }


def issue_download_url(key: str, ttl_seconds: int = DOWNLOAD_URL_TTL_SEC) -> str:
    if not s3 or not R2_BUCKET:
        return f"/static/{key}"
    try:
        return _presign_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": R2_BUCKET, "Key": key},
            ExpiresIn=int(ttl_seconds),
        )
    except (ClientError, BotoCoreError) as ex:
        logger.warning(f"download presign failed for {key}: {ex}")
        raise StorageError(f"could not sign download for {key}", key=key) from ex


def resolve_url_for_size(key: str, tier: SizeTier = SizeTier.ORIGINAL, ttl_seconds: int = DOWNLOAD_URL_TTL_SEC) -> str:
    return issue_download_url(key_for_tier(key, tier), ttl_seconds=ttl_seconds)


def probe(key: str) -> ObjectStatus:
    """HEAD the object and classify the outcome."""
    if not s3 or not R2_BUCKET:
        path = os.path.join(STATIC_DIR, key)
        return ObjectStatus.FOUND if os.path.isfile(path) else ObjectStatus.NOT_FOUND
    try:
        s3.meta.client.head_object(Bucket=R2_BUCKET, Key=key)
        return ObjectStatus.FOUND
    except ClientError as ce:
        code = str(ce.response.get("Error", {}).get("Code") or "")
        if code in _NOT_FOUND_CODES:
            return ObjectStatus.NOT_FOUND
        logger.warning(f"probe failed for {key}: {code or ce}")
        return ObjectStatus.ERROR
    except BotoCoreError as ex:
        logger.warning(f"probe failed for {key}: {ex}")
        return ObjectStatus.ERROR


def exists(key: str) -> bool:
    return probe(key) is ObjectStatus.FOUND


def get_object_metadata(key: str) -> Optional[dict]:
    if not s3 or not R2_BUCKET:
        path = os.path.join(STATIC_DIR, key)
        if not os.path.isfile(path):
            return None
        st = os.stat(path)
        return {
            "size": st.st_size,
            "last_modified": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
            "content_type": "application/octet-stream",
            "metadata": {},
        }
    try:
        res = s3.meta.client.head_object(Bucket=R2_BUCKET, Key=key)
    except (ClientError, BotoCoreError) as ex:
        logger.warning(f"metadata lookup failed for {key}: {ex}")
        return None
    last_modified = res.get("LastModified")
    return {
        "size": int(res.get("ContentLength") or 0),
        "last_modified": last_modified.isoformat() if last_modified else None,
        "content_type": res.get("ContentType") or "application/octet-stream",
        "metadata": res.get("Metadata") or {},
    }


def delete_one(key: str) -> None:
    if not s3 or not R2_BUCKET:
        path = os.path.join(STATIC_DIR, key)
        try:
            if os.path.isfile(path):
                os.remove(path)
        except OSError as ex:
            raise StorageError(f"could not delete {key}", key=key) from ex
        return
    try:
        s3.meta.client.delete_object(Bucket=R2_BUCKET, Key=key)
    except (ClientError, BotoCoreError) as ex:
        logger.warning(f"delete failed for {key}: {ex}")
        raise StorageError(f"could not delete {key}", key=key) from ex
    logger.info(f"Deleted {key}")


async def delete_many(keys: list[str]) -> list[DeleteResult]:
    """Delete every key concurrently and report the outcome per key.

    There is no rollback: keys deleted before a sibling fails stay deleted.
    """
    tasks = [asyncio.to_thread(delete_one, k) for k in keys]
    outcomes = await asyncio.gather(*tasks, return_exceptions=True)
    results: list[DeleteResult] = []
    for k, outcome in zip(keys, outcomes):
        if isinstance(outcome, BaseException):
            results.append(DeleteResult(key=k, ok=False, error=str(outcome)))
        else:
            results.append(DeleteResult(key=k, ok=True))
    failed = sum(1 for r in results if not r.ok)
    if failed:
        logger.warning(f"delete_many: {failed}/{len(keys)} deletes failed")
    return results


def write_json_key(key: str, payload: dict):
    data = json.dumps(payload, ensure_ascii=False)
    if s3 and R2_BUCKET:
        try:
            bucket = s3.Bucket(R2_BUCKET)
            bucket.put_object(Key=key, Body=data.encode('utf-8'), ContentType='application/json')
        except (ClientError, BotoCoreError) as ex:
            raise StorageError(f"could not write {key}", key=key) from ex
    else:
        path = os.path.join(STATIC_DIR, key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            f.write(data)


def read_json_key(key: str) -> Optional[dict]:
    if s3 and R2_BUCKET:
        obj = s3.Object(R2_BUCKET, key)
        try:
            body = obj.get()["Body"].read().decode("utf-8")
        except ClientError as ce:
            # Treat missing object as None without warning noise
            if ce.response.get('Error', {}).get('Code') in _NOT_FOUND_CODES:
                return None
            raise StorageError(f"could not read {key}", key=key) from ce
        except BotoCoreError as ex:
            raise StorageError(f"could not read {key}", key=key) from ex
        return json.loads(body)
    path = os.path.join(STATIC_DIR, key)
    if not os.path.isfile(path):
        return None
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def read_bytes_key(key: str) -> Optional[bytes]:
    if s3 and R2_BUCKET:
        try:
            return s3.Object(R2_BUCKET, key).get()["Body"].read()
        except ClientError as ce:
            if ce.response.get('Error', {}).get('Code') in _NOT_FOUND_CODES:
                return None
            raise StorageError(f"could not read {key}", key=key) from ce
        except BotoCoreError as ex:
            raise StorageError(f"could not read {key}", key=key) from ex
    path = os.path.join(STATIC_DIR, key)
    if not os.path.isfile(path):
        return None
    with open(path, "rb") as f:
        return f.read()


def list_keys(prefix: str, max_keys: int = 1000) -> list[str]:
    """List keys under a prefix in the bucket (or the local static dir)."""
    if s3 and R2_BUCKET:
        try:
            bucket = s3.Bucket(R2_BUCKET)
            return [obj.key for obj in bucket.objects.filter(Prefix=prefix).limit(max_keys)]
        except (ClientError, BotoCoreError) as ex:
            raise StorageError(f"could not list {prefix}") from ex
    local_dir = os.path.join(STATIC_DIR, prefix)
    if not os.path.isdir(local_dir):
        return []
    keys = []
    for root, _, files in os.walk(local_dir):
        for f in sorted(files):
            rel_path = os.path.relpath(os.path.join(root, f), STATIC_DIR)
            keys.append(rel_path.replace("\\", "/"))
            if len(keys) >= max_keys:
                return keys
    return keys


def is_variant_key(key: str) -> bool:
    name = (key or "").rpartition(".")[0]
    return name.endswith(THUMB_SUFFIX) or name.endswith(PREVIEW_SUFFIX)


def _put_bytes(key: str, data: bytes, content_type: str, cache_control: str):
    if not s3 or not R2_BUCKET:
        local_path = os.path.join(STATIC_DIR, key)
        os.makedirs(os.path.dirname(local_path), exist_ok=True)
        with open(local_path, "wb") as f:
            f.write(data)
        logger.info(f"Saved locally: {local_path}")
        return
    try:
        s3.Bucket(R2_BUCKET).put_object(Key=key, Body=data, ContentType=content_type, CacheControl=cache_control)
    except (ClientError, BotoCoreError) as ex:
        logger.warning(f"upload failed for {key}: {ex}")
        raise StorageError(f"could not upload {key}", key=key) from ex


def write_variants(key: str, data: bytes, content_type: str, tiers=(SizeTier.PREVIEW, SizeTier.THUMBNAIL)) -> list[str]:
    """Render and store the requested size tiers of an original. Returns the keys written."""
    from utils.thumbnails import render_variant
    from core.config import PREVIEW_SIZE, THUMBNAIL_SIZE

    max_sizes = {SizeTier.PREVIEW: PREVIEW_SIZE, SizeTier.THUMBNAIL: THUMBNAIL_SIZE}
    written = []
    for tier in tiers:
        variant_key = key_for_tier(key, tier)
        variant = render_variant(data, max_sizes[SizeTier(tier)], content_type)
        if not variant:
            continue
        try:
            _put_bytes(variant_key, variant, content_type, "public, max-age=31536000")
            written.append(variant_key)
            logger.info(f"Variant generated: {variant_key}")
        except StorageError as vex:
            logger.warning(f"Variant upload failed for {variant_key}: {vex}")
    return written


def upload_bytes(key: str, data: bytes, content_type: str = "image/jpeg", generate_variants: bool = True) -> str:
    """Store the original and, for images, its preview and thumbnail variants.

    Variant failures are logged and skipped; the original upload is what
    decides success. Returns a download URL for the original.
    """
    _put_bytes(key, data, content_type, "public, max-age=604800")

    if generate_variants and content_type.startswith('image/'):
        write_variants(key, data, content_type)

    return issue_download_url(key, ttl_seconds=DOWNLOAD_URL_TTL_SEC)
