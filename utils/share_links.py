import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

import bcrypt

from core.config import SHARE_LINK_DEFAULT_DAYS, logger
from models.share_link import CreateShareLinkPayload, SharePermission, ShareLink
from utils.storage import read_json_key, write_json_key


class ShareAccess(str, Enum):
    GRANTED = "granted"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    PASSWORD_REQUIRED = "password_required"
    WRONG_PASSWORD = "wrong_password"


def _share_key(token: str) -> str:
    return f"shares/{token}.json"


def _hash_password_bcrypt(pw: str) -> str:
    return bcrypt.hashpw((pw or '').encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def _check_password(pw: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw((pw or '').encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def create_share_link(gallery_id: str, payload: CreateShareLinkPayload) -> ShareLink:
    now = datetime.now(timezone.utc)
    if payload.expires_at is not None:
        expires_at = _as_utc(payload.expires_at).isoformat()
    elif SHARE_LINK_DEFAULT_DAYS > 0:
        expires_at = (now + timedelta(days=SHARE_LINK_DEFAULT_DAYS)).isoformat()
    else:
        expires_at = None

    link = ShareLink(
        token=secrets.token_urlsafe(24),
        gallery_id=gallery_id,
        permissions=payload.permissions,
        password_hash=_hash_password_bcrypt(payload.password) if payload.password else None,
        expires_at=expires_at,
        created_at=now.isoformat(),
        notify_emails=payload.notify_emails,
    )
    write_json_key(_share_key(link.token), link.model_dump(mode="json"))
    logger.info(f"Share link created for gallery {gallery_id} ({link.permissions.value}, protected={link.protected})")
    return link


def load_share_link(token: str) -> Optional[ShareLink]:
    if not token or len(token) < 10 or "/" in token:
        return None
    rec = read_json_key(_share_key(token))
    if not rec:
        return None
    return ShareLink.model_validate(rec)


def is_expired(link: ShareLink, now: Optional[datetime] = None) -> bool:
    if not link.expires_at:
        return False
    try:
        exp = _as_utc(datetime.fromisoformat(link.expires_at.replace('Z', '+00:00')))
    except ValueError:
        logger.warning(f"share link {link.token[:6]}... has unreadable expires_at={link.expires_at!r}")
        return True
    return (now or datetime.now(timezone.utc)) > exp


def check_access(link: Optional[ShareLink], password: Optional[str] = None) -> ShareAccess:
    if link is None:
        return ShareAccess.NOT_FOUND
    if is_expired(link):
        return ShareAccess.EXPIRED
    if link.password_hash:
        if not password:
            return ShareAccess.PASSWORD_REQUIRED
        if not _check_password(password, link.password_hash):
            return ShareAccess.WRONG_PASSWORD
    return ShareAccess.GRANTED


def can_download(link: ShareLink) -> bool:
    return link.permissions in (SharePermission.VIEW_DOWNLOAD, SharePermission.VIEW_DOWNLOAD_COMMENT)


def can_comment(link: ShareLink) -> bool:
    return link.permissions is SharePermission.VIEW_DOWNLOAD_COMMENT
