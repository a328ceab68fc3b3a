from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class SharePermission(str, Enum):
    VIEW_ONLY = "view_only"
    VIEW_DOWNLOAD = "view_download"
    VIEW_DOWNLOAD_COMMENT = "view_download_comment"


class ShareLink(BaseModel):
    token: str
    gallery_id: str
    permissions: SharePermission = SharePermission.VIEW_ONLY
    password_hash: Optional[str] = None
    expires_at: Optional[str] = None
    created_at: str
    notify_emails: List[EmailStr] = Field(default_factory=list)

    @property
    def protected(self) -> bool:
        return bool(self.password_hash)


class CreateShareLinkPayload(BaseModel):
    password: Optional[str] = None
    expires_at: Optional[datetime] = None
    permissions: SharePermission = SharePermission.VIEW_ONLY
    notify_emails: List[EmailStr] = Field(default_factory=list)
