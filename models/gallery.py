from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class GalleryMode(str, Enum):
    PRESENTATION = "presentation"
    COLLABORATION = "collaboration"


class ImageRecord(BaseModel):
    """One image as the gallery page receives it. Immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    id: int
    width: float
    height: float
    url: str
    format: str
    key: Optional[str] = None
    blur_placeholder: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    uploaded_at: Optional[str] = None
    file_size_bytes: Optional[int] = None


class GallerySettings(BaseModel):
    allow_download: bool = True
    allow_comments: bool = False
    allow_rating: bool = False
    allow_color_marking: bool = False
    watermark_enabled: bool = False
    notification_emails: List[EmailStr] = Field(default_factory=list)


class Gallery(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    mode: GalleryMode = GalleryMode.PRESENTATION
    settings: GallerySettings = Field(default_factory=GallerySettings)
    created_at: str
    images: List[ImageRecord] = Field(default_factory=list)


class CreateGalleryPayload(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    mode: GalleryMode = GalleryMode.PRESENTATION
    settings: GallerySettings = Field(default_factory=GallerySettings)


class AddImagePayload(BaseModel):
    key: str = Field(min_length=1)
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    format: str
    title: Optional[str] = None
    description: Optional[str] = None
    blur_placeholder: Optional[str] = None
    file_size_bytes: Optional[int] = Field(default=None, ge=0)
