from pydantic import BaseModel, Field, field_validator

from core.config import MAX_UPLOAD_BYTES, SUPPORTED_UPLOAD_TYPES


class UploadUrlRequest(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    content_type: str
    size_bytes: int = Field(default=MAX_UPLOAD_BYTES, gt=0)

    @field_validator("content_type")
    @classmethod
    def _supported_type(cls, v: str) -> str:
        ct = (v or "").strip().lower()
        if ct not in SUPPORTED_UPLOAD_TYPES:
            raise ValueError("Only JPEG and PNG files are supported")
        return ct

    @field_validator("size_bytes")
    @classmethod
    def _within_limit(cls, v: int) -> int:
        if v > MAX_UPLOAD_BYTES:
            raise ValueError(f"File size must be less than {MAX_UPLOAD_BYTES // (1024 * 1024)}MB")
        return v
