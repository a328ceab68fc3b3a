"""
Variant rendering for the preview and thumbnail size tiers.
Variants keep the original's format so the derived key's extension stays truthful.
"""
import io
from PIL import Image, ImageFilter
from typing import Optional
from core.config import logger

# Pillow format names by upload content type
_FORMATS = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}


def render_variant(image_data: bytes, max_size: int, content_type: str = "image/jpeg", quality: int = 90) -> Optional[bytes]:
    """
    Downscale an image so its longest edge is at most ``max_size``.

    Args:
        image_data: Original image bytes
        max_size: Maximum dimension (width or height)
        content_type: MIME type of the original; selects the output format
        quality: JPEG/WEBP quality (1-100)

    Returns:
        Variant bytes or None if the image could not be decoded
    """
    fmt = _FORMATS.get((content_type or "").lower(), "JPEG")
    try:
        img = Image.open(io.BytesIO(image_data))
        img.load()

        if fmt == "JPEG" and img.mode != "RGB":
            if img.mode in ('RGBA', 'P', 'LA'):
                # White background for transparency
                background = Image.new('RGB', img.size, (255, 255, 255))
                if img.mode != 'RGBA':
                    img = img.convert('RGBA')
                background.paste(img, mask=img.split()[-1])
                img = background
            else:
                img = img.convert('RGB')

        width, height = img.size
        resized = width > max_size or height > max_size
        if resized:
            img.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
            img = img.filter(ImageFilter.UnsharpMask(radius=0.5, percent=50, threshold=2))

        buf = io.BytesIO()
        if fmt == "PNG":
            img.save(buf, format=fmt, optimize=True)
        else:
            img.save(buf, format=fmt, quality=quality, optimize=True)
        return buf.getvalue()
    except Exception as ex:
        logger.warning(f"Variant rendering failed: {ex}")
        return None
