"""Image processing for generated avatars.

Every avatar is normalized to the same output: a square PNG canvas,
cover-fit and centered, alpha preserved, maximum zlib compression.
Uses Pillow for image manipulation.
"""

import io
import logging
from typing import Optional

from PIL import Image, ImageOps

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "PNG"


def normalize_avatar(image_bytes: bytes, size: int = 512) -> Optional[bytes]:
    """Resize/crop to ``size`` x ``size`` (cover, centered) and encode PNG.

    Args:
        image_bytes: Image returned by the transform (any Pillow format)
        size: Output width and height in pixels

    Returns:
        PNG bytes or None if the input cannot be decoded
    """
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()

        # Ensure RGBA for transparency
        if img.mode != "RGBA":
            img = img.convert("RGBA")

        fitted = ImageOps.fit(
            img,
            (size, size),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )

        output = io.BytesIO()
        fitted.save(output, format=OUTPUT_FORMAT, optimize=True, compress_level=9)
        return output.getvalue()

    except Exception as e:
        logger.error(f"Failed to normalize avatar: {e}")
        return None


def get_image_info(image_bytes: bytes) -> Optional[dict]:
    """Basic image information, None if the bytes are not an image."""
    try:
        img = Image.open(io.BytesIO(image_bytes))
        return {
            "width": img.width,
            "height": img.height,
            "format": img.format,
            "mode": img.mode,
        }
    except Exception:
        return None
