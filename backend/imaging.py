"""Design preprocessing: background removal, aspect-fit resize, thumbnails.

Background removal runs the rembg segmentation model first and falls back to
a deterministic near-gray threshold pass when the model can't be used.
"""

import asyncio
import io
import logging
import threading
from typing import Optional

import numpy as np
from PIL import Image

from config import (
    BACKGROUND_REMOVAL_MODEL,
    DARK_LUMINANCE_MAX,
    LIGHT_LUMINANCE_MIN,
    NEAR_GRAY_MAX_SPREAD,
    THUMBNAIL_MAX_DIMENSION,
    THUMBNAIL_QUALITY,
)

logger = logging.getLogger(__name__)

BACKGROUND_REMOVAL_TIMEOUT = 60.0

_rembg = None
_rembg_lock = threading.Lock()


class CompositeError(Exception):
    """Double-sided compositing failed."""


def _load_rembg():
    # Imported on first use; failures here fall back to the threshold pass
    from rembg import new_session, remove
    return remove, new_session(BACKGROUND_REMOVAL_MODEL)


def _get_rembg():
    """(remove, session) for the configured model, built once per process."""
    global _rembg
    with _rembg_lock:
        if _rembg is None:
            _rembg = _load_rembg()
    return _rembg


def threshold_remove_background(image: Image.Image, is_dark: bool) -> Image.Image:
    """Clear near-gray pixels at the extreme end of the brightness range.

    Light products drop near-white pixels, dark products drop near-black ones.
    Saturated colors survive even when very bright or very dark.
    """
    arr = np.array(image.convert("RGBA"))
    rgb = arr[:, :, :3].astype(np.int16)
    luminance = rgb.mean(axis=2)
    spread = rgb.max(axis=2) - rgb.min(axis=2)

    if is_dark:
        extreme = luminance <= DARK_LUMINANCE_MAX
    else:
        extreme = luminance >= LIGHT_LUMINANCE_MIN

    mask = extreme & (spread <= NEAR_GRAY_MAX_SPREAD)
    arr[mask, 3] = 0
    return Image.fromarray(arr, "RGBA")


def remove_background(image: Image.Image, is_dark: bool = False) -> Image.Image:
    """Return an RGBA copy of the image with the background made transparent."""
    try:
        rembg_remove, session = _get_rembg()
        result = rembg_remove(image, session=session)
        if not isinstance(result, Image.Image):
            result = Image.open(io.BytesIO(result))
        return result.convert("RGBA")
    except Exception as e:
        logger.warning("AI background removal failed, using threshold fallback: %s", e)
        return threshold_remove_background(image, is_dark)


async def remove_background_async(
    image: Image.Image,
    is_dark: bool = False,
    timeout: Optional[float] = BACKGROUND_REMOVAL_TIMEOUT,
) -> Image.Image:
    """Run remove_background off the event loop, bounded by timeout."""
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(remove_background, image, is_dark),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("Background removal timed out after %.0fs, using threshold fallback", timeout)
        return threshold_remove_background(image, is_dark)


def resize_to_aspect_ratio(image: Image.Image, width: int, height: int) -> Image.Image:
    """Center-crop to the target ratio, then scale to exactly width x height."""
    src_w, src_h = image.size
    target_ratio = width / height
    src_ratio = src_w / src_h

    if src_ratio > target_ratio:
        # Source wider → crop left/right
        new_w = max(1, round(src_h * target_ratio))
        left = (src_w - new_w) // 2
        image = image.crop((left, 0, left + new_w, src_h))
    elif src_ratio < target_ratio:
        # Source taller → crop top/bottom
        new_h = max(1, round(src_w / target_ratio))
        top = (src_h - new_h) // 2
        image = image.crop((0, top, src_w, top + new_h))

    return image.resize((width, height), Image.LANCZOS)


def generate_thumbnail(image: Image.Image) -> bytes:
    """JPEG thumbnail that fits inside THUMBNAIL_MAX_DIMENSION on both sides."""
    thumb = image.copy()
    thumb.thumbnail((THUMBNAIL_MAX_DIMENSION, THUMBNAIL_MAX_DIMENSION), Image.LANCZOS)

    if thumb.mode in ("RGBA", "LA", "P"):
        thumb = thumb.convert("RGBA")
        background = Image.new("RGB", thumb.size, (255, 255, 255))
        background.paste(thumb, mask=thumb.split()[3])
        thumb = background
    elif thumb.mode != "RGB":
        thumb = thumb.convert("RGB")

    buf = io.BytesIO()
    thumb.save(buf, format="JPEG", quality=THUMBNAIL_QUALITY, optimize=True)
    return buf.getvalue()


def duplicate_side_by_side(image_bytes: bytes) -> bytes:
    """Place two copies of the design left/right on a transparent 2W x H canvas.

    Used for double-sided products where Printify wraps one front print area
    around the item.
    """
    try:
        img = Image.open(io.BytesIO(image_bytes)).convert("RGBA")
        width, height = img.size
        canvas = Image.new("RGBA", (width * 2, height), (255, 255, 255, 0))
        canvas.paste(img, (0, 0))
        canvas.paste(img, (width, 0))

        buf = io.BytesIO()
        canvas.save(buf, format="PNG")
        return buf.getvalue()
    except Exception as e:
        raise CompositeError(f"Failed to duplicate image: {e}") from e


def image_to_png_bytes(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG", optimize=True)
    return buf.getvalue()
