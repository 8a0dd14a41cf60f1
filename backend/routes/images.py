"""Design preprocessing routes: background removal, resize, thumbnails."""

import io

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from PIL import Image

from imaging import (
    generate_thumbnail,
    image_to_png_bytes,
    remove_background_async,
    resize_to_aspect_ratio,
)

router = APIRouter(tags=["images"])

MAX_DIMENSION = 8192


async def _read_image(file: UploadFile) -> Image.Image:
    raw = await file.read()
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
        return img
    except Exception:
        raise HTTPException(status_code=400, detail="Uploaded file is not a readable image")


@router.post("/images/remove-background")
async def remove_background_route(
    file: UploadFile = File(...),
    color_tier: str = Form("light"),
):
    """Return the design as a transparent PNG. color_tier is the product's light/dark tier."""
    if color_tier not in ("light", "dark"):
        raise HTTPException(status_code=400, detail="color_tier must be 'light' or 'dark'")
    img = await _read_image(file)
    result = await remove_background_async(img, is_dark=color_tier == "dark")
    return Response(content=image_to_png_bytes(result), media_type="image/png")


@router.post("/images/resize")
async def resize_route(
    file: UploadFile = File(...),
    width: int = Form(..., gt=0, le=MAX_DIMENSION),
    height: int = Form(..., gt=0, le=MAX_DIMENSION),
):
    """Crop-to-fill the design to exactly width x height."""
    img = await _read_image(file)
    result = resize_to_aspect_ratio(img, width, height)
    return Response(content=image_to_png_bytes(result), media_type="image/png")


@router.post("/images/thumbnail")
async def thumbnail_route(file: UploadFile = File(...)):
    img = await _read_image(file)
    return Response(content=generate_thumbnail(img), media_type="image/jpeg")
