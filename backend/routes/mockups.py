"""Printify mockup generation routes."""

import logging
import secrets
import time
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from deps import mockup_service, printify
from mockup_generator import MockupRequest, MockupResult, get_local_mockup_template

logger = logging.getLogger(__name__)

router = APIRouter(tags=["mockups"])


# --- Models ---

class PrintifyMockupRequest(BaseModel):
    model_config = {"populate_by_name": True}

    design_image_url: str = Field(alias="designImageUrl")
    blueprint_id: int = Field(alias="blueprintId")
    provider_id: int = Field(alias="providerId")
    variant_id: int = Field(alias="variantId")
    scale: float = Field(default=1.0, ge=0, le=2)
    x: float = Field(default=0.0, ge=-1, le=1)
    y: float = Field(default=0.0, ge=-1, le=1)
    double_sided: bool = Field(default=False, alias="doubleSided")
    # Merchant credentials; fall back to PRINTIFY_API_TOKEN / PRINTIFY_SHOP_ID
    printify_api_token: Optional[str] = Field(default=None, alias="printifyApiToken")
    printify_shop_id: Optional[str] = Field(default=None, alias="printifyShopId")


def _correlation_id() -> str:
    return f"mockup_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


# --- Routes ---

@router.post("/mockups/printify")
async def generate_printify_mockup(body: PrintifyMockupRequest, request: Request):
    """Render (or serve cached) Printify mockups for a design on one variant."""
    correlation_id = _correlation_id()
    design_url = body.design_image_url.strip()

    if not design_url or design_url.startswith("blob:"):
        rejected = MockupResult.failed("blob: URLs are not accepted. Pass the hosted design image URL.")
        return {**rejected.to_dict(), "step": "validation", "correlationId": correlation_id}

    # Relative storage paths are served by this app
    if design_url.startswith("/objects/"):
        design_url = str(request.base_url).rstrip("/") + design_url

    logger.info(
        "[%s] Mockup request: blueprint=%s provider=%s variant=%s double_sided=%s",
        correlation_id, body.blueprint_id, body.provider_id, body.variant_id, body.double_sided,
    )

    result = await mockup_service.generate(MockupRequest(
        blueprint_id=body.blueprint_id,
        provider_id=body.provider_id,
        variant_id=body.variant_id,
        image_url=design_url,
        api_token=body.printify_api_token or printify.api_token,
        shop_id=body.printify_shop_id or printify.shop_id,
        scale=body.scale,
        x=body.x,
        y=body.y,
        double_sided=body.double_sided,
    ))

    if result.success:
        logger.info("[%s] Mockups ready: %d views", correlation_id, len(result.images))
    else:
        logger.warning(
            "[%s] Mockup generation failed (%s): %s",
            correlation_id, result.step.value if result.step else "config", result.error,
        )
    return {**result.to_dict(), "correlationId": correlation_id}


@router.get("/mockups/templates/{designer_type}")
async def get_mockup_template(designer_type: str):
    """Static fallback template for products without Printify mockups."""
    template = get_local_mockup_template(designer_type)
    if template is None:
        raise HTTPException(status_code=404, detail=f"No template for {designer_type}")
    return {"designerType": designer_type, "templateUrl": template}


@router.get("/printify/status")
async def get_printify_status():
    """Check if Printify is configured and accessible."""
    if not printify.is_configured:
        return {"configured": False, "connected": False}

    try:
        shops = await printify.get_shops()
        return {
            "configured": True,
            "connected": True,
            "shops": [{"id": s["id"], "title": s["title"]} for s in shops],
        }
    except Exception as e:
        return {"configured": True, "connected": False, "error": str(e)}
