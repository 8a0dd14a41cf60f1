from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from catalog import CatalogLookupError, get_color_tier
from deps import catalog

router = APIRouter(tags=["catalog"])


@router.get("/catalog/resolve")
async def resolve_product(
    product_type: str = Query(...),
    size: str = Query(...),
    color: Optional[str] = Query(default=None),
):
    """Map a storefront selection to its Printify blueprint/provider/variant."""
    try:
        selection = catalog.resolve(product_type, size, color)
    except CatalogLookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return selection.to_dict()


@router.get("/catalog/color-tier")
async def color_tier(hex_color: str = Query(..., alias="hex", min_length=3, max_length=7)):
    return {"hex": hex_color, "tier": get_color_tier(hex_color).value}
