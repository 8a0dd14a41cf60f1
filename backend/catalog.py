"""Product catalog lookup and product color tiers.

Maps a storefront selection (product type, size, color) onto the Printify
{blueprint, provider, variant} triple the mockup engine needs.
"""

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from config import COLOR_TIER_THRESHOLD

_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)


class ColorTier(str, Enum):
    LIGHT = "light"
    DARK = "dark"


def hex_to_rgb(hex_color: str) -> Optional[tuple]:
    match = _HEX_RE.match(hex_color or "")
    if not match:
        return None
    return tuple(int(g, 16) for g in match.groups())


def relative_luminance(r: int, g: int, b: int) -> float:
    """WCAG relative luminance, 0 (black) to 1 (white)."""
    def channel(c: int) -> float:
        srgb = c / 255
        return srgb / 12.92 if srgb <= 0.03928 else ((srgb + 0.055) / 1.055) ** 2.4

    return 0.2126 * channel(r) + 0.7152 * channel(g) + 0.0722 * channel(b)


def get_color_tier(hex_color: str, threshold: float = COLOR_TIER_THRESHOLD) -> ColorTier:
    """Unparseable colors are treated as light."""
    rgb = hex_to_rgb(hex_color)
    if rgb is None:
        return ColorTier.LIGHT
    return ColorTier.DARK if relative_luminance(*rgb) <= threshold else ColorTier.LIGHT


def is_color_dark(hex_color: str, threshold: float = COLOR_TIER_THRESHOLD) -> bool:
    return get_color_tier(hex_color, threshold) == ColorTier.DARK


class CatalogLookupError(LookupError):
    pass


@dataclass(frozen=True)
class ProductSelection:
    blueprint_id: int
    provider_id: int
    variant_id: int
    color_tier: ColorTier = ColorTier.LIGHT

    def to_dict(self) -> dict:
        return {
            "blueprintId": self.blueprint_id,
            "providerId": self.provider_id,
            "variantId": self.variant_id,
            "colorTier": self.color_tier.value,
        }


@dataclass
class ProductType:
    name: str
    blueprint_id: int
    provider_id: int
    # "{size}:{color}" (or "{size}" for colorless products) -> variant info
    variant_map: Dict[str, dict] = field(default_factory=dict)
    colors: List[dict] = field(default_factory=list)  # [{"id", "name", "hex"}]

    def color_hex(self, color_id: Optional[str]) -> Optional[str]:
        for color in self.colors:
            if color.get("id") == color_id:
                return color.get("hex")
        return None


class CatalogResolver:
    """In-memory resolver over product types imported from the Printify catalog."""

    def __init__(self, product_types: Optional[Dict[str, ProductType]] = None):
        self.product_types: Dict[str, ProductType] = dict(product_types or {})

    @classmethod
    def from_json(cls, raw: str) -> "CatalogResolver":
        data = json.loads(raw)
        types = {
            key: ProductType(
                name=entry["name"],
                blueprint_id=int(entry["blueprintId"]),
                provider_id=int(entry["providerId"]),
                variant_map=entry.get("variantMap", {}),
                colors=entry.get("colors", []),
            )
            for key, entry in data.items()
        }
        return cls(types)

    def resolve(self, product_type: str, size: str, color: Optional[str] = None) -> ProductSelection:
        pt = self.product_types.get(product_type)
        if pt is None:
            raise CatalogLookupError(f"Unknown product type: {product_type}")

        entry = pt.variant_map.get(f"{size}:{color}") if color else None
        if entry is None:
            entry = pt.variant_map.get(size)
        if entry is None:
            raise CatalogLookupError(
                f"No variant for {product_type} size={size} color={color or '-'}"
            )

        hex_color = pt.color_hex(color)
        tier = get_color_tier(hex_color) if hex_color else ColorTier.LIGHT
        return ProductSelection(
            blueprint_id=pt.blueprint_id,
            provider_id=int(entry.get("providerId", pt.provider_id)),
            variant_id=int(entry["printifyVariantId"]),
            color_tier=tier,
        )
