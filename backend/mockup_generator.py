"""End-to-end Printify mockup generation with cache-first lookup.

Flow on a cache miss:
    upload design -> create temp product -> poll rendered mockups
    -> pick preferred views -> cache them -> delete temp product (always)

Every failure comes back as a MockupResult tagged with the stage that failed;
nothing raises out of MockupGenerator.generate.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from config import LOCAL_MOCKUP_TEMPLATES, MAX_MOCKUP_VIEWS, PREFERRED_LABELS
from design_assets import load_design_asset
from imaging import duplicate_side_by_side
from mockup_cache import MockupCacheStore, build_mockup_cache_key, cache_mockup_images
from mockup_views import MockupImage, select_preferred_views
from printify import PrintifyAPI

logger = logging.getLogger(__name__)


class MockupStep(str, Enum):
    PRINTIFY_UPLOAD = "printify_upload"
    TEMP_PRODUCT = "temp_product"
    MOCKUP_FETCH = "mockup_fetch"
    IMAGE_DUPLICATE = "image_duplicate"


_STEP_MESSAGES = {
    MockupStep.PRINTIFY_UPLOAD: "Failed to upload image to Printify",
    MockupStep.TEMP_PRODUCT: "Failed to create temporary product",
    MockupStep.MOCKUP_FETCH: "Failed to fetch mockups",
    MockupStep.IMAGE_DUPLICATE: "Failed to duplicate image for double-sided product",
}


@dataclass
class MockupRequest:
    blueprint_id: int
    provider_id: int
    variant_id: int
    image_url: str
    api_token: str
    shop_id: str
    scale: float = 1.0  # 0..2
    x: float = 0.0  # -1..1, 0 = center
    y: float = 0.0  # -1..1, 0 = center
    double_sided: bool = False

    def cache_key(self, label: str) -> str:
        return build_mockup_cache_key(
            self.image_url, self.blueprint_id, self.provider_id, self.variant_id, label,
        )


@dataclass
class MockupResult:
    success: bool
    images: List[MockupImage] = field(default_factory=list)
    source: str = "fallback"  # "printify" | "fallback"
    error: Optional[str] = None
    step: Optional[MockupStep] = None

    @property
    def urls(self) -> List[str]:
        return [img.url for img in self.images]

    @classmethod
    def failed(cls, error: str, step: Optional[MockupStep] = None) -> "MockupResult":
        return cls(success=False, source="fallback", error=error, step=step)

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "mockupUrls": self.urls,
            "mockupImages": [img.to_dict() for img in self.images],
            "source": self.source,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.step is not None:
            data["step"] = self.step.value
        return data


class InflightRequests:
    """One in-flight generation per key; concurrent callers share its result."""

    def __init__(self):
        self._pending: Dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._pending)

    async def run(self, key: str, factory: Callable[[], Awaitable[MockupResult]]) -> MockupResult:
        existing = self._pending.get(key)
        if existing is not None:
            logger.info("[Mockup] Joining in-flight generation for %s", key)
            return await asyncio.shield(existing)

        future = asyncio.get_running_loop().create_future()
        self._pending[key] = future
        try:
            result = await factory()
            future.set_result(result)
            return result
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Mark retrieved so an unjoined future doesn't log a warning
            future.exception()
            raise
        finally:
            self._pending.pop(key, None)


class MockupGenerator:
    """Produces Printify-rendered mockups for a design on a product variant."""

    def __init__(
        self,
        printify: PrintifyAPI,
        cache: MockupCacheStore,
        inflight: Optional[InflightRequests] = None,
    ):
        self.printify = printify
        self.cache = cache
        self.inflight = inflight

    def lookup_cached(self, request: MockupRequest) -> Optional[List[MockupImage]]:
        """All preferred views from cache, or None unless every one is cached."""
        labels = PREFERRED_LABELS[:MAX_MOCKUP_VIEWS]
        images = []
        for label in labels:
            url = self.cache.lookup(request.cache_key(label))
            if url is None:
                return None
            images.append(MockupImage(url=url, label=label))
        return images

    async def generate(self, request: MockupRequest) -> MockupResult:
        if not request.api_token or not request.shop_id:
            return MockupResult.failed("Printify credentials not configured")

        cached = self.lookup_cached(request)
        if cached is not None:
            logger.info("[Mockup Cache] Full cache hit for %d views, skipping Printify", len(cached))
            return MockupResult(success=True, images=cached, source="printify")

        if self.inflight is not None:
            key = request.cache_key(PREFERRED_LABELS[0])
            return await self.inflight.run(key, lambda: self._generate_uncached(request))
        return await self._generate_uncached(request)

    async def _prepare_upload(self, request: MockupRequest):
        if not request.double_sided:
            return request.image_url
        logger.info("Duplicating image side-by-side for double-sided product...")
        asset = await load_design_asset(request.image_url)
        return await asyncio.to_thread(duplicate_side_by_side, asset.data)

    async def _generate_uncached(self, request: MockupRequest) -> MockupResult:
        printify = self.printify.with_credentials(request.api_token, request.shop_id)
        step = MockupStep.IMAGE_DUPLICATE

        try:
            upload_source = await self._prepare_upload(request)

            step = MockupStep.PRINTIFY_UPLOAD
            uploaded = await printify.upload_image(upload_source)

            step = MockupStep.TEMP_PRODUCT
            async with printify.temporary_product(
                request.blueprint_id,
                request.provider_id,
                request.variant_id,
                str(uploaded["id"]),
                scale=request.scale,
                x=request.x,
                y=request.y,
            ) as product_id:
                step = MockupStep.MOCKUP_FETCH
                images = await printify.wait_for_mockups(product_id)

                selected = select_preferred_views(images)
                logger.info(
                    "[Mockup Cache] Selected %d views: %s",
                    len(selected), ", ".join(img.label for img in selected),
                )
                cache_keys = [request.cache_key(img.label) for img in selected]
                cached = await cache_mockup_images(self.cache, selected, cache_keys)

            return MockupResult(success=True, images=cached, source="printify")
        except Exception as e:
            logger.error("Printify mockup generation failed at %s: %s", step.value, e)
            return MockupResult.failed(f"{_STEP_MESSAGES[step]}: {e}", step=step)


def get_local_mockup_template(designer_type: str) -> Optional[str]:
    return LOCAL_MOCKUP_TEMPLATES.get(designer_type)
