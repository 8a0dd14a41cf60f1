"""Printify API integration for mockup rendering via temporary products"""

import asyncio
import base64
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Union

import httpx

from config import (
    EXCLUDED_LABELS,
    MOCKUP_POLL_ATTEMPTS,
    MOCKUP_POLL_MAX_DELAY,
    MOCKUP_POLL_MIN_DELAY,
    PRINTIFY_API_BASE,
    PRINTIFY_MAX_RETRIES,
    PRINTIFY_RETRY_BASE_DELAY,
    TEMP_PRODUCT_PRICE,
)
from design_assets import DesignSourceError, is_allowed_image_url, is_data_url, parse_data_url
from mockup_views import MockupImage, extract_camera_label

logger = logging.getLogger(__name__)


class PrintifyError(Exception):
    """Base class for Printify failures."""


class PrintifyRejectedError(PrintifyError):
    """4xx from Printify. Permanent, never retried."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Printify rejected request ({status_code}): {message[:200]}")


class PrintifyUnavailableError(PrintifyError):
    """5xx or network errors that outlasted every retry."""


class MockupsNotReadyError(PrintifyError):
    """Product has no rendered mockup images yet."""


class PrintifyAPI:
    """Printify API client for mockup generation"""

    BASE_URL = PRINTIFY_API_BASE

    def __init__(
        self,
        api_token: Optional[str] = None,
        shop_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: int = PRINTIFY_MAX_RETRIES,
        retry_base_delay: float = PRINTIFY_RETRY_BASE_DELAY,
        poll_attempts: int = MOCKUP_POLL_ATTEMPTS,
        poll_min_delay: float = MOCKUP_POLL_MIN_DELAY,
        poll_max_delay: float = MOCKUP_POLL_MAX_DELAY,
    ):
        self.api_token = api_token or os.getenv("PRINTIFY_API_TOKEN", "")
        self.shop_id = shop_id or os.getenv("PRINTIFY_SHOP_ID", "")
        self.transport = transport
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.poll_attempts = poll_attempts
        self.poll_min_delay = poll_min_delay
        self.poll_max_delay = poll_max_delay
        self.headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    @property
    def is_configured(self) -> bool:
        return bool(self.api_token and self.shop_id)

    def with_credentials(self, api_token: str, shop_id: str) -> "PrintifyAPI":
        """Same client settings, different merchant credentials."""
        return PrintifyAPI(
            api_token=api_token,
            shop_id=shop_id,
            transport=self.transport,
            max_retries=self.max_retries,
            retry_base_delay=self.retry_base_delay,
            poll_attempts=self.poll_attempts,
            poll_min_delay=self.poll_min_delay,
            poll_max_delay=self.poll_max_delay,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)

    async def _post_with_retry(self, path: str, payload: dict, what: str, timeout: float = 60.0) -> dict:
        """POST with bounded exponential backoff.

        4xx raises PrintifyRejectedError immediately. 5xx and network errors
        retry up to max_retries attempts, then raise PrintifyUnavailableError.
        """
        last_error = "no attempts made"
        async with self._client() as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    response = await client.post(
                        f"{self.BASE_URL}{path}",
                        headers=self.headers,
                        json=payload,
                        timeout=timeout,
                    )
                    if response.status_code < 400:
                        data = response.json()
                        logger.info("[Printify] %s succeeded on attempt %d", what, attempt)
                        return data
                    error_text = response.text[:500]
                    logger.error(
                        "[Printify] %s attempt %d/%d failed (%d): %s",
                        what, attempt, self.max_retries, response.status_code, error_text,
                    )
                    if response.status_code < 500:
                        raise PrintifyRejectedError(response.status_code, error_text)
                    last_error = f"server error ({response.status_code})"
                except (httpx.HTTPError, ValueError) as e:
                    logger.error(
                        "[Printify] %s attempt %d/%d exception: %s",
                        what, attempt, self.max_retries, e,
                    )
                    last_error = f"{type(e).__name__}: {e}"

                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_base_delay * 2 ** (attempt - 1))

        raise PrintifyUnavailableError(
            f"{what} failed after {self.max_retries} attempts: {last_error}"
        )

    async def get_shops(self) -> List[dict]:
        """Get list of shops."""
        async with self._client() as client:
            response = await client.get(
                f"{self.BASE_URL}/shops.json",
                headers=self.headers,
                timeout=30.0,
            )
            response.raise_for_status()
            return response.json()

    async def upload_image(
        self,
        image: Union[str, bytes],
        filename: Optional[str] = None,
    ) -> dict:
        """Upload a design to the Printify media library.

        image may be raw bytes (e.g. a pre-composited double-sided design),
        an image data URL, or a remote URL from an allow-listed host.
        Returns Printify's image record ({"id", "width", "height", ...}).
        """
        filename = filename or f"design-{int(time.time() * 1000)}.png"

        if isinstance(image, (bytes, bytearray)):
            b64 = base64.b64encode(bytes(image)).decode("utf-8")
            method = f"buffer ({len(b64)} chars base64)"
            payload = {"file_name": filename, "contents": b64}
        elif is_data_url(image):
            _, b64 = parse_data_url(image)
            method = f"data-url ({len(b64)} chars base64)"
            payload = {"file_name": filename, "contents": b64}
        else:
            if not is_allowed_image_url(image):
                raise DesignSourceError("Image URL not from allowed source")
            method = f"url: {image[:100]}"
            payload = {"file_name": filename, "url": image}

        logger.info("[Printify Upload] Uploading via %s", method)
        result = await self._post_with_retry("/uploads/images.json", payload, "Upload", timeout=180.0)
        logger.info(
            "[Printify Upload] id=%s, %sx%s",
            result.get("id"), result.get("width"), result.get("height"),
        )
        return result

    async def create_temporary_product(
        self,
        blueprint_id: int,
        provider_id: int,
        variant_id: int,
        image_id: str,
        scale: float = 1.0,
        x: float = 0.0,
        y: float = 0.0,
    ) -> str:
        """Create a throwaway product whose only purpose is rendering mockups.

        x/y are in -1..1 (0 = center) and are remapped to Printify's 0..1
        placeholder space. Only the "front" placeholder is populated.
        """
        printify_x = 0.5 + x * 0.5
        printify_y = 0.5 + y * 0.5

        payload = {
            "title": f"Mockup Preview - {int(time.time() * 1000)}",
            "description": "Temporary product for mockup generation",
            "blueprint_id": blueprint_id,
            "print_provider_id": provider_id,
            "variants": [{"id": variant_id, "price": TEMP_PRODUCT_PRICE, "is_enabled": True}],
            "print_areas": [
                {
                    "variant_ids": [variant_id],
                    "placeholders": [
                        {
                            "position": "front",
                            "images": [
                                {
                                    "id": image_id,
                                    "x": printify_x,
                                    "y": printify_y,
                                    "scale": scale,
                                    "angle": 0,
                                }
                            ],
                        }
                    ],
                }
            ],
        }

        logger.info(
            "[Printify] Creating temp product: shop=%s blueprint=%s provider=%s variant=%s image=%s scale=%s x=%.3f y=%.3f",
            self.shop_id, blueprint_id, provider_id, variant_id, image_id, scale, printify_x, printify_y,
        )
        data = await self._post_with_retry(
            f"/shops/{self.shop_id}/products.json", payload, "Create temp product",
        )
        product_id = str(data["id"])
        logger.info("[Printify] Temp product created: %s", product_id)
        return product_id

    async def get_product(self, product_id: str) -> dict:
        """Get product details."""
        async with self._client() as client:
            response = await client.get(
                f"{self.BASE_URL}/shops/{self.shop_id}/products/{product_id}.json",
                headers=self.headers,
                timeout=30.0,
            )
            response.raise_for_status()
            return response.json()

    async def get_product_mockups(self, product_id: str) -> List[MockupImage]:
        """Fetch the product once and return its rendered mockup views.

        Raises MockupsNotReadyError when the product can't be read or has no
        labelled images yet (size charts don't count).
        """
        try:
            product = await self.get_product(product_id)
        except httpx.HTTPStatusError as e:
            raise MockupsNotReadyError(f"Product fetch failed ({e.response.status_code})") from e

        images: List[MockupImage] = []
        for image in product.get("images") or []:
            src = image.get("src")
            if not src:
                continue
            label = extract_camera_label(src)
            if label in EXCLUDED_LABELS:
                continue
            images.append(MockupImage(url=src, label=label))

        if not images:
            raise MockupsNotReadyError("Mockups not ready yet")
        return images

    def _poll_delay(self, attempt: int) -> float:
        return min(self.poll_max_delay, max(self.poll_min_delay, self.poll_min_delay * 2 ** (attempt - 1)))

    async def wait_for_mockups(self, product_id: str) -> List[MockupImage]:
        """Poll until mockups are rendered or poll_attempts run out."""
        last_error: Exception = MockupsNotReadyError("Mockups not ready yet")
        for attempt in range(1, self.poll_attempts + 1):
            try:
                return await self.get_product_mockups(product_id)
            except (MockupsNotReadyError, httpx.HTTPError) as e:
                last_error = e
                logger.info(
                    "Mockup poll attempt %d failed. %d retries left.",
                    attempt, self.poll_attempts - attempt,
                )
            if attempt < self.poll_attempts:
                await asyncio.sleep(self._poll_delay(attempt))

        raise MockupsNotReadyError(
            f"Mockups not ready after {self.poll_attempts} attempts: {last_error}"
        )

    async def delete_product(self, product_id: str) -> bool:
        """Delete a product from Printify."""
        async with self._client() as client:
            response = await client.delete(
                f"{self.BASE_URL}/shops/{self.shop_id}/products/{product_id}.json",
                headers=self.headers,
                timeout=30.0,
            )
            response.raise_for_status()
            return True

    async def delete_product_quietly(self, product_id: str) -> None:
        """Best-effort delete. Logs and swallows every failure."""
        try:
            await self.delete_product(product_id)
            logger.info("[Printify] Temp product %s deleted", product_id)
        except Exception as e:
            logger.error("Error deleting temporary product %s: %s", product_id, e)

    @asynccontextmanager
    async def temporary_product(
        self,
        blueprint_id: int,
        provider_id: int,
        variant_id: int,
        image_id: str,
        scale: float = 1.0,
        x: float = 0.0,
        y: float = 0.0,
    ) -> AsyncIterator[str]:
        """Create a temp product and delete it exactly once on exit.

        Nothing is deleted if creation itself fails. The delete is shielded
        so an abandoned caller still tears the product down.
        """
        product_id = await self.create_temporary_product(
            blueprint_id, provider_id, variant_id, image_id, scale=scale, x=x, y=y,
        )
        try:
            yield product_id
        finally:
            await asyncio.shield(self.delete_product_quietly(product_id))
