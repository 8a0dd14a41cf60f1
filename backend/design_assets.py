"""Design image loading: data URLs, allow-listed remote URLs, raw bytes."""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx
from PIL import Image

from config import get_allowed_image_hosts

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(image/[^;]+);base64,(.+)$", re.DOTALL)

MAX_REDIRECTS = 3


class DesignSourceError(Exception):
    """Design image could not be read from the given reference."""


@dataclass(frozen=True)
class DesignAsset:
    data: bytes
    content_type: str
    width: int
    height: int
    ref: str


def is_data_url(ref: str) -> bool:
    return ref.startswith("data:")


def parse_data_url(ref: str) -> tuple:
    """Split an image data URL into (content_type, base64_payload).

    Raises DesignSourceError if the URL is not a base64 image data URL.
    """
    match = _DATA_URL_RE.match(ref)
    if not match:
        raise DesignSourceError("Could not extract base64 from data URL")
    return match.group(1), match.group(2)


def is_allowed_image_url(url: str) -> bool:
    """Only fetch designs from hosts we serve them from (SSRF guard)."""
    if is_data_url(url):
        return True
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    hostname = parsed.hostname.lower()
    for host in get_allowed_image_hosts():
        host = host.lower()
        if hostname == host or hostname.endswith("." + host):
            return True
    return False


def _describe(data: bytes, content_type: str, ref: str) -> DesignAsset:
    try:
        img = Image.open(io.BytesIO(data))
        width, height = img.size
    except Exception as e:
        raise DesignSourceError(f"Not a readable image: {e}") from e
    return DesignAsset(data=data, content_type=content_type, width=width, height=height, ref=ref)


async def _fetch_allowed(client: httpx.AsyncClient, url: str) -> httpx.Response:
    """GET url, following redirects by hand so every hop passes the allow-list."""
    for _ in range(MAX_REDIRECTS + 1):
        if is_data_url(url) or not is_allowed_image_url(url):
            raise DesignSourceError("Image URL not from allowed source")
        response = await client.get(url, timeout=60.0, follow_redirects=False)
        if not response.is_redirect:
            return response
        location = response.headers.get("location", "")
        logger.info("Design fetch redirected (%d) to %s", response.status_code, location[:100])
        try:
            url = str(response.url.join(location))
        except (httpx.InvalidURL, ValueError) as e:
            raise DesignSourceError(f"Invalid redirect location: {e}") from e
    raise DesignSourceError(f"Too many redirects fetching image (> {MAX_REDIRECTS})")


async def load_design_asset(
    ref: str,
    client: Optional[httpx.AsyncClient] = None,
) -> DesignAsset:
    """Resolve a design reference into image bytes.

    Data URLs are decoded in place. Remote URLs must pass the host allow-list
    before any request is made, and again on every redirect hop.
    """
    if is_data_url(ref):
        content_type, payload = parse_data_url(ref)
        try:
            data = base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise DesignSourceError(f"Invalid base64 in data URL: {e}") from e
        return _describe(data, content_type, ref)

    if not is_allowed_image_url(ref):
        raise DesignSourceError("Image URL not from allowed source")

    try:
        if client is not None:
            response = await _fetch_allowed(client, ref)
        else:
            async with httpx.AsyncClient(follow_redirects=False) as c:
                response = await _fetch_allowed(c, ref)
    except httpx.HTTPError as e:
        raise DesignSourceError(f"Failed to fetch image: {e}") from e

    if response.status_code != 200:
        raise DesignSourceError(f"Failed to fetch image: {response.status_code}")

    content_type = response.headers.get("content-type", "image/png").split(";")[0]
    return _describe(response.content, content_type, ref)
