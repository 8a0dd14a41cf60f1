"""Mockup cache: deterministic keys, local durable tier, public CDN tier.

A cached mockup lives on local disk as {STORAGE_DIR}/mockups/{key}.jpg with a
.meta.json sidecar, and is replicated to the Supabase bucket for a public URL.
The local file is the source of truth for "is it cached"; the CDN URL is
derived from the key so a lookup never touches the network.
"""

import asyncio
import hashlib
import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import httpx

from config import MOCKUP_CONTENT_TYPE, MOCKUP_FILE_EXT, get_storage_dir
from mockup_views import MockupImage
from supabase_storage import SupabaseStorage, sanitize_filename

logger = logging.getLogger(__name__)

DEFAULT_ACL_POLICY = {"owner": "system", "visibility": "public"}


def build_mockup_cache_key(
    design_ref: str,
    blueprint_id: int,
    provider_id: int,
    variant_id: int,
    label: str,
) -> str:
    """Cache key for one mockup view of one design on one product variant.

    Pure function of its inputs: the same five values always give the same key
    and changing any one of them changes it.
    """
    design_hash = hashlib.sha256(design_ref.encode("utf-8")).hexdigest()[:12]
    return f"{design_hash}_bp{blueprint_id}_pr{provider_id}_v{variant_id}_{label}"


def split_cache_key(key: str) -> Tuple[str, str]:
    """Split a cache key into (design_id, view_name) for CDN object paths.

    design_id keeps the product triple so different products of the same
    design never share a CDN object.
    """
    parts = key.split("_", 4)
    if len(parts) < 5:
        return key, "front"
    return "_".join(parts[:4]), parts[4] or "front"


class LocalMockupStore:
    """Durable tier: flat key -> file mapping plus a JSON metadata sidecar."""

    def __init__(self, base_dir: Optional[Path] = None):
        self._base_dir = Path(base_dir) if base_dir else None

    @property
    def mockups_dir(self) -> Path:
        return (self._base_dir or get_storage_dir()) / "mockups"

    def path_for(self, key: str) -> Path:
        return self.mockups_dir / f"{sanitize_filename(key)}{MOCKUP_FILE_EXT}"

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def save(
        self,
        key: str,
        data: bytes,
        content_type: str = MOCKUP_CONTENT_TYPE,
        acl_policy: Optional[dict] = None,
    ) -> Path:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        meta = {
            "contentType": content_type,
            "customMetadata": {
                "custom:aclPolicy": json.dumps(acl_policy or DEFAULT_ACL_POLICY),
            },
        }
        Path(str(path) + ".meta.json").write_text(json.dumps(meta))
        return path

    def get_metadata(self, key: str) -> dict:
        meta_path = Path(str(self.path_for(key)) + ".meta.json")
        try:
            return json.loads(meta_path.read_text())
        except (OSError, ValueError):
            return {"contentType": MOCKUP_CONTENT_TYPE}

    def get_acl_policy(self, key: str) -> dict:
        raw = self.get_metadata(key).get("customMetadata", {}).get("custom:aclPolicy")
        if raw:
            try:
                return json.loads(raw)
            except ValueError:
                pass
        return dict(DEFAULT_ACL_POLICY)


class MockupCacheStore:
    """Two-tier mockup cache (local disk + Supabase CDN)."""

    def __init__(
        self,
        local: Optional[LocalMockupStore] = None,
        cdn: Optional[SupabaseStorage] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.local = local or LocalMockupStore()
        self.cdn = cdn or SupabaseStorage()
        self.transport = transport

    def lookup(self, key: str) -> Optional[str]:
        """Public URL of a cached mockup, or None on a miss.

        Checks local existence only. Returns None when the CDN is not
        configured so callers never receive a private local path.
        """
        if not self.local.exists(key):
            return None
        design_id, view_name = split_cache_key(key)
        return self.cdn.get_public_url(design_id, view_name)

    async def write(self, key: str, data: bytes) -> Optional[str]:
        """Store mockup bytes locally, then replicate to the CDN.

        Local write errors propagate. CDN errors are logged and swallowed;
        the return value is the CDN URL, or None if it is unavailable.
        """
        self.local.save(key, data)

        design_id, view_name = split_cache_key(key)
        try:
            return await self.cdn.upload_mockup(data, design_id, view_name)
        except Exception as e:
            logger.warning("[Mockup Cache] Supabase upload failed (%s/%s): %s", design_id, view_name, e)
            return None

    async def cache_from_url(self, provider_url: str, key: str) -> Optional[str]:
        """Download a rendered mockup from the provider CDN and cache it."""
        async with httpx.AsyncClient(transport=self.transport, follow_redirects=True) as client:
            response = await client.get(provider_url, timeout=60.0)
        if response.status_code != 200:
            logger.warning(
                "[Mockup Cache] Failed to download mockup (%d): %s",
                response.status_code, provider_url[:80],
            )
            return None
        return await self.write(key, response.content)


async def cache_mockup_images(
    store: MockupCacheStore,
    images: List[MockupImage],
    cache_keys: List[str],
) -> List[MockupImage]:
    """Cache every selected view concurrently, one independent write per view.

    A view whose write fails or yields no public URL keeps its provider URL.
    """
    results = await asyncio.gather(
        *(store.cache_from_url(img.url, key) for img, key in zip(images, cache_keys)),
        return_exceptions=True,
    )

    cached: List[MockupImage] = []
    for original, result in zip(images, results):
        if isinstance(result, BaseException):
            logger.warning(
                "[Mockup Cache] Caching %s failed, falling back to provider URL: %s",
                original.label, result,
            )
            cached.append(original)
        elif result:
            cached.append(MockupImage(url=result, label=original.label))
        else:
            cached.append(original)
    return cached
