"""Supabase Storage client for the public mockup CDN bucket."""

import os
import re
from typing import Optional

import httpx

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_\-]")


def sanitize_filename(name: str) -> str:
    """Restrict provider-assigned names to a path-safe character set."""
    return _UNSAFE_CHARS.sub("_", name)[:120]


class SupabaseStorage:
    """Uploads mockups to a public bucket at designs/{design_id}/{view}.jpg."""

    def __init__(
        self,
        url: Optional[str] = None,
        service_key: Optional[str] = None,
        bucket: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = (url or os.getenv("SUPABASE_URL", "")).rstrip("/")
        self.service_key = service_key or os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
        self.bucket = bucket or os.getenv("SUPABASE_BUCKET", "mockups")
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.service_key)

    @staticmethod
    def storage_path(design_id: str, view_name: str) -> str:
        return f"designs/{sanitize_filename(design_id)}/{sanitize_filename(view_name)}.jpg"

    def get_public_url(self, design_id: str, view_name: str) -> Optional[str]:
        """Public URL for a mockup, derivable without uploading anything.

        Returns None when the bucket is not configured.
        """
        if not self.is_configured:
            return None
        path = self.storage_path(design_id, view_name)
        return f"{self.url}/storage/v1/object/public/{self.bucket}/{path}"

    async def upload_mockup(
        self,
        data: bytes,
        design_id: str,
        view_name: str,
        content_type: str = "image/jpeg",
    ) -> Optional[str]:
        """Upsert mockup bytes and return the public URL (None if unconfigured)."""
        if not self.is_configured:
            return None

        path = self.storage_path(design_id, view_name)
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(
                f"{self.url}/storage/v1/object/{self.bucket}/{path}",
                headers={
                    **self.headers,
                    "Content-Type": content_type,
                    "x-upsert": "true",
                },
                content=data,
                timeout=30.0,
            )
            if response.status_code >= 400:
                raise Exception(
                    f"Supabase upload failed ({response.status_code}): {response.text[:300]}"
                )
        return self.get_public_url(design_id, view_name)
