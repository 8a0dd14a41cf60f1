"""Shared fixtures: fake Printify / CDN endpoints and sample images."""

from __future__ import annotations

import io
import json
from typing import List, Optional, Sequence

import httpx
import pytest
from PIL import Image

from mockup_cache import LocalMockupStore, MockupCacheStore
from printify import PrintifyAPI
from supabase_storage import SupabaseStorage

PRINTIFY_HOST = "api.printify.com"
RENDER_HOST = "images-api.printify.com"
SUPABASE_URL = "https://cdn.supabase.test"


def png_bytes(width: int = 8, height: int = 8, color=(200, 30, 30, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def mockup_src(label: str, n: int = 0) -> str:
    return f"https://{RENDER_HOST}/mockup/{n}/{label}.jpg?camera_label={label}"


class FakeEndpoints:
    """Scripted Printify + Supabase + mockup-render endpoints behind one transport.

    upload_statuses / create_statuses are consumed one per call (the last one
    repeats). product_polls is a list of image-src lists, one per GET.
    """

    def __init__(
        self,
        upload_statuses: Sequence[object] = (200,),
        create_statuses: Sequence[object] = (200,),
        product_polls: Optional[List[List[str]]] = None,
        delete_status: int = 200,
        cdn_status: int = 200,
        render_status: int = 200,
    ):
        self.upload_statuses = list(upload_statuses)
        self.create_statuses = list(create_statuses)
        self.product_polls = list(product_polls or [[mockup_src("front")]])
        self.delete_status = delete_status
        self.cdn_status = cdn_status
        self.render_status = render_status
        self.requests: List[httpx.Request] = []
        self.bodies: List[dict] = []

    @staticmethod
    def _next(seq: list, index: int):
        return seq[min(index, len(seq) - 1)]

    def count(self, method: str, suffix: str) -> int:
        return sum(
            1 for r in self.requests
            if r.method == method and r.url.path.endswith(suffix)
        )

    def printify_count(self) -> int:
        return sum(1 for r in self.requests if r.url.host == PRINTIFY_HOST)

    @property
    def uploads(self) -> int:
        return self.count("POST", "/uploads/images.json")

    @property
    def creates(self) -> int:
        return self.count("POST", "/products.json")

    @property
    def polls(self) -> int:
        return sum(
            1 for r in self.requests
            if r.method == "GET" and "/products/" in r.url.path
        )

    @property
    def deletes(self) -> int:
        return sum(1 for r in self.requests if r.method == "DELETE")

    def _scripted(self, status, payload: dict) -> httpx.Response:
        if isinstance(status, Exception):
            raise status
        if status >= 400:
            return httpx.Response(status, text="scripted failure")
        return httpx.Response(status, json=payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        index_by_kind = {
            "upload": self.uploads,
            "create": self.creates,
            "poll": self.polls,
        }
        self.requests.append(request)
        path = request.url.path

        if request.url.host == PRINTIFY_HOST:
            if request.method == "POST" and path.endswith("/uploads/images.json"):
                self.bodies.append(json.loads(request.content))
                status = self._next(self.upload_statuses, index_by_kind["upload"])
                return self._scripted(status, {"id": "img_123", "width": 1024, "height": 1024})
            if request.method == "POST" and path.endswith("/products.json"):
                self.bodies.append(json.loads(request.content))
                status = self._next(self.create_statuses, index_by_kind["create"])
                return self._scripted(status, {"id": "prod_456"})
            if request.method == "GET" and "/products/" in path:
                srcs = self._next(self.product_polls, index_by_kind["poll"])
                return httpx.Response(200, json={"id": "prod_456", "images": [{"src": s} for s in srcs]})
            if request.method == "DELETE":
                return httpx.Response(self.delete_status, json={})
            if path.endswith("/shops.json"):
                return httpx.Response(200, json=[{"id": 1, "title": "Test shop"}])

        if request.url.host == RENDER_HOST:
            if self.render_status != 200:
                return httpx.Response(self.render_status)
            return httpx.Response(200, content=b"\xff\xd8jpeg-bytes", headers={"content-type": "image/jpeg"})

        if request.url.host == "cdn.supabase.test":
            return httpx.Response(self.cdn_status, json={"Key": path})

        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def storage_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("STORAGE_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def make_printify():
    def _make(endpoints: FakeEndpoints, **kwargs) -> PrintifyAPI:
        return PrintifyAPI(
            api_token=kwargs.pop("api_token", "token"),
            shop_id=kwargs.pop("shop_id", "shop_1"),
            transport=endpoints.transport,
            retry_base_delay=0.0,
            poll_min_delay=0.0,
            poll_max_delay=0.0,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_cache(tmp_path):
    def _make(endpoints: FakeEndpoints, cdn_configured: bool = True) -> MockupCacheStore:
        cdn = SupabaseStorage(
            url=SUPABASE_URL,
            service_key="service-key",
            bucket="mockups",
            transport=endpoints.transport,
        )
        if not cdn_configured:
            # Constructor falls back to env vars for empty values
            cdn.url = ""
            cdn.service_key = ""
        return MockupCacheStore(
            local=LocalMockupStore(tmp_path),
            cdn=cdn,
            transport=endpoints.transport,
        )
    return _make


@pytest.fixture
def allowed_hosts(monkeypatch):
    monkeypatch.setenv("ALLOWED_IMAGE_HOSTS", "designs.example.com")
    return ["designs.example.com"]
