"""Tests for the Printify client: retry policy, polling, temp-product lifecycle."""

import httpx
import pytest

from design_assets import DesignSourceError
from printify import (
    MockupsNotReadyError,
    PrintifyRejectedError,
    PrintifyUnavailableError,
)

from conftest import FakeEndpoints, mockup_src

ALLOWED_URL = "https://storage.googleapis.com/designs/poster.png"


class TestUploadRetry:
    """Transient failures retry with backoff; 4xx never does."""

    @pytest.mark.asyncio
    async def test_retries_server_errors_then_succeeds(self, make_printify):
        endpoints = FakeEndpoints(upload_statuses=[500, 500, 200])
        api = make_printify(endpoints)

        result = await api.upload_image(ALLOWED_URL)

        assert result["id"] == "img_123"
        assert endpoints.uploads == 3

    @pytest.mark.asyncio
    async def test_rejection_is_not_retried(self, make_printify):
        endpoints = FakeEndpoints(upload_statuses=[401])
        api = make_printify(endpoints)

        with pytest.raises(PrintifyRejectedError) as exc:
            await api.upload_image(ALLOWED_URL)

        assert exc.value.status_code == 401
        assert endpoints.uploads == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, make_printify):
        endpoints = FakeEndpoints(upload_statuses=[503])
        api = make_printify(endpoints)

        with pytest.raises(PrintifyUnavailableError, match="after 3 attempts"):
            await api.upload_image(ALLOWED_URL)
        assert endpoints.uploads == 3

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self, make_printify):
        endpoints = FakeEndpoints(upload_statuses=[httpx.ConnectError("reset"), 200])
        api = make_printify(endpoints)

        result = await api.upload_image(ALLOWED_URL)

        assert result["id"] == "img_123"
        assert endpoints.uploads == 2

    @pytest.mark.asyncio
    async def test_backoff_doubles(self, make_printify, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("printify.asyncio.sleep", fake_sleep)
        endpoints = FakeEndpoints(upload_statuses=[500])
        api = make_printify(endpoints)
        api.retry_base_delay = 1.0

        with pytest.raises(PrintifyUnavailableError):
            await api.upload_image(ALLOWED_URL)
        assert delays == [1.0, 2.0]


class TestUploadSources:

    @pytest.mark.asyncio
    async def test_unlisted_host_rejected_without_request(self, make_printify):
        endpoints = FakeEndpoints()
        api = make_printify(endpoints)

        with pytest.raises(DesignSourceError):
            await api.upload_image("http://169.254.169.254/latest/meta-data")
        assert endpoints.requests == []

    @pytest.mark.asyncio
    async def test_remote_url_sent_as_url(self, make_printify):
        endpoints = FakeEndpoints()
        await make_printify(endpoints).upload_image(ALLOWED_URL)
        assert endpoints.bodies[0]["url"] == ALLOWED_URL
        assert "contents" not in endpoints.bodies[0]

    @pytest.mark.asyncio
    async def test_data_url_sent_as_contents(self, make_printify):
        endpoints = FakeEndpoints()
        await make_printify(endpoints).upload_image("data:image/png;base64,aGVsbG8=")
        assert endpoints.bodies[0]["contents"] == "aGVsbG8="

    @pytest.mark.asyncio
    async def test_bytes_sent_base64(self, make_printify):
        endpoints = FakeEndpoints()
        await make_printify(endpoints).upload_image(b"hello", filename="double.png")
        assert endpoints.bodies[0] == {"file_name": "double.png", "contents": "aGVsbG8="}


class TestCreateTemporaryProduct:

    @pytest.mark.asyncio
    async def test_payload(self, make_printify):
        endpoints = FakeEndpoints()
        api = make_printify(endpoints)

        product_id = await api.create_temporary_product(540, 1, 100, "img_123", scale=1.5, x=-1.0, y=0.5)

        assert product_id == "prod_456"
        body = endpoints.bodies[0]
        assert body["title"].startswith("Mockup Preview - ")
        assert body["blueprint_id"] == 540
        assert body["print_provider_id"] == 1
        assert body["variants"] == [{"id": 100, "price": 100, "is_enabled": True}]
        placeholder = body["print_areas"][0]["placeholders"][0]
        assert placeholder["position"] == "front"
        assert placeholder["images"][0] == {
            "id": "img_123", "x": 0.0, "y": 0.75, "scale": 1.5, "angle": 0,
        }
        assert endpoints.requests[0].url.path == "/v1/shops/shop_1/products.json"

    @pytest.mark.asyncio
    async def test_create_rejection(self, make_printify):
        endpoints = FakeEndpoints(create_statuses=[400])
        with pytest.raises(PrintifyRejectedError):
            await make_printify(endpoints).create_temporary_product(540, 1, 100, "img_123")
        assert endpoints.creates == 1


class TestMockupPolling:

    @pytest.mark.asyncio
    async def test_size_chart_excluded(self, make_printify):
        endpoints = FakeEndpoints(product_polls=[[mockup_src("front"), mockup_src("size-chart", 1)]])
        images = await make_printify(endpoints).get_product_mockups("prod_456")
        assert [img.label for img in images] == ["front"]

    @pytest.mark.asyncio
    async def test_no_images_not_ready(self, make_printify):
        endpoints = FakeEndpoints(product_polls=[[]])
        with pytest.raises(MockupsNotReadyError):
            await make_printify(endpoints).get_product_mockups("prod_456")

    @pytest.mark.asyncio
    async def test_only_size_chart_not_ready(self, make_printify):
        endpoints = FakeEndpoints(product_polls=[[mockup_src("size-chart")]])
        with pytest.raises(MockupsNotReadyError):
            await make_printify(endpoints).get_product_mockups("prod_456")

    @pytest.mark.asyncio
    async def test_wait_until_rendered(self, make_printify):
        endpoints = FakeEndpoints(product_polls=[[], [], [mockup_src("front")]])
        images = await make_printify(endpoints).wait_for_mockups("prod_456")
        assert [img.label for img in images] == ["front"]
        assert endpoints.polls == 3

    @pytest.mark.asyncio
    async def test_wait_exhausted(self, make_printify):
        endpoints = FakeEndpoints(product_polls=[[]])
        with pytest.raises(MockupsNotReadyError, match="after 5 attempts"):
            await make_printify(endpoints).wait_for_mockups("prod_456")
        assert endpoints.polls == 5

    def test_poll_delay_band(self, make_printify):
        api = make_printify(FakeEndpoints())
        api.poll_min_delay, api.poll_max_delay = 2.0, 5.0
        assert [api._poll_delay(n) for n in range(1, 5)] == [2.0, 4.0, 5.0, 5.0]


class TestTemporaryProduct:
    """The temp product is deleted exactly once, whatever happens inside."""

    @pytest.mark.asyncio
    async def test_deleted_after_success(self, make_printify):
        endpoints = FakeEndpoints()
        async with make_printify(endpoints).temporary_product(540, 1, 100, "img_123") as product_id:
            assert product_id == "prod_456"
            assert endpoints.deletes == 0
        assert endpoints.deletes == 1

    @pytest.mark.asyncio
    async def test_deleted_after_failure(self, make_printify):
        endpoints = FakeEndpoints()
        with pytest.raises(RuntimeError):
            async with make_printify(endpoints).temporary_product(540, 1, 100, "img_123"):
                raise RuntimeError("poll blew up")
        assert endpoints.deletes == 1

    @pytest.mark.asyncio
    async def test_not_deleted_when_create_fails(self, make_printify):
        endpoints = FakeEndpoints(create_statuses=[422])
        with pytest.raises(PrintifyRejectedError):
            async with make_printify(endpoints).temporary_product(540, 1, 100, "img_123"):
                pass
        assert endpoints.deletes == 0

    @pytest.mark.asyncio
    async def test_delete_failure_is_swallowed(self, make_printify):
        endpoints = FakeEndpoints(delete_status=500)
        async with make_printify(endpoints).temporary_product(540, 1, 100, "img_123"):
            pass
        assert endpoints.deletes == 1


class TestCredentials:

    def test_with_credentials_keeps_settings(self, make_printify):
        api = make_printify(FakeEndpoints(), poll_attempts=2)
        other = api.with_credentials("merchant-token", "shop_9")
        assert other.shop_id == "shop_9"
        assert other.headers["Authorization"] == "Bearer merchant-token"
        assert other.poll_attempts == 2
        assert other.transport is api.transport

    @pytest.mark.asyncio
    async def test_get_shops(self, make_printify):
        shops = await make_printify(FakeEndpoints()).get_shops()
        assert shops == [{"id": 1, "title": "Test shop"}]
