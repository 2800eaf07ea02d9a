"""
Tests for the cloud API client and the tenant validation probe.

Covers:
- Auth and accept headers
- Failure mapping to RemoteFetchFailure (status, timeout, transport, bad JSON)
- Site paging query
- validate_connection outcomes
"""

import httpx
import pytest

from services.cloud_api import CloudApiClient, validate_connection
from services.errors import RemoteFetchFailure, ValidationFailure
from tests.conftest import API_KEY, API_URL, ORG_ID, FakeCloudApi


def make_client(fake: FakeCloudApi) -> CloudApiClient:
    return CloudApiClient(API_URL, API_KEY, transport=fake.transport)


class TestCloudApiClient:

    @pytest.mark.asyncio
    async def test_get_returns_json_and_sends_token(self, fake_cloud):
        fake_cloud.routes[f"/api/v1/orgs/{ORG_ID}/stats"] = {"num_sites": 3}
        async with make_client(fake_cloud) as client:
            data = await client.get_org_stats(ORG_ID)
        assert data == {"num_sites": 3}
        request = fake_cloud.requests[0]
        assert request.headers["Authorization"] == f"Token {API_KEY}"
        assert request.headers["Accept"] == "application/json"

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self, fake_cloud):
        fake_cloud.failures[f"/api/v1/orgs/{ORG_ID}/stats"] = 503
        async with make_client(fake_cloud) as client:
            with pytest.raises(RemoteFetchFailure) as exc:
                await client.get_org_stats(ORG_ID)
        assert exc.value.status_code == 503
        assert exc.value.path == f"/api/v1/orgs/{ORG_ID}/stats"

    @pytest.mark.asyncio
    async def test_timeout_raises(self, fake_cloud):
        fake_cloud.failures["/api/v1/sites/s1/devices"] = httpx.ReadTimeout("slow")
        async with make_client(fake_cloud) as client:
            with pytest.raises(RemoteFetchFailure) as exc:
                await client.get_site_devices("s1")
        assert "timed out" in str(exc.value)
        assert exc.value.status_code is None

    @pytest.mark.asyncio
    async def test_transport_error_raises(self, fake_cloud):
        fake_cloud.failures["/api/v1/sites/s1/devices"] = httpx.ConnectError("refused")
        async with make_client(fake_cloud) as client:
            with pytest.raises(RemoteFetchFailure):
                await client.get_site_devices("s1")

    @pytest.mark.asyncio
    async def test_malformed_json_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))
        async with CloudApiClient(API_URL, API_KEY, transport=transport) as client:
            with pytest.raises(RemoteFetchFailure) as exc:
                await client.get("/api/v1/self")
        assert "malformed JSON" in str(exc.value)

    @pytest.mark.asyncio
    async def test_sites_request_pages(self, fake_cloud):
        fake_cloud.routes[f"/api/v1/orgs/{ORG_ID}/sites"] = []
        async with make_client(fake_cloud) as client:
            await client.get_sites(ORG_ID)
        params = fake_cloud.requests[0].url.params
        assert params["limit"] == "1000"
        assert params["page"] == "1"

    @pytest.mark.asyncio
    async def test_device_endpoints(self, fake_cloud):
        fake_cloud.routes["/api/v1/sites/s1/devices/d1"] = {"id": "d1"}
        fake_cloud.routes["/api/v1/sites/s1/stats/devices/d1"] = {"status": "connected"}
        async with make_client(fake_cloud) as client:
            assert await client.get_device("s1", "d1") == {"id": "d1"}
            assert await client.get_device_stats("s1", "d1") == {"status": "connected"}

    def test_base_url_trailing_slash(self):
        client = CloudApiClient(API_URL + "/", API_KEY)
        assert client.base_url == API_URL


class TestValidateConnection:

    @pytest.mark.asyncio
    async def test_valid(self, fake_cloud):
        fake_cloud.routes[f"/api/v1/orgs/{ORG_ID}/stats"] = {"num_sites": 1}
        await validate_connection(API_URL, API_KEY, ORG_ID, transport=fake_cloud.transport)

    @pytest.mark.asyncio
    async def test_root_must_answer_404(self, fake_cloud):
        fake_cloud.routes["/"] = {"hello": "world"}
        with pytest.raises(ValidationFailure) as exc:
            await validate_connection(API_URL, API_KEY, ORG_ID, transport=fake_cloud.transport)
        assert "check the API URL" in exc.value.reason

    @pytest.mark.asyncio
    async def test_rejected_token(self, fake_cloud):
        fake_cloud.failures[f"/api/v1/orgs/{ORG_ID}/stats"] = 401
        with pytest.raises(ValidationFailure) as exc:
            await validate_connection(API_URL, API_KEY, ORG_ID, transport=fake_cloud.transport)
        assert exc.value.reason == "API token was rejected"

    @pytest.mark.asyncio
    async def test_unknown_org(self, fake_cloud):
        with pytest.raises(ValidationFailure) as exc:
            await validate_connection(API_URL, API_KEY, ORG_ID, transport=fake_cloud.transport)
        assert exc.value.reason == f"Organization {ORG_ID} not found"

    @pytest.mark.asyncio
    async def test_unreachable(self, fake_cloud):
        fake_cloud.failures["/"] = httpx.ConnectError("no route to host")
        with pytest.raises(ValidationFailure) as exc:
            await validate_connection(API_URL, API_KEY, ORG_ID, transport=fake_cloud.transport)
        assert "unreachable" in exc.value.reason
