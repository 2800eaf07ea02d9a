"""
Tests for the tenant configuration API.

Covers:
- CRUD with masked API keys
- Input validation (URL, org id, site allow-list)
- Duplicate org ids
- Optional connectivity probe before saving
"""

import pytest

from config import settings
from tests.conftest import API_KEY, API_URL, ORG_ID, SITE_A, SITE_B

OTHER_ORG = "11111111-2222-3333-4444-555555555555"


def tenant_payload(**overrides):
    payload = {"name": "Acme", "api_url": API_URL, "api_key": API_KEY, "org_id": ORG_ID}
    payload.update(overrides)
    return payload


class TestTenantCrud:

    @pytest.mark.asyncio
    async def test_create(self, async_client):
        response = await async_client.post("/api/tenants", json=tenant_payload())
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["name"] == "Acme"
        assert data["org_id"] == ORG_ID
        assert data["enabled"] is True
        assert data["api_key_masked"] == "****" + API_KEY[-4:]
        assert "api_key" not in data

    @pytest.mark.asyncio
    async def test_list_and_get(self, async_client):
        created = (await async_client.post("/api/tenants", json=tenant_payload())).json()["data"]
        await async_client.post(
            "/api/tenants", json=tenant_payload(name="Globex", org_id=OTHER_ORG, enabled=False)
        )

        listing = (await async_client.get("/api/tenants")).json()
        assert listing["total"] == 2
        assert [t["name"] for t in listing["items"]] == ["Acme", "Globex"]
        assert all(API_KEY not in str(t) for t in listing["items"])

        enabled = (await async_client.get("/api/tenants", params={"enabled_only": True})).json()
        assert [t["name"] for t in enabled["items"]] == ["Acme"]

        response = await async_client.get(f"/api/tenants/{created['id']}")
        assert response.status_code == 200
        assert response.json()["org_id"] == ORG_ID

    @pytest.mark.asyncio
    async def test_get_missing(self, async_client):
        response = await async_client.get("/api/tenants/999")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_update(self, async_client):
        created = (await async_client.post("/api/tenants", json=tenant_payload())).json()["data"]
        response = await async_client.put(
            f"/api/tenants/{created['id']}",
            json={"name": "Acme Corp", "site_ids": f"{SITE_A}, {SITE_B.upper()}", "api_key": None},
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["name"] == "Acme Corp"
        assert data["site_ids"] == f"{SITE_A},{SITE_B}"
        assert data["api_key_masked"] == "****" + API_KEY[-4:]

    @pytest.mark.asyncio
    async def test_update_clears_site_ids(self, async_client):
        created = (
            await async_client.post("/api/tenants", json=tenant_payload(site_ids=SITE_A))
        ).json()["data"]
        response = await async_client.put(
            f"/api/tenants/{created['id']}", json={"site_ids": None}
        )
        assert response.json()["data"]["site_ids"] is None

    @pytest.mark.asyncio
    async def test_update_missing(self, async_client):
        response = await async_client.put("/api/tenants/999", json={"name": "x"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_delete(self, async_client):
        created = (await async_client.post("/api/tenants", json=tenant_payload())).json()["data"]
        response = await async_client.delete(f"/api/tenants/{created['id']}")
        assert response.status_code == 200
        assert (await async_client.get(f"/api/tenants/{created['id']}")).status_code == 404


class TestTenantValidation:

    @pytest.mark.asyncio
    async def test_duplicate_org_id(self, async_client):
        await async_client.post("/api/tenants", json=tenant_payload())
        response = await async_client.post("/api/tenants", json=tenant_payload(name="Again"))
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_duplicate_org_id_on_update(self, async_client):
        await async_client.post("/api/tenants", json=tenant_payload())
        other = (
            await async_client.post("/api/tenants", json=tenant_payload(name="Globex", org_id=OTHER_ORG))
        ).json()["data"]
        response = await async_client.put(f"/api/tenants/{other['id']}", json={"org_id": ORG_ID})
        assert response.status_code == 409

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"org_id": "not-a-uuid"},
            {"api_url": "ftp://api.cloud.test"},
            {"api_key": ""},
            {"name": ""},
            {"site_ids": "HQ"},
        ],
    )
    async def test_invalid_input(self, async_client, overrides):
        response = await async_client.post("/api/tenants", json=tenant_payload(**overrides))
        assert response.status_code == 422
        body = response.json()
        assert body["detail"]

    @pytest.mark.asyncio
    async def test_org_id_normalized(self, async_client):
        response = await async_client.post(
            "/api/tenants", json=tenant_payload(org_id=ORG_ID.upper(), api_url=API_URL + "/")
        )
        data = response.json()["data"]
        assert data["org_id"] == ORG_ID
        assert data["api_url"] == API_URL


class TestTenantProbe:

    @pytest.mark.asyncio
    async def test_probe_passes(self, async_client, fake_cloud):
        fake_cloud.add_org()
        response = await async_client.post(
            "/api/tenants", params={"validate": True}, json=tenant_payload()
        )
        assert response.status_code == 201
        assert f"/api/v1/orgs/{ORG_ID}/stats" in fake_cloud.paths_requested()

    @pytest.mark.asyncio
    async def test_probe_rejects_token(self, async_client, fake_cloud):
        fake_cloud.failures[f"/api/v1/orgs/{ORG_ID}/stats"] = 401
        response = await async_client.post(
            "/api/tenants", params={"validate": True}, json=tenant_payload()
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "API token was rejected"
        assert (await async_client.get("/api/tenants")).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_probe_default_from_settings(self, async_client, fake_cloud, monkeypatch):
        monkeypatch.setattr(settings, "VALIDATE_ON_SAVE", True)
        response = await async_client.post("/api/tenants", json=tenant_payload())
        assert response.status_code == 400
        assert response.json()["detail"] == f"Organization {ORG_ID} not found"

    @pytest.mark.asyncio
    async def test_no_probe_by_default(self, async_client, fake_cloud):
        response = await async_client.post("/api/tenants", json=tenant_payload())
        assert response.status_code == 201
        assert fake_cloud.requests == []

    @pytest.mark.asyncio
    async def test_probe_on_update_uses_stored_values(self, async_client, fake_cloud):
        created = (await async_client.post("/api/tenants", json=tenant_payload())).json()["data"]
        fake_cloud.add_org()
        response = await async_client.put(
            f"/api/tenants/{created['id']}", params={"validate": True}, json={"name": "Renamed"}
        )
        assert response.status_code == 200
        request = fake_cloud.requests[-1]
        assert request.headers["Authorization"] == f"Token {API_KEY}"
