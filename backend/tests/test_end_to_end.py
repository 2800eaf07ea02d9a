"""
End-to-end scenario through the HTTP API.

One tenant with one org and two APs: configure the tenant, run poll cycles,
remove an AP remotely, then bring it back.
"""

import pytest

from tests.conftest import AP1_MAC, AP2_ID, AP2_MAC, API_KEY, API_URL, ORG_ID, SITE_B


async def device_by_hostname(client, hostname):
    response = await client.get("/api/devices", params={"limit": 1000})
    matches = [d for d in response.json()["items"] if d["hostname"] == hostname]
    return matches[0] if matches else None


class TestEndToEnd:

    @pytest.mark.asyncio
    async def test_lifecycle(self, async_client, standard_cloud, metric_sink):
        response = await async_client.post(
            "/api/tenants",
            json={"name": "Acme", "api_url": API_URL, "api_key": API_KEY, "org_id": ORG_ID},
        )
        assert response.status_code == 201

        # First cycle: discovery then polling
        response = await async_client.post("/api/polling/poll")
        assert response.status_code == 200
        cycle = response.json()["data"]
        assert cycle["devices_polled"] == 3
        assert cycle["devices_failed"] == 0
        assert cycle["discovery"][0]["aps_created"] == 2

        devices = (await async_client.get("/api/devices")).json()
        assert devices["total"] == 3
        assert {d["role"] for d in devices["items"]} == {"cloud-org", "cloud-ap"}

        org = await device_by_hostname(async_client, f"cloud-org-{ORG_ID}")
        detail = (await async_client.get(f"/api/devices/{org['id']}")).json()
        assert {ap["mac_address"] for ap in detail["access_points"]} == {AP1_MAC, AP2_MAC}

        ap2 = await device_by_hostname(async_client, "branch-ap-1")
        detail = (await async_client.get(f"/api/devices/{ap2['id']}")).json()
        assert detail["status"] is True
        assert len(detail["ports"]) == 1
        assert len(detail["neighbors"]) == 1
        port_id = detail["ports"][0]["id"]

        # AP2 disappears from the cloud
        standard_cloud.remove_ap(SITE_B, AP2_ID)
        response = await async_client.post("/api/polling/poll")
        cycle = response.json()["data"]
        assert cycle["devices_failed"] == 0
        assert cycle["discovery"][0]["aps_created"] == 0

        # Identity kept, sub-resources inactive
        ap2 = await device_by_hostname(async_client, "branch-ap-1")
        assert ap2 is not None
        assert ap2["status"] is False
        assert ap2["status_reason"] == "stats unavailable"

        detail = (await async_client.get(f"/api/devices/{ap2['id']}")).json()
        assert detail["ports"] == []
        assert detail["sensors"] == []
        assert detail["neighbors"] == []

        history = (
            await async_client.get(f"/api/devices/{ap2['id']}", params={"include_inactive": True})
        ).json()
        assert [p["is_active"] for p in history["ports"]] == [False]

        detail = (await async_client.get(f"/api/devices/{org['id']}")).json()
        assert [ap["mac_address"] for ap in detail["access_points"]] == [AP1_MAC]

        # AP2 comes back and reuses its rows
        standard_cloud.add_ap(SITE_B, AP2_ID, AP2_MAC, name="branch-ap-1", ip="10.0.1.11")
        await async_client.post("/api/polling/poll")

        detail = (await async_client.get(f"/api/devices/{ap2['id']}")).json()
        assert detail["status"] is True
        assert [p["id"] for p in detail["ports"]] == [port_id]

        stats = (await async_client.get("/api/polling/stats")).json()["counts"]
        assert stats["devices"]["cloud-ap"] == {"total": 2, "up": 2}
        assert stats["sub_resources"]["access_points"] == {"total": 2, "active": 2}
        assert stats["tenants"] == {"total": 1, "enabled": 1}
