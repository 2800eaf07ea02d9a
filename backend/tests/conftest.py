"""
Pytest configuration and fixtures for Stratus tests.

Provides:
- Async SQLite database per test (file in tmp_path, so concurrent sessions
  behave like they do against the real database)
- A fake cloud API served through httpx.MockTransport
- FastAPI app with dependency overrides
- AsyncClient for testing async endpoints
"""

from typing import Any, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from database import Base, get_db, get_session_factory
from dependencies import get_client_factory, get_metric_sink, get_validation_transport
from main import app
from models import TenantConfig
from services.cloud_api import CloudApiClient
from services.credentials import Credentials
from services.metrics import MemoryMetricSink

API_URL = "https://api.cloud.test"
API_KEY = "tok-0123456789abcdef"
ORG_ID = "6748cfa6-4e12-11e6-9188-0242ac110007"
SITE_A = "978c48e6-6ef6-11e6-8bbf-02e208b2d34f"
SITE_B = "a8178443-a8f6-4e1b-a1c7-8a5a41d1a6b2"
AP1_ID = "00000000-0000-0000-1000-5c5b350e0001"
AP1_MAC = "5c5b350e0001"
AP2_ID = "00000000-0000-0000-1000-5c5b350e0002"
AP2_MAC = "5c5b350e0002"


class FakeCloudApi:
    """
    In-memory stand-in for the cloud REST API.

    ``routes`` maps a URL path to a JSON payload; ``failures`` maps a path to
    an HTTP status (or an exception instance to raise).  Unknown paths answer
    404, which is also what the bare base URL answers on the real API.
    """

    def __init__(self):
        self.routes: Dict[str, Any] = {}
        self.failures: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        failure = self.failures.get(path)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return httpx.Response(failure, json={"detail": "failure"})
        if path in self.routes:
            return httpx.Response(200, json=self.routes[path])
        return httpx.Response(404, json={"detail": "not found"})

    def client_factory(self, credentials: Credentials) -> CloudApiClient:
        return CloudApiClient.from_credentials(credentials, transport=self.transport)

    def paths_requested(self) -> List[str]:
        return [r.url.path for r in self.requests]

    # ── Payload builders ───────────────────────────────────────────────

    def add_org(self, org_id: str = ORG_ID, sites: Optional[List[Dict[str, Any]]] = None):
        self.routes[f"/api/v1/orgs/{org_id}/sites"] = sites or []
        self.routes[f"/api/v1/orgs/{org_id}/devices/summary"] = {
            "num_aps": 2,
            "num_unassigned_aps": 0,
            "num_switches": 0,
            "num_gateways": 0,
        }
        self.routes[f"/api/v1/orgs/{org_id}/stats"] = {
            "num_sites": len(sites or []),
            "num_devices": 2,
            "num_devices_connected": 2,
            "num_devices_disconnected": 0,
            "sle": [
                {"path": "coverage", "user_minutes": {"total": 200, "ok": 150}},
                {"path": "throughput", "user_minutes": {"total": 0, "ok": 0}},
            ],
        }

    def add_ap(
        self,
        site_id: str,
        ap_id: str,
        mac: str,
        name: Optional[str] = None,
        ip: str = "10.0.0.10",
    ):
        """Register one AP in a site's device list, stats list and per-device endpoints."""
        entry = {"id": ap_id, "mac": mac, "type": "ap", "serial": f"A0{mac[-4:]}", "ip": ip}
        if name is not None:
            entry["name"] = name
        self.routes.setdefault(f"/api/v1/sites/{site_id}/devices", []).append(entry)

        stats = ap_stats_payload(mac=mac, name=name, ip=ip)
        self.routes.setdefault(f"/api/v1/sites/{site_id}/stats/devices", []).append(
            dict(stats, id=ap_id, type="ap")
        )
        self.routes[f"/api/v1/sites/{site_id}/devices/{ap_id}"] = ap_detail_payload(mac, name)
        self.routes[f"/api/v1/sites/{site_id}/stats/devices/{ap_id}"] = stats

    def remove_ap(self, site_id: str, ap_id: str):
        """Make an AP vanish from inventory and become unreachable."""
        for path in (
            f"/api/v1/sites/{site_id}/devices",
            f"/api/v1/sites/{site_id}/stats/devices",
        ):
            self.routes[path] = [d for d in self.routes.get(path, []) if d.get("id") != ap_id]
        self.routes.pop(f"/api/v1/sites/{site_id}/devices/{ap_id}", None)
        self.routes.pop(f"/api/v1/sites/{site_id}/stats/devices/{ap_id}", None)


def ap_detail_payload(mac: str, name: Optional[str] = None) -> Dict[str, Any]:
    detail = {
        "mac": mac,
        "model": "AP43",
        "serial": f"A0{mac[-4:]}",
        "type": "ap",
        "ethernet_interfaces": [
            {"name": "eth0", "index": 0, "up": True, "speed": 1000, "full_duplex": True},
        ],
    }
    if name is not None:
        detail["name"] = name
    return detail


def ap_stats_payload(
    mac: str = AP1_MAC,
    name: Optional[str] = None,
    ip: str = "10.0.0.10",
) -> Dict[str, Any]:
    stats = {
        "mac": mac,
        "model": "AP43",
        "status": "connected",
        "version": "0.12.27139",
        "uptime": 86400,
        "ip": ip,
        "num_clients": 12,
        "cpu_util": 7,
        "mem_total_kb": 1024000,
        "mem_used_kb": 256000,
        "env_stat": {"cpu_temp": 61, "ambient_temp": 33, "humidity": 20, "pressure": None},
        "radio_stat": {
            "band_24": {
                "num_clients": 4,
                "channel": 6,
                "power": 12,
                "noise_floor": -92,
                "util_all": 35,
                "util_tx": 10,
                "tx_bytes": 1000,
                "rx_bytes": 2000,
            },
            "band_5": {
                "num_clients": 8,
                "channel": 36,
                "power": 17,
                "noise_floor": -97,
                "util_all": 12,
                "util_non_wifi": 1,
            },
        },
        "port_stat": {
            "eth0": {
                "up": True,
                "speed": 1000,
                "full_duplex": True,
                "rx_bytes": 5000,
                "tx_bytes": 7000,
                "rx_pkts": 50,
                "tx_pkts": 70,
                "rx_errors": 0,
                "tx_errors": 0,
            },
        },
        "lldp_stat": {
            "system_name": "core-sw-1",
            "port_id": "ge-0/0/1",
            "port_desc": "uplink to ap",
            "chassis_id": "aa:bb:cc:dd:ee:ff",
            "mgmt_addr": "10.0.0.1",
            "system_desc": "Juniper EX4300",
        },
    }
    if name is not None:
        stats["name"] = name
    return stats


@pytest.fixture
def fake_cloud() -> FakeCloudApi:
    return FakeCloudApi()


@pytest.fixture
def standard_cloud(fake_cloud: FakeCloudApi) -> FakeCloudApi:
    """One org, two sites, one AP in each."""
    fake_cloud.add_org(
        sites=[
            {"id": SITE_A, "name": "HQ"},
            {"id": SITE_B, "name": "Branch"},
        ]
    )
    fake_cloud.add_ap(SITE_A, AP1_ID, AP1_MAC, name="hq-ap-1", ip="10.0.0.11")
    fake_cloud.add_ap(SITE_B, AP2_ID, AP2_MAC, name="branch-ap-1", ip="10.0.1.11")
    return fake_cloud


@pytest.fixture
def metric_sink() -> MemoryMetricSink:
    return MemoryMetricSink()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Fresh database per test; yields the session factory."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'stratus-test.db'}",
        echo=False,
        future=True,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        future=True,
    )
    yield factory
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def tenant(db_session) -> TenantConfig:
    tenant = TenantConfig(
        name="Acme",
        api_url=API_URL,
        api_key=API_KEY,
        org_id=ORG_ID,
        enabled=True,
    )
    db_session.add(tenant)
    await db_session.commit()
    await db_session.refresh(tenant)
    return tenant


@pytest_asyncio.fixture
async def async_client(session_factory, fake_cloud, metric_sink):
    """
    Create an AsyncClient pointing to the FastAPI app with a per-test
    database, the fake cloud API and an in-memory metric sink.

    Yields:
        httpx.AsyncClient: Async HTTP client for making requests to the app.
    """

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_client_factory] = lambda: fake_cloud.client_factory
    app.dependency_overrides[get_metric_sink] = lambda: metric_sink
    app.dependency_overrides[get_validation_transport] = lambda: fake_cloud.transport

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
