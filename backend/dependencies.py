"""
FastAPI dependencies for the cloud integration.

Tests override these the same way they override ``get_db``::

    app.dependency_overrides[get_client_factory] = lambda: fake_factory
"""

from typing import Optional

import httpx
from fastapi import Request

from database import get_session_factory
from services.cloud_api import CloudApiClient
from services.discovery import ClientFactory, DiscoveryGuard
from services.metrics import DatabaseMetricSink, MetricSink


def get_client_factory() -> ClientFactory:
    """Factory building one API client per resolved set of credentials."""
    return CloudApiClient.from_credentials


def get_validation_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport used by the tenant pre-save probe (None = real network)."""
    return None


def get_metric_sink() -> MetricSink:
    return DatabaseMetricSink(get_session_factory())


def get_discovery_guard(request: Request) -> Optional[DiscoveryGuard]:
    """The background scheduler's guard, shared by manual poll triggers."""
    scheduler = getattr(request.app.state, "scheduler", None)
    return scheduler.guard if scheduler is not None else None

