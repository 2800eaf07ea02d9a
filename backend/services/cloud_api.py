"""
Thin async client for the cloud management REST API.

One client is bound to one tenant's base URL and token.  ``get`` raises
RemoteFetchFailure for every kind of failure (timeout, transport error,
non-2xx status, undecodable body) so callers can degrade one data item at a
time.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from config import settings
from .credentials import Credentials
from .errors import RemoteFetchFailure, ValidationFailure

logger = logging.getLogger(__name__)


class CloudApiClient:
    """
    Async accessor for one tenant.

    Usage:
        async with CloudApiClient(base_url, token) as api:
            sites = await api.get_sites(org_id)
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Token {token}",
                "Accept": "application/json",
            },
            timeout=timeout if timeout is not None else settings.CLOUD_API_TIMEOUT,
            transport=transport,
        )

    @classmethod
    def from_credentials(
        cls,
        credentials: Credentials,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CloudApiClient":
        return cls(credentials.base_url, credentials.token, transport=transport)

    async def __aenter__(self) -> "CloudApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get(self, path: str, query: Optional[Dict[str, Any]] = None) -> Any:
        """GET ``path`` and return the decoded JSON body."""
        try:
            response = await self._client.get(path, params=query)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise RemoteFetchFailure(path, f"timed out ({e.__class__.__name__})") from e
        except httpx.HTTPStatusError as e:
            raise RemoteFetchFailure(
                path,
                f"status {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise RemoteFetchFailure(path, f"request error: {e}") from e
        except ValueError as e:
            raise RemoteFetchFailure(path, f"malformed JSON: {e}") from e

    # ── Endpoints ──────────────────────────────────────────────────────

    async def get_sites(self, org_id: str) -> Any:
        return await self.get(
            f"/api/v1/orgs/{org_id}/sites",
            {"limit": settings.CLOUD_SITES_PAGE_LIMIT, "page": 1},
        )

    async def get_org_devices_summary(self, org_id: str) -> Any:
        return await self.get(f"/api/v1/orgs/{org_id}/devices/summary")

    async def get_org_stats(self, org_id: str) -> Any:
        return await self.get(f"/api/v1/orgs/{org_id}/stats")

    async def get_site_devices(self, site_id: str) -> Any:
        return await self.get(f"/api/v1/sites/{site_id}/devices")

    async def get_site_device_stats(self, site_id: str) -> Any:
        return await self.get(f"/api/v1/sites/{site_id}/stats/devices")

    async def get_device(self, site_id: str, device_id: str) -> Any:
        return await self.get(f"/api/v1/sites/{site_id}/devices/{device_id}")

    async def get_device_stats(self, site_id: str, device_id: str) -> Any:
        return await self.get(f"/api/v1/sites/{site_id}/stats/devices/{device_id}")


async def validate_connection(
    base_url: str,
    token: str,
    org_id: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    """
    Probe connectivity and credentials before a tenant configuration is saved.

    The bare base URL answers 404 when the API host is reachable; anything
    else means the URL does not point at the API.  The org stats endpoint
    then confirms the token and org id.

    Raises:
        ValidationFailure: with a reason suitable for showing to the operator.
    """
    base_url = base_url.strip().rstrip("/")
    async with httpx.AsyncClient(
        timeout=settings.CLOUD_API_TIMEOUT, transport=transport
    ) as client:
        try:
            probe = await client.get(f"{base_url}/")
        except httpx.RequestError as e:
            raise ValidationFailure(f"API host unreachable: {e}") from e
        if probe.status_code != 404:
            raise ValidationFailure(
                f"Unexpected response from {base_url} (HTTP {probe.status_code}); "
                "check the API URL"
            )

        try:
            response = await client.get(
                f"{base_url}/api/v1/orgs/{org_id}/stats",
                headers={
                    "Authorization": f"Token {token}",
                    "Accept": "application/json",
                },
            )
        except httpx.RequestError as e:
            raise ValidationFailure(f"API host unreachable: {e}") from e

    if response.status_code in (401, 403):
        raise ValidationFailure("API token was rejected")
    if response.status_code == 404:
        raise ValidationFailure(f"Organization {org_id} not found")
    if response.status_code >= 400:
        raise ValidationFailure(f"API returned HTTP {response.status_code}")
    logger.info(f"Validated API access for org {org_id} at {base_url}")
