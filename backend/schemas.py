"""
Pydantic v2 schemas with strict input validation and lenient output serialization.

Architecture:
  - *Fields classes: pure field definitions, no validators.  Shared by both
    input (Create/Update) and output (Response) schemas.
  - *Create / *Update classes: inherit from *Fields and ADD strict validators
    so bad data is rejected early with clear, actionable error messages.
  - *Response classes: inherit from *Fields directly (no validators) so any
    data already in the database serializes without crashing.

Discovery and polling write device and sub-resource rows directly from
remote payloads, so response schemas must accept whatever the remote API
reported (e.g. a hostname taken verbatim from a remote device name).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import re

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


# ── Reusable validators ──────────────────────────────────────────────

HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9._\-]+$")
UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
SITE_SPLIT_RE = re.compile(r"[\s,]+")

# Attribute keys never returned verbatim
SECRET_ATTRIBUTES = frozenset({"api_key"})


def mask_secret(value: Optional[str]) -> Optional[str]:
    """Keep only the last four characters of a secret."""
    if not value:
        return None
    if len(value) <= 4:
        return "****"
    return "****" + value[-4:]


def _validate_hostname(value: str) -> str:
    """Validate a hostname string."""
    if len(value) > 255:
        raise ValueError(
            "Hostname too long. Maximum 255 characters allowed"
        )
    if not HOSTNAME_RE.match(value):
        raise ValueError(
            f"Invalid hostname '{value}'. "
            "Use only alphanumeric characters, hyphens, dots, and underscores"
        )
    return value


def _validate_api_url(value: str) -> str:
    value = value.strip().rstrip("/")
    if not value.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid API URL '{value}'. Expected http:// or https:// base URL "
            "(e.g. https://api.mist.com)"
        )
    return value


def _validate_org_id(value: str) -> str:
    value = value.strip()
    if not UUID_RE.match(value):
        raise ValueError(
            f"Invalid organization id '{value}'. "
            "Expected a UUID like 6748cfa6-4e12-11e6-9188-0242ac110007"
        )
    return value.lower()


def _normalize_site_ids(value: str) -> str:
    """Normalize a comma/whitespace separated site allow-list to 'a,b,c'."""
    sites = [s for s in SITE_SPLIT_RE.split(value.strip()) if s]
    for i, site in enumerate(sites):
        if not UUID_RE.match(site):
            raise ValueError(
                f"Invalid site id at position {i}: '{site}'. Expected a UUID"
            )
    return ",".join(s.lower() for s in sites)


# ═══════════════════════════════════════════════════════════════════════
# TENANT SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class TenantFields(BaseModel):
    """Pure field definitions for tenant configurations.  No validators."""

    name: str = Field(..., min_length=1, max_length=255)
    api_url: str = Field(..., max_length=255)
    org_id: str = Field(..., max_length=36)
    site_ids: Optional[str] = None
    enabled: bool = True


class _TenantValidators:
    """Mixin-style validators reused by TenantCreate and TenantUpdate."""

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_api_url(v)

    @field_validator("org_id")
    @classmethod
    def validate_org_id(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_org_id(v)

    @field_validator("site_ids")
    @classmethod
    def validate_site_ids(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _normalize_site_ids(v) or None


class TenantCreate(TenantFields, _TenantValidators):
    """Schema for creating a tenant configuration."""

    api_key: str = Field(..., min_length=1)


class TenantUpdate(BaseModel, _TenantValidators):
    """Schema for updating a tenant configuration (all fields optional)."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    api_url: Optional[str] = Field(None, max_length=255)
    api_key: Optional[str] = Field(None, min_length=1)
    org_id: Optional[str] = Field(None, max_length=36)
    site_ids: Optional[str] = None
    enabled: Optional[bool] = None


class TenantResponse(TenantFields):
    """Tenant configuration as returned by the API; the key is masked."""

    id: int
    api_key_masked: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_tenant(cls, tenant) -> "TenantResponse":
        return cls(
            id=tenant.id,
            name=tenant.name,
            api_url=tenant.api_url,
            org_id=tenant.org_id,
            site_ids=tenant.site_ids,
            enabled=bool(tenant.enabled),
            api_key_masked=mask_secret(tenant.api_key),
            created_at=tenant.created_at,
            updated_at=tenant.updated_at,
        )


# ═══════════════════════════════════════════════════════════════════════
# DEVICE IDENTITY SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class DeviceIdentityFields(BaseModel):
    """Pure field definitions for device identities.  No validators."""

    hostname: str
    display_name: Optional[str] = None
    role: str
    fingerprint: str
    ip_address: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None
    hardware: Optional[str] = None
    version: Optional[str] = None
    serial: Optional[str] = None
    uptime: Optional[int] = None
    sys_descr: Optional[str] = None
    status: Optional[bool] = None
    status_reason: Optional[str] = None


class DeviceIdentityUpdate(BaseModel):
    """Operator edits; everything else is owned by discovery and polling."""

    hostname: Optional[str] = Field(None, min_length=1, max_length=255)
    display_name: Optional[str] = Field(None, max_length=255)

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_hostname(v)


class DeviceIdentityResponse(DeviceIdentityFields):
    """Schema for device identity responses (no validators)."""

    id: int
    guid: Optional[str] = None
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None
    last_polled: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("attributes")
    def mask_attributes(self, attributes: Optional[Dict[str, Any]]):
        if not attributes:
            return attributes
        return {
            key: mask_secret(str(value)) if key in SECRET_ATTRIBUTES else value
            for key, value in attributes.items()
        }


# ═══════════════════════════════════════════════════════════════════════
# SUB-RESOURCE SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class SubResourceResponse(BaseModel):
    id: int
    device_id: int
    is_active: bool
    first_seen: Optional[datetime] = None
    last_seen: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PortResponse(SubResourceResponse):
    if_name: str
    if_index: Optional[int] = None
    if_descr: Optional[str] = None
    if_type: Optional[str] = None
    oper_status: Optional[str] = None
    admin_status: Optional[str] = None
    speed: Optional[int] = None
    duplex: Optional[str] = None
    in_octets: Optional[int] = None
    out_octets: Optional[int] = None
    in_octets_prev: Optional[int] = None
    out_octets_prev: Optional[int] = None
    in_ucast_pkts: Optional[int] = None
    out_ucast_pkts: Optional[int] = None
    in_errors: Optional[int] = None
    out_errors: Optional[int] = None


class SensorResponse(SubResourceResponse):
    sensor_class: str
    sensor_type: str
    sensor_index: str
    sensor_descr: Optional[str] = None
    sensor_current: Optional[float] = None
    sensor_prev: Optional[float] = None
    sensor_limit_low: Optional[float] = None
    sensor_limit: Optional[float] = None
    sensor_unit: Optional[str] = None
    rrd_type: Optional[str] = None


class NeighborLinkResponse(SubResourceResponse):
    protocol: str
    local_port: str
    remote_hostname: Optional[str] = None
    remote_port: Optional[str] = None
    remote_port_descr: Optional[str] = None
    remote_chassis_id: Optional[str] = None
    remote_mgmt_ip: Optional[str] = None
    remote_platform: Optional[str] = None


class AccessPointResponse(SubResourceResponse):
    mac_address: str
    name: Optional[str] = None
    model: Optional[str] = None
    site_id: Optional[str] = None
    site_name: Optional[str] = None
    radio_band: Optional[str] = None
    channel: Optional[int] = None
    txpow: Optional[int] = None
    radioutil: Optional[int] = None
    num_clients: Optional[int] = None
    num_clients_prev: Optional[int] = None
    num_wlans: Optional[int] = None


class DeviceDetailResponse(DeviceIdentityResponse):
    """A device with its sub-resources."""

    ports: List[PortResponse] = []
    sensors: List[SensorResponse] = []
    wireless_sensors: List[SensorResponse] = []
    neighbors: List[NeighborLinkResponse] = []
    access_points: List[AccessPointResponse] = []


# ═══════════════════════════════════════════════════════════════════════
# PAGINATION SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class PaginatedResponse(BaseModel):
    """Generic paginated response."""

    total: int
    skip: int
    limit: int
    items: List
