"""Exception types raised by the cloud integration services."""

from typing import Optional


class StratusError(Exception):
    """Base class for all integration errors."""


class ConfigurationMissing(StratusError):
    """No usable base URL / token could be resolved. Skipped, not reported."""


class RemoteFetchFailure(StratusError):
    """A remote call timed out, returned non-2xx, or returned undecodable JSON."""

    def __init__(self, path: str, message: str, status_code: Optional[int] = None):
        self.path = path
        self.status_code = status_code
        super().__init__(f"GET {path} failed: {message}")


class ValidationFailure(StratusError):
    """Connectivity or credential probe rejected a tenant configuration."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)
