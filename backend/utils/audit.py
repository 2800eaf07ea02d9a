"""
Structured audit logging module for the Stratus backend.

This module provides an AuditLogger class that logs events to a dedicated 'audit' logger
in structured JSON format. It supports context-aware request_id propagation across async
calls using contextvars.ContextVar.

Key features:
- Async-safe request_id tracking via ContextVar
- Structured JSON output with ISO8601 timestamps
- Convenience methods for tenant changes, device changes, discovery runs and poll cycles
- No secrets: API keys never appear in audit details
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, List, Optional


# Context variable for tracking request_id across async calls
_request_id_context: ContextVar[Optional[str]] = ContextVar(
    'request_id', default=None
)

# Audit detail keys that are dropped before logging
_SECRET_KEYS = frozenset({'api_key', 'token'})


class AuditLogger:
    """
    Structured audit logger for tracking all significant backend operations.

    All events are written to a dedicated 'audit' logger in JSON format.
    """

    def __init__(self):
        self.logger = logging.getLogger('audit')

    def set_request_id(self, request_id: str) -> None:
        """Set the request_id for the current context."""
        _request_id_context.set(request_id)

    def get_request_id(self) -> Optional[str]:
        return _request_id_context.get()

    def log(
        self,
        action: str,
        actor: str,
        resource: str,
        resource_id: str,
        status: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Core method to log a structured audit event.

        Args:
            action: Type of action performed (e.g., 'CREATE', 'DELETE', 'DISCOVERY')
            actor: 'user' for API requests, 'scheduler' for background work
            resource: Type of resource affected (e.g., 'TenantConfig', 'DeviceIdentity')
            resource_id: Unique identifier of the affected resource
            status: Result status (e.g., 'success', 'failure', 'partial')
            details: Optional dict of additional context; secret keys are dropped
        """
        event = {
            'timestamp': datetime.utcnow().isoformat() + 'Z',
            'action': action,
            'actor': actor,
            'resource': resource,
            'resource_id': resource_id,
            'status': status,
            'request_id': self.get_request_id(),
            'details': {
                key: value
                for key, value in (details or {}).items()
                if key not in _SECRET_KEYS
            },
        }
        self.logger.info(json.dumps(event, default=str))

    def log_tenant_change(
        self,
        operation: str,
        tenant_id: str,
        org_id: str,
        changed_fields: Optional[List[str]] = None,
    ) -> None:
        """
        Log tenant configuration create, update, or delete.

        Args:
            operation: Operation type ('CREATE', 'UPDATE', 'DELETE')
            tenant_id: TenantConfig id
            org_id: Remote organization id
            changed_fields: Names of updated fields (values are not logged)
        """
        details: Dict[str, Any] = {'org_id': org_id}
        if changed_fields:
            details['changed_fields'] = changed_fields

        self.log(
            action=operation,
            actor='user',
            resource='TenantConfig',
            resource_id=tenant_id,
            status='success',
            details=details,
        )

    def log_device_identity_change(
        self,
        operation: str,
        device_id: str,
        device_name: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log device identity update or decommission.

        Args:
            operation: Operation type ('UPDATE', 'DELETE')
            device_id: Device identity identifier
            device_name: Optional device hostname
            changes: Optional dict of changed fields
        """
        details: Dict[str, Any] = {}
        if device_name:
            details['device_name'] = device_name
        if changes:
            details['changes'] = changes

        self.log(
            action=operation,
            actor='user',
            resource='DeviceIdentity',
            resource_id=device_id,
            status='success',
            details=details,
        )

    def log_discovery(
        self,
        org_id: str,
        status: str,
        aps_created: int,
        aps_updated: int,
        ambiguous_matches: int = 0,
    ) -> None:
        """Log one tenant's discovery run."""
        self.log(
            action='DISCOVERY',
            actor='scheduler',
            resource='TenantConfig',
            resource_id=org_id,
            status=status,
            details={
                'aps_created': aps_created,
                'aps_updated': aps_updated,
                'ambiguous_matches': ambiguous_matches,
            },
        )

    def log_poll_cycle(
        self,
        cycle_id: str,
        status: str,
        devices_polled: int,
        devices_failed: int,
        metrics_emitted: int,
    ) -> None:
        """Log the outcome of a poll cycle."""
        self.log(
            action='POLL',
            actor='scheduler',
            resource='PollCycle',
            resource_id=cycle_id,
            status=status,
            details={
                'devices_polled': devices_polled,
                'devices_failed': devices_failed,
                'metrics_emitted': metrics_emitted,
            },
        )


# Global audit logger instance for convenient import
audit = AuditLogger()
