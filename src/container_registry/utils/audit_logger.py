"""Structured audit logging for persisted container mutations."""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from container_registry.utils.logging import get_logger


class AuditEventType(str, Enum):
    """Types of audit events."""

    CONTAINER_CREATE = "container_create"
    CONTAINER_STATE_CHANGE = "container_state_change"
    CONTAINER_NODE_CHANGE = "container_node_change"
    CONTAINER_DELETE = "container_delete"

    SCHEMA_MIGRATE = "schema_migrate"
    SYSTEM_RECONCILE = "system_reconcile"


class AuditLogger:
    """Structured audit logger for tracking every write to the record table."""

    def __init__(self) -> None:
        """Initialize the audit logger."""
        self._logger = get_logger("audit")
        # Audit events are emitted regardless of the root level
        self._logger.setLevel(logging.INFO)

    def log_event(
        self,
        event_type: AuditEventType,
        container_name: Optional[str] = None,
        container_id: Optional[str] = None,
        source: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Log an audit event.

        Args:
            event_type: Type of event being logged
            container_name: Container name if relevant
            container_id: Container ID if relevant
            source: Component that performed the write (store, reconciler, lifecycle)
            details: Additional event-specific details
        """
        event: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type.value,
        }

        if container_name:
            event["container_name"] = container_name
        if container_id:
            event["container_id"] = container_id
        if source:
            event["source"] = source
        if details:
            event["details"] = self._sanitize_details(details)

        self._logger.info("audit_event", extra=event)

    def _sanitize_details(self, details: dict[str, Any]) -> dict[str, Any]:
        """
        Redact values whose keys look like secrets.

        Container configs carry environment variables, which routinely hold
        credentials.

        Args:
            details: Raw event details

        Returns:
            Sanitized details with sensitive fields redacted
        """
        sensitive_keys = {"password", "token", "secret", "key", "auth", "credentials", "private"}

        sanitized: dict[str, Any] = {}
        for key, value in details.items():
            if any(word in key.lower() for word in sensitive_keys):
                sanitized[key] = "***REDACTED***"
            elif key == "environment":
                sanitized[key] = self._sanitize_environment(value)
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_details(value)
            elif isinstance(value, list):
                sanitized[key] = [
                    self._sanitize_details(item) if isinstance(item, dict) else item
                    for item in value
                ]
            else:
                sanitized[key] = value

        return sanitized

    @staticmethod
    def _sanitize_environment(environment: Any) -> list:
        """Keep environment variable names, drop their values."""
        names = []
        for item in environment or []:
            if isinstance(item, (list, tuple)) and item:
                names.append(f"{item[0]}=***")
            elif isinstance(item, str):
                names.append(item.split("=", 1)[0] + "=***")
        return names
