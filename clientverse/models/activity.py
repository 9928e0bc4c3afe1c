"""
Activity Models for ClientVerse

Significant actions (writes, deletes, AI calls, failures) are emitted as
typed events to the structured log so an operator can trace what happened
to a client record.

DESIGN DECISION: Events go to the local log only. There is no persisted
history and no versioning of client records.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class ActivityEventType(str, Enum):
    """Types of events we log."""
    # Client records
    CLIENT_CREATED = "client_created"
    CLIENT_UPDATED = "client_updated"
    CLIENT_DELETED = "client_deleted"
    VALIDATION_FAILED = "validation_failed"

    # Live subscription
    SUBSCRIPTION_OPENED = "subscription_opened"
    SUBSCRIPTION_CLOSED = "subscription_closed"

    # AI helpers
    AI_REQUEST_COMPLETED = "ai_request_completed"
    AI_REQUEST_FAILED = "ai_request_failed"

    # Storage
    STORAGE_ERROR = "storage_error"


class ActivitySeverity(str, Enum):
    """Severity level for activity events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ActivityEvent(BaseModel):
    """A single logged event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: ActivityEventType
    severity: ActivitySeverity = ActivitySeverity.INFO

    # Whose partition and which client, where applicable
    user_id: Optional[str] = None
    client_id: Optional[str] = None

    # For tracing one UI action across several calls
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "client_id": self.client_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class ActivityEventBuilder:
    """
    Helper class to build activity events with common patterns.

    Usage:
        event = ActivityEventBuilder.client_created(user_id, client_id, name)
        event = ActivityEventBuilder.ai_request_failed("autofill", str(exc))
    """

    @staticmethod
    def client_created(
        user_id: str,
        client_id: str,
        client_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.CLIENT_CREATED,
            user_id=user_id,
            client_id=client_id,
            correlation_id=correlation_id,
            description=f"Client created: {client_name}",
        )

    @staticmethod
    def client_updated(
        user_id: str,
        client_id: str,
        client_name: str,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.CLIENT_UPDATED,
            user_id=user_id,
            client_id=client_id,
            correlation_id=correlation_id,
            description=f"Client updated: {client_name}",
        )

    @staticmethod
    def client_deleted(
        user_id: str,
        client_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.CLIENT_DELETED,
            user_id=user_id,
            client_id=client_id,
            correlation_id=correlation_id,
            description="Client deleted",
        )

    @staticmethod
    def validation_failed(
        user_id: str,
        issues: list[dict],
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.VALIDATION_FAILED,
            severity=ActivitySeverity.WARNING,
            user_id=user_id,
            client_id=client_id,
            correlation_id=correlation_id,
            description=f"Client validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def subscription_opened(user_id: str) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.SUBSCRIPTION_OPENED,
            severity=ActivitySeverity.DEBUG,
            user_id=user_id,
            description="Live client subscription opened",
        )

    @staticmethod
    def subscription_closed(user_id: str) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.SUBSCRIPTION_CLOSED,
            severity=ActivitySeverity.DEBUG,
            user_id=user_id,
            description="Live client subscription closed",
        )

    @staticmethod
    def ai_request_completed(
        flow: str,
        details: Optional[dict] = None,
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.AI_REQUEST_COMPLETED,
            client_id=client_id,
            correlation_id=correlation_id,
            description=f"AI flow completed: {flow}",
            details={"flow": flow, **(details or {})},
        )

    @staticmethod
    def ai_request_failed(
        flow: str,
        error_message: str,
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.AI_REQUEST_FAILED,
            severity=ActivitySeverity.ERROR,
            client_id=client_id,
            correlation_id=correlation_id,
            description=f"AI flow failed: {flow}",
            details={"flow": flow},
            error_message=error_message,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ActivityEvent:
        return ActivityEvent(
            event_type=ActivityEventType.STORAGE_ERROR,
            severity=ActivitySeverity.ERROR,
            user_id=user_id,
            client_id=client_id,
            correlation_id=correlation_id,
            description=f"Storage operation failed: {operation}",
            details={"operation": operation},
            error_message=error_message,
        )
