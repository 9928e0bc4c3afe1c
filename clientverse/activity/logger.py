"""
Activity Logger

DESIGN DECISION: Every write, delete and AI call is logged as a typed
event. This provides:
1. Traceability of what happened to a client record
2. Debugging capability for failed saves and model calls

The activity logger:
- Writes to the local structured log only (no persisted history)
- Never raises: a logging failure must not fail the action being logged
- Supports correlation IDs to trace one UI action across several calls
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from clientverse.models.activity import ActivityEvent, ActivityEventBuilder, ActivitySeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route structlog output through the stdlib root logger at `level`.

    Call once at process start (UI or API entry point).
    """
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


class ActivityLogger:
    """
    Central activity logging service.

    Logs events to the structured local log at the level matching
    their severity.
    """

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None):
        self._logger = logger or structlog.get_logger("clientverse.activity")

    def log(self, event: ActivityEvent) -> bool:
        """
        Log an activity event.

        Returns True if the event was written, False if logging failed.
        """
        try:
            log_dict = event.to_log_dict()
            if event.severity == ActivitySeverity.ERROR:
                self._logger.error("activity_event", **log_dict)
            elif event.severity == ActivitySeverity.WARNING:
                self._logger.warning("activity_event", **log_dict)
            elif event.severity == ActivitySeverity.DEBUG:
                self._logger.debug("activity_event", **log_dict)
            else:
                self._logger.info("activity_event", **log_dict)
        except Exception:
            # Logging must never fail the action being logged
            return False
        return True

    def log_client_saved(
        self,
        user_id: str,
        client_id: str,
        client_name: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed create or update."""
        build = (
            ActivityEventBuilder.client_created
            if created
            else ActivityEventBuilder.client_updated
        )
        self.log(build(
            user_id=user_id,
            client_id=client_id,
            client_name=client_name,
            correlation_id=correlation_id,
        ))

    def log_client_deleted(
        self,
        user_id: str,
        client_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a client delete."""
        self.log(ActivityEventBuilder.client_deleted(
            user_id=user_id,
            client_id=client_id,
            correlation_id=correlation_id,
        ))

    def log_validation_failed(
        self,
        user_id: str,
        issues: list[dict],
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected save."""
        self.log(ActivityEventBuilder.validation_failed(
            user_id=user_id,
            issues=issues,
            client_id=client_id,
            correlation_id=correlation_id,
        ))

    def log_subscription(self, user_id: str, opened: bool) -> None:
        """Log a live subscription being opened or closed."""
        if opened:
            self.log(ActivityEventBuilder.subscription_opened(user_id))
        else:
            self.log(ActivityEventBuilder.subscription_closed(user_id))

    def log_ai_completed(
        self,
        flow: str,
        details: Optional[dict] = None,
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a successful AI flow."""
        self.log(ActivityEventBuilder.ai_request_completed(
            flow=flow,
            details=details,
            client_id=client_id,
            correlation_id=correlation_id,
        ))

    def log_ai_failed(
        self,
        flow: str,
        error_message: str,
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed AI flow."""
        self.log(ActivityEventBuilder.ai_request_failed(
            flow=flow,
            error_message=error_message,
            client_id=client_id,
            correlation_id=correlation_id,
        ))

    def log_storage_error(
        self,
        operation: str,
        error_message: str,
        user_id: Optional[str] = None,
        client_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed repository call."""
        self.log(ActivityEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            user_id=user_id,
            client_id=client_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action (e.g., pressing Save).
    Pass it through all subsequent operations.
    """
    return uuid4()
