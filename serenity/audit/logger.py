"""
Audit Logger

DESIGN DECISION: Every user-visible change to the ledger or the budget
is logged as an AuditEvent. This provides:
1. Traceability of how allocations moved
2. Debugging capability when spend and ledger disagree
3. A recent-activity history the UI can show

The audit logger:
- Is async so the service code reads the same with or without a sink
- Keeps the most recent events in memory (nothing is persisted)
- Supports correlation IDs to trace related events
"""

import logging
from collections import deque
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from serenity.config import get_settings
from serenity.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from serenity.models.category import RebalanceResult


def configure_logging(level: str = "INFO") -> None:
    """Route structlog through the standard library at `level`, rendered as JSON."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))
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


configure_logging(get_settings().app.log_level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events to the structured local log and keeps the last
    `history_size` of them for get_recent_events().
    """

    def __init__(self, history_size: int = 200):
        self._events: deque[AuditEvent] = deque(maxlen=history_size)
        self._logger = structlog.get_logger("serenity.audit")

    async def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        self._events.append(event)

    def get_recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent events, newest first."""
        return list(reversed(self._events))[:limit]

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        """Events of one user action, in the order they were logged."""
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def log_transaction_added(
        self,
        transaction_id: int,
        category: str,
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        """Log a new ledger entry."""
        await self.log(AuditEventBuilder.transaction_added(
            transaction_id=transaction_id,
            category=category,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        transaction_id: int,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            transaction_id=transaction_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_category_added(
        self,
        category_id: int,
        name: str,
        allocated: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.category_added(
            category_id=category_id,
            name=name,
            allocated=allocated,
            correlation_id=correlation_id,
        ))

    async def log_category_updated(
        self,
        category_id: int,
        changes: dict[str, Any],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.category_updated(
            category_id=category_id,
            changes=changes,
            correlation_id=correlation_id,
        ))

    async def log_rebalanced(
        self,
        result: RebalanceResult,
        correlation_id: UUID,
    ) -> None:
        """Log the outcome of a rebalancing pass."""
        await self.log(AuditEventBuilder.allocations_rebalanced(
            category_id=result.protected_id,
            delta=result.delta,
            adjustments=result.adjustments,
            correction=result.correction,
            correlation_id=correlation_id,
        ))

    async def log_rebalance_failed(
        self,
        category_id: Optional[int],
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.rebalance_failed(
            category_id=category_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_monthly_budget_changed(
        self,
        old_budget: Decimal,
        new_budget: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.monthly_budget_changed(
            old_budget=old_budget,
            new_budget=new_budget,
            correlation_id=correlation_id,
        ))

    async def log_budget_setup_completed(
        self,
        income: Decimal,
        category_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.budget_setup_completed(
            income=income,
            category_count=category_count,
            correlation_id=correlation_id,
        ))

    async def log_simple(
        self,
        event_type: AuditEventType,
        description: str,
        correlation_id: UUID,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
    ) -> None:
        """Log an event that carries no details beyond its description."""
        await self.log(AuditEventBuilder.simple(
            event_type=event_type,
            description=description,
            correlation_id=correlation_id,
            entity_type=entity_type,
            entity_id=entity_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., budget setup).
    Pass it through all subsequent operations.
    """
    return uuid4()
