"""
Audit Models for Serenity Budget

Every user-visible mutation of the ledger or the budget is recorded as an
audit event. This provides:
1. Traceability of how an allocation ended up where it is
2. Debugging information when spend and ledger disagree
3. A history the UI can show after a reset

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from serenity.models.transaction import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Categories
    CATEGORY_ADDED = "category_added"
    CATEGORY_UPDATED = "category_updated"
    CATEGORIES_RESET = "categories_reset"
    ALLOCATIONS_REBALANCED = "allocations_rebalanced"
    REBALANCE_FAILED = "rebalance_failed"

    # Budget
    MONTHLY_BUDGET_CHANGED = "monthly_budget_changed"
    BUDGET_SETUP_COMPLETED = "budget_setup_completed"
    SPENDING_RECALCULATED = "spending_recalculated"

    # Savings goals
    SAVINGS_GOAL_ADDED = "savings_goal_added"

    # Settings
    SETTINGS_UPDATED = "settings_updated"

    # Maintenance
    DATA_RESET = "data_reset"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'category')"
    )
    entity_id: Optional[int] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one budget setup)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_added(42, "Courses", "-54.20", correlation_id)
    """

    @staticmethod
    def transaction_added(
        transaction_id: int,
        category: str,
        amount: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction recorded: {amount} in {category}",
            details={
                "category": category,
                "amount": str(amount),
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_updated(
        transaction_id: int,
        changes: dict[str, Any],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction updated: {', '.join(sorted(changes))}",
            details={key: str(value) for key, value in changes.items()},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def category_added(
        category_id: int,
        name: str,
        allocated: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_ADDED,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Category added: {name} ({allocated})",
            details={
                "name": name,
                "allocated": str(allocated),
            },
            is_user_action=True,
        )

    @staticmethod
    def category_updated(
        category_id: int,
        changes: dict[str, Any],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_UPDATED,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Category updated: {', '.join(sorted(changes))}",
            details={key: str(value) for key, value in changes.items()},
            is_user_action=True,
        )

    @staticmethod
    def allocations_rebalanced(
        category_id: Optional[int],
        delta: Decimal,
        adjustments: dict[int, Decimal],
        correction: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATIONS_REBALANCED,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Allocations rebalanced across {len(adjustments)} categories",
            details={
                "delta": str(delta),
                "adjustments": {str(k): str(v) for k, v in adjustments.items()},
                "correction": str(correction),
            },
        )

    @staticmethod
    def rebalance_failed(
        category_id: Optional[int],
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REBALANCE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description="Allocation change rejected: budget cannot be balanced",
            error_message=error_message,
        )

    @staticmethod
    def monthly_budget_changed(
        old_budget: Decimal,
        new_budget: Decimal,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTHLY_BUDGET_CHANGED,
            entity_type="settings",
            correlation_id=correlation_id,
            description=f"Monthly budget changed from {old_budget} to {new_budget}",
            details={
                "old_budget": str(old_budget),
                "new_budget": str(new_budget),
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_setup_completed(
        income: Decimal,
        category_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SETUP_COMPLETED,
            entity_type="settings",
            correlation_id=correlation_id,
            description=f"Budget set up from income {income} across {category_count} categories",
            details={
                "income": str(income),
                "category_count": category_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def simple(
        event_type: AuditEventType,
        description: str,
        correlation_id: UUID,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        is_user_action: bool = True,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=description,
            is_user_action=is_user_action,
        )
