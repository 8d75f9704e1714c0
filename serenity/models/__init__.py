"""
Data Models Package

This package contains all Pydantic models used by Serenity Budget.
All data crossing the storage boundary must conform to these schemas.
"""

from serenity.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from serenity.models.category import (
    BudgetCategory,
    BudgetCategoryCreate,
    BudgetCategoryUpdate,
    BudgetOverview,
    BudgetStatus,
    CategoryProgress,
    RebalanceResult,
)
from serenity.models.settings import (
    BudgetMethod,
    SavingsGoal,
    SavingsGoalCreate,
    UserSettings,
    UserSettingsUpdate,
)
from serenity.models.transaction import (
    Transaction,
    TransactionCreate,
    TransactionUpdate,
)
from serenity.models.validation import ValidationIssue, ValidationResult

__all__ = [
    # Ledger models
    "Transaction",
    "TransactionCreate",
    "TransactionUpdate",
    # Category models
    "BudgetCategory",
    "BudgetCategoryCreate",
    "BudgetCategoryUpdate",
    "BudgetOverview",
    "BudgetStatus",
    "CategoryProgress",
    "RebalanceResult",
    # Settings models
    "BudgetMethod",
    "SavingsGoal",
    "SavingsGoalCreate",
    "UserSettings",
    "UserSettingsUpdate",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
]
