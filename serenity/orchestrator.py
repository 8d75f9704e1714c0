"""
Main Orchestrator for Serenity Budget

This module ties the storage facade, the validator and the audit trail
together and defines the user-facing flows:
1. Ledger (record → sync spend → audit)
2. Category edits (check name → save → rebalance → audit)
3. Budget setup (income → personalized split → install)
4. Overview (balance, allocations, per-category progress)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Budget rules live in storage; the orchestrator never edits amounts itself
- Name clashes are rejected case-insensitively before storage sees them
- Every user action is audited under one correlation id

UI collaborators (screens, notifications, the coach) call this service
and nothing below it.
"""

from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

from serenity.audit import AuditLogger, create_correlation_id
from serenity.budget.defaults import personalized_categories
from serenity.budget.rebalancer import ConsistencyError
from serenity.config import BudgetSettings, DatabaseSettings, get_settings
from serenity.models.audit import AuditEventType
from serenity.models.category import (
    BudgetCategory,
    BudgetCategoryCreate,
    BudgetCategoryUpdate,
    BudgetOverview,
    BudgetStatus,
    CategoryProgress,
    RebalanceResult,
)
from serenity.models.money import ZERO, parse_amount, quantize
from serenity.models.settings import (
    BudgetMethod,
    SavingsGoal,
    SavingsGoalCreate,
    UserSettings,
    UserSettingsUpdate,
)
from serenity.models.transaction import Transaction, TransactionCreate, TransactionUpdate
from serenity.models.validation import ValidationResult
from serenity.services.storage import (
    BudgetStorageInterface,
    DuplicateError,
    ValidationError,
)
from serenity.services.storage.sqlite import SQLiteBudgetStorage, SQLiteClient
from serenity.validation import BudgetValidator


class BudgetService:
    """
    Application service over the budget storage.

    Flow for a category edit:
    1. Validate the name against existing categories
    2. Save through storage (which rebalances the others atomically)
    3. Audit the change and the rebalancing outcome

    A rebalance the budget cannot absorb is audited, then re-raised:
    nothing was saved.
    """

    def __init__(
        self,
        storage: BudgetStorageInterface,
        validator: Optional[BudgetValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        budget_settings: Optional[BudgetSettings] = None,
    ):
        self._storage = storage
        self._budget_settings = budget_settings or get_settings().budget
        self._validator = validator or BudgetValidator(self._budget_settings)
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def storage(self) -> BudgetStorageInterface:
        return self._storage

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    # =========================================================================
    # LEDGER
    # =========================================================================

    async def record_transaction(
        self,
        data: Union[TransactionCreate, dict],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Record a transaction.

        The category is created on the fly if it does not exist yet.

        Returns:
            The new transaction id
        """
        correlation_id = correlation_id or create_correlation_id()
        transaction_id = await self._storage.add_transaction(data)

        transaction = await self._storage.get_transaction(transaction_id)
        await self._audit_logger.log_transaction_added(
            transaction_id=transaction_id,
            category=transaction.category,
            amount=transaction.amount,
            correlation_id=correlation_id,
        )
        return transaction_id

    async def edit_transaction(
        self,
        transaction_id: int,
        patch: Union[TransactionUpdate, dict],
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        correlation_id = correlation_id or create_correlation_id()
        if isinstance(patch, TransactionUpdate):
            changes = patch.changes()
        else:
            changes = dict(patch)

        transaction = await self._storage.update_transaction(transaction_id, patch)
        await self._audit_logger.log_transaction_updated(
            transaction_id=transaction_id,
            changes=changes,
            correlation_id=correlation_id,
        )
        return transaction

    async def remove_transaction(
        self,
        transaction_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        correlation_id = correlation_id or create_correlation_id()
        await self._storage.delete_transaction(transaction_id)
        await self._audit_logger.log_transaction_deleted(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        )

    async def list_transactions(self, limit: Optional[int] = None) -> list[Transaction]:
        return await self._storage.get_transactions(limit)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def _reject_name_clash(self, name: str, exclude_id: Optional[int] = None) -> None:
        categories = await self._storage.get_budget_categories()
        issues = self._validator.check_name(name, categories, exclude_id=exclude_id)
        if issues:
            raise DuplicateError(issues[0].message)

    async def add_category(
        self,
        data: Union[BudgetCategoryCreate, dict],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Create a category, funding it from the rest of the budget.

        Raises:
            DuplicateError: If a category with the same name (any case) exists
            ConsistencyError: If the budget cannot fund the allocation
        """
        correlation_id = correlation_id or create_correlation_id()
        if not isinstance(data, BudgetCategoryCreate):
            try:
                data = BudgetCategoryCreate.model_validate(data)
            except ValueError as e:
                raise ValidationError(str(e)) from e

        await self._reject_name_clash(data.name)

        try:
            category_id = await self._storage.add_budget_category(data)
        except ConsistencyError as e:
            await self._audit_logger.log_rebalance_failed(
                category_id=None,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_category_added(
            category_id=category_id,
            name=data.name,
            allocated=data.allocated,
            correlation_id=correlation_id,
        )
        return category_id

    async def update_category(
        self,
        category_id: int,
        patch: Union[BudgetCategoryUpdate, dict],
        correlation_id: Optional[UUID] = None,
    ) -> Optional[RebalanceResult]:
        """
        Edit a category.

        Returns:
            The rebalancing outcome when the allocation moved, else None
        """
        correlation_id = correlation_id or create_correlation_id()
        if not isinstance(patch, BudgetCategoryUpdate):
            try:
                patch = BudgetCategoryUpdate.model_validate(patch)
            except ValueError as e:
                raise ValidationError(str(e)) from e

        if patch.name is not None:
            await self._reject_name_clash(patch.name, exclude_id=category_id)

        try:
            result = await self._storage.update_budget_category(category_id, patch)
        except ConsistencyError as e:
            await self._audit_logger.log_rebalance_failed(
                category_id=category_id,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_category_updated(
            category_id=category_id,
            changes=patch.changes(),
            correlation_id=correlation_id,
        )
        if result is not None:
            await self._audit_logger.log_rebalanced(result, correlation_id)
        return result

    async def list_categories(self) -> list[BudgetCategory]:
        return await self._storage.get_budget_categories()

    async def reset_categories(self, correlation_id: Optional[UUID] = None) -> None:
        correlation_id = correlation_id or create_correlation_id()
        await self._storage.reset_budget_categories()
        await self._audit_logger.log_simple(
            event_type=AuditEventType.CATEGORIES_RESET,
            description="All categories deleted",
            correlation_id=correlation_id,
        )

    async def recalculate_spending(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, Decimal]:
        """Rebuild every category's spend from the ledger."""
        correlation_id = correlation_id or create_correlation_id()
        spending = await self._storage.recalculate_budget_spending()
        await self._audit_logger.log_simple(
            event_type=AuditEventType.SPENDING_RECALCULATED,
            description=f"Spending recalculated for {len(spending)} categories",
            correlation_id=correlation_id,
        )
        return spending

    # =========================================================================
    # BUDGET
    # =========================================================================

    async def set_monthly_budget(
        self,
        value: Union[Decimal, float, str],
        correlation_id: Optional[UUID] = None,
    ) -> Decimal:
        """
        Change the monthly budget; the buffer absorbs the difference.

        Returns:
            The previous budget

        Raises:
            ConsistencyError: If the allocations cannot follow (nothing saved)
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            previous = await self._storage.set_monthly_budget(value)
        except ConsistencyError as e:
            await self._audit_logger.log_rebalance_failed(
                category_id=None,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        current = await self._storage.get_monthly_budget()
        await self._audit_logger.log_monthly_budget_changed(
            old_budget=previous,
            new_budget=current,
            correlation_id=correlation_id,
        )
        return previous

    async def setup_personalized_budget(
        self,
        income: Union[Decimal, float, str],
        correlation_id: Optional[UUID] = None,
    ) -> list[BudgetCategory]:
        """
        Replace every category with a split of the monthly income.

        Shares: Logement 30%, Alimentation 25%, Transport, Sorties,
        Shopping and Épargne 10% each, Santé 5%, plus the out-of-budget
        Autres and Revenus. Épargne is the buffer.

        Args:
            income: Monthly income, > 0

        Returns:
            The installed categories
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            income = parse_amount(income)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        if income <= 0:
            raise ValidationError("Income must be greater than zero")

        categories = personalized_categories(income)
        await self._storage.install_budget(
            categories,
            monthly_budget=income,
            budget_method=BudgetMethod.PERSONALIZED,
        )

        await self._audit_logger.log_budget_setup_completed(
            income=income,
            category_count=len(categories),
            correlation_id=correlation_id,
        )
        return await self._storage.get_budget_categories()

    def _status(self, percent_spent: int) -> BudgetStatus:
        if percent_spent >= self._budget_settings.danger_threshold_percent:
            return BudgetStatus.DANGER
        if percent_spent >= self._budget_settings.warning_threshold_percent:
            return BudgetStatus.WARNING
        return BudgetStatus.SAFE

    async def get_budget_overview(self) -> BudgetOverview:
        """
        Home-screen summary.

        - balance: Σ of every transaction amount
        - total_allocated / total_spent: over active, in-budget categories
        - unbudgeted_spent: spend in out-of-budget categories, income excluded
        - budget_overflow: allocations above the monthly budget
        """
        transactions = await self._storage.get_transactions()
        categories = await self._storage.get_budget_categories()
        monthly_budget = await self._storage.get_monthly_budget()

        in_budget = [c for c in categories if c.counts_in_budget]
        income_names = self._budget_settings.income_names

        balance = quantize(sum((t.amount for t in transactions), ZERO))
        total_allocated = quantize(sum((c.allocated for c in in_budget), ZERO))
        total_spent = quantize(sum((c.spent for c in in_budget), ZERO))
        unbudgeted_spent = quantize(sum(
            (
                c.spent for c in categories
                if not c.included_in_budget and c.name.strip().lower() not in income_names
            ),
            ZERO,
        ))

        progress = [
            CategoryProgress(
                category=c,
                percent_spent=c.percent_spent,
                remaining=c.remaining,
                status=self._status(c.percent_spent),
            )
            for c in categories
        ]

        return BudgetOverview(
            balance=balance,
            monthly_budget=monthly_budget,
            total_allocated=total_allocated,
            total_spent=total_spent,
            unbudgeted_spent=unbudgeted_spent,
            budget_overflow=total_allocated > monthly_budget + self._budget_settings.overflow_tolerance,
            categories=progress,
        )

    async def check_budget_health(self) -> ValidationResult:
        """Report allocation mismatches, buffer problems and overspending."""
        categories = await self._storage.get_budget_categories()
        monthly_budget = await self._storage.get_monthly_budget()
        return self._validator.validate(categories, monthly_budget)

    # =========================================================================
    # SAVINGS GOALS AND SETTINGS
    # =========================================================================

    async def add_savings_goal(
        self,
        data: Union[SavingsGoalCreate, dict],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        correlation_id = correlation_id or create_correlation_id()
        goal_id = await self._storage.add_savings_goal(data)
        await self._audit_logger.log_simple(
            event_type=AuditEventType.SAVINGS_GOAL_ADDED,
            description="Savings goal added",
            correlation_id=correlation_id,
            entity_type="savings_goal",
            entity_id=goal_id,
        )
        return goal_id

    async def get_savings_goals(self) -> list[SavingsGoal]:
        return await self._storage.get_savings_goals()

    async def get_user_settings(self) -> UserSettings:
        return await self._storage.get_user_settings()

    async def update_user_settings(
        self,
        patch: Union[UserSettingsUpdate, dict],
        correlation_id: Optional[UUID] = None,
    ) -> UserSettings:
        correlation_id = correlation_id or create_correlation_id()
        settings = await self._storage.update_user_settings(patch)
        await self._audit_logger.log_simple(
            event_type=AuditEventType.SETTINGS_UPDATED,
            description="User settings updated",
            correlation_id=correlation_id,
            entity_type="settings",
        )
        return settings

    async def reset_all_data(self, correlation_id: Optional[UUID] = None) -> None:
        """Wipe everything and start over with the default categories."""
        correlation_id = correlation_id or create_correlation_id()
        await self._storage.reset_all_data()
        await self._audit_logger.log_simple(
            event_type=AuditEventType.DATA_RESET,
            description="All data reset to defaults",
            correlation_id=correlation_id,
        )


def create_app_components(
    database_path: Optional[str] = None,
) -> tuple[BudgetService, SQLiteBudgetStorage]:
    """
    Factory function to create all application components.

    Args:
        database_path: SQLite file to use (':memory:' for a throwaway
                       database). Defaults to the configured path.

    Returns:
        (budget_service, storage)
    """
    settings = get_settings()
    database_settings = settings.database
    if database_path is not None:
        database_settings = DatabaseSettings(path=database_path)

    storage = SQLiteBudgetStorage(SQLiteClient(database_settings))
    service = BudgetService(
        storage=storage,
        audit_logger=AuditLogger(),
        budget_settings=settings.budget,
    )
    return service, storage
