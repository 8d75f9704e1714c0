"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the budget data layer.
This allows us to:
1. Keep the UI collaborators independent of SQLite
2. Use a throwaway database in tests
3. Keep budget rules (spend sync, rebalancing) behind one boundary

Every mutating operation is atomic: either all of its writes (ledger row,
spend compensation, rebalanced allocations) are committed, or none are.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional, Union

from serenity.models.category import (
    BudgetCategory,
    BudgetCategoryCreate,
    BudgetCategoryUpdate,
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


class BudgetStorageInterface(ABC):
    """
    Abstract interface for the budget data layer.

    Any storage implementation must implement these methods.
    Inputs may be given as models or as plain dicts.
    """

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_transaction(self, data: Union[TransactionCreate, dict]) -> int:
        """
        Record a transaction and update the spend of its category.

        The category is created first if it does not exist.

        Returns:
            The new transaction id

        Raises:
            ValidationError: If the payload is invalid
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Retrieve a transaction by id, or None."""
        pass

    @abstractmethod
    async def get_transactions(self, limit: Optional[int] = None) -> list[Transaction]:
        """
        List transactions, newest first.

        Ordered by date descending, then insertion order descending.
        """
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction_id: int,
        patch: Union[TransactionUpdate, dict],
    ) -> Transaction:
        """
        Patch a transaction and move its spend accordingly.

        Raises:
            NotFoundError: If the transaction does not exist
            ValidationError: If the patch is invalid
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: int) -> None:
        """
        Delete a transaction and release its spend.

        Raises:
            NotFoundError: If the transaction does not exist
        """
        pass

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_budget_categories(self) -> list[BudgetCategory]:
        """List active categories."""
        pass

    @abstractmethod
    async def get_budget_category(self, category_id: int) -> Optional[BudgetCategory]:
        """Retrieve a category by id (active or not), or None."""
        pass

    @abstractmethod
    async def add_budget_category(self, data: Union[BudgetCategoryCreate, dict]) -> int:
        """
        Create a category, rebalancing the others if it enters the budget.

        Raises:
            DuplicateError: If an active category already has this name
            ConsistencyError: If the budget cannot absorb the allocation
        """
        pass

    @abstractmethod
    async def update_budget_category(
        self,
        category_id: int,
        patch: Union[BudgetCategoryUpdate, dict],
    ) -> Optional[RebalanceResult]:
        """
        Patch a category, rebalancing the others when its effective
        allocation changes.

        Returns:
            The rebalance outcome, or None when no rebalancing was needed

        Raises:
            NotFoundError: If the category does not exist
            DuplicateError: If the new name is taken
            ConsistencyError: If the budget cannot absorb the change
        """
        pass

    @abstractmethod
    async def reset_budget_categories(self) -> None:
        """Delete every category row."""
        pass

    @abstractmethod
    async def ensure_category(self, name: str) -> BudgetCategory:
        """Return the active category with this name, creating it if needed."""
        pass

    @abstractmethod
    async def recalculate_budget_spending(self) -> dict[str, Decimal]:
        """
        Rebuild every category's spend from the ledger.

        Returns:
            Spend per category name after the rebuild
        """
        pass

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_monthly_budget(self) -> Decimal:
        """Get the monthly budget target."""
        pass

    @abstractmethod
    async def set_monthly_budget(self, value: Union[Decimal, float, str]) -> Decimal:
        """
        Set the monthly budget target; allocations follow through the buffer.

        Returns:
            The previous target

        Raises:
            ConsistencyError: If the allocations cannot follow the new target
        """
        pass

    @abstractmethod
    async def get_user_settings(self) -> UserSettings:
        """Get the singleton settings row."""
        pass

    @abstractmethod
    async def update_user_settings(
        self,
        patch: Union[UserSettingsUpdate, dict],
    ) -> UserSettings:
        """Patch the user preferences."""
        pass

    @abstractmethod
    async def install_budget(
        self,
        categories: list[Union[BudgetCategoryCreate, dict]],
        monthly_budget: Union[Decimal, float, str],
        budget_method: Optional[BudgetMethod] = None,
    ) -> list[int]:
        """
        Replace every category and the monthly budget in one step.

        No rebalancing happens: the in-budget allocations of `categories`
        must already add up to `monthly_budget`.

        Returns:
            Ids of the installed categories, in input order

        Raises:
            ValidationError: If the allocations do not match the budget
        """
        pass

    # -------------------------------------------------------------------------
    # Savings goals
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_savings_goal(self, data: Union[SavingsGoalCreate, dict]) -> int:
        """Create a savings goal."""
        pass

    @abstractmethod
    async def get_savings_goals(self) -> list[SavingsGoal]:
        """List active savings goals, newest first."""
        pass

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    @abstractmethod
    async def reset_all_data(self) -> None:
        """Wipe every table and reseed the default categories and settings."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class InitializationError(StorageError):
    """The database could not be opened or its schema created."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ValidationError(StorageError, ValueError):
    """Caller-supplied data violates a constraint."""
    pass


class DuplicateError(ValidationError):
    """Attempted to insert a duplicate entity."""
    pass
