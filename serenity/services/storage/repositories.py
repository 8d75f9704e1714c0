"""
Session-scoped Repositories

Each repository wraps one SQLAlchemy session and one table. They never
commit: the caller owns the transaction, so a facade operation that
touches the ledger, spend and allocations commits or rolls back as one.
"""

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from serenity.models.category import BudgetCategoryCreate
from serenity.models.money import ZERO, quantize
from serenity.models.settings import SETTINGS_ROW_ID, BudgetMethod, SavingsGoalCreate
from serenity.models.transaction import Transaction, TransactionCreate
from serenity.services.storage.schema import (
    CategoryRow,
    SavingsGoalRow,
    TransactionRow,
    UserSettingsRow,
)


class LedgerRepository:
    """Transactions table."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, data: TransactionCreate) -> TransactionRow:
        row = TransactionRow(**data.model_dump())
        self._session.add(row)
        self._session.flush()
        return row

    def get(self, transaction_id: int) -> Optional[TransactionRow]:
        return self._session.get(TransactionRow, transaction_id)

    def list_all(self, limit: Optional[int] = None) -> list[TransactionRow]:
        """Newest first: date descending, then insertion order descending."""
        stmt = select(TransactionRow).order_by(
            TransactionRow.date.desc(), TransactionRow.id.desc()
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt))

    def list_expenses(self) -> list[TransactionRow]:
        """Negative-amount transactions in insertion order."""
        stmt = (
            select(TransactionRow)
            .where(TransactionRow.amount < 0)
            .order_by(TransactionRow.id)
        )
        return list(self._session.scalars(stmt))

    def update(
        self,
        transaction_id: int,
        changes: dict[str, Any],
    ) -> Optional[tuple[Transaction, TransactionRow]]:
        """
        Apply a patch.

        Returns:
            (state before the patch, updated row), or None if the id is unknown
        """
        row = self.get(transaction_id)
        if row is None:
            return None
        previous = Transaction.model_validate(row)
        for field, value in changes.items():
            setattr(row, field, value)
        self._session.flush()
        return previous, row

    def delete(self, transaction_id: int) -> Optional[Transaction]:
        """Delete a row and return what it held, or None if the id is unknown."""
        row = self.get(transaction_id)
        if row is None:
            return None
        previous = Transaction.model_validate(row)
        self._session.delete(row)
        self._session.flush()
        return previous

    def expense_total(self, category: str, exclude_id: Optional[int] = None) -> Decimal:
        """Σ|amount| of the expenses recorded against a category name."""
        stmt = select(TransactionRow.amount).where(
            TransactionRow.category == category,
            TransactionRow.amount < 0,
        )
        if exclude_id is not None:
            stmt = stmt.where(TransactionRow.id != exclude_id)
        return quantize(sum((-amount for amount in self._session.scalars(stmt)), ZERO))

    def rename_category(self, old: str, new: str) -> int:
        """Re-label every transaction of `old`. Returns the number of rows touched."""
        result = self._session.execute(
            update(TransactionRow)
            .where(TransactionRow.category == old)
            .values(category=new)
        )
        return result.rowcount

    def remove_all(self) -> None:
        self._session.execute(delete(TransactionRow))


class CategoryRepository:
    """Budget categories table."""

    def __init__(self, session: Session):
        self._session = session

    def list_all(self, active_only: bool = True) -> list[CategoryRow]:
        stmt = select(CategoryRow).order_by(CategoryRow.id)
        if active_only:
            stmt = stmt.where(CategoryRow.is_active.is_(True))
        return list(self._session.scalars(stmt))

    def list_in_budget(self) -> list[CategoryRow]:
        """Active categories that count toward the monthly budget."""
        stmt = (
            select(CategoryRow)
            .where(
                CategoryRow.is_active.is_(True),
                CategoryRow.included_in_budget.is_(True),
            )
            .order_by(CategoryRow.id)
        )
        return list(self._session.scalars(stmt))

    def count(self) -> int:
        return self._session.scalar(select(func.count()).select_from(CategoryRow))

    def get(self, category_id: int) -> Optional[CategoryRow]:
        return self._session.get(CategoryRow, category_id)

    def get_by_name(self, name: str, active_only: bool = True) -> Optional[CategoryRow]:
        """Exact, case-sensitive lookup."""
        stmt = select(CategoryRow).where(CategoryRow.name == name)
        if active_only:
            stmt = stmt.where(CategoryRow.is_active.is_(True))
        return self._session.scalars(stmt).first()

    def add(self, data: BudgetCategoryCreate) -> CategoryRow:
        row = CategoryRow(**data.model_dump())
        self._session.add(row)
        self._session.flush()
        return row

    def reactivate(self, row: CategoryRow, spent: Decimal) -> CategoryRow:
        """Bring a soft-deleted row back with a freshly derived spend."""
        row.is_active = True
        row.spent = quantize(spent)
        self._session.flush()
        return row

    def update(self, row: CategoryRow, changes: dict[str, Any]) -> CategoryRow:
        for field, value in changes.items():
            setattr(row, field, value)
        self._session.flush()
        return row

    def set_allocated(self, category_id: int, value: Decimal) -> None:
        row = self.get(category_id)
        row.allocated = quantize(max(value, ZERO))

    def clear_buffer_flags(self, keep_id: int) -> None:
        """Unflag every buffer other than `keep_id`."""
        for row in self.list_all(active_only=False):
            if row.is_buffer and row.id != keep_id:
                row.is_buffer = False
        self._session.flush()

    def add_spent(self, name: str, amount: Decimal) -> Optional[CategoryRow]:
        """
        Add a signed amount to the active category's spend, clamped at 0.

        Returns:
            The updated row, or None when no active category has this name
        """
        row = self.get_by_name(name)
        if row is None:
            return None
        row.spent = quantize(max(row.spent + amount, ZERO))
        self._session.flush()
        return row

    def reset_spent(self) -> None:
        for row in self.list_all():
            row.spent = ZERO
        self._session.flush()

    def remove_all(self) -> None:
        self._session.execute(delete(CategoryRow))


class SettingsRepository:
    """The singleton user_settings row."""

    def __init__(self, session: Session, default_currency: str = "EUR"):
        self._session = session
        self._default_currency = default_currency

    def get(self) -> UserSettingsRow:
        """Return the settings row, creating it with defaults on first use."""
        row = self._session.get(UserSettingsRow, SETTINGS_ROW_ID)
        if row is None:
            row = UserSettingsRow(
                id=SETTINGS_ROW_ID,
                budget_method=BudgetMethod.THIRDS.value,
                currency=self._default_currency,
                notifications=True,
                biometric_enabled=False,
            )
            self._session.add(row)
            self._session.flush()
        return row

    def get_monthly_budget(self) -> Decimal:
        value = self.get().monthly_budget
        return quantize(value) if value is not None else ZERO

    def set_monthly_budget(self, value: Decimal) -> None:
        self.get().monthly_budget = quantize(value)
        self._session.flush()

    def update(self, changes: dict[str, Any]) -> UserSettingsRow:
        row = self.get()
        for field, value in changes.items():
            setattr(row, field, getattr(value, "value", value))
        self._session.flush()
        return row

    def remove(self) -> None:
        self._session.execute(delete(UserSettingsRow))


class SavingsGoalRepository:
    """Savings goals table."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, data: SavingsGoalCreate) -> SavingsGoalRow:
        row = SavingsGoalRow(**data.model_dump())
        self._session.add(row)
        self._session.flush()
        return row

    def list_active(self) -> list[SavingsGoalRow]:
        stmt = (
            select(SavingsGoalRow)
            .where(SavingsGoalRow.is_active.is_(True))
            .order_by(SavingsGoalRow.created_at.desc(), SavingsGoalRow.id.desc())
        )
        return list(self._session.scalars(stmt))

    def remove_all(self) -> None:
        self._session.execute(delete(SavingsGoalRow))
