"""
Relational Schema

SQLAlchemy ORM tables backing the budget store. Four tables:
transactions, budget_categories, savings_goals and user_settings.

DESIGN DECISION: transactions.category is a plain string, not a foreign
key. Categories can be renamed, reset or soft-deleted while the ledger
keeps its history; the spend synchronizer re-binds by name.

Columns added after the first release are listed in ADDITIVE_COLUMNS so
an existing database file can be upgraded in place.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from serenity.models.transaction import utc_now


MONEY = Numeric(12, 2, asdecimal=True)


class Base(DeclarativeBase):
    pass


class TransactionRow(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )


class CategoryRow(Base):
    __tablename__ = "budget_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    allocated: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    spent: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    color: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    included_in_budget: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="1"
    )
    is_locked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )
    weight: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("1"), server_default="1"
    )
    is_buffer: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="0"
    )


class SavingsGoalRow(Base):
    __tablename__ = "savings_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    target_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    current_amount: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    target_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utc_now
    )


class UserSettingsRow(Base):
    __tablename__ = "user_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_method: Mapped[str] = mapped_column(String(20), nullable=False, default="thirds")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    biometric_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    monthly_budget: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)


# (table, column, DDL) for columns missing from databases created by
# earlier releases. Applied with ALTER TABLE ... ADD COLUMN.
ADDITIVE_COLUMNS: list[tuple[str, str, str]] = [
    ("budget_categories", "included_in_budget", "BOOLEAN NOT NULL DEFAULT 1"),
    ("budget_categories", "is_locked", "BOOLEAN NOT NULL DEFAULT 0"),
    ("budget_categories", "weight", "NUMERIC(12, 2) NOT NULL DEFAULT 1"),
    ("budget_categories", "is_buffer", "BOOLEAN NOT NULL DEFAULT 0"),
    ("user_settings", "monthly_budget", "NUMERIC(12, 2)"),
]
