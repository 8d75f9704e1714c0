"""
SQLite Storage Implementation

DESIGN DECISION: A local SQLite file is the only backend because:
1. The app is single-user and works offline
2. No server to set up or keep running
3. One file is trivial to back up or wipe

Every public operation opens one SQLAlchemy session inside
`session.begin()`. The ledger write, the spend compensation and any
rebalancing happen in that session, so an error anywhere (including a
ConsistencyError from the rebalancer) rolls the whole operation back.

The engine is synchronous; the async methods exist so callers do not
depend on that, and because a single user never contends on the file.
"""

import asyncio
from contextlib import asynccontextmanager, contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncIterator, Iterator, Optional, Union

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Connection, Engine, create_engine, inspect, text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from serenity.budget.defaults import DEFAULT_CATEGORIES
from serenity.budget.provisioner import CategoryProvisioner
from serenity.budget.rebalancer import AllocationRebalancer
from serenity.budget.spending import SpendSynchronizer
from serenity.config import BudgetSettings, DatabaseSettings, get_settings
from serenity.models.category import (
    BudgetCategory,
    BudgetCategoryCreate,
    BudgetCategoryUpdate,
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
from serenity.models.transaction import (
    Transaction,
    TransactionCreate,
    TransactionUpdate,
)
from serenity.services.storage.interface import (
    BudgetStorageInterface,
    DuplicateError,
    InitializationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from serenity.services.storage.repositories import (
    CategoryRepository,
    LedgerRepository,
    SavingsGoalRepository,
    SettingsRepository,
)
from serenity.services.storage.schema import ADDITIVE_COLUMNS, Base


logger = structlog.get_logger(__name__)


def _migrate_database(conn: Connection) -> set[str]:
    """
    Add columns introduced after the first release to an existing database.

    Returns:
        "table.column" for every column that was added
    """
    inspector = inspect(conn)
    added = set()

    for table, column, ddl in ADDITIVE_COLUMNS:
        existing_columns = {c["name"] for c in inspector.get_columns(table)}
        if column in existing_columns:
            continue
        try:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))
        except OperationalError as e:
            if "duplicate column name" not in str(e):
                raise
            continue
        added.add(f"{table}.{column}")
        logger.info("migration_column_added", table=table, column=column)

    return added


class BudgetUnit:
    """Repositories and budget engine bound to one session."""

    def __init__(
        self,
        session: Session,
        budget_settings: BudgetSettings,
        default_currency: str = "EUR",
    ):
        self.session = session
        self.ledger = LedgerRepository(session)
        self.categories = CategoryRepository(session)
        self.settings = SettingsRepository(session, default_currency=default_currency)
        self.goals = SavingsGoalRepository(session)
        self.rebalancer = AllocationRebalancer(self.categories, self.settings, budget_settings)
        self.provisioner = CategoryProvisioner(
            self.categories, self.ledger, self.rebalancer, budget_settings
        )
        self.spending = SpendSynchronizer(self.categories, self.ledger, self.provisioner)

    def seed_defaults(self, migrated: frozenset[str] = frozenset()) -> None:
        """
        Install the default categories and settings where missing.

        Also backfills values for columns that a migration just added.
        """
        if self.categories.count() == 0:
            for category in DEFAULT_CATEGORIES:
                self.categories.add(category)
            logger.info("default_categories_seeded", count=len(DEFAULT_CATEGORIES))
        else:
            self._backfill_flags(migrated)

        settings = self.settings.get()
        if not settings.monthly_budget:
            total = sum((row.allocated for row in self.categories.list_in_budget()), ZERO)
            self.settings.set_monthly_budget(total)
            logger.info("monthly_budget_backfilled", monthly_budget=str(total))

    def _backfill_flags(self, migrated: frozenset[str]) -> None:
        defaults = {c.name: c for c in DEFAULT_CATEGORIES}
        if "budget_categories.included_in_budget" in migrated:
            for row in self.categories.list_all(active_only=False):
                if row.name in defaults and not defaults[row.name].included_in_budget:
                    row.included_in_budget = False
        if "budget_categories.is_buffer" in migrated:
            for row in self.categories.list_all(active_only=False):
                if row.name in defaults and defaults[row.name].is_buffer:
                    row.is_buffer = True
                    break
        self.session.flush()


class SQLiteClient:
    """
    Owns the SQLAlchemy engine.

    Initialization is lazy and serialized: the first operation creates the
    schema, runs migrations and seeds defaults; concurrent callers wait for
    it. On failure the client stays uninitialized so the next call retries.
    """

    def __init__(
        self,
        settings: Optional[DatabaseSettings] = None,
        budget_settings: Optional[BudgetSettings] = None,
        default_currency: Optional[str] = None,
    ):
        app_settings = get_settings()
        self._settings = settings or app_settings.database
        self._budget_settings = budget_settings or app_settings.budget
        self._default_currency = default_currency or app_settings.app.default_currency
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None
        self._init_lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._session_factory is not None

    @property
    def budget_settings(self) -> BudgetSettings:
        return self._budget_settings

    def _create_engine(self) -> Engine:
        url = self._settings.url
        if url == "sqlite://":
            return create_engine(
                url,
                echo=self._settings.echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        Path(self._settings.path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, echo=self._settings.echo)

    async def initialize(self) -> None:
        """
        Open the database, create or upgrade the schema and seed defaults.

        Raises:
            InitializationError: If any step fails
        """
        if self.is_initialized:
            return

        async with self._init_lock:
            if self.is_initialized:
                return

            engine = None
            try:
                engine = self._create_engine()
                Base.metadata.create_all(engine)
                with engine.begin() as conn:
                    migrated = frozenset(_migrate_database(conn))

                session_factory = sessionmaker(engine, expire_on_commit=False)
                with session_factory.begin() as session:
                    self.unit(session).seed_defaults(migrated)
            except (SQLAlchemyError, OSError) as e:
                if engine is not None:
                    engine.dispose()
                logger.error("database_initialization_failed", path=self._settings.path, error=str(e))
                raise InitializationError(f"Failed to initialize database: {e}") from e

            self._engine = engine
            self._session_factory = session_factory
            logger.info("database_initialized", path=self._settings.path)

    def unit(self, session: Session) -> BudgetUnit:
        return BudgetUnit(session, self._budget_settings, self._default_currency)

    @contextmanager
    def transaction(self) -> Iterator[BudgetUnit]:
        """One session, committed on success and rolled back on any error."""
        if self._session_factory is None:
            raise InitializationError("Database is not initialized")
        with self._session_factory.begin() as session:
            yield self.unit(session)

    async def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_factory = None


def _coerce(model: type[BaseModel], data: Any) -> Any:
    """Accept a model instance or a plain dict, re-raising pydantic errors as ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(str(e)) from e


def _parse_budget(value: Any) -> Decimal:
    try:
        amount = parse_amount(value)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if amount < 0:
        raise ValidationError("Monthly budget cannot be negative")
    return amount


class SQLiteBudgetStorage(BudgetStorageInterface):
    """SQLite implementation of the budget storage."""

    def __init__(self, client: Optional[SQLiteClient] = None):
        self._client = client or SQLiteClient()

    @property
    def client(self) -> SQLiteClient:
        return self._client

    @asynccontextmanager
    async def _unit(self, action: str) -> AsyncIterator[BudgetUnit]:
        await self._client.initialize()
        try:
            with self._client.transaction() as unit:
                yield unit
        except IntegrityError as e:
            if "UNIQUE constraint failed" in str(e.orig):
                raise DuplicateError(f"Failed to {action}: {e.orig}") from e
            raise StorageError(f"Failed to {action}: {e.orig}") from e
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to {action}: {e}") from e

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def add_transaction(self, data: Union[TransactionCreate, dict]) -> int:
        payload = _coerce(TransactionCreate, data)
        async with self._unit("add transaction") as unit:
            row = unit.ledger.add(payload)
            unit.spending.on_insert(row)
            transaction_id = row.id

        logger.info(
            "transaction_added",
            transaction_id=transaction_id,
            category=payload.category,
            amount=str(payload.amount),
        )
        return transaction_id

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        async with self._unit("get transaction") as unit:
            row = unit.ledger.get(transaction_id)
            return Transaction.model_validate(row) if row is not None else None

    async def get_transactions(self, limit: Optional[int] = None) -> list[Transaction]:
        async with self._unit("list transactions") as unit:
            return [Transaction.model_validate(row) for row in unit.ledger.list_all(limit)]

    async def update_transaction(
        self,
        transaction_id: int,
        patch: Union[TransactionUpdate, dict],
    ) -> Transaction:
        changes = _coerce(TransactionUpdate, patch).changes()
        async with self._unit("update transaction") as unit:
            updated = unit.ledger.update(transaction_id, changes)
            if updated is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            previous, row = updated
            if "amount" in changes or "category" in changes:
                unit.spending.on_update(previous, row)
            result = Transaction.model_validate(row)

        logger.info("transaction_updated", transaction_id=transaction_id, fields=sorted(changes))
        return result

    async def delete_transaction(self, transaction_id: int) -> None:
        async with self._unit("delete transaction") as unit:
            previous = unit.ledger.delete(transaction_id)
            if previous is None:
                raise NotFoundError(f"Transaction {transaction_id} not found")
            unit.spending.on_delete(previous)

        logger.info("transaction_deleted", transaction_id=transaction_id)

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def get_budget_categories(self) -> list[BudgetCategory]:
        async with self._unit("list categories") as unit:
            return [BudgetCategory.model_validate(row) for row in unit.categories.list_all()]

    async def get_budget_category(self, category_id: int) -> Optional[BudgetCategory]:
        async with self._unit("get category") as unit:
            row = unit.categories.get(category_id)
            return BudgetCategory.model_validate(row) if row is not None else None

    async def add_budget_category(self, data: Union[BudgetCategoryCreate, dict]) -> int:
        payload = _coerce(BudgetCategoryCreate, data)
        async with self._unit("add category") as unit:
            existing = unit.categories.get_by_name(payload.name, active_only=False)
            if existing is not None and existing.is_active:
                raise DuplicateError(f"Category '{payload.name}' already exists")

            fields = payload.model_dump()
            fields["spent"] = unit.ledger.expense_total(payload.name)
            if existing is not None:
                row = unit.categories.update(existing, fields)
            else:
                row = unit.categories.add(BudgetCategoryCreate(**fields))

            if row.is_buffer:
                unit.categories.clear_buffer_flags(keep_id=row.id)

            created = BudgetCategory.model_validate(row)
            if created.effective_allocation != 0:
                unit.rebalancer.rebalance(created.id, created.effective_allocation)
            category_id = created.id

        logger.info("category_added", category_id=category_id, name=payload.name)
        return category_id

    async def update_budget_category(
        self,
        category_id: int,
        patch: Union[BudgetCategoryUpdate, dict],
    ) -> Optional[RebalanceResult]:
        changes = _coerce(BudgetCategoryUpdate, patch).changes()
        async with self._unit("update category") as unit:
            row = unit.categories.get(category_id)
            if row is None:
                raise NotFoundError(f"Category {category_id} not found")
            before = BudgetCategory.model_validate(row)

            new_name = changes.get("name", before.name)
            renamed = new_name != before.name
            if renamed:
                if unit.categories.get_by_name(new_name, active_only=False) is not None:
                    raise DuplicateError(f"Category '{new_name}' already exists")
                unit.ledger.rename_category(before.name, new_name)

            unit.categories.update(row, changes)
            # The new name may already carry ledger history
            if renamed or (not before.is_active and row.is_active):
                row.spent = unit.ledger.expense_total(row.name)
            if changes.get("is_buffer"):
                unit.categories.clear_buffer_flags(keep_id=row.id)

            after = BudgetCategory.model_validate(row)
            delta = after.effective_allocation - before.effective_allocation
            result = unit.rebalancer.rebalance(category_id, delta) if delta != 0 else None

        logger.info("category_updated", category_id=category_id, fields=sorted(changes))
        return result

    async def reset_budget_categories(self) -> None:
        async with self._unit("reset categories") as unit:
            unit.categories.remove_all()
        logger.info("categories_reset")

    async def ensure_category(self, name: str) -> BudgetCategory:
        name = name.strip()
        if not name:
            raise ValidationError("Category name cannot be empty")
        async with self._unit("ensure category") as unit:
            return BudgetCategory.model_validate(unit.provisioner.ensure_category(name))

    async def recalculate_budget_spending(self) -> dict[str, Decimal]:
        async with self._unit("recalculate spending") as unit:
            return unit.spending.recalculate()

    async def install_budget(
        self,
        categories: list[Union[BudgetCategoryCreate, dict]],
        monthly_budget: Union[Decimal, float, str],
        budget_method: Optional[BudgetMethod] = None,
    ) -> list[int]:
        payloads = [_coerce(BudgetCategoryCreate, c) for c in categories]
        budget = _parse_budget(monthly_budget)

        names = [p.name for p in payloads]
        if len(set(names)) != len(names):
            raise DuplicateError("Category names must be unique")
        total = sum((p.effective_allocation for p in payloads), ZERO)
        tolerance = self._client.budget_settings.rounding_tolerance
        if abs(quantize(budget - total)) > tolerance:
            raise ValidationError(
                f"Allocations add up to {total}, not the monthly budget {budget}"
            )

        async with self._unit("install budget") as unit:
            unit.categories.remove_all()
            ids = []
            for payload in payloads:
                spent = unit.ledger.expense_total(payload.name)
                row = unit.categories.add(payload.model_copy(update={"spent": spent}))
                ids.append(row.id)
            unit.settings.set_monthly_budget(budget)
            if budget_method is not None:
                unit.settings.update({"budget_method": budget_method})

        logger.info("budget_installed", categories=len(ids), monthly_budget=str(budget))
        return ids

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_monthly_budget(self) -> Decimal:
        async with self._unit("get monthly budget") as unit:
            return unit.settings.get_monthly_budget()

    async def set_monthly_budget(self, value: Union[Decimal, float, str]) -> Decimal:
        """
        Change the monthly budget and move the difference through the allocations.

        Raises:
            ConsistencyError: If the allocations cannot follow; nothing is saved
        """
        budget = _parse_budget(value)
        async with self._unit("set monthly budget") as unit:
            previous = unit.settings.get_monthly_budget()
            unit.settings.set_monthly_budget(budget)
            if budget != previous:
                unit.rebalancer.rebalance(None, previous - budget)

        logger.info("monthly_budget_changed", previous=str(previous), monthly_budget=str(budget))
        return previous

    async def get_user_settings(self) -> UserSettings:
        async with self._unit("get settings") as unit:
            return UserSettings.model_validate(unit.settings.get())

    async def update_user_settings(
        self,
        patch: Union[UserSettingsUpdate, dict],
    ) -> UserSettings:
        changes = _coerce(UserSettingsUpdate, patch).changes()
        async with self._unit("update settings") as unit:
            return UserSettings.model_validate(unit.settings.update(changes))

    # -------------------------------------------------------------------------
    # Savings goals
    # -------------------------------------------------------------------------

    async def add_savings_goal(self, data: Union[SavingsGoalCreate, dict]) -> int:
        payload = _coerce(SavingsGoalCreate, data)
        async with self._unit("add savings goal") as unit:
            return unit.goals.add(payload).id

    async def get_savings_goals(self) -> list[SavingsGoal]:
        async with self._unit("list savings goals") as unit:
            return [SavingsGoal.model_validate(row) for row in unit.goals.list_active()]

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def reset_all_data(self) -> None:
        async with self._unit("reset data") as unit:
            unit.ledger.remove_all()
            unit.categories.remove_all()
            unit.goals.remove_all()
            unit.settings.remove()
            unit.session.flush()
            unit.seed_defaults()

        logger.info("data_reset")
