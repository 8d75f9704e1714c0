"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path; async code is driven
with asyncio.run inside the test body.
"""

import pytest

from serenity.config import BudgetSettings, DatabaseSettings
from serenity.orchestrator import BudgetService
from serenity.services.storage.sqlite import SQLiteBudgetStorage, SQLiteClient


@pytest.fixture
def budget_settings() -> BudgetSettings:
    return BudgetSettings()


@pytest.fixture
def database_settings(tmp_path) -> DatabaseSettings:
    return DatabaseSettings(path=str(tmp_path / "budget.db"))


@pytest.fixture
def client(database_settings, budget_settings) -> SQLiteClient:
    return SQLiteClient(database_settings, budget_settings=budget_settings, default_currency="EUR")


@pytest.fixture
def storage(client) -> SQLiteBudgetStorage:
    return SQLiteBudgetStorage(client)


@pytest.fixture
def service(storage, budget_settings) -> BudgetService:
    return BudgetService(storage, budget_settings=budget_settings)
