"""
Tests for the budget service flows.
"""

import asyncio
from decimal import Decimal

import pytest

from serenity.audit import create_correlation_id
from serenity.budget.rebalancer import ConsistencyError
from serenity.models.audit import AuditEventType
from serenity.models.category import BudgetStatus
from serenity.models.settings import BudgetMethod
from serenity.orchestrator import create_app_components
from serenity.services.storage import DuplicateError, ValidationError


async def record_month(service):
    for title, amount, category in [
        ("Salaire", 2000, "Revenus"),
        ("Courses", -100, "Alimentation"),
        ("Cadeau", -30, "Autres"),
        ("Frais bancaires", -5, "Revenus"),
        ("Concert", -250, "Sorties"),
        ("Abonnement", -170, "Transport"),
    ]:
        await service.record_transaction({"title": title, "amount": amount, "category": category})


class TestBudgetSetup:
    """Personalized budget setup."""

    def test_personalized_setup_replaces_categories(self, service):
        async def scenario():
            await service.setup_personalized_budget("2500")
            return (
                await service.list_categories(),
                await service.get_user_settings(),
            )

        categories, settings = asyncio.run(scenario())

        by_name = {c.name: c for c in categories}
        assert len(categories) == 9
        assert by_name["Logement"].allocated == Decimal("750")
        assert by_name["Épargne"].is_buffer is True
        assert "Shopping" in by_name
        assert settings.monthly_budget == Decimal("2500")
        assert settings.budget_method == BudgetMethod.PERSONALIZED

    def test_setup_keeps_recorded_spend(self, service):
        async def scenario():
            await service.record_transaction({"title": "Bus", "amount": -12, "category": "Transport"})
            return await service.setup_personalized_budget(2000)

        categories = asyncio.run(scenario())

        assert next(c for c in categories if c.name == "Transport").spent == Decimal("12")

    @pytest.mark.parametrize("income", [0, -100, "abc"])
    def test_setup_rejects_invalid_income(self, service, income):
        with pytest.raises(ValidationError):
            asyncio.run(service.setup_personalized_budget(income))

    def test_setup_is_audited(self, service):
        asyncio.run(service.setup_personalized_budget(1800))

        events = service.audit_logger.get_recent_events()
        assert events[0].event_type == AuditEventType.BUDGET_SETUP_COMPLETED
        assert events[0].details["category_count"] == 9


class TestOverview:
    """Home-screen summary."""

    def test_overview_of_a_month(self, service):
        async def scenario():
            await record_month(service)
            return await service.get_budget_overview()

        overview = asyncio.run(scenario())

        assert overview.balance == Decimal("1445")
        assert overview.monthly_budget == Decimal("1230")
        assert overview.total_allocated == Decimal("1230")
        assert overview.total_spent == Decimal("520")
        assert overview.unbudgeted_spent == Decimal("30")
        assert overview.budget_overflow is False

        status = {p.category.name: p.status for p in overview.categories}
        assert status["Sorties"] == BudgetStatus.DANGER
        assert status["Transport"] == BudgetStatus.WARNING
        assert status["Alimentation"] == BudgetStatus.SAFE

        percent = {p.category.name: p.percent_spent for p in overview.categories}
        assert percent["Transport"] == 85
        assert percent["Autres"] == 0

    def test_overview_of_empty_ledger(self, service):
        overview = asyncio.run(service.get_budget_overview())

        assert overview.balance == Decimal("0")
        assert overview.total_spent == Decimal("0")
        assert len(overview.categories) == 8

    def test_overview_flags_overflow(self, service):
        async def scenario():
            await service.setup_personalized_budget(1000)
            categories = await service.list_categories()
            epargne = next(c for c in categories if c.name == "Épargne")
            # A direct write bypassing the rebalancer
            with service.storage.client.transaction() as unit:
                unit.categories.set_allocated(epargne.id, Decimal("500"))
            return await service.get_budget_overview()

        assert asyncio.run(scenario()).budget_overflow is True


class TestHealth:
    """Budget health checks."""

    def test_seeded_budget_is_healthy(self, service):
        result = asyncio.run(service.check_budget_health())

        assert result.issues == []
        assert result.is_valid is True

    def test_overspending_is_reported(self, service):
        async def scenario():
            await record_month(service)
            return await service.check_budget_health()

        result = asyncio.run(scenario())

        assert [i.issue_type for i in result.issues] == ["overspent"]
        assert result.issues[0].field == "Sorties"
        assert result.is_valid is True


class TestCategoryFlows:
    """Category edits through the service."""

    def test_name_clash_is_case_insensitive(self, service):
        with pytest.raises(DuplicateError):
            asyncio.run(service.add_category({"name": "transport", "allocated": 10}))

    def test_rename_to_own_name_in_other_case_is_allowed(self, service):
        async def scenario():
            categories = await service.list_categories()
            transport = next(c for c in categories if c.name == "Transport")
            await service.update_category(transport.id, {"name": "TRANSPORT"})
            return await service.storage.get_budget_category(transport.id)

        assert asyncio.run(scenario()).name == "TRANSPORT"

    def test_rename_onto_another_category_rejected(self, service):
        async def scenario():
            categories = await service.list_categories()
            transport = next(c for c in categories if c.name == "Transport")
            await service.update_category(transport.id, {"name": "sorties"})

        with pytest.raises(DuplicateError):
            asyncio.run(scenario())

    def test_allocation_edit_is_audited_with_rebalance(self, service):
        async def scenario():
            categories = await service.list_categories()
            transport = next(c for c in categories if c.name == "Transport")
            await service.update_category(transport.id, {"allocated": 250})
            return await service.list_categories()

        categories = asyncio.run(scenario())

        assert next(c for c in categories if c.name == "Épargne").allocated == Decimal("250")
        events = service.audit_logger.get_recent_events(limit=2)
        assert [e.event_type for e in events] == [
            AuditEventType.ALLOCATIONS_REBALANCED,
            AuditEventType.CATEGORY_UPDATED,
        ]
        assert events[0].correlation_id == events[1].correlation_id

    def test_impossible_edit_is_audited_and_raised(self, service):
        async def scenario():
            await service.setup_personalized_budget(1000)
            categories = await service.list_categories()
            logement = next(c for c in categories if c.name == "Logement")
            await service.update_category(logement.id, {"allocated": 1500})

        with pytest.raises(ConsistencyError):
            asyncio.run(scenario())

        events = service.audit_logger.get_recent_events()
        assert events[0].event_type == AuditEventType.REBALANCE_FAILED

    def test_add_category_is_audited(self, service):
        async def scenario():
            return await service.add_category({"name": "Voyage", "allocated": 100})

        category_id = asyncio.run(scenario())

        event = service.audit_logger.get_recent_events()[0]
        assert event.event_type == AuditEventType.CATEGORY_ADDED
        assert event.entity_id == category_id


class TestLedgerFlows:
    """Transactions through the service."""

    def test_record_edit_remove_are_audited(self, service):
        async def scenario():
            transaction_id = await service.record_transaction(
                {"title": "Pain", "amount": "-1,20", "category": "Alimentation"}
            )
            await service.edit_transaction(transaction_id, {"amount": "-1,40"})
            await service.remove_transaction(transaction_id)
            return await service.list_transactions()

        assert asyncio.run(scenario()) == []
        assert [e.event_type for e in service.audit_logger.get_recent_events(limit=3)] == [
            AuditEventType.TRANSACTION_DELETED,
            AuditEventType.TRANSACTION_UPDATED,
            AuditEventType.TRANSACTION_ADDED,
        ]

    def test_monthly_budget_change_is_audited(self, service):
        async def scenario():
            return await service.set_monthly_budget(1330)

        assert asyncio.run(scenario()) == Decimal("1230")
        event = service.audit_logger.get_recent_events()[0]
        assert event.event_type == AuditEventType.MONTHLY_BUDGET_CHANGED

    def test_unbalanceable_budget_change_is_audited_and_raised(self, service):
        async def scenario():
            await service.storage.install_budget(
                [
                    {"name": "Loyer", "allocated": 800, "is_locked": True},
                    {"name": "Épargne", "allocated": 0, "is_buffer": True},
                ],
                monthly_budget=800,
            )
            with pytest.raises(ConsistencyError):
                await service.set_monthly_budget(700)
            return await service.storage.get_monthly_budget()

        assert asyncio.run(scenario()) == Decimal("800")
        event = service.audit_logger.get_recent_events()[0]
        assert event.event_type == AuditEventType.REBALANCE_FAILED


class TestAuditTrail:
    """Events grouped by user action."""

    def test_events_of_one_action_share_a_correlation_id(self, service):
        correlation_id = create_correlation_id()

        async def scenario():
            categories = await service.list_categories()
            sorties = next(c for c in categories if c.name == "Sorties")
            await service.record_transaction({"title": "Bar", "amount": -8, "category": "Sorties"})
            await service.update_category(sorties.id, {"allocated": 100}, correlation_id=correlation_id)

        asyncio.run(scenario())

        events = service.audit_logger.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.CATEGORY_UPDATED,
            AuditEventType.ALLOCATIONS_REBALANCED,
        ]
        assert events[1].details["adjustments"] != {}


class TestAppComponents:
    """Factory wiring."""

    def test_in_memory_components(self):
        service, storage = create_app_components(":memory:")

        async def scenario():
            await service.record_transaction({"title": "Café", "amount": -2, "category": "Sorties"})
            overview = await service.get_budget_overview()
            await storage.client.close()
            return overview

        assert asyncio.run(scenario()).total_spent == Decimal("2")
