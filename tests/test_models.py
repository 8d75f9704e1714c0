"""
Tests for Serenity Budget models

Test strategy:
1. Unit tests for individual components (models, rebalancing plans, validators)
2. Integration tests for storage and flows against a throwaway SQLite file
3. No network, no shared database between tests
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from serenity.budget.defaults import DEFAULT_CATEGORIES, personalized_categories
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
    RebalanceResult,
)
from serenity.models.money import parse_amount
from serenity.models.settings import SavingsGoal, UserSettings, UserSettingsUpdate
from serenity.models.transaction import TransactionCreate, TransactionUpdate
from serenity.models.validation import ValidationIssue, ValidationResult


class TestMoney:
    """Tests for amount parsing."""

    def test_parse_amount_accepts_comma_separator(self):
        """A comma decimal separator is accepted."""
        assert parse_amount("12,50") == Decimal("12.50")

    def test_parse_amount_rounds_half_up(self):
        assert parse_amount("0.125") == Decimal("0.13")
        assert parse_amount(-2.675) == Decimal("-2.68")

    def test_parse_amount_strips_spaces(self):
        assert parse_amount(" 1 200,00 ") == Decimal("1200.00")

    @pytest.mark.parametrize("value", ["abc", "", None, True, "nan", "inf", [1]])
    def test_parse_amount_rejects_non_numbers(self, value):
        with pytest.raises(ValueError):
            parse_amount(value)


class TestTransactionModels:
    """Tests for ledger models."""

    def test_transaction_create(self):
        transaction = TransactionCreate(
            title="  Courses  ",
            amount="-54,20",
            category="Alimentation",
        )
        assert transaction.title == "Courses"
        assert transaction.amount == Decimal("-54.20")
        assert transaction.is_expense is True
        assert transaction.is_shared is False
        assert transaction.description is None

    def test_transaction_defaults_date_to_now(self):
        before = datetime.now(timezone.utc).replace(tzinfo=None)
        transaction = TransactionCreate(title="Salaire", amount=2000, category="Revenus")
        assert transaction.date >= before
        assert transaction.date.tzinfo is None
        assert transaction.is_expense is False

    def test_transaction_normalizes_aware_dates_to_utc(self):
        paris = timezone(timedelta(hours=2))
        transaction = TransactionCreate(
            title="Cinéma",
            amount=-12,
            category="Sorties",
            date=datetime(2024, 5, 1, 20, 0, tzinfo=paris),
        )
        assert transaction.date == datetime(2024, 5, 1, 18, 0)
        assert transaction.date.tzinfo is None

    def test_transaction_rejects_empty_title(self):
        with pytest.raises(ValueError):
            TransactionCreate(title="   ", amount=-1, category="Autres")

    def test_transaction_rejects_non_numeric_amount(self):
        with pytest.raises(ValueError):
            TransactionCreate(title="Test", amount="douze", category="Autres")

    def test_blank_description_becomes_none(self):
        transaction = TransactionCreate(title="Test", amount=-1, category="Autres", description="")
        assert transaction.description is None

    def test_update_only_reports_set_fields(self):
        patch = TransactionUpdate(amount="-10")
        assert patch.changes() == {"amount": Decimal("-10.00")}

    def test_update_cannot_clear_required_fields(self):
        """Explicit None on a required field is rejected."""
        with pytest.raises(ValueError):
            TransactionUpdate(category=None)

    def test_update_can_clear_description(self):
        patch = TransactionUpdate(description=None)
        assert patch.changes() == {"description": None}

    def test_update_rejects_unknown_fields(self):
        with pytest.raises(ValueError):
            TransactionUpdate(id=3)


class TestCategoryModels:
    """Tests for category models."""

    def test_effective_allocation_counts_only_active_in_budget(self):
        active = BudgetCategory(id=1, name="Transport", allocated=200)
        excluded = BudgetCategory(id=2, name="Autres", allocated=50, included_in_budget=False)
        inactive = BudgetCategory(id=3, name="Voyage", allocated=80, is_active=False)

        assert active.effective_allocation == Decimal("200.00")
        assert excluded.effective_allocation == Decimal("0")
        assert inactive.effective_allocation == Decimal("0")

    def test_negative_allocation_rejected(self):
        with pytest.raises(ValueError):
            BudgetCategoryCreate(name="Transport", allocated=-1)

    def test_percent_spent(self):
        category = BudgetCategory(id=1, name="Sorties", allocated=150, spent=120)
        assert category.percent_spent == 80
        assert category.remaining == Decimal("30.00")

    def test_percent_spent_without_allocation_is_zero(self):
        category = BudgetCategory(id=1, name="Autres", allocated=0, spent=42)
        assert category.percent_spent == 0

    def test_update_touches_allocation(self):
        assert BudgetCategoryUpdate(allocated=10).touches_allocation is True
        assert BudgetCategoryUpdate(is_active=False).touches_allocation is True
        assert BudgetCategoryUpdate(color="#000000").touches_allocation is False

    def test_update_cannot_clear_fields(self):
        with pytest.raises(ValueError):
            BudgetCategoryUpdate(name=None)

    def test_update_rejects_spent(self):
        """Spend is derived from the ledger, never patched."""
        with pytest.raises(ValueError):
            BudgetCategoryUpdate(spent=10)

    def test_rebalance_result_reconciled(self):
        result = RebalanceResult(delta=Decimal("10"), total_allocated=Decimal("100"))
        assert result.reconciled is False
        result = RebalanceResult(
            delta=Decimal("10"),
            correction=Decimal("-1"),
            total_allocated=Decimal("100"),
        )
        assert result.reconciled is True


class TestSettingsModels:
    """Tests for settings and savings goals."""

    def test_user_settings_defaults(self):
        settings = UserSettings()
        assert settings.monthly_budget == Decimal("0")
        assert settings.budget_method.value == "thirds"
        assert settings.currency == "EUR"
        assert settings.notifications is True
        assert settings.biometric_enabled is False

    def test_user_settings_null_budget_is_zero(self):
        assert UserSettings(monthly_budget=None).monthly_budget == Decimal("0")

    def test_settings_update_rejects_bad_method(self):
        with pytest.raises(ValueError):
            UserSettingsUpdate(budget_method="halves")

    def test_savings_goal_progress(self):
        goal = SavingsGoal(
            id=1,
            name="Vacances",
            target_amount=1000,
            current_amount=250,
            target_date=datetime(2025, 7, 1),
            created_at=datetime(2024, 1, 1),
        )
        assert goal.progress_percent == 25


class TestDefaults:
    """Tests for the seed and personalized category sets."""

    def test_seed_budget_is_1230(self):
        total = sum(c.allocated for c in DEFAULT_CATEGORIES if c.counts_in_budget)
        assert total == Decimal("1230")

    def test_seed_has_one_buffer(self):
        buffers = [c.name for c in DEFAULT_CATEGORIES if c.is_buffer]
        assert buffers == ["Épargne"]

    def test_seed_excludes_income_and_catch_all(self):
        excluded = {c.name for c in DEFAULT_CATEGORIES if not c.included_in_budget}
        assert excluded == {"Autres", "Revenus"}

    def test_personalized_split_of_round_income(self):
        categories = {c.name: c for c in personalized_categories(Decimal("2500"))}
        assert categories["Logement"].allocated == Decimal("750")
        assert categories["Alimentation"].allocated == Decimal("625")
        assert categories["Santé"].allocated == Decimal("125")
        assert categories["Épargne"].is_buffer is True
        assert categories["Revenus"].included_in_budget is False

    def test_personalized_split_first_category_absorbs_rounding(self):
        categories = personalized_categories(Decimal("1999"))
        in_budget = [c for c in categories if c.included_in_budget]
        assert sum(c.allocated for c in in_budget) == Decimal("1999")
        assert in_budget[0].name == "Logement"
        assert in_budget[0].allocated == Decimal("599")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.CATEGORY_ADDED,
            description="Category added",
        )
        assert event.event_type == AuditEventType.CATEGORY_ADDED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            description="Transaction recorded",
            details={"category": "Transport", "amount": "-12.00"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "transaction_added"
        assert log_dict["details"]["category"] == "Transport"

    def test_audit_event_builder_transaction_added(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.transaction_added(
            transaction_id=7,
            category="Transport",
            amount=Decimal("-12.00"),
            correlation_id=correlation_id,
        )
        assert event.entity_type == "transaction"
        assert event.entity_id == 7
        assert event.correlation_id == correlation_id
        assert event.is_user_action is True

    def test_audit_event_builder_allocations_rebalanced(self):
        event = AuditEventBuilder.allocations_rebalanced(
            category_id=1,
            delta=Decimal("150"),
            adjustments={3: Decimal("-150")},
            correction=Decimal("0"),
            correlation_id=uuid4(),
        )
        assert event.details["adjustments"] == {"3": "-150"}
        assert event.is_user_action is False

    def test_audit_event_builder_rebalance_failed_is_warning(self):
        event = AuditEventBuilder.rebalance_failed(
            category_id=None,
            error_message="no buffer",
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.error_message == "no buffer"


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        result = ValidationResult(issues=[
            ValidationIssue(
                field="allocated",
                issue_type="sum_mismatch",
                message="Allocations do not match",
                severity="error",
            ),
        ])
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.is_valid is False

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(issues=[
            ValidationIssue(
                field="is_buffer",
                issue_type="no_buffer",
                message="No buffer",
                severity="warning",
            ),
        ])
        assert result.has_errors is False
        assert result.warnings == ["No buffer"]
        assert result.is_valid is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
