"""
Budget Health Validation

DESIGN DECISION: Structural validation (types, ranges, required fields)
is done by the pydantic models at the storage boundary. This module does
the SEMANTIC checks that need the whole category set:

- Allocations that no longer add up to the monthly budget
- No buffer, or several, so rebalancing has nowhere (or an arbitrary
  place) to put slack
- Categories spent past their allocation
- Category names that clash case-insensitively

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the user can decide.
"""

from decimal import Decimal
from typing import Optional

from serenity.config import BudgetSettings, get_settings
from serenity.models.category import BudgetCategory
from serenity.models.money import ZERO, quantize
from serenity.models.validation import ValidationIssue, ValidationResult


class BudgetValidator:
    """Semantic checks over a set of categories and a monthly budget."""

    def __init__(self, budget_settings: Optional[BudgetSettings] = None):
        self._settings = budget_settings or get_settings().budget

    def _check_allocation_sum(
        self,
        in_budget: list[BudgetCategory],
        monthly_budget: Decimal,
    ) -> list[ValidationIssue]:
        total = quantize(sum((c.allocated for c in in_budget), ZERO))
        gap = quantize(monthly_budget - total)
        if abs(gap) <= self._settings.rounding_tolerance:
            return []
        return [ValidationIssue(
            field="allocated",
            issue_type="sum_mismatch",
            message=(
                f"Allocations add up to {total}, which is "
                f"{abs(gap)} {'below' if gap > 0 else 'above'} the monthly budget of {monthly_budget}"
            ),
            severity="error",
            suggested_fix="Adjust a category or the monthly budget so they match",
        )]

    def _check_buffers(self, in_budget: list[BudgetCategory]) -> list[ValidationIssue]:
        buffers = [c for c in in_budget if c.is_buffer]
        if not buffers:
            return [ValidationIssue(
                field="is_buffer",
                issue_type="no_buffer",
                message="No buffer category: allocation changes can only be absorbed by unlocked categories",
                severity="warning",
                suggested_fix="Mark your savings category as the buffer",
            )]
        if len(buffers) > 1:
            names = ", ".join(c.name for c in buffers)
            return [ValidationIssue(
                field="is_buffer",
                issue_type="multiple_buffers",
                message=f"Several buffer categories ({names}); only '{buffers[0].name}' is used",
                severity="warning",
            )]
        if buffers[0].is_locked:
            return [ValidationIssue(
                field=buffers[0].name,
                issue_type="locked_buffer",
                message=f"Buffer category '{buffers[0].name}' is locked and will never absorb changes",
                severity="warning",
            )]
        return []

    def _check_overspending(self, in_budget: list[BudgetCategory]) -> list[ValidationIssue]:
        issues = []
        for category in in_budget:
            if category.spent > category.allocated:
                issues.append(ValidationIssue(
                    field=category.name,
                    issue_type="overspent",
                    message=(
                        f"'{category.name}' has spent {category.spent} "
                        f"of {category.allocated} ({category.percent_spent}%)"
                    ),
                    severity="warning",
                ))
        return issues

    def check_name(
        self,
        name: str,
        categories: list[BudgetCategory],
        exclude_id: Optional[int] = None,
    ) -> list[ValidationIssue]:
        """
        Check a proposed category name against the existing ones.

        Args:
            name: Proposed name
            categories: Existing categories
            exclude_id: Category being renamed (its own name is not a clash)
        """
        key = name.strip().lower()
        if not key:
            return [ValidationIssue(
                field="name",
                issue_type="missing",
                message="Category name is required",
                severity="error",
            )]
        for category in categories:
            if category.id != exclude_id and category.name.strip().lower() == key:
                return [ValidationIssue(
                    field="name",
                    issue_type="duplicate",
                    message=f"A category named '{category.name}' already exists",
                    severity="error",
                    suggested_fix="Choose another name or edit the existing category",
                )]
        return []

    def validate(
        self,
        categories: list[BudgetCategory],
        monthly_budget: Decimal,
    ) -> ValidationResult:
        """
        Run every budget-wide check.

        Args:
            categories: Current categories (inactive ones are ignored)
            monthly_budget: Target for Σ(allocated)

        Returns:
            ValidationResult with all issues found
        """
        in_budget = [c for c in categories if c.counts_in_budget]

        issues = []
        issues.extend(self._check_allocation_sum(in_budget, monthly_budget))
        issues.extend(self._check_buffers(in_budget))
        issues.extend(self._check_overspending(in_budget))

        return ValidationResult(issues=issues)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Short text shown on the budget screen."""
        if not result.issues:
            return "✅ Your budget is balanced."

        lines = []
        for issue in result.issues:
            marker = "❌" if issue.severity == "error" else "⚠️"
            lines.append(f"{marker} {issue.message}")
            if issue.suggested_fix:
                lines.append(f"   💡 {issue.suggested_fix}")
        return "\n".join(lines)
