"""Budget validation package."""

from serenity.validation.validator import BudgetValidator

__all__ = ["BudgetValidator"]
