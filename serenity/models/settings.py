"""
User Settings and Savings Goal Models

User settings are a single row (id = 1). Only `monthly_budget` is used
by the budget engine; the other preferences are passed through to the UI.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from serenity.models.money import ZERO, parse_amount


SETTINGS_ROW_ID = 1


class BudgetMethod(str, Enum):
    """How the user chose to split the budget."""
    THIRDS = "thirds"
    ENVELOPES = "envelopes"
    PERSONALIZED = "personalized"


class UserSettings(BaseModel):
    """The singleton settings row."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(default=SETTINGS_ROW_ID)
    monthly_budget: Decimal = Field(default=ZERO, ge=0)
    budget_method: BudgetMethod = Field(default=BudgetMethod.THIRDS)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    notifications: bool = True
    biometric_enabled: bool = False

    @field_validator("monthly_budget", mode="before")
    @classmethod
    def validate_budget(cls, v: Any) -> Decimal:
        if v is None:
            return ZERO
        return parse_amount(v)


class UserSettingsUpdate(BaseModel):
    """Partial update of the user preferences."""

    model_config = ConfigDict(extra="forbid")

    budget_method: Optional[BudgetMethod] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    notifications: Optional[bool] = None
    biometric_enabled: Optional[bool] = None

    @model_validator(mode="after")
    def fields_not_cleared(self) -> "UserSettingsUpdate":
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SavingsGoalCreate(BaseModel):
    """Payload for a new savings goal."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=ZERO, ge=0)
    target_date: datetime
    is_active: bool = True

    @field_validator("target_amount", "current_amount", mode="before")
    @classmethod
    def validate_money(cls, v: Any) -> Decimal:
        return parse_amount(v)


class SavingsGoal(SavingsGoalCreate):
    """A stored savings goal."""

    model_config = ConfigDict(str_strip_whitespace=True, from_attributes=True)

    id: int
    created_at: datetime

    @property
    def progress_percent(self) -> int:
        return int((self.current_amount / self.target_amount * 100).to_integral_value())
