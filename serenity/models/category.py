"""
Budget Category Models

A category carries two amounts:
- allocated: the budgeted ceiling, owned by the user and the rebalancer
- spent: derived from the ledger, never authoritative

DESIGN DECISION: Only active, in-budget categories count toward the
monthly budget. Out-of-budget categories (income, catch-all) still
track spend so the user sees where unplanned money went.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from serenity.models.money import ZERO, parse_amount, quantize


DEFAULT_COLOR = "#64748b"


class BudgetStatus(str, Enum):
    """Spending progress of one category."""
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


class BudgetCategoryBase(BaseModel):
    """Fields shared by every category representation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique, case-sensitive key binding transactions to this category"
    )
    allocated: Decimal = Field(
        default=ZERO,
        ge=0,
        description="Budgeted ceiling for the month"
    )
    spent: Decimal = Field(
        default=ZERO,
        ge=0,
        description="Sum of expenses recorded against this category"
    )
    color: str = Field(
        default=DEFAULT_COLOR,
        max_length=20,
        description="Display color (opaque to the budget engine)"
    )
    is_active: bool = Field(
        default=True,
        description="Inactive categories are excluded from all budget math"
    )
    included_in_budget: bool = Field(
        default=True,
        description="False = tracked for spend but outside the monthly budget"
    )
    is_locked: bool = Field(
        default=False,
        description="Locked categories are never touched by rebalancing"
    )
    weight: Decimal = Field(
        default=Decimal("1"),
        ge=0,
        description="Share used when rebalancing across several categories"
    )
    is_buffer: bool = Field(
        default=False,
        description="Absorbs or releases rebalancing slack first"
    )

    @field_validator("allocated", "spent", mode="before")
    @classmethod
    def validate_money(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @field_validator("weight", mode="before")
    @classmethod
    def validate_weight(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @property
    def counts_in_budget(self) -> bool:
        """Whether this category takes part in the allocation invariant."""
        return self.is_active and self.included_in_budget

    @property
    def effective_allocation(self) -> Decimal:
        """Allocation as seen by the monthly budget (0 when excluded)."""
        return self.allocated if self.counts_in_budget else ZERO


class BudgetCategoryCreate(BudgetCategoryBase):
    """Payload for creating a category."""


class BudgetCategoryUpdate(BaseModel):
    """
    Partial update of a category.

    `spent` is not editable: only the spend synchronizer writes it.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    allocated: Optional[Decimal] = Field(default=None, ge=0)
    color: Optional[str] = Field(default=None, max_length=20)
    is_active: Optional[bool] = None
    included_in_budget: Optional[bool] = None
    is_locked: Optional[bool] = None
    weight: Optional[Decimal] = Field(default=None, ge=0)
    is_buffer: Optional[bool] = None

    @field_validator("allocated", "weight", mode="before")
    @classmethod
    def validate_money(cls, v: Any) -> Optional[Decimal]:
        if v is None:
            return None
        return parse_amount(v)

    @model_validator(mode="after")
    def fields_not_cleared(self) -> "BudgetCategoryUpdate":
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        """Fields explicitly provided by the caller."""
        return self.model_dump(exclude_unset=True)

    @property
    def touches_allocation(self) -> bool:
        """Whether applying this patch can change the effective allocation."""
        return bool(
            self.model_fields_set & {"allocated", "included_in_budget", "is_active"}
        )


class BudgetCategory(BudgetCategoryBase):
    """A stored category."""

    model_config = ConfigDict(str_strip_whitespace=True, from_attributes=True)

    id: int = Field(..., description="Surrogate key")

    @property
    def remaining(self) -> Decimal:
        return quantize(self.allocated - self.spent)

    @property
    def percent_spent(self) -> int:
        """Spent as a rounded percentage of the allocation (0 when nothing is allocated)."""
        if self.allocated == 0:
            return 0
        return int((self.spent / self.allocated * 100).to_integral_value())


class CategoryProgress(BaseModel):
    """Spending progress of one category, as shown on the budget screen."""

    category: BudgetCategory
    percent_spent: int
    remaining: Decimal
    status: BudgetStatus


class BudgetOverview(BaseModel):
    """Home-screen summary of the budget."""

    balance: Decimal = Field(..., description="Sum of all transaction amounts")
    monthly_budget: Decimal
    total_allocated: Decimal = Field(
        ...,
        description="Sum of allocations over active, in-budget categories"
    )
    total_spent: Decimal = Field(
        ...,
        description="Sum of spend over active, in-budget categories"
    )
    unbudgeted_spent: Decimal = Field(
        ...,
        description="Spend recorded in out-of-budget categories, income buckets excluded"
    )
    budget_overflow: bool = Field(
        ...,
        description="Allocations exceed the monthly budget"
    )
    categories: list[CategoryProgress] = Field(default_factory=list)


class RebalanceResult(BaseModel):
    """Outcome of one rebalancing pass."""

    protected_id: Optional[int] = Field(
        default=None,
        description="Category whose change triggered the pass"
    )
    delta: Decimal = Field(..., description="Signed change that was redistributed")
    adjustments: dict[int, Decimal] = Field(
        default_factory=dict,
        description="Signed allocation change per category id"
    )
    correction: Decimal = Field(
        default=ZERO,
        description="Amount applied by the final reconciliation step"
    )
    total_allocated: Decimal = Field(
        ...,
        description="Sum of in-budget allocations after the pass"
    )

    @property
    def reconciled(self) -> bool:
        return self.correction != 0
