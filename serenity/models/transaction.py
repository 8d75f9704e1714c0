"""
Ledger Models

A transaction is one line of the user's ledger: negative amounts are
expenses, positive amounts are income. The category is a plain name,
not a foreign key; the budget engine creates the category on demand.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from serenity.models.money import parse_amount


def normalize_timestamp(value: datetime) -> datetime:
    """Store timestamps as naive UTC so ordering stays consistent in SQLite."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utc_now() -> datetime:
    """Current time as naive UTC, the form every stored timestamp takes."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionBase(BaseModel):
    """Fields shared by every transaction representation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Short label shown in lists"
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount: negative = expense, positive = income"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Name of the budget category this transaction belongs to"
    )
    date: datetime = Field(
        default_factory=utc_now,
        description="When the transaction happened (user-assigned)"
    )
    description: Optional[str] = Field(
        default=None,
        max_length=1000,
        description="Free-form notes"
    )
    is_shared: bool = Field(
        default=False,
        description="Shared with the family (not used by the budget engine)"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: Any) -> Decimal:
        return parse_amount(v)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: datetime) -> datetime:
        return normalize_timestamp(v)

    @field_validator("description")
    @classmethod
    def blank_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def is_expense(self) -> bool:
        return self.amount < 0


class TransactionCreate(TransactionBase):
    """Payload for recording a new transaction."""


class TransactionUpdate(BaseModel):
    """
    Partial update of a transaction.

    Only fields explicitly set are written. Identity and creation
    timestamp are not patchable.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = None
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    date: Optional[datetime] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    is_shared: Optional[bool] = None

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: Any) -> Optional[Decimal]:
        if v is None:
            return None
        return parse_amount(v)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        return normalize_timestamp(v) if v is not None else None

    @field_validator("description")
    @classmethod
    def blank_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @model_validator(mode="after")
    def required_fields_not_cleared(self) -> "TransactionUpdate":
        for name in ("title", "amount", "category", "date", "is_shared"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        """Fields explicitly provided by the caller."""
        return self.model_dump(exclude_unset=True)


class Transaction(TransactionBase):
    """A stored transaction."""

    model_config = ConfigDict(str_strip_whitespace=True, from_attributes=True)

    id: int = Field(..., description="Surrogate key assigned on insert")
    created_at: datetime = Field(..., description="Insertion timestamp")
