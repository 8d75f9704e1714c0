"""
Allocation Rebalancer

Keeps Σ(allocated) over active, in-budget categories equal to the monthly
budget. When one category's effective allocation moves by `delta`, the
other categories absorb the opposite change:

1. The buffer category (savings, by convention) gives or takes first
2. Unlocked categories share the rest in proportion to their weight
3. A final reconciliation puts any leftover discrepancy on the buffer

DESIGN DECISION: Planning is a pure function over category snapshots.
The plan is computed completely before any row is written, so a budget
that cannot be balanced raises ConsistencyError with nothing to undo.
We never override the value the user just entered to make the sum work.
"""

from decimal import Decimal
from typing import Optional

import structlog

from serenity.config import BudgetSettings, get_settings
from serenity.models.category import BudgetCategory, RebalanceResult
from serenity.models.money import CENT, ZERO, quantize
from serenity.services.storage.interface import StorageError
from serenity.services.storage.repositories import CategoryRepository, SettingsRepository


logger = structlog.get_logger(__name__)


class ConsistencyError(StorageError):
    """The allocation invariant cannot be restored without breaking a constraint."""
    pass


def _shares(categories: list[BudgetCategory], amount: Decimal) -> list[Decimal]:
    """Split `amount` by weight (equally when every weight is 0); the last item absorbs the rounding."""
    total_weight = sum((c.weight for c in categories), ZERO)
    shares = []
    remaining = amount
    for index, category in enumerate(categories):
        if index == len(categories) - 1:
            share = remaining
        elif total_weight > 0:
            share = quantize(amount * category.weight / total_weight)
        else:
            share = quantize(amount / len(categories))
        shares.append(share)
        remaining -= share
    return shares


def _take_by_weight(
    categories: list[BudgetCategory],
    allocations: dict[int, Decimal],
    amount: Decimal,
) -> None:
    """
    Take `amount` out of `allocations` by weight, never below 0.

    A category that cannot give its full share gives what it has; the
    shortfall is split again over the categories with room left. Whatever
    is still missing when they all run dry is left to reconciliation.
    """
    remaining = amount
    while remaining > 0:
        with_room = [c for c in categories if allocations[c.id] > 0]
        if not with_room:
            break
        taken = ZERO
        for category, share in zip(with_room, _shares(with_room, remaining)):
            part = min(share, allocations[category.id])
            allocations[category.id] -= part
            taken += part
        remaining -= taken


def plan_rebalance(
    categories: list[BudgetCategory],
    protected: Optional[BudgetCategory],
    delta: Decimal,
    monthly_budget: Decimal,
    tolerance: Decimal = CENT,
) -> RebalanceResult:
    """
    Compute how the other categories absorb a change of `delta`.

    Args:
        categories: Current state of the categories (any subset; inactive
            and out-of-budget ones are ignored)
        protected: The category whose change triggered the pass, already
            at its new value. Never adjusted. None when the monthly budget
            itself moved.
        delta: Signed change of the protected category's effective
            allocation (positive = it grew, others must shrink)
        monthly_budget: Target for Σ(allocated)
        tolerance: Largest discrepancy left unreconciled

    Returns:
        Signed adjustment per category id, and the reconciliation correction

    Raises:
        ConsistencyError: If the discrepancy has nowhere to go
    """
    protected_id = protected.id if protected is not None else None
    others = [
        c for c in sorted(categories, key=lambda c: c.id)
        if c.counts_in_budget and c.id != protected_id
    ]
    buffer = next((c for c in others if c.is_buffer and not c.is_locked), None)
    adjustable = [c for c in others if not c.is_locked and not c.is_buffer]

    allocations = {c.id: c.allocated for c in others}
    delta = quantize(delta)

    if delta > 0:
        needed = delta
        if buffer is not None:
            taken = min(allocations[buffer.id], needed)
            allocations[buffer.id] -= taken
            needed -= taken
        if needed > 0:
            _take_by_weight(adjustable, allocations, needed)
    elif delta < 0:
        freed = -delta
        if buffer is not None:
            allocations[buffer.id] += freed
        elif adjustable:
            for category, share in zip(adjustable, _shares(adjustable, freed)):
                allocations[category.id] += share

    protected_allocation = protected.effective_allocation if protected is not None else ZERO
    total = quantize(protected_allocation + sum(allocations.values(), ZERO))
    discrepancy = quantize(monthly_budget - total)
    correction = ZERO

    if abs(discrepancy) > tolerance:
        if buffer is None:
            raise ConsistencyError(
                f"Allocations are off by {discrepancy} and there is no buffer category to absorb it"
            )
        if allocations[buffer.id] + discrepancy < 0:
            raise ConsistencyError(
                f"Allocations are off by {discrepancy}, more than the buffer "
                f"'{buffer.name}' holds ({allocations[buffer.id]})"
            )
        allocations[buffer.id] += discrepancy
        correction = discrepancy
        total += discrepancy

    adjustments = {
        c.id: quantize(allocations[c.id] - c.allocated)
        for c in others
        if allocations[c.id] != c.allocated
    }
    return RebalanceResult(
        protected_id=protected_id,
        delta=delta,
        adjustments=adjustments,
        correction=correction,
        total_allocated=total,
    )


class AllocationRebalancer:
    """Applies rebalancing plans inside the caller's session."""

    def __init__(
        self,
        categories: CategoryRepository,
        settings: SettingsRepository,
        budget_settings: Optional[BudgetSettings] = None,
    ):
        self._categories = categories
        self._settings = settings
        self._budget_settings = budget_settings or get_settings().budget

    def rebalance(self, protected_id: Optional[int], delta: Decimal) -> RebalanceResult:
        """
        Redistribute `delta` across the in-budget categories.

        Args:
            protected_id: Category that changed (already written), or None
            delta: Signed change of its effective allocation

        Raises:
            ConsistencyError: If the budget cannot be balanced; nothing is written
        """
        snapshot = [BudgetCategory.model_validate(row) for row in self._categories.list_in_budget()]
        protected = None
        if protected_id is not None:
            protected = BudgetCategory.model_validate(self._categories.get(protected_id))

        try:
            result = plan_rebalance(
                snapshot,
                protected,
                delta,
                self._settings.get_monthly_budget(),
                tolerance=self._budget_settings.rounding_tolerance,
            )
        except ConsistencyError as e:
            logger.warning(
                "rebalance_rejected",
                category_id=protected_id,
                delta=str(delta),
                error=str(e),
            )
            raise

        current = {c.id: c.allocated for c in snapshot}
        for category_id, change in result.adjustments.items():
            self._categories.set_allocated(category_id, current[category_id] + change)

        logger.info(
            "allocations_rebalanced",
            category_id=protected_id,
            delta=str(result.delta),
            adjusted=len(result.adjustments),
            correction=str(result.correction),
        )
        return result
