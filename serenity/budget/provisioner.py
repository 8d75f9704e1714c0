"""
Auto-Category Provisioner

Transactions reference categories by name. Before any spend is recorded
against a name, ensure_category() guarantees an active category with
that exact name exists, creating or reactivating one on demand.

DESIGN DECISION: Recording an expense must never fail on budget math.
If the budget has no room to fund a new in-budget category, it is
created with a zero allocation and a warning is logged instead.
"""

from typing import Optional

import structlog

from serenity.budget.rebalancer import AllocationRebalancer, ConsistencyError
from serenity.config import BudgetSettings, get_settings
from serenity.models.category import BudgetCategoryCreate
from serenity.models.money import ZERO
from serenity.services.storage.repositories import CategoryRepository, LedgerRepository
from serenity.services.storage.schema import CategoryRow


logger = structlog.get_logger(__name__)


class CategoryProvisioner:
    """Creates categories on first use."""

    def __init__(
        self,
        categories: CategoryRepository,
        ledger: LedgerRepository,
        rebalancer: AllocationRebalancer,
        budget_settings: Optional[BudgetSettings] = None,
    ):
        self._categories = categories
        self._ledger = ledger
        self._rebalancer = rebalancer
        self._budget_settings = budget_settings or get_settings().budget

    def is_excluded_by_default(self, name: str) -> bool:
        """Income and catch-all buckets stay outside the monthly budget."""
        key = name.strip().lower()
        return key in self._budget_settings.income_names or key in self._budget_settings.catch_all_names

    def ensure_category(
        self,
        name: str,
        exclude_transaction_id: Optional[int] = None,
    ) -> CategoryRow:
        """
        Return the active category called `name`, provisioning it if needed.

        A provisioned row starts with the spend already recorded in the
        ledger under that name.

        Args:
            name: Exact category name
            exclude_transaction_id: Transaction being synced, left out of the
                starting spend because the caller adds it afterwards

        Returns:
            The active category row
        """
        row = self._categories.get_by_name(name)
        if row is not None:
            return row

        spent = self._ledger.expense_total(name, exclude_id=exclude_transaction_id)
        inactive = self._categories.get_by_name(name, active_only=False)

        if inactive is not None:
            row = self._categories.reactivate(inactive, spent)
            action = "reactivated"
        else:
            row = self._categories.add(
                BudgetCategoryCreate(
                    name=name,
                    allocated=self._budget_settings.default_category_allocation,
                    spent=spent,
                    color=self._budget_settings.default_category_color,
                    included_in_budget=not self.is_excluded_by_default(name),
                )
            )
            action = "created"

        if row.included_in_budget and row.allocated > 0:
            try:
                self._rebalancer.rebalance(row.id, row.allocated)
            except ConsistencyError as e:
                row.allocated = ZERO
                logger.warning(
                    "category_provisioned_unfunded",
                    category=name,
                    error=str(e),
                )

        logger.info(
            "category_provisioned",
            category=name,
            category_id=row.id,
            action=action,
            allocated=str(row.allocated),
            included_in_budget=row.included_in_budget,
        )
        return row
