"""
Spend Synchronizer

A category's `spent` is a pure function of the ledger:

    spent(category) = Σ |amount| of its negative transactions

compute_spending() is that function. SpendSynchronizer is the
incremental fast path: each ledger mutation applies a compensating
adjustment instead of rescanning the ledger. Both must always agree.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional, Protocol

import structlog

from serenity.budget.provisioner import CategoryProvisioner
from serenity.models.money import ZERO, quantize
from serenity.services.storage.repositories import CategoryRepository, LedgerRepository


logger = structlog.get_logger(__name__)


class LedgerEntry(Protocol):
    id: int
    amount: Decimal
    category: str


def compute_spending(transactions: Iterable[LedgerEntry]) -> dict[str, Decimal]:
    """
    Spend per category name, from scratch.

    Categories without expenses are absent from the result.
    """
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for transaction in transactions:
        if transaction.amount < 0:
            totals[transaction.category] += -transaction.amount
    return {name: quantize(total) for name, total in totals.items()}


class SpendSynchronizer:
    """Keeps category spend in step with ledger mutations."""

    def __init__(
        self,
        categories: CategoryRepository,
        ledger: LedgerRepository,
        provisioner: CategoryProvisioner,
    ):
        self._categories = categories
        self._ledger = ledger
        self._provisioner = provisioner

    def on_insert(self, transaction: LedgerEntry) -> None:
        """Call after the transaction row is written."""
        self._charge(transaction)

    def on_delete(self, previous: LedgerEntry) -> None:
        """Call after the row is deleted, with what it held."""
        self._release(previous)

    def on_update(self, previous: LedgerEntry, current: LedgerEntry) -> None:
        """Call after the row is patched. Old and new sides are handled independently."""
        self._release(previous)
        self._charge(current)

    def recalculate(self) -> dict[str, Decimal]:
        """
        Rebuild every active category's spend from the ledger.

        Returns:
            Spend per category name after the rebuild
        """
        expenses = self._ledger.list_expenses()
        # Provision first: a provisioned row starts from the ledger total,
        # which the replay below would otherwise count twice.
        for name in dict.fromkeys(t.category for t in expenses):
            self._provisioner.ensure_category(name)

        self._categories.reset_spent()
        for transaction in expenses:
            self._categories.add_spent(transaction.category, -transaction.amount)

        spending = {row.name: row.spent for row in self._categories.list_all()}
        logger.info(
            "spending_recalculated",
            transactions=len(expenses),
            categories=len(spending),
        )
        return spending

    def _charge(self, transaction: LedgerEntry) -> None:
        if transaction.amount >= 0:
            return
        self._provisioner.ensure_category(
            transaction.category,
            exclude_transaction_id=transaction.id,
        )
        self._categories.add_spent(transaction.category, -transaction.amount)

    def _release(self, transaction: Optional[LedgerEntry]) -> None:
        if transaction is None or transaction.amount >= 0:
            return
        row = self._categories.add_spent(transaction.category, transaction.amount)
        if row is None:
            logger.debug(
                "spend_release_skipped",
                category=transaction.category,
                reason="no active category",
            )
