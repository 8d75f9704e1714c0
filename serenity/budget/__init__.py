"""
Budget Engine Package

Spend synchronization, allocation rebalancing and category provisioning.
Every class here works on repositories bound to the caller's session and
never commits on its own.
"""

from serenity.budget.defaults import DEFAULT_CATEGORIES, personalized_categories
from serenity.budget.provisioner import CategoryProvisioner
from serenity.budget.rebalancer import (
    AllocationRebalancer,
    ConsistencyError,
    plan_rebalance,
)
from serenity.budget.spending import SpendSynchronizer, compute_spending

__all__ = [
    "AllocationRebalancer",
    "CategoryProvisioner",
    "ConsistencyError",
    "DEFAULT_CATEGORIES",
    "SpendSynchronizer",
    "compute_spending",
    "personalized_categories",
    "plan_rebalance",
]
