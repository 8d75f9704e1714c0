"""
Default Category Sets

The seed set installed on first run and after a full reset, and the
income-percentage split used by the personalized setup flow.
"""

from decimal import ROUND_HALF_UP, Decimal

from serenity.models.category import BudgetCategoryCreate
from serenity.models.money import ZERO


DEFAULT_CATEGORIES: list[BudgetCategoryCreate] = [
    BudgetCategoryCreate(name="Alimentation", allocated=Decimal("400"), color="#059669"),
    BudgetCategoryCreate(name="Transport", allocated=Decimal("200"), color="#0891b2"),
    BudgetCategoryCreate(name="Sorties", allocated=Decimal("150"), color="#7c3aed"),
    BudgetCategoryCreate(name="Shopping", allocated=Decimal("100"), color="#dc2626"),
    BudgetCategoryCreate(name="Santé", allocated=Decimal("80"), color="#f59e0b"),
    BudgetCategoryCreate(
        name="Épargne", allocated=Decimal("300"), color="#10b981", is_buffer=True
    ),
    BudgetCategoryCreate(
        name="Autres", allocated=ZERO, color="#64748b", included_in_budget=False
    ),
    BudgetCategoryCreate(
        name="Revenus", allocated=ZERO, color="#0891b2", included_in_budget=False
    ),
]

# (name, share of income, color, is_buffer)
PERSONALIZED_SPLIT: list[tuple[str, Decimal, str, bool]] = [
    ("Logement", Decimal("0.30"), "#059669", False),
    ("Alimentation", Decimal("0.25"), "#0891b2", False),
    ("Transport", Decimal("0.10"), "#7c3aed", False),
    ("Sorties", Decimal("0.10"), "#dc2626", False),
    ("Shopping", Decimal("0.10"), "#f59e0b", False),
    ("Épargne", Decimal("0.10"), "#10b981", True),
    ("Santé", Decimal("0.05"), "#f97316", False),
]

EXCLUDED_CATEGORIES: list[tuple[str, str]] = [
    ("Autres", "#64748b"),
    ("Revenus", "#0891b2"),
]


def personalized_categories(income: Decimal) -> list[BudgetCategoryCreate]:
    """
    Split a monthly income into the personalized category set.

    Shares are rounded to whole units; the first category absorbs the
    difference so the in-budget allocations add up to the income exactly.

    Args:
        income: Monthly income, > 0

    Returns:
        In-budget categories followed by the excluded Autres/Revenus
    """
    amounts = [
        (income * share).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        for _, share, _, _ in PERSONALIZED_SPLIT
    ]
    amounts[0] += income - sum(amounts, ZERO)

    categories = [
        BudgetCategoryCreate(
            name=name,
            allocated=max(amount, ZERO),
            color=color,
            is_buffer=is_buffer,
        )
        for (name, _, color, is_buffer), amount in zip(PERSONALIZED_SPLIT, amounts)
    ]
    categories.extend(
        BudgetCategoryCreate(name=name, allocated=ZERO, color=color, included_in_budget=False)
        for name, color in EXCLUDED_CATEGORIES
    )
    return categories

