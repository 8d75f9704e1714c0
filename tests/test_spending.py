"""
Tests for spend synchronization.

The incremental path (insert/update/delete compensation) must always
agree with compute_spending() over the ledger.
"""

import asyncio
import random
from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from serenity.budget.spending import compute_spending
from serenity.services.storage import ValidationError


def entry(id, amount, category):
    return SimpleNamespace(id=id, amount=Decimal(amount), category=category)


async def spent_by_name(storage) -> dict[str, Decimal]:
    return {c.name: c.spent for c in await storage.get_budget_categories()}


async def assert_matches_ledger(storage) -> None:
    expected = compute_spending(await storage.get_transactions())
    for name, spent in (await spent_by_name(storage)).items():
        assert spent == expected.get(name, Decimal("0")), name


class TestComputeSpending:
    """Tests for the pure spend function."""

    def test_only_expenses_count(self):
        spending = compute_spending([
            entry(1, "-12.50", "Transport"),
            entry(2, "2000", "Revenus"),
            entry(3, "-7.50", "Transport"),
            entry(4, "0", "Autres"),
        ])
        assert spending == {"Transport": Decimal("20.00")}

    def test_empty_ledger(self):
        assert compute_spending([]) == {}

    def test_names_are_case_sensitive(self):
        spending = compute_spending([
            entry(1, "-1", "Sorties"),
            entry(2, "-2", "sorties"),
        ])
        assert spending == {"Sorties": Decimal("1.00"), "sorties": Decimal("2.00")}


class TestSpendSynchronizer:
    """Incremental spend tracking through the storage facade."""

    def test_expense_on_unknown_category_creates_it(self, storage):
        """Adding -50 against "Loisirs" creates it with 50 spent."""
        async def scenario():
            await storage.add_transaction({"title": "Bowling", "amount": -50, "category": "Loisirs"})
            return await storage.get_budget_categories(), await storage.get_monthly_budget()

        categories, budget = asyncio.run(scenario())

        loisirs = next(c for c in categories if c.name == "Loisirs")
        assert loisirs.spent == Decimal("50")
        assert loisirs.allocated == Decimal("200")
        assert loisirs.included_in_budget is True
        epargne = next(c for c in categories if c.name == "Épargne")
        assert epargne.allocated == Decimal("100")
        assert sum(c.allocated for c in categories if c.counts_in_budget) == budget

    def test_income_does_not_create_category(self, storage):
        async def scenario():
            await storage.add_transaction({"title": "Prime", "amount": 300, "category": "Bonus"})
            return await spent_by_name(storage)

        assert "Bonus" not in asyncio.run(scenario())

    def test_add_then_delete_restores_spent(self, storage):
        async def scenario():
            before = await spent_by_name(storage)
            first = await storage.add_transaction({"title": "Bus", "amount": "-35,5", "category": "Transport"})
            second = await storage.add_transaction({"title": "Ciné", "amount": -12, "category": "Cinéma"})
            await storage.delete_transaction(first)
            await storage.delete_transaction(second)
            return before, await spent_by_name(storage)

        before, after = asyncio.run(scenario())

        for name, spent in before.items():
            assert after[name] == spent
        assert after["Cinéma"] == Decimal("0")

    def test_update_moves_spend_between_categories(self, storage):
        async def scenario():
            transaction_id = await storage.add_transaction(
                {"title": "Marché", "amount": -40, "category": "Alimentation"}
            )
            await storage.update_transaction(transaction_id, {"category": "Transport"})
            moved = await spent_by_name(storage)
            await storage.update_transaction(transaction_id, {"amount": 40})
            refunded = await spent_by_name(storage)
            return moved, refunded

        moved, refunded = asyncio.run(scenario())

        assert moved["Alimentation"] == Decimal("0")
        assert moved["Transport"] == Decimal("40")
        assert refunded["Transport"] == Decimal("0")

    def test_title_edit_leaves_spend_alone(self, storage):
        async def scenario():
            transaction_id = await storage.add_transaction(
                {"title": "Pharmacie", "amount": -15, "category": "Santé"}
            )
            await storage.update_transaction(transaction_id, {"title": "Pharmacie du centre"})
            return await spent_by_name(storage)

        assert asyncio.run(scenario())["Santé"] == Decimal("15")

    def test_spent_is_clamped_at_zero(self, storage):
        async def scenario():
            categories = await storage.get_budget_categories()
            transport = next(c for c in categories if c.name == "Transport")
            transaction_id = await storage.add_transaction(
                {"title": "Taxi", "amount": -30, "category": "Transport"}
            )
            with storage.client.transaction() as unit:
                unit.categories.get(transport.id).spent = Decimal("10")
            await storage.delete_transaction(transaction_id)
            return await storage.get_budget_category(transport.id)

        assert asyncio.run(scenario()).spent == Decimal("0")

    def test_spent_cannot_be_patched(self, storage):
        async def scenario():
            categories = await storage.get_budget_categories()
            transport = next(c for c in categories if c.name == "Transport")
            await storage.update_budget_category(transport.id, {"spent": 10})

        with pytest.raises(ValidationError):
            asyncio.run(scenario())

    def test_reactivated_category_recovers_its_history(self, storage):
        async def scenario():
            categories = await storage.get_budget_categories()
            transport = next(c for c in categories if c.name == "Transport")
            await storage.add_transaction({"title": "Train", "amount": -30, "category": "Transport"})
            await storage.update_budget_category(transport.id, {"is_active": False})
            await storage.add_transaction({"title": "Bus", "amount": -20, "category": "Transport"})
            reactivated = await storage.get_budget_category(transport.id)
            recalculated = await storage.recalculate_budget_spending()
            return reactivated, recalculated

        reactivated, recalculated = asyncio.run(scenario())

        assert reactivated.is_active is True
        assert reactivated.spent == Decimal("50")
        assert recalculated["Transport"] == Decimal("50")

    def test_expense_after_category_reset_counts_history(self, storage):
        async def scenario():
            await storage.add_transaction({"title": "Courses", "amount": -25, "category": "Alimentation"})
            await storage.reset_budget_categories()
            await storage.add_transaction({"title": "Boulangerie", "amount": -5, "category": "Alimentation"})
            return await storage.get_budget_categories()

        categories = asyncio.run(scenario())

        assert [c.name for c in categories] == ["Alimentation"]
        # No buffer left to fund it: created unfunded
        assert categories[0].allocated == Decimal("0")
        assert categories[0].spent == Decimal("30")

    def test_rename_onto_name_with_ledger_history_merges_spend(self, storage):
        async def scenario():
            await storage.add_transaction({"title": "Billet", "amount": -30, "category": "Voyage"})
            await storage.reset_budget_categories()
            (category_id,) = await storage.install_budget(
                [{"name": "A", "allocated": 100}], monthly_budget=100
            )
            await storage.add_transaction({"title": "Hôtel", "amount": -10, "category": "A"})
            await storage.update_budget_category(category_id, {"name": "Voyage"})
            incremental = await spent_by_name(storage)
            await assert_matches_ledger(storage)
            return incremental, await storage.recalculate_budget_spending()

        incremental, recalculated = asyncio.run(scenario())

        assert incremental == {"Voyage": Decimal("40")}
        assert recalculated == incremental

    def test_recalculate_repairs_drifted_spend(self, storage):
        async def scenario():
            await storage.add_transaction({"title": "Jeans", "amount": -60, "category": "Shopping"})
            categories = await storage.get_budget_categories()
            shopping = next(c for c in categories if c.name == "Shopping")
            with storage.client.transaction() as unit:
                unit.categories.get(shopping.id).spent = Decimal("999")
            return await storage.recalculate_budget_spending()

        spending = asyncio.run(scenario())

        assert spending["Shopping"] == Decimal("60")
        assert spending["Transport"] == Decimal("0")

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_incremental_matches_recompute(self, storage, seed):
        """Random add/update/delete sequences never drift from the ledger."""
        rng = random.Random(seed)
        names = ["Alimentation", "Transport", "Loisirs", "Voyage", "Revenus", "Autres"]
        start = datetime(2024, 1, 1)

        def random_amount() -> Decimal:
            return Decimal(rng.randint(-20000, 5000)) / 100

        async def scenario():
            ids = []
            for step in range(40):
                action = rng.choice(["add", "add", "update", "delete"]) if ids else "add"
                if action == "add":
                    ids.append(await storage.add_transaction({
                        "title": f"Opération {step}",
                        "amount": random_amount(),
                        "category": rng.choice(names),
                        "date": start + timedelta(days=rng.randint(0, 60)),
                    }))
                elif action == "update":
                    patch = {}
                    if rng.random() < 0.7:
                        patch["amount"] = random_amount()
                    if rng.random() < 0.5:
                        patch["category"] = rng.choice(names)
                    await storage.update_transaction(rng.choice(ids), patch)
                else:
                    transaction_id = rng.choice(ids)
                    ids.remove(transaction_id)
                    await storage.delete_transaction(transaction_id)
                await assert_matches_ledger(storage)

            incremental = await spent_by_name(storage)
            recalculated = await storage.recalculate_budget_spending()
            return incremental, recalculated

        incremental, recalculated = asyncio.run(scenario())

        assert incremental == recalculated
