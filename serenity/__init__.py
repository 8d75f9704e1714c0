"""
Serenity Budget - Source Package

A personal budgeting core: record income and expenses, split a monthly
budget across categories and follow spending against it.

DESIGN PRINCIPLES:
1. Spend is derived from the ledger, never typed in
2. Allocations always add up to the monthly budget
3. Never override what the user just entered
4. Every change is atomic and auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Serenity Budget Team"
