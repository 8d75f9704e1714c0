"""
Storage Services Package

Provides the abstract budget storage interface and its exceptions.
The SQLite implementation lives in serenity.services.storage.sqlite; it
depends on the budget engine, which itself builds on this package.
"""

from serenity.services.storage.interface import (
    BudgetStorageInterface,
    DuplicateError,
    InitializationError,
    NotFoundError,
    StorageError,
    ValidationError,
)

__all__ = [
    # Interface
    "BudgetStorageInterface",
    # Exceptions
    "DuplicateError",
    "InitializationError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
]
