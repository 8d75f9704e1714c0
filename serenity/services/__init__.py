"""Services package."""

from serenity.services.storage import (
    BudgetStorageInterface,
    DuplicateError,
    InitializationError,
    NotFoundError,
    StorageError,
    ValidationError,
)

__all__ = [
    "BudgetStorageInterface",
    "DuplicateError",
    "InitializationError",
    "NotFoundError",
    "StorageError",
    "ValidationError",
]
