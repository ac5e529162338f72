"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the finance models used by ``statement_pipeline``.
"""

from .finance import Base, Budget, Category, Transaction

__all__ = [
    "Base",
    "Budget",
    "Category",
    "Transaction",
]
