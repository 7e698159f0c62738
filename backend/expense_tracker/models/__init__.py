"""
ORM models. Importing this package registers every table on Base.metadata.
"""

from expense_tracker.models.category import Category
from expense_tracker.models.expense import Expense
from expense_tracker.models.user import User

__all__ = ["Category", "Expense", "User"]
