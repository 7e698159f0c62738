"""
Expense Tracker Backend — Abstract AI Service Interface
========================================================

What:  The contract every AI provider implements for expense features.
Who:   Called by ExpenseService (best-effort analysis on create) and by the
       /api/ai routes.

Degradation rules shared by every implementation:
    categorize_expense   returns None when the provider is unavailable
    extract_receipt      falls back to the rule-based receipt parser
    analyze_expense      raises UpstreamServiceError (503)
    read_receipt_image   raises UpstreamServiceError (503)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence


class AIService(ABC):
    @property
    @abstractmethod
    def is_available(self) -> bool:
        """True when the provider is enabled and configured."""
        ...

    @abstractmethod
    async def categorize_expense(
        self, description: str, amount: float, category_names: Sequence[str]
    ) -> Optional[str]:
        """
        Pick the best-matching category name for an expense.

        Returns one of `category_names`, or None when no suggestion could be made.
        """
        ...

    @abstractmethod
    async def extract_receipt(self, receipt_text: str) -> Dict[str, Any]:
        """Structured data (merchant, amount, date, items) from receipt text."""
        ...

    @abstractmethod
    async def analyze_expense(
        self, expense: Dict[str, Any], history: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """
        Spending insight for one expense given recent history.

        Raises:
            UpstreamServiceError: provider disabled or failing
        """
        ...

    @abstractmethod
    async def read_receipt_image(self, image_path: str) -> str:
        """
        Transcribe the text printed on a receipt photo.

        Raises:
            UpstreamServiceError: provider disabled or failing
        """
        ...

    @abstractmethod
    async def health_check(self) -> str:
        """One of: available, disabled, unavailable, circuit_open."""
        ...
