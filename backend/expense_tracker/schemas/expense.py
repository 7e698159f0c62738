"""
Expense Tracker Backend — Expense API Schemas
==============================================

Amounts arrive and leave as JSON numbers; they are stored as NUMERIC(10, 2).
Responses flatten the category into category_name / category_icon /
category_color so list views need no second request.
"""

import datetime as dt
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

StatsPeriod = Literal["week", "month", "year", "all"]


def _clean_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    return [t.strip() for t in tags if t and t.strip()]


class ExpenseCreate(BaseModel):
    category_id: int = Field(gt=0)
    amount: float = Field(gt=0, le=99_999_999.99, description="Must be greater than 0")
    description: str = Field(min_length=1, max_length=1000)
    date: dt.date
    tags: List[str] = Field(default_factory=list, max_length=20)
    location: Optional[str] = Field(default=None, max_length=255)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Description cannot be blank")
        return v

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v):
        return _clean_tags(v)


class ExpenseUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""

    category_id: Optional[int] = Field(default=None, gt=0)
    amount: Optional[float] = Field(default=None, gt=0, le=99_999_999.99)
    description: Optional[str] = Field(default=None, min_length=1, max_length=1000)
    date: Optional[dt.date] = None
    tags: Optional[List[str]] = Field(default=None, max_length=20)
    location: Optional[str] = Field(default=None, max_length=255)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, v):
        return _clean_tags(v)


class ExpenseResponse(BaseModel):
    id: int
    amount: float
    description: Optional[str]
    date: dt.date
    receipt_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    ai_analysis: Optional[Dict[str, Any]] = None
    location: Optional[str] = None
    category_id: int
    category_name: str
    category_icon: str
    category_color: str
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @classmethod
    def from_model(cls, expense) -> "ExpenseResponse":
        return cls(
            id=expense.id,
            amount=float(expense.amount),
            description=expense.description,
            date=expense.date,
            receipt_url=expense.receipt_url,
            tags=expense.tags or [],
            ai_analysis=expense.ai_analysis,
            location=expense.location,
            category_id=expense.category_id,
            category_name=expense.category.name,
            category_icon=expense.category.icon,
            category_color=expense.category.color,
            created_at=expense.created_at,
            updated_at=expense.updated_at,
        )


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class ExpenseData(BaseModel):
    expense: ExpenseResponse


class ExpenseListData(BaseModel):
    expenses: List[ExpenseResponse]
    pagination: Pagination


class CategoryBreakdown(BaseModel):
    name: str
    icon: str
    color: str
    count: int
    total: float
    average: float


class DailyTotal(BaseModel):
    date: dt.date
    daily_total: float


class ExpenseStats(BaseModel):
    total_amount: float
    category_breakdown: List[CategoryBreakdown]
    daily_trends: List[DailyTotal]
    period: StatsPeriod


class BulkExpenseRequest(BaseModel):
    action: Literal["delete", "export"]
    expense_ids: List[int] = Field(max_length=500)

    @field_validator("expense_ids")
    @classmethod
    def require_ids(cls, v: List[int]) -> List[int]:
        if not v:
            raise ValueError("At least one expense ID is required")
        return v


class BulkDeleteData(BaseModel):
    deleted_count: int


class ExportedExpense(BaseModel):
    amount: float
    description: Optional[str]
    date: dt.date
    category_name: str


class BulkExportData(BaseModel):
    expenses: List[ExportedExpense]
