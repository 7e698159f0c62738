"""Request/response contracts for /api/categories."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from expense_tracker.schemas.expense import DailyTotal, StatsPeriod

COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


def _clean_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return None
    v = v.strip()
    if len(v) < 2:
        raise ValueError("Category name must be at least 2 characters")
    return v


class CategoryCreate(BaseModel):
    name: str = Field(max_length=100)
    icon: str = Field(min_length=1, max_length=32)
    color: str = Field(pattern=COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _clean_name(v)


class CategoryUpdate(BaseModel):
    """Partial update of an owned category; omitted fields are left alone."""

    name: Optional[str] = Field(default=None, max_length=100)
    icon: Optional[str] = Field(default=None, min_length=1, max_length=32)
    color: Optional[str] = Field(default=None, pattern=COLOR_PATTERN)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean_name(v)


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    icon: str
    color: str
    is_default: bool
    user_id: Optional[int] = None


class CategoryData(BaseModel):
    category: CategoryResponse


class CategoryListData(BaseModel):
    categories: List[CategoryResponse]


class PopularCategory(CategoryResponse):
    usage_count: int
    total_spent: float


class PopularCategoryListData(BaseModel):
    categories: List[PopularCategory]


class CategoryStatistics(BaseModel):
    transaction_count: int
    total_amount: float
    average_amount: float
    min_amount: float
    max_amount: float


class CategoryStatsData(BaseModel):
    category: CategoryResponse
    statistics: CategoryStatistics
    spending_trend: List[DailyTotal]
    period: StatsPeriod
