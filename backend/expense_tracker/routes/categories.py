"""
Category routes.

Listing and per-category stats use the optional identity: anonymous callers
see the defaults only, and with a valid credential the caller's own
categories are included. A bad credential on those routes is ignored rather
than rejected. Stats still need an identity once the category is found.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.dependencies import optional_user, require_identity, require_user
from expense_tracker.auth.identity import Identity
from expense_tracker.database import get_db_session
from expense_tracker.schemas.category import (
    CategoryCreate,
    CategoryData,
    CategoryListData,
    CategoryResponse,
    CategoryStatsData,
    CategoryUpdate,
    PopularCategory,
    PopularCategoryListData,
)
from expense_tracker.schemas.common import DataResponse, ErrorEnvelope, MessageResponse
from expense_tracker.schemas.expense import StatsPeriod
from expense_tracker.services.category_service import category_service
from expense_tracker.services.expense_service import expense_service

router = APIRouter(
    prefix="/api/categories",
    tags=["Categories"],
    responses={401: {"model": ErrorEnvelope}, 429: {"model": ErrorEnvelope}},
)


@router.get("", response_model=DataResponse[CategoryListData])
async def list_categories(
    user: Optional[Identity] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CategoryListData]:
    categories = await category_service.list_categories(db, user.id if user else None)
    return DataResponse(
        data=CategoryListData(
            categories=[CategoryResponse.model_validate(c) for c in categories]
        )
    )


@router.get("/popular", response_model=DataResponse[PopularCategoryListData])
async def popular_categories(
    user: Identity = Depends(require_identity),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[PopularCategoryListData]:
    rows = await category_service.popular_categories(db, user.id)
    return DataResponse(
        data=PopularCategoryListData(
            categories=[
                PopularCategory(
                    **CategoryResponse.model_validate(category).model_dump(),
                    usage_count=usage_count,
                    total_spent=round(total_spent, 2),
                )
                for category, usage_count, total_spent in rows
            ]
        )
    )


@router.post("", status_code=201, response_model=DataResponse[CategoryData])
async def create_category(
    body: CategoryCreate,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CategoryData]:
    category = await category_service.create_category(db, user.id, body)
    return DataResponse(
        message="Category created successfully",
        data=CategoryData(category=CategoryResponse.model_validate(category)),
    )


@router.put("/{category_id}", response_model=DataResponse[CategoryData])
async def update_category(
    category_id: int,
    body: CategoryUpdate,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CategoryData]:
    category = await category_service.update_category(db, user.id, category_id, body)
    return DataResponse(
        message="Category updated successfully",
        data=CategoryData(category=CategoryResponse.model_validate(category)),
    )


@router.delete("/{category_id}", response_model=MessageResponse)
async def delete_category(
    category_id: int,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await category_service.delete_category(db, user.id, category_id)
    return MessageResponse(message="Category deleted successfully")


@router.get("/{category_id}/stats", response_model=DataResponse[CategoryStatsData])
async def category_stats(
    category_id: int,
    period: StatsPeriod = Query(default="month"),
    user: Optional[Identity] = Depends(optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[CategoryStatsData]:
    data = await expense_service.category_stats(
        db, user.id if user else None, category_id, period
    )
    return DataResponse(data=data)
