"""
Expense Tracker Backend — Expense Routes
=========================================

All routes require an authenticated identity. Query parameter names follow
the web client's camelCase (startDate, minAmount, ...).
"""

import datetime as dt
import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.dependencies import require_user
from expense_tracker.auth.identity import Identity
from expense_tracker.database import get_db_session
from expense_tracker.routes.dependencies import get_ai_service
from expense_tracker.schemas.common import DataResponse, ErrorEnvelope, MessageResponse
from expense_tracker.schemas.expense import (
    BulkDeleteData,
    BulkExpenseRequest,
    BulkExportData,
    ExpenseCreate,
    ExpenseData,
    ExpenseListData,
    ExpenseResponse,
    ExpenseStats,
    ExpenseUpdate,
    StatsPeriod,
)
from expense_tracker.services.ai_base import AIService
from expense_tracker.services.expense_service import ExpenseFilters, expense_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/expenses",
    tags=["Expenses"],
    responses={
        401: {"model": ErrorEnvelope},
        403: {"model": ErrorEnvelope},
        404: {"model": ErrorEnvelope},
        429: {"model": ErrorEnvelope},
    },
)


@router.get("", response_model=DataResponse[ExpenseListData])
async def list_expenses(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    category: Optional[str] = Query(default=None, description="Category name"),
    start_date: Optional[dt.date] = Query(default=None, alias="startDate"),
    end_date: Optional[dt.date] = Query(default=None, alias="endDate"),
    min_amount: Optional[float] = Query(default=None, alias="minAmount", ge=0),
    max_amount: Optional[float] = Query(default=None, alias="maxAmount", ge=0),
    search: Optional[str] = Query(default=None, max_length=200),
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[ExpenseListData]:
    filters = ExpenseFilters(
        category=category,
        start_date=start_date,
        end_date=end_date,
        min_amount=min_amount,
        max_amount=max_amount,
        search=search,
    )
    data = await expense_service.list_expenses(db, user.id, filters, page=page, limit=limit)
    return DataResponse(data=data)


@router.get("/stats/summary", response_model=DataResponse[ExpenseStats])
async def expense_stats(
    period: StatsPeriod = Query(default="month"),
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[ExpenseStats]:
    return DataResponse(data=await expense_service.get_stats(db, user.id, period))


@router.get("/{expense_id}", response_model=DataResponse[ExpenseData])
async def get_expense(
    expense_id: int,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[ExpenseData]:
    expense = await expense_service.get_expense(db, user.id, expense_id)
    return DataResponse(data=ExpenseData(expense=ExpenseResponse.from_model(expense)))


@router.post("", status_code=201, response_model=DataResponse[ExpenseData])
async def create_expense(
    body: ExpenseCreate,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
    ai_service: AIService = Depends(get_ai_service),
) -> DataResponse[ExpenseData]:
    expense = await expense_service.create_expense(db, user.id, body, ai_service)
    return DataResponse(
        message="Expense created successfully",
        data=ExpenseData(expense=ExpenseResponse.from_model(expense)),
    )


BulkResult = Union[BulkDeleteData, BulkExportData]


@router.post("/bulk", response_model=DataResponse[BulkResult])
async def bulk_action(
    body: BulkExpenseRequest,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[BulkResult]:
    """delete: removes the caller's expenses among the ids. export: returns them."""
    if body.action == "delete":
        deleted = await expense_service.bulk_delete(db, user.id, body.expense_ids)
        return DataResponse(
            message=f"{deleted} expenses deleted successfully",
            data=BulkDeleteData(deleted_count=deleted),
        )

    expenses = await expense_service.export_expenses(db, user.id, body.expense_ids)
    return DataResponse(data=BulkExportData(expenses=expenses))


@router.put("/{expense_id}", response_model=DataResponse[ExpenseData])
async def update_expense(
    expense_id: int,
    body: ExpenseUpdate,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[ExpenseData]:
    expense = await expense_service.update_expense(db, user.id, expense_id, body)
    return DataResponse(
        message="Expense updated successfully",
        data=ExpenseData(expense=ExpenseResponse.from_model(expense)),
    )


@router.delete("/{expense_id}", response_model=MessageResponse)
async def delete_expense(
    expense_id: int,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await expense_service.delete_expense(db, user.id, expense_id)
    return MessageResponse(message="Expense deleted successfully")
