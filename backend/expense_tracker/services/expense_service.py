"""
Expense Tracker Backend — Expense Service
==========================================

What:  Expense CRUD, filtered listing with pagination, and spending stats.
How:   Stateless; every method receives the request's AsyncSession and the
       caller's user id. Every query is scoped by user_id, so one user can
       never read or modify another user's expenses.
Who:   Called by the /api/expenses routes, the category stats route and the
       AI routes (history).

AI analysis on create is best-effort: an unavailable or failing provider
is logged and the expense is stored without analysis.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.exceptions import (
    AppError,
    IdentityRequiredError,
    NotFoundError,
    UpstreamServiceError,
)
from expense_tracker.models.category import Category
from expense_tracker.models.expense import Expense
from expense_tracker.schemas.category import (
    CategoryResponse,
    CategoryStatistics,
    CategoryStatsData,
)
from expense_tracker.schemas.expense import (
    CategoryBreakdown,
    DailyTotal,
    ExportedExpense,
    ExpenseCreate,
    ExpenseListData,
    ExpenseResponse,
    ExpenseStats,
    ExpenseUpdate,
    Pagination,
)
from expense_tracker.services.ai_base import AIService
from expense_tracker.services.category_service import category_service

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
TREND_DAYS = 30


@dataclass
class ExpenseFilters:
    category: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    search: Optional[str] = None

    def conditions(self) -> list:
        conds = []
        if self.category:
            conds.append(Category.name == self.category)
        if self.start_date:
            conds.append(Expense.date >= self.start_date)
        if self.end_date:
            conds.append(Expense.date <= self.end_date)
        if self.min_amount is not None:
            conds.append(Expense.amount >= self.min_amount)
        if self.max_amount is not None:
            conds.append(Expense.amount <= self.max_amount)
        if self.search:
            pattern = f"%{self.search}%"
            conds.append(or_(Expense.description.ilike(pattern), Category.name.ilike(pattern)))
        return conds


def to_amount(value: float) -> Decimal:
    return Decimal(str(round(value, 2)))


def period_start(period: str, today: date) -> Optional[date]:
    if period == "week":
        return today - timedelta(days=7)
    if period == "month":
        return today.replace(day=1)
    if period == "year":
        return today.replace(month=1, day=1)
    return None


class ExpenseService:

    async def list_expenses(
        self,
        db: AsyncSession,
        user_id: int,
        filters: ExpenseFilters,
        page: int = 1,
        limit: int = 20,
    ) -> ExpenseListData:
        conds = [Expense.user_id == user_id, *filters.conditions()]

        count_result = await db.execute(
            select(func.count(Expense.id))
            .join(Category, Expense.category_id == Category.id)
            .where(*conds)
        )
        total = count_result.scalar_one()

        result = await db.execute(
            select(Expense)
            .join(Category, Expense.category_id == Category.id)
            .where(*conds)
            .order_by(desc(Expense.date), desc(Expense.created_at))
            .offset((page - 1) * limit)
            .limit(limit)
        )
        expenses = result.scalars().all()

        return ExpenseListData(
            expenses=[ExpenseResponse.from_model(e) for e in expenses],
            pagination=Pagination(
                current_page=page,
                total_pages=math.ceil(total / limit) if total else 0,
                total_items=total,
                items_per_page=limit,
            ),
        )

    async def get_expense(self, db: AsyncSession, user_id: int, expense_id: int) -> Expense:
        result = await db.execute(
            select(Expense).where(Expense.id == expense_id, Expense.user_id == user_id)
        )
        expense = result.scalar_one_or_none()
        if expense is None:
            raise NotFoundError("Expense")
        return expense

    async def create_expense(
        self,
        db: AsyncSession,
        user_id: int,
        data: ExpenseCreate,
        ai_service: Optional[AIService] = None,
    ) -> Expense:
        category = await category_service.get_accessible(db, user_id, data.category_id)

        ai_analysis = None
        if ai_service is not None and ai_service.is_available:
            try:
                ai_analysis = await ai_service.analyze_expense(
                    {
                        "category": category.name,
                        "amount": data.amount,
                        "description": data.description,
                        "date": data.date.isoformat(),
                    },
                    await self.recent_history(db, user_id),
                )
            except UpstreamServiceError as e:
                logger.info("AI analysis skipped for new expense: %s", e.message)

        expense = Expense(
            user_id=user_id,
            category_id=category.id,
            amount=to_amount(data.amount),
            description=data.description,
            date=data.date,
            tags=data.tags,
            ai_analysis=ai_analysis,
            location=data.location,
        )
        expense.category = category
        db.add(expense)
        await db.flush()
        logger.info("User %s created expense %s", user_id, expense.id)
        return expense

    async def update_expense(
        self, db: AsyncSession, user_id: int, expense_id: int, data: ExpenseUpdate
    ) -> Expense:
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise AppError("No fields to update")

        expense = await self.get_expense(db, user_id, expense_id)

        if changes.get("category_id") is not None:
            category = await category_service.get_accessible(db, user_id, changes["category_id"])
            expense.category_id = category.id
            expense.category = category
        if changes.get("amount") is not None:
            expense.amount = to_amount(changes["amount"])
        if changes.get("description") is not None:
            expense.description = changes["description"].strip()
        if changes.get("date") is not None:
            expense.date = changes["date"]
        if "tags" in changes:
            expense.tags = changes["tags"] or []
        if "location" in changes:
            expense.location = changes["location"]

        expense.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return expense

    async def delete_expense(self, db: AsyncSession, user_id: int, expense_id: int) -> None:
        result = await db.execute(
            delete(Expense).where(Expense.id == expense_id, Expense.user_id == user_id)
        )
        if result.rowcount == 0:
            raise NotFoundError("Expense")

    async def attach_receipt(
        self, db: AsyncSession, user_id: int, expense_id: int, receipt_url: str
    ) -> Expense:
        expense = await self.get_expense(db, user_id, expense_id)
        expense.receipt_url = receipt_url
        expense.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return expense

    async def get_stats(
        self,
        db: AsyncSession,
        user_id: int,
        period: str = "month",
        today: Optional[date] = None,
    ) -> ExpenseStats:
        """
        Totals for the period, per-category breakdown (largest first) and up
        to 30 most recent daily totals.

        Periods: week (last 7 days), month (since the 1st), year (since
        January 1st), all.
        """
        conds = [Expense.user_id == user_id]
        start = period_start(period, today or date.today())
        if start is not None:
            conds.append(Expense.date >= start)

        total_result = await db.execute(
            select(func.coalesce(func.sum(Expense.amount), 0)).where(*conds)
        )
        total = total_result.scalar_one()

        total_col = func.sum(Expense.amount)
        breakdown_result = await db.execute(
            select(
                Category.name,
                Category.icon,
                Category.color,
                func.count(Expense.id),
                total_col,
                func.avg(Expense.amount),
            )
            .join(Category, Expense.category_id == Category.id)
            .where(*conds)
            .group_by(Category.id, Category.name, Category.icon, Category.color)
            .order_by(desc(total_col))
        )
        breakdown = [
            CategoryBreakdown(
                name=name,
                icon=icon,
                color=color,
                count=count,
                total=round(float(cat_total), 2),
                average=round(float(average), 2),
            )
            for name, icon, color, count, cat_total, average in breakdown_result.all()
        ]

        return ExpenseStats(
            total_amount=round(float(total), 2),
            category_breakdown=breakdown,
            daily_trends=await self._daily_trend(db, conds),
            period=period,
        )

    async def category_stats(
        self,
        db: AsyncSession,
        user_id: Optional[int],
        category_id: int,
        period: str = "month",
        today: Optional[date] = None,
    ) -> CategoryStatsData:
        """
        The caller's spending in one visible category: count, sum, mean,
        min and max over the period, plus its recent daily totals.

        An anonymous caller gets 404 for a category they cannot see and 401
        for one they can.
        """
        category = await category_service.get_accessible(db, user_id, category_id)
        if user_id is None:
            raise IdentityRequiredError("Authentication required for category statistics")

        conds = [Expense.user_id == user_id, Expense.category_id == category.id]
        start = period_start(period, today or date.today())
        if start is not None:
            conds.append(Expense.date >= start)

        result = await db.execute(
            select(
                func.count(Expense.id),
                func.coalesce(func.sum(Expense.amount), 0),
                func.coalesce(func.avg(Expense.amount), 0),
                func.coalesce(func.min(Expense.amount), 0),
                func.coalesce(func.max(Expense.amount), 0),
            ).where(*conds)
        )
        count, total, average, lowest, highest = result.one()

        return CategoryStatsData(
            category=CategoryResponse.model_validate(category),
            statistics=CategoryStatistics(
                transaction_count=count,
                total_amount=round(float(total), 2),
                average_amount=round(float(average), 2),
                min_amount=round(float(lowest), 2),
                max_amount=round(float(highest), 2),
            ),
            spending_trend=await self._daily_trend(db, conds),
            period=period,
        )

    async def bulk_delete(self, db: AsyncSession, user_id: int, expense_ids: List[int]) -> int:
        """Deletes whichever of the ids the user owns; returns how many went."""
        result = await db.execute(
            delete(Expense).where(Expense.id.in_(expense_ids), Expense.user_id == user_id)
        )
        logger.info("User %s bulk-deleted %d expenses", user_id, result.rowcount)
        return result.rowcount

    async def export_expenses(
        self, db: AsyncSession, user_id: int, expense_ids: List[int]
    ) -> List[ExportedExpense]:
        result = await db.execute(
            select(Expense.amount, Expense.description, Expense.date, Category.name)
            .join(Category, Expense.category_id == Category.id)
            .where(Expense.id.in_(expense_ids), Expense.user_id == user_id)
            .order_by(desc(Expense.date), desc(Expense.id))
        )
        return [
            ExportedExpense(
                amount=float(amount), description=description, date=day, category_name=name
            )
            for amount, description, day, name in result.all()
        ]

    async def _daily_trend(self, db: AsyncSession, conds: list) -> List[DailyTotal]:
        """Up to TREND_DAYS most recent per-day totals, newest first."""
        result = await db.execute(
            select(Expense.date, func.sum(Expense.amount))
            .where(*conds)
            .group_by(Expense.date)
            .order_by(desc(Expense.date))
            .limit(TREND_DAYS)
        )
        return [
            DailyTotal(date=day, daily_total=round(float(day_total), 2))
            for day, day_total in result.all()
        ]

    async def recent_history(
        self, db: AsyncSession, user_id: int, limit: int = HISTORY_LIMIT
    ) -> List[Dict[str, Any]]:
        """Most recent expenses as plain dicts, oldest first, for AI prompts."""
        result = await db.execute(
            select(Expense.date, Expense.amount, Expense.description, Category.name)
            .join(Category, Expense.category_id == Category.id)
            .where(Expense.user_id == user_id)
            .order_by(desc(Expense.date))
            .limit(limit)
        )
        rows = result.all()
        return [
            {
                "date": row[0].isoformat(),
                "amount": float(row[1]),
                "description": row[2],
                "category": row[3],
            }
            for row in reversed(rows)
        ]


expense_service = ExpenseService()
