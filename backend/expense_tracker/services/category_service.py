"""
Category lookups and user-owned category management.

Visibility rule: a user sees every default category plus their own.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.exceptions import AppError, NotFoundError
from expense_tracker.models.category import Category
from expense_tracker.models.expense import Expense
from expense_tracker.schemas.category import CategoryCreate, CategoryUpdate

logger = logging.getLogger(__name__)


def _visible_to(user_id: Optional[int]):
    if user_id is None:
        return Category.is_default.is_(True)
    return or_(Category.is_default.is_(True), Category.user_id == user_id)


class CategoryService:

    async def list_categories(self, db: AsyncSession, user_id: Optional[int]) -> List[Category]:
        result = await db.execute(
            select(Category)
            .where(_visible_to(user_id))
            .order_by(Category.is_default.desc(), Category.name.asc())
        )
        return list(result.scalars().all())

    async def get_accessible(
        self, db: AsyncSession, user_id: Optional[int], category_id: int
    ) -> Category:
        result = await db.execute(
            select(Category).where(Category.id == category_id, _visible_to(user_id))
        )
        category = result.scalar_one_or_none()
        if category is None:
            raise NotFoundError("Category")
        return category

    async def find_by_name(
        self, db: AsyncSession, user_id: int, name: str
    ) -> Optional[Category]:
        result = await db.execute(
            select(Category)
            .where(Category.name == name, _visible_to(user_id))
            .order_by(Category.is_default.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def create_category(
        self, db: AsyncSession, user_id: int, data: CategoryCreate
    ) -> Category:
        if await self.find_by_name(db, user_id, data.name) is not None:
            raise AppError("Category with this name already exists", status=409)

        category = Category(
            name=data.name, icon=data.icon, color=data.color, user_id=user_id, is_default=False
        )
        db.add(category)
        await db.flush()
        logger.info("User %s created category %s", user_id, category.id)
        return category

    async def get_owned(self, db: AsyncSession, user_id: int, category_id: int) -> Category:
        result = await db.execute(
            select(Category).where(Category.id == category_id, Category.user_id == user_id)
        )
        category = result.scalar_one_or_none()
        if category is None:
            raise NotFoundError("Category")
        return category

    async def update_category(
        self, db: AsyncSession, user_id: int, category_id: int, data: CategoryUpdate
    ) -> Category:
        category = await self.get_owned(db, user_id, category_id)

        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        if not changes:
            raise AppError("No fields to update")

        if "name" in changes and changes["name"] != category.name:
            existing = await self.find_by_name(db, user_id, changes["name"])
            if existing is not None and existing.id != category.id:
                raise AppError("Category with this name already exists", status=409)

        for field, value in changes.items():
            setattr(category, field, value)
        await db.flush()
        logger.info("User %s updated category %s", user_id, category.id)
        return category

    async def delete_category(self, db: AsyncSession, user_id: int, category_id: int) -> None:
        """
        Only the owner may delete, and only while no expense references it.
        Default categories are never deletable.
        """
        category = await self.get_owned(db, user_id, category_id)

        in_use = await db.execute(
            select(func.count(Expense.id)).where(Expense.category_id == category_id)
        )
        if in_use.scalar_one() > 0:
            raise AppError("Cannot delete category that is being used by expenses")

        await db.delete(category)
        await db.flush()

    async def popular_categories(
        self, db: AsyncSession, user_id: int, limit: int = 10
    ) -> List[Tuple[Category, int, float]]:
        """Visible categories ranked by how often, then how much, the user spent in them."""
        usage = func.count(Expense.id)
        spent = func.coalesce(func.sum(Expense.amount), 0)
        result = await db.execute(
            select(Category, usage, spent)
            .outerjoin(
                Expense,
                (Expense.category_id == Category.id) & (Expense.user_id == user_id),
            )
            .where(_visible_to(user_id))
            .group_by(Category.id)
            .order_by(desc(usage), desc(spent))
            .limit(limit)
        )
        return [(category, count, float(total)) for category, count, total in result.all()]


category_service = CategoryService()
