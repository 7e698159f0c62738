"""
Expense Tracker Backend — Category SQLAlchemy Model
====================================================

What:  ORM model for the `categories` table plus the default category seed.

A category is either a shared default (user_id NULL, is_default true) or
owned by one user. Expenses may reference defaults or the owner's own.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_tracker.database import Base

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    ("Food & Dining", "🍽️", "#FF6B6B"),
    ("Transportation", "🚗", "#4ECDC4"),
    ("Shopping", "🛍️", "#45B7D1"),
    ("Entertainment", "🎬", "#96CEB4"),
    ("Bills & Utilities", "💡", "#FFEAA7"),
    ("Healthcare", "🏥", "#DDA0DD"),
    ("Travel", "✈️", "#98D8C8"),
    ("Education", "📚", "#F7DC6F"),
    ("Groceries", "🛒", "#85C1E9"),
    ("Fitness", "💪", "#F8C471"),
    ("Home & Garden", "🏠", "#A9DFBF"),
    ("Personal Care", "💄", "#F1948A"),
    ("Investment", "📈", "#82E0AA"),
    ("Income", "💰", "#5DADE2"),
    ("Other", "📋", "#BDC3C7"),
]


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(32), nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True
    )
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user = relationship("User", back_populates="categories")

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name='{self.name}', default={self.is_default})>"


async def seed_default_categories(session: AsyncSession) -> int:
    """
    Insert any missing default categories. Idempotent.

    Returns the number of categories inserted.
    """
    result = await session.execute(
        select(Category.name).where(Category.is_default.is_(True))
    )
    existing = set(result.scalars().all())

    inserted = 0
    for name, icon, color in DEFAULT_CATEGORIES:
        if name in existing:
            continue
        session.add(Category(name=name, icon=icon, color=color, is_default=True))
        inserted += 1

    if inserted:
        await session.flush()
        logger.info("Seeded %d default categories", inserted)
    return inserted
