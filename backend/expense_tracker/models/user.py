"""
Expense Tracker Backend — User SQLAlchemy Model
================================================

What:  ORM model for the `users` table.
Who:   Written by UserService (register, profile, password); read by the
       identity store on every authenticated request.

Table Design:
    - Integer primary key: it is the subject identifier embedded in credentials
    - email: unique, stored lower-cased
    - password_hash: bcrypt hash, never returned by the API
    - preferences: free-form JSON document owned by the client
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_tracker.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """
    A registered account.

    Deleting a row invalidates every credential issued for it: the identity
    resolver looks the user up on each request and rejects missing subjects.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    preferences: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    expenses = relationship(
        "Expense", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    categories = relationship(
        "Category", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
