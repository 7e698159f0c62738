"""
Expense Tracker Backend — User Service
=======================================

What:  Account registration, login, profile and password changes.
How:   Stateless; every method receives the request's AsyncSession. Password
       hashing runs in the threadpool so bcrypt never blocks the event loop.
Who:   Called by the /api/auth route handlers.
"""

import logging
from datetime import datetime, timezone
from typing import Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from expense_tracker.auth.passwords import hash_password, verify_password
from expense_tracker.auth.tokens import issue_token
from expense_tracker.exceptions import AppError, NotFoundError
from expense_tracker.models.user import User
from expense_tracker.schemas.auth import (
    LoginRequest,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    RegisterRequest,
)

logger = logging.getLogger(__name__)


class UserService:

    async def register(self, db: AsyncSession, data: RegisterRequest) -> Tuple[User, str]:
        """
        Create an account and issue its first credential.

        Raises:
            AppError (409): email already registered
        """
        existing = await db.execute(select(User.id).where(User.email == data.email))
        if existing.scalar_one_or_none() is not None:
            raise AppError("User already exists with this email", status=409)

        user = User(
            email=data.email,
            password_hash=await run_in_threadpool(hash_password, data.password),
            name=data.name,
            preferences={},
        )
        db.add(user)
        await db.flush()
        logger.info("Registered user %s", user.id)
        return user, issue_token(user.id)

    async def login(self, db: AsyncSession, data: LoginRequest) -> Tuple[User, str]:
        """
        Raises:
            AppError (401): unknown email or wrong password, indistinguishably
        """
        result = await db.execute(select(User).where(User.email == data.email))
        user = result.scalar_one_or_none()

        valid = user is not None and await run_in_threadpool(
            verify_password, data.password, user.password_hash
        )
        if not valid:
            logger.info("Failed login for %s", data.email)
            raise AppError("Invalid email or password", status=401)

        return user, issue_token(user.id)

    async def get_user(self, db: AsyncSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User")
        return user

    async def update_profile(
        self, db: AsyncSession, user_id: int, data: ProfileUpdateRequest
    ) -> User:
        if data.name is None and data.preferences is None:
            raise AppError("No fields to update")

        user = await self.get_user(db, user_id)
        if data.name is not None:
            user.name = data.name
        if data.preferences is not None:
            user.preferences = data.preferences
        user.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return user

    async def change_password(
        self, db: AsyncSession, user_id: int, data: PasswordChangeRequest
    ) -> None:
        user = await self.get_user(db, user_id)
        if not await run_in_threadpool(verify_password, data.current_password, user.password_hash):
            raise AppError("Current password is incorrect", status=401)

        user.password_hash = await run_in_threadpool(hash_password, data.new_password)
        user.updated_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("Password changed for user %s", user_id)


user_service = UserService()
