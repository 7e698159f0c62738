"""
Expense Tracker Backend — Authentication Routes
================================================

Every path here falls under the `auth` quota policy (5 requests per 15
minutes per IP, then a 15 minute block). PUT /password adds a route-local
limit of 3 changes per hour per identity.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.dependencies import require_user
from expense_tracker.auth.identity import Identity
from expense_tracker.auth.tokens import issue_token
from expense_tracker.database import get_db_session
from expense_tracker.ratelimit.dependencies import create_rate_limiter
from expense_tracker.ratelimit.policies import key_by_identity_or_ip
from expense_tracker.schemas.auth import (
    AuthData,
    LoginRequest,
    PasswordChangeRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    TokenData,
    UserData,
    UserResponse,
)
from expense_tracker.schemas.common import DataResponse, ErrorEnvelope, MessageResponse
from expense_tracker.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])

password_change_limiter = create_rate_limiter(
    "password_change", points=3, duration=3600, key_func=key_by_identity_or_ip
)

_ERRORS = {
    400: {"model": ErrorEnvelope},
    401: {"model": ErrorEnvelope},
    429: {"model": ErrorEnvelope},
}


@router.post(
    "/register",
    status_code=201,
    response_model=DataResponse[AuthData],
    responses={**_ERRORS, 409: {"model": ErrorEnvelope}},
    summary="Create an account",
)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[AuthData]:
    user, token = await user_service.register(db, body)
    return DataResponse(
        message="User registered successfully",
        data=AuthData(user=UserResponse.model_validate(user), token=token),
    )


@router.post(
    "/login",
    response_model=DataResponse[AuthData],
    responses=_ERRORS,
    summary="Exchange email and password for a bearer credential",
)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[AuthData]:
    user, token = await user_service.login(db, body)
    return DataResponse(
        message="Login successful",
        data=AuthData(user=UserResponse.model_validate(user), token=token),
    )


@router.get("/me", response_model=DataResponse[UserData], responses=_ERRORS)
async def me(
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[UserData]:
    record = await user_service.get_user(db, user.id)
    return DataResponse(data=UserData(user=UserResponse.model_validate(record)))


@router.put("/profile", response_model=DataResponse[UserData], responses=_ERRORS)
async def update_profile(
    body: ProfileUpdateRequest,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> DataResponse[UserData]:
    record = await user_service.update_profile(db, user.id, body)
    return DataResponse(
        message="Profile updated successfully",
        data=UserData(user=UserResponse.model_validate(record)),
    )


@router.put(
    "/password",
    response_model=MessageResponse,
    responses=_ERRORS,
    dependencies=[Depends(password_change_limiter)],
)
async def change_password(
    body: PasswordChangeRequest,
    user: Identity = Depends(require_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await user_service.change_password(db, user.id, body)
    return MessageResponse(message="Password updated successfully")


@router.post("/refresh", response_model=DataResponse[TokenData], responses=_ERRORS)
async def refresh(user: Identity = Depends(require_user)) -> DataResponse[TokenData]:
    """Issue a fresh credential for a caller whose current one still verifies."""
    return DataResponse(
        message="Token refreshed successfully",
        data=TokenData(token=issue_token(user.id)),
    )
