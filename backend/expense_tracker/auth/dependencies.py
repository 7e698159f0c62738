"""
Expense Tracker Backend — Request Identity Dependencies
========================================================

What:  FastAPI dependencies composing the token verifier and the identity
       resolver into the request identity gate.

Modes:
    require_user      Mandatory. Rejects the request on any failure:
                        no credential           → 401 "Access token is required"
                        verifier failure        → 403 "Invalid or expired token"
                        subject missing         → 403 "User no longer exists"
                        store failure           → 500 "Authentication error"
    optional_user     Never rejects. Any failure downgrades to anonymous (None),
                      so optional-auth routes keep working when a malformed
                      token is presented.
    require_identity  Used after optional_user; 401 "Authentication required"
                      when no identity was attached.

On success the Identity is also stored on request.state.user.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.identity import Identity, IdentityResolver, SqlUserStore, UserStore
from expense_tracker.auth.tokens import TokenError, extract_bearer_token, verify_token
from expense_tracker.database import get_db_session
from expense_tracker.exceptions import (
    AuthenticationBackendError,
    IdentityNotFoundError,
    IdentityRequiredError,
    InvalidCredentialError,
    MissingCredentialError,
)

logger = logging.getLogger(__name__)


async def get_user_store(db: AsyncSession = Depends(get_db_session)) -> UserStore:
    return SqlUserStore(db)


async def get_identity_resolver(store: UserStore = Depends(get_user_store)) -> IdentityResolver:
    return IdentityResolver(store)


async def authenticate(request: Request, resolver: IdentityResolver) -> Identity:
    """Run verify-then-resolve for the request's bearer credential.

    Raises the AuthenticationError subclass matching the failing stage.
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise MissingCredentialError()

    try:
        claims = verify_token(token)
    except TokenError as e:
        logger.info("Rejected credential: %s", e)
        raise InvalidCredentialError()

    try:
        identity = await resolver.resolve(claims.subject_id)
    except IdentityNotFoundError:
        raise
    except Exception as e:
        logger.error("Identity lookup failed for subject %s: %s", claims.subject_id, e)
        raise AuthenticationBackendError()

    request.state.user = identity
    return identity


async def require_user(
    request: Request,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Identity:
    return await authenticate(request, resolver)


async def optional_user(
    request: Request,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Optional[Identity]:
    try:
        return await authenticate(request, resolver)
    except Exception as e:
        if not isinstance(e, MissingCredentialError):
            logger.debug("Optional auth downgraded to anonymous: %s", e)
        request.state.user = None
        return None


async def require_identity(
    user: Optional[Identity] = Depends(optional_user),
) -> Identity:
    if user is None:
        raise IdentityRequiredError()
    return user
