"""
Expense Tracker Backend — Identity Resolution
==============================================

What:  Turns a verified subject identifier into the current user record.
How:   Exactly one primary-key lookup against a UserStore per call. No
       caching: a deleted account invalidates its credentials immediately.

Store contract:
    get_user_by_id(user_id) -> UserRecord | None

    SqlUserStore backs it with the request's AsyncSession; InMemoryUserStore
    serves tests and local tooling.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.exceptions import IdentityNotFoundError
from expense_tracker.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """The authenticated user attached to a request."""

    id: int
    email: str
    name: str
    avatar_url: Optional[str] = None


class UserStore(Protocol):
    async def get_user_by_id(self, user_id: int) -> Optional[Identity]:
        ...


class SqlUserStore:
    """UserStore over the relational database."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user_by_id(self, user_id: int) -> Optional[Identity]:
        result = await self.session.execute(
            select(User.id, User.email, User.name, User.avatar_url).where(User.id == user_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return Identity(id=row.id, email=row.email, name=row.name, avatar_url=row.avatar_url)


class InMemoryUserStore:
    """UserStore over a dict, keyed by user id."""

    def __init__(self, users: Optional[Dict[int, Identity]] = None):
        self.users: Dict[int, Identity] = dict(users or {})
        self.lookups = 0

    def add(self, identity: Identity) -> None:
        self.users[identity.id] = identity

    def remove(self, user_id: int) -> None:
        self.users.pop(user_id, None)

    async def get_user_by_id(self, user_id: int) -> Optional[Identity]:
        self.lookups += 1
        return self.users.get(user_id)


class IdentityResolver:
    """Fetches the current Identity for a subject identifier."""

    def __init__(self, store: UserStore):
        self.store = store

    async def resolve(self, subject_id: int) -> Identity:
        """
        Raises:
            IdentityNotFoundError: no user with this id (deleted after issuance)
            Any store failure propagates unchanged.
        """
        identity = await self.store.get_user_by_id(subject_id)
        if identity is None:
            logger.info("Credential subject %s no longer exists", subject_id)
            raise IdentityNotFoundError()
        return identity
