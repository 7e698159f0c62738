"""JWT credential creation and verification.

A credential is a signed structure carrying the subject identifier (`sub`)
and an expiry (`exp`). It is verified against the process-wide secret and
never mutated. There is no server-side revocation list: a credential stays
valid until it expires or its subject disappears from the store.

Signature comparison is delegated to PyJWT, which compares HMAC digests in
constant time.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from expense_tracker.config import settings


class TokenError(Exception):
    """Raised when a credential cannot be verified."""


class TokenExpiredError(TokenError):
    """The credential's signature is valid but its expiry has passed."""


class TokenInvalidError(TokenError):
    """Bad signature, malformed structure, or unusable subject."""


@dataclass(frozen=True)
class TokenClaims:
    subject_id: int
    expires_at: datetime


def issue_token(
    user_id: int,
    expires_in: Optional[timedelta] = None,
    secret: Optional[str] = None,
) -> str:
    """Create a signed access credential for a user."""
    now = datetime.now(timezone.utc)
    lifetime = expires_in if expires_in is not None else timedelta(
        days=settings.access_token_expire_days
    )
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, secret: Optional[str] = None) -> TokenClaims:
    """Verify a credential and decode its subject.

    Returns TokenClaims on success.
    Raises TokenExpiredError or TokenInvalidError on failure.
    """
    try:
        payload = jwt.decode(
            token,
            secret or settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenInvalidError(f"Invalid token: {e}")

    try:
        subject_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise TokenInvalidError("Invalid token: subject is not a user id")

    return TokenClaims(
        subject_id=subject_id,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the credential from an `Authorization: Bearer <token>` header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
