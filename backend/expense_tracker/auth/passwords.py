"""Password hashing utilities.

bcrypt salts automatically. Passwords are truncated to 72 bytes, bcrypt's
input limit. The work factor comes from settings.bcrypt_rounds.
"""

import bcrypt

from expense_tracker.config import settings


def hash_password(password: str) -> str:
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False
