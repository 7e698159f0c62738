"""Credential issuance, verification and password hashing."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from expense_tracker.auth.passwords import hash_password, verify_password
from expense_tracker.auth.tokens import (
    TokenExpiredError,
    TokenInvalidError,
    extract_bearer_token,
    issue_token,
    verify_token,
)
from expense_tracker.config import settings


def _encode(payload: dict, secret: str = None) -> str:
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm="HS256")


class TestVerifyToken:

    def test_round_trip_subject(self):
        claims = verify_token(issue_token(42))

        assert claims.subject_id == 42
        assert claims.expires_at > datetime.now(timezone.utc)

    def test_default_lifetime(self):
        claims = verify_token(issue_token(1))
        lifetime = claims.expires_at - datetime.now(timezone.utc)

        assert timedelta(days=settings.access_token_expire_days - 1) < lifetime
        assert lifetime <= timedelta(days=settings.access_token_expire_days)

    def test_expired(self):
        token = issue_token(1, expires_in=timedelta(seconds=-5))
        with pytest.raises(TokenExpiredError):
            verify_token(token)

    def test_wrong_secret(self):
        token = issue_token(1, secret="some-other-secret-of-adequate-length")
        with pytest.raises(TokenInvalidError):
            verify_token(token)

    def test_tampered_payload(self):
        header, payload, signature = issue_token(1).split(".")
        forged = _encode({"sub": "2", "exp": datetime.now(timezone.utc) + timedelta(hours=1)})
        with pytest.raises(TokenInvalidError):
            verify_token(".".join([header, forged.split(".")[1], signature]))

    @pytest.mark.parametrize("token", ["garbage", "a.b.c", ""])
    def test_malformed(self, token):
        with pytest.raises(TokenInvalidError):
            verify_token(token)

    def test_missing_expiry(self):
        with pytest.raises(TokenInvalidError):
            verify_token(_encode({"sub": "1"}))

    def test_non_numeric_subject(self):
        token = _encode({"sub": "alice", "exp": datetime.now(timezone.utc) + timedelta(hours=1)})
        with pytest.raises(TokenInvalidError, match="subject"):
            verify_token(token)


class TestExtractBearerToken:

    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            ("bearer abc", "abc"),
            ("Bearer ", None),
            ("Basic dXNlcjpwYXNz", None),
            ("", None),
            (None, None),
        ],
    )
    def test_extract(self, header, expected):
        assert extract_bearer_token(header) == expected


class TestPasswords:

    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")

        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed) is True
        assert verify_password("wrong horse", hashed) is False

    def test_unusable_hash_never_verifies(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False
