"""
Expense Tracker Backend — Quota Policies
=========================================

What:  Static quota configuration and the route-prefix policy selector.

Policy table (built once at process start):
    general   per-IP                 RATE_LIMIT_MAX_REQUESTS / RATE_LIMIT_WINDOW
    auth      per-IP                 5 / 900s, blocked 900s once exhausted
    ai        per-identity, else IP  20 / 3600s
    upload    per-identity, else IP  10 / 3600s

Selection is a pure function of the request path: the longest matching
prefix wins, anything unmatched falls through to `general`. It runs before
identity resolution, so unauthenticated floods are still throttled.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from starlette.requests import Request

from expense_tracker.auth.tokens import TokenError, extract_bearer_token, verify_token
from expense_tracker.config import Settings

KeyFunc = Callable[[Request], str]


def client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """Socket peer address, or the first X-Forwarded-For hop when trusted."""
    if trust_proxy_headers:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    return request.client.host if request.client else "unknown"


def key_by_ip(request: Request) -> str:
    trust = getattr(request.app.state, "trust_proxy_headers", False)
    return f"ip:{client_ip(request, trust)}"


def key_by_identity_or_ip(request: Request) -> str:
    """
    Key by the caller's user id when one is known, else by IP.

    Policies run before the store lookup, so a verifiable bearer credential's
    subject stands in for the resolved identity. Anonymous callers and
    callers with bad tokens share their IP bucket.
    """
    user = getattr(request.state, "user", None)
    if user is not None:
        return f"user:{user.id}"
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token:
        try:
            return f"user:{verify_token(token).subject_id}"
        except TokenError:
            pass
    return key_by_ip(request)


@dataclass(frozen=True)
class QuotaPolicy:
    """
    Attributes:
        name:            policy name, also the counter namespace
        points:          consumptions allowed per window
        duration:        window length in seconds
        block_duration:  seconds a key stays blocked after exhausting the
                         window; 0 means plain rate limiting
        key_func:        derives the counter key from a request
        message:         throttle message returned to the client
    """

    name: str
    points: int
    duration: float
    block_duration: float = 0
    key_func: KeyFunc = key_by_ip
    message: str = "Too many requests"

    def key_for(self, request: Request) -> str:
        return self.key_func(request)


GENERAL = "general"
AUTH = "auth"
AI = "ai"
UPLOAD = "upload"

ROUTE_PREFIXES: Tuple[Tuple[str, str], ...] = (
    ("/api/auth/", AUTH),
    ("/api/ai/", AI),
    ("/api/upload/", UPLOAD),
)


def build_policies(settings: Settings) -> Dict[str, QuotaPolicy]:
    return {
        GENERAL: QuotaPolicy(
            name=GENERAL,
            points=settings.rate_limit_max_requests,
            duration=settings.rate_limit_window,
            key_func=key_by_ip,
        ),
        AUTH: QuotaPolicy(
            name=AUTH,
            points=settings.auth_rate_limit_requests,
            duration=settings.auth_rate_limit_window,
            block_duration=settings.auth_rate_limit_block,
            key_func=key_by_ip,
        ),
        AI: QuotaPolicy(
            name=AI,
            points=settings.ai_rate_limit_requests,
            duration=settings.ai_rate_limit_window,
            key_func=key_by_identity_or_ip,
        ),
        UPLOAD: QuotaPolicy(
            name=UPLOAD,
            points=settings.upload_rate_limit_requests,
            duration=settings.upload_rate_limit_window,
            key_func=key_by_identity_or_ip,
        ),
    }


def select_policy(
    path: str,
    policies: Dict[str, QuotaPolicy],
    prefixes: Sequence[Tuple[str, str]] = ROUTE_PREFIXES,
) -> QuotaPolicy:
    """Longest-prefix match of `path` against `prefixes`, defaulting to general."""
    best: Optional[Tuple[str, str]] = None
    for prefix, name in prefixes:
        if path.startswith(prefix) and (best is None or len(prefix) > len(best[0])):
            best = (prefix, name)
    return policies[best[1]] if best else policies[GENERAL]
