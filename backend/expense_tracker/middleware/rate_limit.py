"""
Expense Tracker Backend — Rate Limiting Middleware
===================================================

What:  Applies the quota policy selected by route prefix to every request.
How:   select_policy(path) → policy.key_for(request) → counter.consume().
Who:   Applied to every request via Starlette middleware.
When:  Inside RequestIDMiddleware and the access log, so throttled requests
       are correlated and logged; always before identity resolution.

Responses:
    Allowed    the request proceeds; X-RateLimit-Limit and
               X-RateLimit-Remaining are added to the response
    Throttled  HTTP 429 with the error envelope and a Retry-After header:
               {"success": false, "message": "Too many requests",
                "status": 429, "retryAfter": 900}

Deployment note:
    The QuotaCounter is process-local. With several workers each process
    enforces its own quota; a shared store would be needed for a global one.
"""

import logging
from typing import Dict, Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from expense_tracker.error_handlers import envelope_response
from expense_tracker.middleware.request_id import request_id_var
from expense_tracker.ratelimit.counter import QuotaCounter, Throttled
from expense_tracker.ratelimit.policies import QuotaPolicy, select_policy
from expense_tracker.schemas.common import ErrorEnvelope

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PATHS = frozenset({"/health", "/docs", "/openapi.json", "/redoc"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Policy-selecting quota gate.

    Args:
        counter:         shared QuotaCounter (also used by per-route limiters)
        policies:        policy table from build_policies()
        excluded_paths:  paths that bypass quota accounting entirely
    """

    def __init__(
        self,
        app,
        counter: QuotaCounter,
        policies: Dict[str, QuotaPolicy],
        excluded_paths: Optional[Iterable[str]] = None,
    ):
        super().__init__(app)
        self.counter = counter
        self.policies = policies
        self.excluded_paths = (
            frozenset(excluded_paths) if excluded_paths is not None else DEFAULT_EXCLUDED_PATHS
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.excluded_paths:
            return await call_next(request)

        policy = select_policy(path, self.policies)
        key = policy.key_for(request)
        outcome = self.counter.consume(key, policy)

        if isinstance(outcome, Throttled):
            logger.warning(
                "[%s] Rate limit '%s' exceeded for %s on %s %s (retry after %ds)",
                request_id_var.get(""),
                policy.name,
                key,
                request.method,
                path,
                outcome.retry_after,
            )
            envelope = ErrorEnvelope(
                message=policy.message,
                status=429,
                retry_after=outcome.retry_after,
            )
            return envelope_response(envelope)

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(policy.points)
        response.headers["X-RateLimit-Remaining"] = str(outcome.remaining)
        return response
