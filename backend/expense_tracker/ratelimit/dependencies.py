"""Per-route quota dependencies.

create_rate_limiter builds a FastAPI dependency that enforces an ad-hoc
policy on a single route, on top of the global middleware. It shares the
QuotaCounter stored on app.state.quota_counter.
"""

from typing import Optional

from fastapi import Request

from expense_tracker.exceptions import QuotaExceededError
from expense_tracker.ratelimit.counter import QuotaCounter, Throttled
from expense_tracker.ratelimit.policies import KeyFunc, QuotaPolicy, key_by_ip


def get_quota_counter(request: Request) -> QuotaCounter:
    return request.app.state.quota_counter


def create_rate_limiter(
    name: str,
    points: int,
    duration: float,
    block_duration: float = 0,
    key_func: Optional[KeyFunc] = None,
):
    policy = QuotaPolicy(
        name=name,
        points=points,
        duration=duration,
        block_duration=block_duration,
        key_func=key_func or key_by_ip,
        message="Rate limit exceeded",
    )

    async def enforce(request: Request) -> None:
        outcome = get_quota_counter(request).consume(policy.key_for(request), policy)
        if isinstance(outcome, Throttled):
            raise QuotaExceededError(
                retry_after=outcome.retry_after,
                message=policy.message,
                policy=policy.name,
            )

    enforce.policy = policy
    return enforce
