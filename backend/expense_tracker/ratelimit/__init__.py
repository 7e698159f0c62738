"""
Rate limiting package.

    policies.py      — QuotaPolicy, key derivation, route-prefix policy selection
    counter.py       — in-memory fixed-window QuotaCounter
    dependencies.py  — per-route limiter dependencies (create_rate_limiter)

The global RateLimitMiddleware in expense_tracker.middleware.rate_limit wires
these together in front of every request.
"""

from expense_tracker.ratelimit.counter import Allowed, QuotaCounter, Throttled
from expense_tracker.ratelimit.policies import (
    QuotaPolicy,
    build_policies,
    client_ip,
    key_by_identity_or_ip,
    key_by_ip,
    select_policy,
)

__all__ = [
    "Allowed",
    "QuotaCounter",
    "QuotaPolicy",
    "Throttled",
    "build_policies",
    "client_ip",
    "key_by_identity_or_ip",
    "key_by_ip",
    "select_policy",
]
