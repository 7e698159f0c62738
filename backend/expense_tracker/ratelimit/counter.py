"""
Expense Tracker Backend — In-Memory Quota Counter
==================================================

What:  Counts consumption per (policy, key) and decides Allowed / Throttled.
How:   Fixed-window counter held in a dict, guarded by a lock so the
       increment-and-compare step is atomic across concurrent requests.
Who:   Constructed once at app start and handed to RateLimitMiddleware and
       the per-route limiter dependencies.

Algorithm: Fixed Window
    1. The first consumption by a key opens a window of `duration` seconds
    2. Each consumption increments the counter for that window
    3. Once the counter passes `points`, the call is Throttled until the
       window expires
    4. The next consumption after expiry opens a fresh window

    A burst straddling a window boundary can therefore pass up to
    2 × points consumptions in a short span. That imprecision is accepted.

Punitive blocking (block_duration > 0):
    The consumption that exhausts a window sets block_until = now + block
    duration. While blocked, every attempt is Throttled with the remaining
    block time, even after the normal window would have reset.

State is process-local and lost on restart.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple, Union

from expense_tracker.ratelimit.policies import QuotaPolicy

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class Allowed:
    remaining: int
    reset_after: float


@dataclass(frozen=True)
class Throttled:
    retry_after: int


Outcome = Union[Allowed, Throttled]


@dataclass
class QuotaState:
    consumed: int
    window_expires: float
    blocked_until: Optional[float] = None

    def is_blocked(self, now: float) -> bool:
        return self.blocked_until is not None and now < self.blocked_until

    def is_expired(self, now: float) -> bool:
        return now >= self.window_expires and not self.is_blocked(now)


def retry_after_seconds(delay: float) -> int:
    """Seconds until retry, rounded, never below 1."""
    return max(1, int(math.floor(delay + 0.5)))


class QuotaCounter:
    """
    Injectable in-memory quota store.

    Args:
        clock:             returns the current time in seconds; tests pass a
                           fake clock to step time deterministically
        cleanup_interval:  purge expired entries every N consumptions
    """

    def __init__(self, clock: Clock = time.monotonic, cleanup_interval: int = 1000):
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._states: Dict[Tuple[str, str], QuotaState] = {}
        self._lock = threading.Lock()
        self._consumptions = 0

    def consume(self, key: str, policy: QuotaPolicy) -> Outcome:
        with self._lock:
            now = self._clock()
            slot = (policy.name, key)
            state = self._states.get(slot)

            if state is not None and state.is_blocked(now):
                return Throttled(retry_after=retry_after_seconds(state.blocked_until - now))

            if state is None or state.is_expired(now):
                state = QuotaState(consumed=0, window_expires=now + policy.duration)
                self._states[slot] = state

            state.consumed += 1
            self._consumptions += 1
            if self._consumptions % self._cleanup_interval == 0:
                self._purge_expired(now)

            if state.consumed <= policy.points:
                return Allowed(
                    remaining=policy.points - state.consumed,
                    reset_after=state.window_expires - now,
                )

            if policy.block_duration > 0:
                state.blocked_until = now + policy.block_duration
                logger.warning(
                    "Key %s blocked for %ss by policy '%s'",
                    key,
                    policy.block_duration,
                    policy.name,
                )
                return Throttled(retry_after=retry_after_seconds(policy.block_duration))

            return Throttled(retry_after=retry_after_seconds(state.window_expires - now))

    def reset(self, key: str, policy: QuotaPolicy) -> None:
        """Forget a key's state, lifting any block."""
        with self._lock:
            self._states.pop((policy.name, key), None)

    def __len__(self) -> int:
        return len(self._states)

    def _purge_expired(self, now: float) -> None:
        expired = [slot for slot, state in self._states.items() if state.is_expired(now)]
        for slot in expired:
            del self._states[slot]
        if expired:
            logger.debug("Purged %d expired quota entries", len(expired))
