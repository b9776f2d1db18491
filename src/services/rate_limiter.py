"""
Sliding-window rate limiting held in process memory.

Entries live as long as the Lambda execution environment. A cold start
gives an empty store, which is acceptable: the gateway keeps no state
beyond the container and a fresh container should not inherit history.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from domain.models import RateLimitDecision
from services.hashing import hash_identifier

logger = logging.getLogger(__name__)

T = TypeVar('T')
Timestamps = List[float]


class InMemoryRateLimitStore:
    """
    Process-local, non-durable store of request timestamps per hashed key.

    `update` applies a read-modify-write for one key as a single step.
    Lambda runs one invocation per execution environment at a time, so no
    locking is needed for the per-key update to be atomic.
    """

    def __init__(self):
        self._entries: Dict[str, Timestamps] = {}

    def update(self, key: str, updater: Callable[[Timestamps], Tuple[Timestamps, T]]) -> T:
        """
        Replace the entry for `key` with the first item returned by `updater`.

        Args:
            key: Hashed identifier
            updater: Receives a copy of the current timestamps (empty if
                absent) and returns (new timestamps, result)

        Returns:
            The result produced by `updater`
        """
        current = list(self._entries.get(key, []))
        new_entries, result = updater(current)
        self._entries[key] = new_entries
        return result

    def get(self, key: str) -> Timestamps:
        return list(self._entries.get(key, []))

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SlidingWindowRateLimiter:
    """
    Counts submissions per client within a sliding time window.

    Attributes:
        max_per_window: Submissions allowed within one window
        window_seconds: Window length in seconds
    """

    def __init__(
        self,
        max_per_window: int = 5,
        window_seconds: float = 3600,
        store: Optional[InMemoryRateLimitStore] = None,
        clock: Callable[[], float] = time.time
    ):
        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock

    def check(self, identifier: str) -> RateLimitDecision:
        """
        Record a submission attempt for `identifier` if it is within the limit.

        Expired timestamps are filtered lazily on each check. Denied attempts
        are not recorded.

        Args:
            identifier: Raw client identifier (hashed before use as a key)

        Returns:
            RateLimitDecision with allowed flag, remaining quota and reset time
        """
        key = hash_identifier(identifier)
        now = self._clock()
        window_start = now - self.window_seconds

        def _apply(entries: Timestamps) -> Tuple[Timestamps, RateLimitDecision]:
            valid = [ts for ts in entries if ts > window_start]

            if len(valid) >= self.max_per_window:
                return valid, RateLimitDecision(
                    allowed=False,
                    remaining=0,
                    reset_at=min(valid) + self.window_seconds
                )

            remaining = self.max_per_window - len(valid) - 1
            valid.append(now)
            return valid, RateLimitDecision(
                allowed=True,
                remaining=remaining,
                reset_at=now + self.window_seconds
            )

        decision = self.store.update(key, _apply)

        if not decision.allowed:
            logger.info(f"Rate limit reached for client {key}")

        return decision
