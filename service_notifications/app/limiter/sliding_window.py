"""
Sliding-window rate limiter for the Notification service.

Each user owns one sorted set ``rate_limit:{entity_id}`` whose members are
random nonces scored by the admission time in milliseconds. A check prunes
members older than the window, reads the cardinality and, when under the
limit, records a new admission and refreshes the key's expiry.

The prune/count/add/expire sequence is not transactional. Two consumers
checking the same user at once can both observe ``limit - 1`` and both
admit; a consumer that crashes after ``add`` but before committing its
offset will add a second member for the same message on redelivery.
Both skews are accepted.

Once ``add`` succeeds the check answers allowed even if refreshing the
expiry fails, so every stored member matches an allowed outcome. The key
then keeps its previous expiry, or none until the next admission.
"""

import asyncio
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.logging import get_logger
from shared.errors import LimiterUnavailable
from shared.metrics import MetricsCollector

from .store import SortedSetStore


class SlidingWindowLimiter:
    """Distributed sliding-window admission control over a sorted-set store."""

    KEY_PREFIX = "rate_limit:"

    def __init__(
        self,
        store: SortedSetStore,
        max_per_window: int = 5,
        window_seconds: int = 60,
        expiry_margin_seconds: int = 5,
        timeout_seconds: float = 1.0,
        clock: Callable[[], float] = time.time,
        metrics: Optional[MetricsCollector] = None
    ):
        if max_per_window <= 0:
            raise ValueError("max_per_window must be positive")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.store = store
        self.max_per_window = max_per_window
        self.window_seconds = window_seconds
        self.expiry_margin_seconds = expiry_margin_seconds
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("notifications.limiter")

    def _make_key(self, entity_id: str) -> str:
        """Generate the window key for a user."""
        return f"{self.KEY_PREFIX}{entity_id}"

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def _call(self, operation: str, entity_id: str, awaitable: Awaitable[Any]) -> Any:
        """Run one store command under the limiter timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            self.logger.error(
                "Rate limiter store timed out",
                operation=operation,
                entity_id=entity_id,
                timeout_seconds=self.timeout_seconds
            )
            raise LimiterUnavailable(
                "Rate limiter store timed out",
                {"operation": operation, "timeout_seconds": self.timeout_seconds}
            )
        except Exception as e:
            self.logger.error(
                "Rate limiter store error",
                operation=operation,
                entity_id=entity_id,
                error=str(e)
            )
            raise LimiterUnavailable(str(e), {"operation": operation})

    async def _prune_and_count(self, key: str, entity_id: str, now_ms: int) -> int:
        cutoff_ms = now_ms - self.window_seconds * 1000
        await self._call(
            "prune",
            entity_id,
            self.store.remove_range_by_score(key, float("-inf"), cutoff_ms, max_exclusive=True)
        )
        return await self._call("count", entity_id, self.store.cardinality(key))

    async def check(self, entity_id: str) -> bool:
        """Admit or deny one event for entity_id.

        Raises LimiterUnavailable when the store cannot be reached in time;
        callers decide the failure policy.
        """
        key = self._make_key(entity_id)
        now_ms = self._now_ms()

        current_count = await self._prune_and_count(key, entity_id, now_ms)

        self.logger.debug(
            "Rate limit check",
            entity_id=entity_id,
            current_count=current_count,
            limit=self.max_per_window,
            window_seconds=self.window_seconds
        )

        if current_count >= self.max_per_window:
            self.logger.warning(
                "Rate limit exceeded",
                entity_id=entity_id,
                current_count=current_count,
                window_seconds=self.window_seconds
            )
            self._record_decision("denied")
            return False

        await self._call("add", entity_id, self.store.add(key, now_ms, str(uuid.uuid4())))

        # The admission is recorded from here on, so the answer must be allowed
        try:
            await self._call(
                "expire",
                entity_id,
                self.store.expire(key, self.window_seconds + self.expiry_margin_seconds)
            )
        except LimiterUnavailable:
            self.logger.warning(
                "Window expiry not refreshed, admitting",
                entity_id=entity_id,
                expire_seconds=self.window_seconds + self.expiry_margin_seconds
            )

        self._record_decision("allowed")
        return True

    async def count(self, entity_id: str) -> int:
        """Admissions recorded for entity_id in the current window.

        Prunes expired entries but never records an admission.
        """
        key = self._make_key(entity_id)
        return await self._prune_and_count(key, entity_id, self._now_ms())

    async def status(self, entity_id: str) -> Dict[str, Any]:
        """Current quota status for entity_id."""
        current_count = await self.count(entity_id)
        return {
            "count": current_count,
            "limit": self.max_per_window,
            "remaining": max(0, self.max_per_window - current_count),
            "blocked": current_count >= self.max_per_window,
            "window_seconds": self.window_seconds
        }

    def _record_decision(self, decision: str):
        if self.metrics:
            self.metrics.increment_counter("admission_decisions_total", decision=decision)
