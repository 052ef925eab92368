"""
Caller-side retry primitives for reconciliation.

The reconcilers never loop on their own; pollers (the arq worker, or any
other caller) wait between attempts according to a ``RetryPolicy`` and fall
back to a terminal action once the attempts run out.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Hashable, Optional

from ...config import RECONCILE_MAX_ATTEMPTS, RECONCILE_RETRY_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = RECONCILE_MAX_ATTEMPTS
    interval_seconds: float = RECONCILE_RETRY_INTERVAL_SECONDS
    backoff: float = 1.0
    max_interval_seconds: Optional[float] = None
    escalate_after: int = 3

    def delay_for(self, attempt: int) -> float:
        """Wait before attempt ``attempt + 1`` (attempts are 1-based)"""
        delay = self.interval_seconds * (self.backoff ** max(attempt - 1, 0))
        if self.max_interval_seconds is not None:
            delay = min(delay, self.max_interval_seconds)
        return delay

    def should_escalate(self, attempt: int) -> bool:
        """Stop waiting for the webhook and call the reconciler directly"""
        return attempt > self.escalate_after

    def exhausted(self, attempt: int) -> bool:
        return attempt >= self.max_attempts


class ReconciliationPoller:
    """
    Bounded poll loop for in-process callers that wait on a result (a client
    SDK, an admin script). The arq worker re-queues jobs with the same
    ``RetryPolicy`` instead of holding a job open.

    Each attempt first runs ``check`` (cheap, local). Once the policy says to
    escalate, ``reconcile`` runs as well. Both return a result or ``None``
    for "not ready yet". When every attempt came back empty the terminal
    ``on_exhausted`` action supplies the final result.
    """

    def __init__(
        self,
        check: Callable[[], Awaitable[Any]],
        reconcile: Callable[[], Awaitable[Any]],
        policy: Optional[RetryPolicy] = None,
        on_exhausted: Optional[Callable[[], Awaitable[Any]]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.check = check
        self.reconcile = reconcile
        self.policy = policy or RetryPolicy()
        self.on_exhausted = on_exhausted
        self.sleep = sleep
        self.attempts = 0

    async def run(self) -> Any:
        for attempt in range(1, self.policy.max_attempts + 1):
            self.attempts = attempt
            result = await self.check()
            if result is None and self.policy.should_escalate(attempt):
                result = await self.reconcile()
            if result is not None:
                return result
            if not self.policy.exhausted(attempt):
                await self.sleep(self.policy.delay_for(attempt))

        logger.warning(f"⚠️ Reconciliation still pending after {self.attempts} attempts")
        if self.on_exhausted is None:
            return None
        return await self.on_exhausted()


@dataclass
class RefreshGuard:
    """Skip refreshing a key that was refreshed less than ``min_age_seconds`` ago"""

    min_age_seconds: float
    clock: Callable[[], float] = time.monotonic
    _refreshed_at: dict = field(default_factory=dict)

    def should_refresh(self, key: Hashable) -> bool:
        last = self._refreshed_at.get(key)
        return last is None or self.clock() - last >= self.min_age_seconds

    def mark(self, key: Hashable) -> None:
        now = self.clock()
        # Entries past min age no longer block anything
        stale = [k for k, at in self._refreshed_at.items() if now - at >= self.min_age_seconds]
        for k in stale:
            del self._refreshed_at[k]
        self._refreshed_at[key] = now
