"""
Process-wide guards around the database pool.

CircuitBreaker stops probing a degraded database after repeated failures and
lets a single probe through once the reset window has passed; other requests
are turned away until that probe reports back. IdleSupervisor tracks request
activity so the process can release its connections and exit when nobody is
using it. Both take their clock as a constructor argument.
"""
import logging
import math
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half-open"


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self.state = CLOSED
        self.consecutive_failures = 0
        self.opened_at: float | None = None

    def allow_request(self) -> bool:
        if self.state == HALF_OPEN:
            # The probe is still out
            return False
        if self.state == OPEN:
            if self._clock() - self.opened_at >= self.reset_timeout:
                self.state = HALF_OPEN
                logger.info("[CIRCUIT] Reset window elapsed, letting a probe through")
                return True
            return False
        return True

    def retry_after(self) -> int:
        """Seconds until the breaker will let a request through again."""
        if self.state == HALF_OPEN:
            return 1
        if self.state != OPEN:
            return 0
        remaining = self.reset_timeout - (self._clock() - self.opened_at)
        return max(math.ceil(remaining), 0)

    def record_success(self) -> None:
        if self.state != CLOSED:
            logger.info("[CIRCUIT] Database reachable again, closing breaker")
        self.state = CLOSED
        self.consecutive_failures = 0
        self.opened_at = None

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        logger.warning("[CIRCUIT] Database probe failed, consecutive failures: %d", self.consecutive_failures)
        if self.state == HALF_OPEN or self.consecutive_failures >= self.failure_threshold:
            self.state = OPEN
            self.opened_at = self._clock()
            logger.error("[CIRCUIT] Breaker opened")


class IdleSupervisor:
    def __init__(self, idle_timeout: float = 15 * 60, clock: Callable[[], float] = time.monotonic):
        self.idle_timeout = idle_timeout
        self._clock = clock
        self.last_activity = clock()
        self.shutting_down = False

    def touch(self) -> None:
        self.last_activity = self._clock()

    def idle_for(self) -> float:
        return self._clock() - self.last_activity

    def is_idle(self) -> bool:
        return self.idle_for() >= self.idle_timeout

    async def check(
        self,
        drain: Callable[[], Awaitable[None]],
        terminate: Callable[[], None],
    ) -> bool:
        """Drain the pool and terminate if idle. Returns True when shutdown was started."""
        if self.shutting_down or not self.is_idle():
            return False
        self.shutting_down = True
        logger.info("[IDLE] No requests for %.0f seconds, shutting down", self.idle_for())
        try:
            await drain()
        except Exception as e:
            logger.error("[IDLE] Error releasing database connections: %s", e)
        terminate()
        return True
