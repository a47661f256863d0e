import logging
import time
from typing import Any, Awaitable, Callable

from .errors import ExternalServiceUnavailable

logger = logging.getLogger(__name__)


class CircuitBreaker:
    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 3,
        base_recovery_time: int = 10,
        max_recovery_time: int = 60,
    ):
        self.name = name
        self.failure_count = 0
        self.failure_threshold = failure_threshold
        self.base_recovery_time = base_recovery_time
        self.max_recovery_time = max_recovery_time
        self.last_failure_time = 0.0
        self.state = "CLOSED"

    @property
    def current_recovery_time(self):
        return min(
            self.base_recovery_time
            * (2 ** max(self.failure_count - self.failure_threshold, 0)),
            self.max_recovery_time,
        )

    def _open(self):
        self.state = "OPEN"
        self.last_failure_time = time.time()
        logger.warning(
            "Circuit %s opened after %s failures.", self.name, self.failure_count
        )

    def _half_open(self):
        self.state = "HALF_OPEN"
        logger.info("Circuit %s half-open: testing...", self.name)

    def _close(self):
        if self.state != "CLOSED":
            logger.info("Circuit %s closed: stable again.", self.name)
        self.state = "CLOSED"
        self.failure_count = 0

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        now = time.time()

        if self.state == "OPEN":
            cooldown = self.current_recovery_time
            if now - self.last_failure_time < cooldown:
                raise ExternalServiceUnavailable(
                    f"{self.name} circuit open, retry after "
                    f"{cooldown - (now - self.last_failure_time):.1f}s"
                )
            self._half_open()

        try:
            result = await func(*args, **kwargs)
        except ExternalServiceUnavailable as e:
            self.failure_count += 1
            logger.error(
                "Circuit %s call failed (%s): %s", self.name, self.failure_count, e
            )
            if self.failure_count >= self.failure_threshold:
                self._open()
            raise

        self._close()
        return result


breaker = CircuitBreaker(name="events", failure_threshold=3, base_recovery_time=10)
