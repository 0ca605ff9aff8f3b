"""
Circuit breaker for call sites that hit the same store operation repeatedly.
"""
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar
import logging
import time

from ..exceptions import DatabaseError, ErrorCode
from .results import DatabaseResult

# Set up logging
logger = logging.getLogger(__name__)

T = TypeVar("T")

class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """
    Short-circuits an operation after repeated consecutive failures.

    After `threshold` failures in a row the breaker opens and every call is
    rejected with CONNECTION_FAILED until `reset_timeout` seconds have passed.
    The next call is then let through as a trial: success closes the breaker,
    failure opens it again. A failed DatabaseResult counts as a failure just
    like a raised exception.
    """
    def __init__(
        self,
        threshold: int = 5,
        reset_timeout: float = 60.0,
        context: str = "unknown",
        clock: Callable[[], float] = time.monotonic
    ):
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self.context = context
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failures(self) -> int:
        return self._failures

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run an operation through the breaker.

        Args:
            operation: Zero-argument coroutine function

        Returns:
            The operation's return value

        Raises:
            DatabaseError: CONNECTION_FAILED while the breaker is open
        """
        self._before_call()

        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise

        if isinstance(result, DatabaseResult) and not result.success:
            self._on_failure()
        else:
            self._on_success()
        return result

    def _before_call(self):
        if self._state == CircuitState.OPEN:
            if self._clock() - self._opened_at >= self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(f"Circuit breaker for {self.context} transitioning to HALF_OPEN")
            else:
                raise self._rejection()

        if self._state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise self._rejection()
            self._trial_in_flight = True

    def _rejection(self) -> DatabaseError:
        return DatabaseError(
            ErrorCode.CONNECTION_FAILED,
            f"Circuit breaker is OPEN for {self.context}",
            self.context,
            {"failures": self._failures, "threshold": self.threshold}
        )

    def _on_success(self):
        self._failures = 0
        self._trial_in_flight = False
        if self._state != CircuitState.CLOSED:
            self._state = CircuitState.CLOSED
            logger.info(f"Circuit breaker for {self.context} transitioning to CLOSED")

    def _on_failure(self):
        self._failures += 1
        self._trial_in_flight = False
        if self._state == CircuitState.HALF_OPEN or (
            self._state == CircuitState.CLOSED and self._failures >= self.threshold
        ):
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            logger.warning(
                f"Circuit breaker for {self.context} transitioning to OPEN "
                f"({self._failures} failures, threshold {self.threshold})"
            )

    def reset(self):
        """Force the breaker back to CLOSED."""
        self._failures = 0
        self._opened_at = None
        self._trial_in_flight = False
        self._state = CircuitState.CLOSED
        logger.info(f"Circuit breaker for {self.context} reset")
