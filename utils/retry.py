"""Retry with a fixed delay, degrading to a fallback when one exists."""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class RetryState(Enum):
    """Lifecycle of a retried operation."""
    ATTEMPTING = 'attempting'
    SUCCEEDED = 'succeeded'
    DEGRADED = 'degraded'
    FAILED = 'failed'


@dataclass
class RetryOutcome:
    name: str
    state: RetryState
    attempts: int
    last_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state in (RetryState.SUCCEEDED, RetryState.DEGRADED)


class RetryPolicy:
    """
    Run a flaky operation up to N times, then fall back.

    Operations are callables returning True on success. A raised exception
    counts as a failed attempt. After the last attempt the optional fallback
    runs once; if it succeeds the outcome is DEGRADED, otherwise FAILED.
    """

    def __init__(self, attempts: int = 3, delay: float = 2.0,
                 sleep: Callable[[float], None] = time.sleep, logger=None):
        if attempts <= 0:
            raise ValueError("attempts must be greater than 0")
        self.attempts = attempts
        self.delay = delay
        self.sleep = sleep
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    def run(self, name: str, operation: Callable[[], bool],
            fallback: Optional[Callable[[], bool]] = None) -> RetryOutcome:
        """
        Execute operation with retries.

        Args:
            name: Label used in log messages
            operation: Primary operation
            fallback: Optional degraded alternative

        Returns:
            RetryOutcome describing the final state
        """
        state = RetryState.ATTEMPTING
        last_error = None
        attempt = 0

        while state == RetryState.ATTEMPTING:
            attempt += 1
            try:
                if operation():
                    state = RetryState.SUCCEEDED
                    break
                last_error = 'operation reported failure'
            except Exception as e:
                last_error = str(e)

            if attempt < self.attempts:
                self.logger.info(f"{name}: attempt {attempt}/{self.attempts} failed, retrying in {self.delay}s")
                self.sleep(self.delay)
            else:
                state = RetryState.FAILED

        if state == RetryState.SUCCEEDED:
            if attempt > 1:
                self.logger.info(f"{name}: succeeded on attempt {attempt}")
            return RetryOutcome(name, state, attempt)

        self.logger.warning(f"{name}: failed after {attempt} attempts ({last_error})")

        if fallback is not None:
            try:
                if fallback():
                    self.logger.warning(f"{name}: completed with fallback")
                    return RetryOutcome(name, RetryState.DEGRADED, attempt, last_error)
                last_error = 'fallback reported failure'
            except Exception as e:
                last_error = f"fallback failed: {e}"
            self.logger.warning(f"{name}: fallback failed ({last_error})")

        return RetryOutcome(name, RetryState.FAILED, attempt, last_error)
