"""
Circuit breaker around a single memory processor.

States:
- CLOSED: the wrapped processor runs normally
- OPEN: too many failures, messages pass through unfiltered until the
  recovery timeout has elapsed since the last failure

A failure never propagates: the call that failed returns its input
unchanged. Single-threaded use only; state is plain attributes.
"""

import logging
import time
from enum import Enum
from typing import Callable, Optional

from .processors import MessageProcessor, ProcessorOptions, ReliabilityProcessor

logger = logging.getLogger(__name__)


class BreakerState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failures reached threshold, bypassing


class CircuitBreakerProcessor:
    """
    Wraps ``inner`` and suspends it after ``failure_threshold`` failures.

    While open, every call first checks whether more than
    ``recovery_timeout_ms`` have passed since the last failure; if so the
    breaker closes, the failure count resets and processing is attempted
    again in the same call.
    """

    def __init__(
        self,
        inner: Optional[MessageProcessor] = None,
        failure_threshold: int = 3,
        recovery_timeout_ms: int = 30_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inner = inner if inner is not None else ReliabilityProcessor()
        self.name = f"circuit_breaker({self.inner.name})"
        self.failure_threshold = failure_threshold if failure_threshold else 3
        self.recovery_timeout_ms = recovery_timeout_ms if recovery_timeout_ms else 30_000
        self._clock = clock

        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.state = BreakerState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state is BreakerState.OPEN

    def _now_ms(self) -> float:
        return self._clock() * 1000

    def _recovery_due(self) -> bool:
        return (
            self.last_failure_time is not None
            and self._now_ms() - self.last_failure_time > self.recovery_timeout_ms
        )

    def _attempt(self, messages, opts) -> tuple[Optional[list], Optional[Exception]]:
        try:
            return self.inner.process(messages, opts), None
        except Exception as e:
            return None, e

    def _record_success(self):
        self.failure_count = 0

    def _record_failure(self, error: Exception):
        self.failure_count += 1
        self.last_failure_time = self._now_ms()

        if self.failure_count >= self.failure_threshold and not self.is_open:
            self.state = BreakerState.OPEN
            logger.error(
                "Circuit breaker '%s' opened after %d failures",
                self.name,
                self.failure_count,
            )

        logger.error(
            "Circuit breaker '%s' caught error in processing: %s (failure_count=%d)",
            self.name,
            error,
            self.failure_count,
        )

    def process(self, messages, opts: Optional[ProcessorOptions] = None):
        if not isinstance(messages, (list, tuple)):
            return messages

        if self.is_open:
            if self._recovery_due():
                self.state = BreakerState.CLOSED
                self.failure_count = 0
                logger.info("Circuit breaker '%s' attempting recovery", self.name)
            else:
                logger.warning(
                    "Circuit breaker '%s' is open, skipping processing", self.name
                )
                return messages

        result, error = self._attempt(messages, opts)
        if error is not None:
            self._record_failure(error)
            return messages

        self._record_success()
        return result

    def get_state(self) -> dict:
        """Get current circuit breaker state."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time,
            "can_retry": self._recovery_due() if self.is_open else True,
        }

    def reset(self):
        """Manually close the breaker."""
        self.failure_count = 0
        self.last_failure_time = None
        self.state = BreakerState.CLOSED
        logger.info("Circuit breaker '%s' manually reset", self.name)
