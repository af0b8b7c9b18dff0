"""Circuit breaker for calls to the ephemeral store."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states.

    While OPEN, calls fail fast instead of waiting on a backend that is known
    to be down. After the recovery timeout a HALF_OPEN circuit lets calls
    through to probe whether the backend is back.
    """

    CLOSED = "closed"      # Normal operation - calls allowed
    OPEN = "open"          # Backend failing - calls blocked
    HALF_OPEN = "half_open"  # Probing recovery - calls allowed


@dataclass
class CircuitBreaker:
    """Count consecutive failures and block calls once a threshold is reached."""

    name: str = "ephemeral-store"
    failure_threshold: int = 3
    recovery_timeout: float = 30.0
    success_threshold: int = 2
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = CircuitState.CLOSED
    _failure_count: int = 0
    _success_count: int = 0
    _last_failure_time: float = 0.0
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def is_open(self) -> bool:
        """Return True if calls should be blocked right now."""
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self.clock() - self._last_failure_time >= self.recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
                    self._success_count = 0
                    logger.info("Circuit %s half-open, probing backend", self.name)
                return self._state == CircuitState.OPEN
            return False

    def record_success(self) -> None:
        """Record a call that reached the backend."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._state = CircuitState.CLOSED
                    self._failure_count = 0
                    logger.info("Circuit %s closed", self.name)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def record_failure(self) -> None:
        """Record a call that failed to reach the backend."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self.clock()
            if self._state == CircuitState.HALF_OPEN or (
                self._failure_count >= self.failure_threshold
                and self._state != CircuitState.OPEN
            ):
                self._state = CircuitState.OPEN
                logger.warning(
                    "Circuit %s opened after %d failures", self.name, self._failure_count
                )

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count
