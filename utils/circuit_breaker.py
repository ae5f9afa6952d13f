"""
Failure-counting circuit breaker.

States:
  CLOSED — normal operation (live WebSocket events)
  OPEN   — too many consecutive failures; caller runs its degraded path
           (REST polling) until the next success closes the breaker

Usage:
    breaker = CircuitBreaker(name="ws_live", failure_threshold=5)
    if breaker.record_failure("connect refused"):
        ... just tripped: start degraded mode ...
    if breaker.record_success():
        ... just recovered: stop degraded mode ...
"""

from __future__ import annotations
import logging
import time
from enum import Enum, auto

log = logging.getLogger(__name__)


class _State(Enum):
    CLOSED = auto()
    OPEN = auto()


class CircuitBreaker:
    __slots__ = ("name", "_state", "_reason", "_opened_at_s", "_failure_count", "_failure_threshold")

    def __init__(self, name: str, failure_threshold: int = 3) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.name = name
        self._state = _State.CLOSED
        self._reason: str | None = None
        self._opened_at_s: float = 0.0
        self._failure_count: int = 0
        self._failure_threshold = failure_threshold

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def is_closed(self) -> bool:
        return self._state == _State.CLOSED

    def is_open(self) -> bool:
        return self._state == _State.OPEN

    def open_for_s(self) -> float:
        return time.monotonic() - self._opened_at_s if self.is_open() else 0.0

    def record_failure(self, reason: str) -> bool:
        """Count a consecutive failure. Returns True only on the call that trips the breaker."""
        self._failure_count += 1
        if self.is_closed() and self._failure_count >= self._failure_threshold:
            self._state = _State.OPEN
            self._reason = reason
            self._opened_at_s = time.monotonic()
            log.warning(
                "Circuit %s OPEN after %d consecutive failures: %s",
                self.name, self._failure_count, reason,
            )
            return True
        return False

    def record_success(self) -> bool:
        """Reset the failure count. Returns True only when this closes an open breaker."""
        self._failure_count = 0
        if self.is_open():
            log.info("Circuit %s CLOSED after %.1fs open", self.name, self.open_for_s())
            self._state = _State.CLOSED
            self._reason = None
            return True
        return False
