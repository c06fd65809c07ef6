"""
Adaptive Backoff - spacing of periodic drain cycles

The periodic timer normally waits the configured interval. Cycles that end
with failures stretch the wait exponentially (up to ``max_delay``) so a
broken remote is not hammered; successful cycles bring it back down.
Explicit and connectivity triggers are never delayed by this.
"""
import random
import threading
from typing import Dict

from ...utils.logger import get_logger

logger = get_logger('backoff')


class AdaptiveBackoff:
    """Exponential backoff with fast recovery.

    Example:
        >>> backoff = AdaptiveBackoff(base_delay=30.0, max_delay=300.0)
        >>> backoff.record_failure()   # next wait 60s
        >>> backoff.get_delay()
        >>> backoff.record_success()   # recover towards 30s
    """

    def __init__(
        self,
        base_delay: float = 30.0,
        max_delay: float = 300.0,
        backoff_factor: float = 2.0,
        recovery_threshold: int = 1,
        recovery_factor: float = 0.5,
        jitter: float = 0.0
    ):
        """
        Args:
            base_delay: Normal wait between cycles, also the floor
            max_delay: Ceiling for the wait
            backoff_factor: Multiply the wait by this after a failing cycle
            recovery_threshold: Consecutive successes needed to shrink the wait
            recovery_factor: Multiply the wait by this on recovery (< 1.0)
            jitter: Relative random spread applied by get_delay (0.2 = +-20%)
        """
        self.base_delay = base_delay
        self.max_delay = max(max_delay, base_delay)
        self.backoff_factor = backoff_factor
        self.recovery_threshold = recovery_threshold
        self.recovery_factor = recovery_factor
        self.jitter = jitter

        self._current_delay = base_delay
        self._consecutive_success = 0
        self._failure_count = 0
        self._lock = threading.Lock()

    def record_failure(self) -> None:
        """A cycle ended with failures: stretch the wait."""
        with self._lock:
            self._failure_count += 1
            self._consecutive_success = 0
            old_delay = self._current_delay
            self._current_delay = min(self._current_delay * self.backoff_factor, self.max_delay)
            if old_delay != self._current_delay:
                logger.warning(
                    f"[Backoff] Failing cycle #{self._failure_count}: "
                    f"interval {old_delay:.1f}s -> {self._current_delay:.1f}s"
                )

    def record_success(self) -> None:
        """A cycle ended cleanly: shrink the wait after enough successes."""
        with self._lock:
            self._consecutive_success += 1

            if self._consecutive_success >= self.recovery_threshold:
                old_delay = self._current_delay
                self._current_delay = max(self._current_delay * self.recovery_factor, self.base_delay)
                self._consecutive_success = 0
                if self._current_delay == self.base_delay:
                    self._failure_count = 0

                if old_delay != self._current_delay:
                    logger.info(f"[Backoff] Recovery: interval {old_delay:.1f}s -> {self._current_delay:.1f}s")

    def get_delay(self) -> float:
        """Current wait in seconds, with jitter applied."""
        with self._lock:
            if not self.jitter:
                return self._current_delay
            return self._current_delay * random.uniform(1 - self.jitter, 1 + self.jitter)

    def reset(self) -> None:
        with self._lock:
            self._current_delay = self.base_delay
            self._consecutive_success = 0
            self._failure_count = 0

    def get_stats(self) -> Dict:
        with self._lock:
            return {
                'current_delay': self._current_delay,
                'consecutive_success': self._consecutive_success,
                'failure_count': self._failure_count,
            }
