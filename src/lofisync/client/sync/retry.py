"""Retry policy for failed sync cycles.

This module provides:
- BackoffPolicy: Exponential backoff over whole cycles with an attempt cap

Retries happen at cycle level only. A failed cycle leaves every record dirty,
so the retried cycle reselects from scratch and never resends a stale
snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 8
DEFAULT_BASE_DELAY = 1.0  # seconds
DEFAULT_BACKOFF_UNIT = 1.0  # seconds, scale of the 2**attempt term


@dataclass
class BackoffPolicy:
    """Exponential backoff with a consecutive-failure cap.

    The n-th consecutive failure waits base_delay + 2**n * unit seconds.
    Once max_attempts failures have accumulated, record_failure() returns
    None and the counter starts over, so the next external trigger gets a
    fresh series.

    The counter is kept in memory only; a restart begins at zero.
    """

    base_delay: float = DEFAULT_BASE_DELAY
    unit: float = DEFAULT_BACKOFF_UNIT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    attempts: int = 0

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before retrying after the given attempt."""
        return self.base_delay + (2**attempt) * self.unit

    def record_failure(self) -> float | None:
        """Count a failed cycle.

        Returns:
            Delay before the retry, or None if auto-retry should stop.
        """
        self.attempts += 1
        if self.attempts >= self.max_attempts:
            logger.error(
                "Sync failed %d times in a row, giving up until next trigger",
                self.attempts,
            )
            self.attempts = 0
            return None

        delay = self.delay_for(self.attempts)
        logger.warning(
            f"Sync attempt {self.attempts}/{self.max_attempts} failed. "
            f"Retrying in {delay:.1f}s..."
        )
        return delay

    def record_success(self) -> None:
        """Reset the failure counter."""
        if self.attempts:
            logger.info("Sync recovered after %d failed attempts", self.attempts)
        self.attempts = 0
