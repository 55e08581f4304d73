"""Periodic watchdog forcing a sync when none succeeded for too long.

Covers the case where the server has changes to push down while nothing is
dirty locally, and restarts the engine after it went quiet on repeated
failures.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from lofisync.client.sync.types import LoopState

if TYPE_CHECKING:
    from lofisync.client.sync.engine import SyncEngine

logger = logging.getLogger(__name__)

JOB_ID = "sync_watchdog"


class SyncWatchdog:
    """Low-frequency timer checking time since the last successful cycle.

    Every settings.watchdog_interval seconds, forces a cycle if sync is
    enabled, the loop is idle and more than settings.check_period seconds
    have passed since the last success (or none happened yet).
    """

    def __init__(
        self,
        engine: SyncEngine,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the watchdog.

        Args:
            engine: Engine to watch.
            clock: Monotonic clock, must match the loop controller's.
        """
        self._engine = engine
        self._clock = clock
        self._scheduler: BackgroundScheduler | None = None

    @property
    def is_running(self) -> bool:
        """Check if the scheduler is running."""
        return self._scheduler is not None and self._scheduler.running

    def check(self) -> bool:
        """Run one watchdog tick.

        Returns:
            True if a cycle was forced.
        """
        if not self._engine.enabled:
            return False
        if self._engine.loop.state is not LoopState.IDLE:
            return False

        last = self._engine.last_success_at
        threshold = self._engine.settings.check_period
        if last is not None and self._clock() - last <= threshold:
            return False

        if last is None:
            logger.debug("No successful sync yet, forcing one")
        else:
            logger.debug(
                "Last successful sync %.0fs ago (threshold %.0fs), forcing one",
                self._clock() - last,
                threshold,
            )
        self._engine.force()
        return True

    def _check_job(self) -> None:
        """Job function for the scheduler."""
        try:
            self.check()
        except Exception:
            logger.exception("Error during sync watchdog check")

    def start(self) -> None:
        """Start the scheduler."""
        if self.is_running:
            logger.warning("Sync watchdog already running")
            return

        self._scheduler = BackgroundScheduler()
        self._scheduler.add_job(
            self._check_job,
            IntervalTrigger(seconds=self._engine.settings.watchdog_interval),
            id=JOB_ID,
            name="Force sync when overdue",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            "Sync watchdog started (every %.0fs, threshold %.0fs)",
            self._engine.settings.watchdog_interval,
            self._engine.settings.check_period,
        )

    def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Sync watchdog stopped")
