"""Loop controller: scheduling and mutual exclusion of sync cycles.

This module provides:
- LoopController: Single-flight scheduler with debounce, continuation and backoff

State machine:
    | State      | Timer pending        | On trigger                          |
    |------------|----------------------|-------------------------------------|
    | IDLE       | none                 | arm debounce -> DEBOUNCING          |
    | DEBOUNCING | debounce/forced      | re-arm, capped at debounce_max_wait |
    | RUNNING    | none (never armed)   | latch "run again"                   |
    | BACKOFF    | retry                | small trigger re-arms debounce      |

    RUNNING ends in DEBOUNCING (more data pending, or the latch was set),
    IDLE (all sent and received) or BACKOFF (failure). After max_attempts
    consecutive failures the controller goes IDLE and waits for an external
    trigger.

Every transition happens under one lock and only one timer handle exists at
a time. Timers carry a generation number; a timer whose generation is stale
when it fires does nothing.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from lofisync.client.sync.retry import BackoffPolicy
from lofisync.client.sync.types import LoopState, TransportError

if TYPE_CHECKING:
    from lofisync.core.config import SyncSettings

logger = logging.getLogger(__name__)

# Type alias: runs one cycle with the given batch size, returns True if more
# work is known to be pending, or None if the cycle was skipped. Raises on failure.
CycleRunner = Callable[[int], "bool | None"]

TimerFactory = Callable[..., threading.Timer]


class LoopController:
    """Owns the exclusion slot and all sync scheduling.

    Usage:
        loop = LoopController(engine_cycle, settings)
        loop.trigger(batch_size=5)      # debounced
        loop.force()                    # skips the debounce
        loop.wait_idle(timeout=30)
        loop.stop()
    """

    def __init__(
        self,
        run_cycle: CycleRunner,
        settings: SyncSettings,
        policy: BackoffPolicy | None = None,
        timer_factory: TimerFactory = threading.Timer,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the controller.

        Args:
            run_cycle: Function running one cycle.
            settings: Engine settings (delays are read on every scheduling).
            policy: Backoff policy; built from settings if omitted.
            timer_factory: threading.Timer compatible factory.
            clock: Monotonic clock.
        """
        self._run_cycle = run_cycle
        self._settings = settings
        self._policy = policy or BackoffPolicy(
            base_delay=settings.backoff_base_delay,
            unit=settings.backoff_unit,
            max_attempts=settings.max_attempts,
        )
        self._timer_factory = timer_factory
        self._clock = clock

        self._lock = threading.RLock()
        self._changed = threading.Condition(self._lock)

        self._state = LoopState.IDLE
        self._timer: threading.Timer | None = None
        self._generation = 0
        self._fire_at: float | None = None
        self._forced = False
        self._debounce_started: float | None = None
        self._pending_batch: int | None = None
        self._rerun_batch: int | None = None
        self._stopped = False

        self._cycles = 0
        self._last_success_at: float | None = None
        self._last_error: Exception | None = None

    # === Introspection ===

    @property
    def state(self) -> LoopState:
        """Get current loop state."""
        return self._state

    @property
    def attempts(self) -> int:
        """Consecutive failed cycles so far."""
        return self._policy.attempts

    @property
    def cycles(self) -> int:
        """Number of cycles started."""
        return self._cycles

    @property
    def last_success_at(self) -> float | None:
        """Clock value at the end of the last successful cycle."""
        return self._last_success_at

    @property
    def last_error(self) -> Exception | None:
        """Error of the last cycle, cleared on success."""
        return self._last_error

    def wait_idle(self, timeout: float | None = None, include_backoff: bool = True) -> bool:
        """Block until no cycle is pending or running.

        Args:
            timeout: Maximum time to wait, None for no limit.
            include_backoff: If False, a pending retry also counts as settled.

        Returns:
            True if the controller settled before the timeout.
        """

        def settled() -> bool:
            if self._state is LoopState.IDLE:
                return True
            return not include_backoff and self._state is LoopState.BACKOFF

        with self._changed:
            return self._changed.wait_for(settled, timeout=timeout)

    # === Entry points ===

    def trigger(self, batch_size: int, preempt_backoff: bool = False) -> None:
        """Request a debounced cycle. Never blocks on a cycle and never raises.

        Args:
            batch_size: QSO batch size wanted for the next cycle.
            preempt_backoff: Cut a pending retry delay short.
        """
        try:
            with self._lock:
                self._request(batch_size, force=False, preempt_backoff=preempt_backoff)
        except Exception:
            logger.exception("Error scheduling sync")

    def force(self, batch_size: int) -> None:
        """Request a cycle as soon as the exclusion slot is free. Never raises."""
        try:
            with self._lock:
                self._request(batch_size, force=True, preempt_backoff=True)
        except Exception:
            logger.exception("Error scheduling sync")

    def stop(self) -> None:
        """Cancel pending timers and refuse further scheduling.

        A running cycle is not interrupted.
        """
        with self._lock:
            self._stopped = True
            self._cancel_timer()
            self._rerun_batch = None
            if self._state is not LoopState.RUNNING:
                self._set_state(LoopState.IDLE)
        logger.debug("Sync loop stopped")

    def resume(self) -> None:
        """Accept scheduling again after stop()."""
        with self._lock:
            self._stopped = False

    # === Scheduling (lock held) ===

    def _request(self, batch_size: int, force: bool, preempt_backoff: bool) -> None:
        if self._stopped:
            return

        if self._state is LoopState.RUNNING:
            self._rerun_batch = max(self._rerun_batch or 0, batch_size)
            return

        if self._state is LoopState.BACKOFF:
            if not preempt_backoff:
                self._pending_batch = max(self._pending_batch or 0, batch_size)
                return
            logger.debug("Trigger pre-empts pending retry")
            self._cancel_timer()
            self._set_state(LoopState.IDLE)

        self._pending_batch = max(self._pending_batch or 0, batch_size)
        now = self._clock()

        if force:
            self._schedule(0.0, forced=True)
            return

        if self._state is LoopState.IDLE or self._debounce_started is None:
            self._debounce_started = now
        deadline = self._debounce_started + self._settings.debounce_max_wait
        fire_at = min(now + self._settings.debounce_delay, deadline)
        if self._forced and self._fire_at is not None:
            fire_at = min(fire_at, self._fire_at)
        self._schedule(max(0.0, fire_at - now), forced=self._forced)

    def _schedule(self, delay: float, forced: bool) -> None:
        """Arm the single timer, replacing any pending one."""
        self._cancel_timer()
        self._generation += 1
        self._fire_at = self._clock() + delay
        self._forced = forced
        timer = self._timer_factory(delay, self._fire, args=(self._generation,))
        timer.daemon = True
        self._timer = timer
        if self._state is not LoopState.BACKOFF:
            self._set_state(LoopState.DEBOUNCING)
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1
        self._fire_at = None
        self._forced = False

    def _set_state(self, state: LoopState) -> None:
        if state is not self._state:
            logger.debug("Sync loop %s -> %s", self._state.value, state.value)
        self._state = state
        self._changed.notify_all()

    # === Cycle execution ===

    def _fire(self, generation: int) -> None:
        """Timer callback: take the exclusion slot and run one cycle."""
        with self._lock:
            if generation != self._generation or self._stopped:
                return
            if self._state is LoopState.RUNNING:
                return
            batch_size = self._pending_batch or self._settings.batch_size
            self._pending_batch = None
            self._rerun_batch = None
            self._debounce_started = None
            self._timer = None
            self._fire_at = None
            self._forced = False
            self._cycles += 1
            self._set_state(LoopState.RUNNING)

        try:
            more = self._run_cycle(batch_size)
        except Exception as e:
            self._on_failure(e)
        else:
            if more is None:
                self._on_skipped()
            else:
                self._on_success(more)

    def _on_success(self, more: bool) -> None:
        with self._lock:
            self._policy.record_success()
            self._last_success_at = self._clock()
            self._last_error = None

            rerun = self._rerun_batch
            self._rerun_batch = None
            self._set_state(LoopState.IDLE)

            if self._stopped:
                return
            if more:
                self._pending_batch = max(self._pending_batch or 0, self._settings.batch_size)
                self._schedule(self._settings.loop_delay, forced=True)
            elif rerun is not None:
                self._request(rerun, force=False, preempt_backoff=False)

    def _on_skipped(self) -> None:
        """The runner declined to exchange anything; not a success."""
        with self._lock:
            self._rerun_batch = None
            self._set_state(LoopState.IDLE)

    def _on_failure(self, error: Exception) -> None:
        if isinstance(error, TransportError):
            logger.warning("Sync cycle failed: %s", error)
        else:
            logger.exception("Sync cycle failed")

        with self._lock:
            self._last_error = error
            rerun = self._rerun_batch
            self._rerun_batch = None
            delay = self._policy.record_failure()
            self._set_state(LoopState.IDLE)

            if self._stopped:
                self._pending_batch = None
                return
            if delay is None:
                # Retries exhausted; a trigger that arrived meanwhile starts a new series
                self._pending_batch = None
                if rerun is not None:
                    self._request(rerun, force=False, preempt_backoff=False)
                return
            if rerun is not None:
                self._pending_batch = max(self._pending_batch or 0, rerun)
            self._set_state(LoopState.BACKOFF)
            self._schedule(delay, forced=False)
