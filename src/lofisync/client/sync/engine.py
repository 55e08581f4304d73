"""Sync engine keeping the local log consistent with the sync service.

This module provides:
- SyncEngine: Entry point for triggers, runs cycles under the loop controller
- RemoteExchange: Protocol for the transport (HTTPClient implements it)

One cycle:
    1. Compose a batch from dirty records (BatchComposer)
    2. Exchange it with the server (RemoteExchange.sync)
    3. In one local transaction: mark the sent snapshot synced, merge the
       inbound records (MergeEngine) and advance the cursor
    4. Report whether more data is pending in either direction

Nothing is committed unless the exchange returned ok and the merge succeeded,
so a crash or failure at any point simply leaves the same records dirty.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Protocol

from lofisync.client.sync.composer import BatchComposer
from lofisync.client.sync.hints import ServerHints
from lofisync.client.sync.loop import LoopController
from lofisync.client.sync.merge import MergeEngine
from lofisync.client.sync.types import (
    ApplicationError,
    CycleResult,
    LoopState,
    NetworkError,
    SyncError,
    SyncStatus,
    TransportError,
)
from lofisync.core.config import SyncSettings
from lofisync.core.types import RecordKind, SyncState

if TYPE_CHECKING:
    from collections.abc import Callable

    from lofisync.client.sync.composer import SettingsProvider, SyncBatch
    from lofisync.client.sync.merge import MergeResult
    from lofisync.client.sync.types import (
        RecordStore,
        SyncCursor,
        SyncRequest,
        SyncResponse,
    )

logger = logging.getLogger(__name__)

SMALL = "small"
LARGE = "large"


class RemoteExchange(Protocol):
    """Protocol for the remote sync call.

    One request, one response. Implementations raise TransportError on
    network or parse failures and do not retry.
    """

    def sync(self, request: SyncRequest) -> SyncResponse:
        """Send a batch and receive remote changes."""
        ...


class SyncEngine:
    """Offline-first sync engine.

    Construct once per process and share the instance. trigger() is safe to
    call from anywhere; cycles run on timer threads, one at a time.

    Usage:
        engine = SyncEngine(store, HTTPClient(config), SyncSettings())
        engine.trigger("small")      # after a local edit
        ...
        engine.close()
    """

    def __init__(
        self,
        store: RecordStore,
        exchange: RemoteExchange,
        settings: SyncSettings | None = None,
        settings_provider: SettingsProvider | None = None,
        timer_factory: Callable[..., object] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Local record store.
            exchange: Remote sync transport.
            settings: Engine settings; defaults if omitted.
            settings_provider: Optional callable returning the settings blob.
            timer_factory: Optional threading.Timer replacement.
        """
        self._store = store
        self._exchange = exchange
        self._settings = settings or SyncSettings()
        self._composer = BatchComposer(store, self._settings, settings_provider)
        self._merger = MergeEngine(store)
        self._settings_synced = False
        self._last_result: CycleResult | None = None
        self._last_success_wall: float | None = None

        loop_kwargs = {"timer_factory": timer_factory} if timer_factory else {}
        self._loop = LoopController(self._run_cycle, self._settings, **loop_kwargs)

    # === Properties ===

    @property
    def settings(self) -> SyncSettings:
        """Live engine settings (server hints update them)."""
        return self._settings

    @property
    def loop(self) -> LoopController:
        """The loop controller."""
        return self._loop

    @property
    def enabled(self) -> bool:
        """Whether sync is enabled."""
        return self._settings.enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._settings.enabled = value
        if value:
            self._loop.resume()
        else:
            self._loop.stop()

    @property
    def settings_synced(self) -> bool:
        """Whether the settings blob reached the server in this process."""
        return self._settings_synced

    @property
    def last_result(self) -> CycleResult | None:
        """Result of the last successful cycle."""
        return self._last_result

    @property
    def last_success_at(self) -> float | None:
        """Monotonic time of the last successful cycle."""
        return self._loop.last_success_at

    @property
    def status(self) -> SyncStatus:
        """Snapshot of the engine state."""
        loop_state = self._loop.state
        error = self._loop.last_error

        if loop_state is LoopState.RUNNING:
            state = SyncState.SYNCING
        elif isinstance(error, NetworkError):
            state = SyncState.OFFLINE
        elif error is not None:
            state = SyncState.ERROR
        else:
            state = SyncState.IDLE

        return SyncStatus(
            state=state,
            loop_state=loop_state,
            attempts=self._loop.attempts,
            last_success_at=self._last_success_wall,
            last_error=str(error) if error is not None else None,
            cursor=self._store.load_cursor(),
            dirty_operations=self._store.count_dirty(RecordKind.OPERATION),
            dirty_qsos=self._store.count_dirty(RecordKind.QSO),
        )

    # === Entry points ===

    def trigger(self, mode: str = LARGE) -> None:
        """Ask for a sync soon. Non-blocking; never raises.

        Args:
            mode: "small" after a single user action (a few records, and may
                cut a pending retry short), "large" otherwise.
        """
        if not self._settings.enabled:
            return
        if mode == SMALL:
            self._loop.trigger(self._settings.small_batch_size, preempt_backoff=True)
        else:
            if mode != LARGE:
                logger.warning("Unknown sync mode %r, using large batch", mode)
            self._loop.trigger(self._settings.batch_size)

    def force(self) -> None:
        """Run a large cycle as soon as possible, skipping the debounce."""
        if not self._settings.enabled:
            return
        self._loop.force(self._settings.batch_size)

    def wait_idle(self, timeout: float | None = None, include_backoff: bool = True) -> bool:
        """Block until no cycle is pending or running."""
        return self._loop.wait_idle(timeout, include_backoff=include_backoff)

    def reset_sync(self) -> None:
        """Mark every local record dirty and upload everything again.

        The cursor is kept: records already received are not fetched again.
        """
        reset = getattr(self._store, "reset_synced_status", None)
        if reset is None:
            raise SyncError("Store does not support resetting synced status")
        reset()
        self._settings_synced = False
        self.force()

    def close(self) -> None:
        """Stop scheduling further cycles."""
        self._loop.stop()

    # === Cycle ===

    def _run_cycle(self, batch_size: int) -> bool | None:
        """Run one cycle. Called by the loop controller with the slot held.

        Returns:
            True if more data is pending in either direction, None if sync
            was disabled and nothing was exchanged.

        Raises:
            TransportError: If the exchange failed.
            ApplicationError: If composing or committing failed.
        """
        if not self._settings.enabled:
            logger.debug("Sync disabled, skipping cycle")
            return None

        cursor = self._store.load_cursor()
        try:
            batch = self._composer.compose(
                batch_size, cursor, include_settings=not self._settings_synced
            )
        except SyncError:
            raise
        except Exception as e:
            raise ApplicationError(f"Could not compose sync batch: {e}") from e

        logger.info(
            "Syncing %d qsos and %d operations (batch of %d)",
            len(batch.qsos),
            len(batch.operations),
            batch_size,
        )
        response = self._exchange.sync(batch.request)
        if not response.ok:
            raise TransportError(
                f"Sync service answered {response.status_code}", response.status_code
            )

        try:
            result = self._commit(batch, response, cursor)
        except SyncError:
            raise
        except Exception as e:
            raise ApplicationError(f"Could not apply sync response: {e}") from e

        if batch.carries_settings:
            self._settings_synced = True
        self._apply_hints(response.meta)
        self._last_result = result
        self._last_success_wall = time.time()

        if result.complete:
            logger.info("Sync complete")
        return not result.complete

    def _commit(
        self,
        batch: SyncBatch,
        response: SyncResponse,
        cursor: SyncCursor,
    ) -> CycleResult:
        """Mark sent records, merge inbound ones and advance the cursor atomically."""
        with self._store.transaction():
            self._store.mark_synced(RecordKind.QSO, batch.qsos)
            self._store.mark_synced(RecordKind.OPERATION, batch.operations)
            merged = self._merger.apply(response)
            result = self._evaluate(batch, merged, cursor)
            self._store.save_cursor(result.cursor)
        return result

    def _evaluate(
        self,
        batch: SyncBatch,
        merged: MergeResult,
        cursor: SyncCursor,
    ) -> CycleResult:
        """Decide whether this cycle exhausted both directions.

        A batch filled exactly to its limit counts as "more pending", which
        costs at most one extra empty cycle.
        """
        qsos_sent = len(batch.qsos)
        operations_sent = len(batch.operations)
        sent_all = qsos_sent < batch.batch_size and operations_sent < batch.operations_limit
        received_all = (
            merged.operations_received < batch.operations_limit
            and merged.qsos_received < batch.batch_size
        )
        return CycleResult(
            batch_size=batch.batch_size,
            qsos_sent=qsos_sent,
            operations_sent=operations_sent,
            qsos_received=merged.qsos_received,
            operations_received=merged.operations_received,
            sent_all=sent_all,
            received_all=received_all,
            cursor=cursor.advanced(
                operation_millis=merged.latest_operation_millis,
                qso_millis=merged.latest_qso_millis,
                completed=sent_all and received_all,
            ),
        )

    def _apply_hints(self, meta: dict[str, object]) -> None:
        """Adopt tuning values suggested by the server."""
        hints = ServerHints.from_meta(meta)
        if hints.empty:
            return
        if hints.batch_size is not None:
            self._settings.batch_size = hints.batch_size
        if hints.loop_delay is not None:
            self._settings.loop_delay = hints.loop_delay
        if hints.check_period is not None:
            self._settings.check_period = hints.check_period
        logger.debug("Applied server hints: %s", hints)
