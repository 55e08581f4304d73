"""Batch composition.

This module provides:
- BatchComposer: Builds the SyncRequest of one cycle
- SyncBatch: The request plus the limits it was built with

A QSO never travels without the latest unsynced state of its operation:
when QSOs fill the batch, the dirty operations among their parents are
added. The inbound window asks for everything newer than the cursor, from
any device until a first full sync has completed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from lofisync.client.sync.selector import DirtyRecordSelector
from lofisync.client.sync.types import SyncRequest, SyncWindow
from lofisync.core.types import RecordKind

if TYPE_CHECKING:
    from lofisync.client.sync.types import RecordStore, SyncableRecord, SyncCursor
    from lofisync.core.config import SyncSettings

logger = logging.getLogger(__name__)

# Type alias for the settings blob provider
SettingsProvider = Callable[[], "dict[str, Any] | None"]


@dataclass
class SyncBatch:
    """A composed request and the limits used to build it."""

    request: SyncRequest
    batch_size: int
    operations_limit: int

    @property
    def qsos(self) -> list[SyncableRecord]:
        """QSOs being sent."""
        return self.request.qsos

    @property
    def operations(self) -> list[SyncableRecord]:
        """Operations being sent."""
        return self.request.operations

    @property
    def carries_settings(self) -> bool:
        """True if the settings blob is attached."""
        return self.request.settings is not None


class BatchComposer:
    """Builds sync requests from dirty local records."""

    def __init__(
        self,
        store: RecordStore,
        settings: SyncSettings,
        settings_provider: SettingsProvider | None = None,
    ) -> None:
        """Initialize the composer.

        Args:
            store: Local record store.
            settings: Engine settings (ratio and consent flags).
            settings_provider: Optional callable returning the settings blob.
        """
        self._store = store
        self._settings = settings
        self._settings_provider = settings_provider
        self._selector = DirtyRecordSelector(store)

    def compose(
        self,
        batch_size: int,
        cursor: SyncCursor,
        include_settings: bool = False,
    ) -> SyncBatch:
        """Compose the request for one cycle.

        Args:
            batch_size: QSO slots in this batch.
            cursor: Current sync cursor.
            include_settings: Attach the settings blob if one is available.

        Returns:
            SyncBatch ready for the remote exchange.
        """
        operations_limit = self._settings.operations_limit(batch_size)
        selection = self._selector.select(batch_size, operations_limit)

        if selection.primary is RecordKind.QSO:
            qsos = selection.records
            parent_ids = list(dict.fromkeys(q.parent_id for q in qsos if q.parent_id))
            operations = self._store.query_dirty(
                RecordKind.OPERATION, operations_limit, ids=parent_ids
            )
        else:
            qsos = []
            operations = selection.records

        blob: dict[str, Any] | None = None
        if include_settings and self._settings_provider is not None:
            blob = self._settings_provider()

        any_client = not cursor.completed_full_sync
        request = SyncRequest(
            qsos=qsos,
            operations=operations,
            operations_window=SyncWindow(
                since_millis=cursor.last_operation_synced_at_millis + 1,
                limit=operations_limit,
                any_client=any_client,
            ),
            qsos_window=SyncWindow(
                since_millis=cursor.last_qso_synced_at_millis + 1,
                limit=batch_size,
                any_client=any_client,
            ),
            settings=blob,
            consent_app=self._settings.consent_app,
            consent_public=self._settings.consent_public,
        )
        logger.debug(
            "Composed batch: %d qsos, %d operations%s",
            len(qsos),
            len(operations),
            ", settings" if blob is not None else "",
        )
        return SyncBatch(request, batch_size, operations_limit)
