"""Merge of remote records into local storage.

Records are applied one by one through the store's merge_record(), which
keeps the newest copy by updated_at_millis and stores deletions as
tombstones. Applying the same response twice leaves the store unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from lofisync.core.types import RecordKind

if TYPE_CHECKING:
    from lofisync.client.sync.types import RecordStore, SyncableRecord, SyncResponse

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Summary of one merge.

    Attributes:
        operations_received: Operations in the response.
        qsos_received: QSOs in the response.
        operations_applied: Operations that changed local rows.
        qsos_applied: QSOs that changed local rows.
        latest_operation_millis: Newest operation timestamp seen, if any.
        latest_qso_millis: Newest QSO timestamp seen, if any.
    """

    operations_received: int = 0
    qsos_received: int = 0
    operations_applied: int = 0
    qsos_applied: int = 0
    latest_operation_millis: int | None = None
    latest_qso_millis: int | None = None


class MergeEngine:
    """Applies inbound records to the local store."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def apply(self, response: SyncResponse) -> MergeResult:
        """Merge the operations, then the QSOs, of a response.

        Operations go first so QSOs land under an existing parent.

        Args:
            response: Successful sync response.

        Returns:
            MergeResult with the newest timestamp per kind.
        """
        result = MergeResult(
            operations_received=len(response.operations),
            qsos_received=len(response.qsos),
        )
        result.operations_applied, result.latest_operation_millis = self._apply_kind(
            RecordKind.OPERATION, response.operations
        )
        result.qsos_applied, result.latest_qso_millis = self._apply_kind(
            RecordKind.QSO, response.qsos
        )

        if result.operations_received or result.qsos_received:
            logger.info(
                "Merged %d/%d operations and %d/%d qsos from server",
                result.operations_applied,
                result.operations_received,
                result.qsos_applied,
                result.qsos_received,
            )
        return result

    def _apply_kind(
        self,
        kind: RecordKind,
        records: list[SyncableRecord],
    ) -> tuple[int, int | None]:
        applied = 0
        latest: int | None = None
        for record in records:
            if self._store.merge_record(kind, record):
                applied += 1
            if latest is None or record.updated_at_millis > latest:
                latest = record.updated_at_millis
        return applied, latest
