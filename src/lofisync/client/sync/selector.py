"""Dirty-record selection.

QSOs are the primary payload: while any unsynced QSO exists, a batch is made
of QSOs (newest contact first). Only when no QSO is dirty do standalone
operation changes get a batch of their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lofisync.core.types import RecordKind

if TYPE_CHECKING:
    from lofisync.client.sync.types import RecordStore, SyncableRecord

logger = logging.getLogger(__name__)


@dataclass
class DirtySelection:
    """Records picked for one batch.

    Attributes:
        primary: Kind that filled the batch.
        records: Selected records of the primary kind, newest first.
    """

    primary: RecordKind
    records: list[SyncableRecord] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        """True if nothing is dirty."""
        return not self.records


class DirtyRecordSelector:
    """Picks the unsynced records for the next batch."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def select(self, qso_limit: int, operation_limit: int) -> DirtySelection:
        """Select dirty QSOs, falling back to dirty operations.

        Args:
            qso_limit: Maximum number of QSOs.
            operation_limit: Maximum number of operations when no QSO is dirty.

        Returns:
            DirtySelection, never larger than the limit of its primary kind.
        """
        qsos = self._store.query_dirty(RecordKind.QSO, qso_limit)
        if qsos:
            logger.debug("Selected %d dirty QSOs", len(qsos))
            return DirtySelection(RecordKind.QSO, qsos)

        operations = self._store.query_dirty(RecordKind.OPERATION, operation_limit)
        if operations:
            logger.debug("Selected %d dirty operations", len(operations))
        return DirtySelection(RecordKind.OPERATION, operations)
