"""Shared types for lofisync.

This module defines enums used across the client and the sync engine.
"""

from __future__ import annotations

from enum import Enum


class SyncState(str, Enum):
    """Sync state reported to the host application.

    Callers poll it (through SyncEngine.status) to drive their own UI.
    """

    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    OFFLINE = "offline"


class RecordKind(str, Enum):
    """Kind of syncable record."""

    OPERATION = "operation"
    QSO = "qso"

    @property
    def table(self) -> str:
        """Name of the local table holding this kind."""
        return "operations" if self is RecordKind.OPERATION else "qsos"
