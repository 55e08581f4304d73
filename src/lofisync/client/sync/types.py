"""Shared types and dataclasses for the sync engine.

This module provides:
- SyncError, TransportError, NetworkError, AuthenticationError,
  ApplicationError: Exceptions
- SyncableRecord: Operation or QSO as seen by the engine
- SyncCursor: Persisted high-water marks of the remote change feed
- SyncWindow, SyncRequest, SyncResponse: Remote exchange payloads
- CycleResult: Outcome of one successful cycle
- LoopState, SyncStatus: Loop controller state and status snapshot
- RecordStore: Local storage protocol consumed by the engine
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from lofisync.core.types import RecordKind, SyncState

if TYPE_CHECKING:
    import sqlite3
    from collections.abc import Iterable
    from contextlib import AbstractContextManager


class SyncError(Exception):
    """Base exception for sync errors."""


class TransportError(SyncError):
    """Network failure, non-2xx answer or malformed response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(TransportError):
    """The sync service could not be reached."""


class AuthenticationError(TransportError):
    """The sync service rejected our token."""


class ApplicationError(SyncError):
    """Failure while selecting, composing or merging records."""


# Fields computed locally from a record's children; never transmitted
LOCAL_ONLY_FIELDS: dict[RecordKind, tuple[str, ...]] = {
    RecordKind.OPERATION: ("startAtMillisMin", "startAtMillisMax", "qsoCount"),
    RecordKind.QSO: (),
}


@dataclass
class SyncableRecord:
    """An Operation or a QSO as handled by the sync engine.

    Attributes:
        kind: Record kind.
        id: Record uuid.
        updated_at_millis: Last modification time (ms since epoch).
        parent_id: Owning operation uuid (QSOs only).
        start_at_millis: Contact start time (QSOs only), used for ordering.
        data: Domain payload, opaque to the engine.
        local_data: Device-local payload, never transmitted.
        deleted: Tombstone flag.
        synced: False while local changes are unconfirmed by the server.
    """

    kind: RecordKind
    id: str
    updated_at_millis: int
    parent_id: str | None = None
    start_at_millis: int | None = None
    data: dict[str, Any] = field(default_factory=dict)
    local_data: dict[str, Any] | None = None
    deleted: bool = False
    synced: bool = False

    @classmethod
    def from_row(cls, kind: RecordKind, row: sqlite3.Row) -> SyncableRecord:
        """Create a record from a local database row."""
        keys = row.keys()
        return cls(
            kind=kind,
            id=row["uuid"],
            updated_at_millis=row["updated_at_millis"],
            parent_id=row["operation"] if "operation" in keys else None,
            start_at_millis=row["start_at_millis"] if "start_at_millis" in keys else None,
            data=json.loads(row["data"]) if row["data"] else {},
            local_data=(
                json.loads(row["local_data"])
                if "local_data" in keys and row["local_data"]
                else None
            ),
            deleted=bool(row["deleted"]),
            synced=bool(row["synced"]),
        )

    @classmethod
    def from_wire(cls, kind: RecordKind, data: dict[str, Any]) -> SyncableRecord:
        """Create a record from a server payload.

        Raises:
            KeyError, TypeError, ValueError: If the payload is malformed.
        """
        payload = data.get("data") or {}
        if not isinstance(payload, dict):
            raise TypeError(f"Record data must be an object, got {type(payload).__name__}")
        parent_id = data["operation"] if kind is RecordKind.QSO else None
        start = data.get("startAtMillis")
        return cls(
            kind=kind,
            id=str(data["uuid"]),
            updated_at_millis=int(data["updatedAtMillis"]),
            parent_id=parent_id,
            start_at_millis=int(start) if start is not None else None,
            data=payload,
            deleted=bool(data.get("deleted", False)),
            synced=True,
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize for transmission, stripping local-only fields."""
        stripped = {
            k: v for k, v in self.data.items() if k not in LOCAL_ONLY_FIELDS[self.kind]
        }
        wire: dict[str, Any] = {
            "uuid": self.id,
            "updatedAtMillis": self.updated_at_millis,
            "deleted": self.deleted,
            "data": stripped,
        }
        if self.kind is RecordKind.QSO:
            wire["operation"] = self.parent_id
            wire["startAtMillis"] = self.start_at_millis
        return wire


@dataclass(frozen=True)
class SyncCursor:
    """High-water marks of what has been received from the server.

    Only ever moves forward; see advanced().
    """

    last_operation_synced_at_millis: int = 0
    last_qso_synced_at_millis: int = 0
    completed_full_sync: bool = False

    def advanced(
        self,
        operation_millis: int | None = None,
        qso_millis: int | None = None,
        completed: bool = False,
    ) -> SyncCursor:
        """Return a cursor moved forward to the given observations."""
        return SyncCursor(
            last_operation_synced_at_millis=max(
                self.last_operation_synced_at_millis, operation_millis or 0
            ),
            last_qso_synced_at_millis=max(self.last_qso_synced_at_millis, qso_millis or 0),
            completed_full_sync=self.completed_full_sync or completed,
        )


@dataclass(frozen=True)
class SyncWindow:
    """Inbound window requested for one record kind."""

    since_millis: int
    limit: int
    any_client: bool

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the request meta."""
        return {
            "sinceMillis": self.since_millis,
            "limit": self.limit,
            "anyClient": self.any_client,
        }


@dataclass
class SyncRequest:
    """One outbound batch plus the inbound window wanted back."""

    qsos: list[SyncableRecord]
    operations: list[SyncableRecord]
    operations_window: SyncWindow
    qsos_window: SyncWindow
    settings: dict[str, Any] | None = None
    consent_app: bool = True
    consent_public: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON body of the sync call."""
        body: dict[str, Any] = {
            "operations": [op.to_wire() for op in self.operations],
            "qsos": [qso.to_wire() for qso in self.qsos],
            "meta": {
                "consent": {"app": self.consent_app, "public": self.consent_public},
                "sync": {
                    "operations": self.operations_window.to_dict(),
                    "qsos": self.qsos_window.to_dict(),
                },
            },
        }
        if self.settings is not None:
            body["settings"] = self.settings
        return body


@dataclass
class SyncResponse:
    """Result of one remote exchange."""

    ok: bool
    operations: list[SyncableRecord] = field(default_factory=list)
    qsos: list[SyncableRecord] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)
    status_code: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], status_code: int = 200) -> SyncResponse:
        """Create from a successful response body.

        Raises:
            KeyError, TypeError, ValueError: If a record is malformed.
        """
        meta = data.get("meta") or {}
        if not isinstance(meta, dict):
            raise TypeError("Response meta must be an object")
        return cls(
            ok=True,
            operations=[
                SyncableRecord.from_wire(RecordKind.OPERATION, op)
                for op in data.get("operations") or []
            ],
            qsos=[
                SyncableRecord.from_wire(RecordKind.QSO, qso)
                for qso in data.get("qsos") or []
            ],
            meta=meta,
            status_code=status_code,
        )


@dataclass
class CycleResult:
    """Outcome of one successful cycle."""

    batch_size: int
    qsos_sent: int
    operations_sent: int
    qsos_received: int
    operations_received: int
    sent_all: bool
    received_all: bool
    cursor: SyncCursor

    @property
    def complete(self) -> bool:
        """True when nothing is known to be pending in either direction."""
        return self.sent_all and self.received_all


class LoopState(Enum):
    """State of the loop controller."""

    IDLE = "idle"
    DEBOUNCING = "debouncing"
    RUNNING = "running"
    BACKOFF = "backoff"


@dataclass
class SyncStatus:
    """Snapshot of the engine for display."""

    state: SyncState
    loop_state: LoopState
    attempts: int
    last_success_at: float | None
    last_error: str | None
    cursor: SyncCursor
    dirty_operations: int
    dirty_qsos: int


class RecordStore(Protocol):
    """Local storage consumed by the sync engine.

    LocalLogStore implements it; tests may substitute their own.
    """

    def query_dirty(
        self,
        kind: RecordKind,
        limit: int,
        ids: Iterable[str] | None = None,
    ) -> list[SyncableRecord]:
        """Get up to limit unsynced records, newest first."""
        ...

    def mark_synced(self, kind: RecordKind, records: Iterable[SyncableRecord]) -> int:
        """Mark the transmitted snapshot of records as synced."""
        ...

    def merge_record(self, kind: RecordKind, remote: SyncableRecord) -> bool:
        """Apply one remote record, newest wins."""
        ...

    def count_dirty(self, kind: RecordKind) -> int:
        """Count unsynced records of a kind."""
        ...

    def load_cursor(self) -> SyncCursor:
        """Load the persisted cursor."""
        ...

    def save_cursor(self, cursor: SyncCursor) -> None:
        """Persist the cursor."""
        ...

    def transaction(self) -> AbstractContextManager[None]:
        """Run a block atomically."""
        ...
