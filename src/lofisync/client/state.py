"""Local store for operations and QSOs.

This module provides:
- LocalLogStore: SQLite-based storage of operations, QSOs and sync state

Architecture:
    Every local mutation stamps updated_at_millis and clears the synced flag.
    Only the sync engine sets synced back to true, and only for the exact
    snapshot it transmitted: mark_synced() matches on updated_at_millis, so a
    row edited while a cycle was in flight stays dirty.

    The sync cursor lives in the key-value sync_state table. The engine
    commits mark-synced, merge and cursor advance inside one transaction().
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from lofisync.client.sync.types import SyncableRecord, SyncCursor
from lofisync.core.types import RecordKind

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

HISTORICAL_OPERATION = "historical"

# Persisted cursor keys
LAST_OPERATION_SYNCED_KEY = "lastOperationSyncedAtMillis"
LAST_QSO_SYNCED_KEY = "lastQSOSyncedAtMillis"
COMPLETED_FULL_SYNC_KEY = "completedFullSync"


def now_millis() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


class LocalLogStore:
    """SQLite-based local store for the logger.

    Thread-safe: one connection guarded by a re-entrant lock, so a
    transaction() block can call the other methods.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db_path = str(db_path)

        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            isolation_level=None,  # Autocommit, explicit BEGIN in transaction()
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS operations (
                uuid TEXT PRIMARY KEY NOT NULL,
                data TEXT,
                local_data TEXT,
                updated_at_millis INTEGER NOT NULL DEFAULT 0,
                deleted BOOLEAN NOT NULL DEFAULT 0,
                synced BOOLEAN NOT NULL DEFAULT 0
            );

            CREATE TABLE IF NOT EXISTS qsos (
                uuid TEXT PRIMARY KEY NOT NULL,
                operation TEXT NOT NULL,
                start_at_millis INTEGER,
                data TEXT,
                updated_at_millis INTEGER NOT NULL DEFAULT 0,
                deleted BOOLEAN NOT NULL DEFAULT 0,
                synced BOOLEAN NOT NULL DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS qsos_dirty
                ON qsos (synced, start_at_millis);

            CREATE TABLE IF NOT EXISTS sync_state (
                key TEXT PRIMARY KEY,
                value TEXT
            );
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def __enter__(self) -> LocalLogStore:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Run a block atomically.

        Nested calls join the outer transaction.
        """
        with self._lock:
            if self._conn.in_transaction:
                yield
                return
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            self._conn.execute("COMMIT")

    # === Local mutations (host application side) ===

    def save_operation(
        self, record: SyncableRecord, stamp: int | None = None
    ) -> SyncableRecord:
        """Insert or update an operation and mark it dirty.

        Args:
            record: Operation to write. Its updated_at_millis is ignored.
            stamp: Modification time to use instead of the current time.

        Returns:
            The record, with its new modification stamp.
        """
        with self._lock:
            record.updated_at_millis = self._next_stamp(RecordKind.OPERATION, record.id, stamp)
            record.synced = False
            self._conn.execute(
                """
                INSERT OR REPLACE INTO operations (
                    uuid, data, local_data, updated_at_millis, deleted, synced
                ) VALUES (?, ?, ?, ?, ?, 0)
                """,
                (
                    record.id,
                    json.dumps(record.data),
                    json.dumps(record.local_data) if record.local_data is not None else None,
                    record.updated_at_millis,
                    record.deleted,
                ),
            )
        return record

    def save_qso(self, record: SyncableRecord, stamp: int | None = None) -> SyncableRecord:
        """Insert or update a QSO and mark it dirty.

        Same stamping rules as save_operation().

        Raises:
            ValueError: If the QSO has no operation.
        """
        if not record.parent_id:
            raise ValueError(f"QSO {record.id} has no operation")
        with self._lock:
            record.updated_at_millis = self._next_stamp(RecordKind.QSO, record.id, stamp)
            record.synced = False
            self._conn.execute(
                """
                INSERT OR REPLACE INTO qsos (
                    uuid, operation, start_at_millis, data,
                    updated_at_millis, deleted, synced
                ) VALUES (?, ?, ?, ?, ?, ?, 0)
                """,
                (
                    record.id,
                    record.parent_id,
                    record.start_at_millis,
                    json.dumps(record.data),
                    record.updated_at_millis,
                    record.deleted,
                ),
            )
        return record

    def delete_operation(self, uuid: str) -> None:
        """Soft-delete an operation."""
        self._tombstone(RecordKind.OPERATION, uuid)

    def delete_qso(self, uuid: str) -> None:
        """Soft-delete a QSO."""
        self._tombstone(RecordKind.QSO, uuid)

    def _next_stamp(self, kind: RecordKind, uuid: str, stamp: int | None) -> int:
        """Modification stamp for a local write, strictly increasing per row.

        The stamp a fetched record still carries is never reused: an edit made
        now must beat any remote copy written since that record was read.
        """
        if stamp is None:
            stamp = now_millis()
        row = self._conn.execute(
            f"SELECT updated_at_millis FROM {kind.table} WHERE uuid = ?",
            (uuid,),
        ).fetchone()
        if row is not None and row["updated_at_millis"] >= stamp:
            stamp = row["updated_at_millis"] + 1
        return stamp

    def _tombstone(self, kind: RecordKind, uuid: str) -> None:
        with self._lock:
            self._conn.execute(
                f"UPDATE {kind.table} SET deleted = 1, synced = 0, "
                "updated_at_millis = MAX(updated_at_millis + 1, ?) WHERE uuid = ?",
                (now_millis(), uuid),
            )

    # === Reads ===

    def get_operation(self, uuid: str) -> SyncableRecord | None:
        """Get an operation by uuid."""
        return self._get(RecordKind.OPERATION, uuid)

    def get_qso(self, uuid: str) -> SyncableRecord | None:
        """Get a QSO by uuid."""
        return self._get(RecordKind.QSO, uuid)

    def _get(self, kind: RecordKind, uuid: str) -> SyncableRecord | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT * FROM {kind.table} WHERE uuid = ?", (uuid,)
            ).fetchone()
        if row is None:
            return None
        return SyncableRecord.from_row(kind, row)

    def query_dirty(
        self,
        kind: RecordKind,
        limit: int,
        ids: Iterable[str] | None = None,
    ) -> list[SyncableRecord]:
        """Get up to limit unsynced records, newest first.

        QSOs of the "historical" pseudo-operation are never synced.

        Args:
            kind: Record kind.
            limit: Maximum number of records.
            ids: Optional set of uuids to restrict the query to.

        Returns:
            List of dirty records.
        """
        clauses = ["synced = 0"]
        params: list[Any] = []

        if kind is RecordKind.QSO:
            clauses.append("operation != ?")
            params.append(HISTORICAL_OPERATION)
            order = "start_at_millis DESC, updated_at_millis DESC"
        else:
            order = "updated_at_millis DESC"

        if ids is not None:
            id_list = list(ids)
            if not id_list:
                return []
            clauses.append(f"uuid IN ({', '.join('?' for _ in id_list)})")
            params.extend(id_list)

        params.append(limit)
        with self._lock:
            rows = self._conn.execute(
                f"SELECT * FROM {kind.table} WHERE {' AND '.join(clauses)} "
                f"ORDER BY {order} LIMIT ?",
                params,
            ).fetchall()
        return [SyncableRecord.from_row(kind, row) for row in rows]

    def count_dirty(self, kind: RecordKind) -> int:
        """Count unsynced records of a kind, as query_dirty() would select them."""
        sql = f"SELECT COUNT(*) AS n FROM {kind.table} WHERE synced = 0"
        params: tuple[str, ...] = ()
        if kind is RecordKind.QSO:
            sql += " AND operation != ?"
            params = (HISTORICAL_OPERATION,)
        with self._lock:
            row = self._conn.execute(sql, params).fetchone()
        return int(row["n"])

    # === Sync engine side ===

    def mark_synced(self, kind: RecordKind, records: Iterable[SyncableRecord]) -> int:
        """Mark the transmitted snapshot of records as synced.

        Rows modified since the snapshot was taken keep synced = 0.

        Returns:
            Number of rows flipped.
        """
        pairs = [(r.id, r.updated_at_millis) for r in records]
        if not pairs:
            return 0
        flipped = 0
        with self._lock:
            for uuid, updated_at in pairs:
                cursor = self._conn.execute(
                    f"UPDATE {kind.table} SET synced = 1 "
                    "WHERE uuid = ? AND updated_at_millis = ?",
                    (uuid, updated_at),
                )
                flipped += cursor.rowcount
        if flipped < len(pairs):
            logger.debug(
                "%d of %d %s records changed while in flight, left dirty",
                len(pairs) - flipped,
                len(pairs),
                kind.value,
            )
        return flipped

    def merge_record(self, kind: RecordKind, remote: SyncableRecord) -> bool:
        """Apply a remote record, newest updated_at_millis wins.

        Equal timestamps take the remote copy, which makes repeated merges of
        the same record a no-op. Deletions are stored as tombstones.

        Returns:
            True if the local row was written.
        """
        with self._lock:
            row = self._conn.execute(
                f"SELECT updated_at_millis FROM {kind.table} WHERE uuid = ?",
                (remote.id,),
            ).fetchone()
            if row is not None and row["updated_at_millis"] > remote.updated_at_millis:
                return False

            if kind is RecordKind.OPERATION:
                # local_data belongs to this device and survives remote updates
                self._conn.execute(
                    """
                    INSERT INTO operations (uuid, data, updated_at_millis, deleted, synced)
                    VALUES (?, ?, ?, ?, 1)
                    ON CONFLICT(uuid) DO UPDATE SET
                        data = excluded.data,
                        updated_at_millis = excluded.updated_at_millis,
                        deleted = excluded.deleted,
                        synced = 1
                    """,
                    (
                        remote.id,
                        json.dumps(remote.data),
                        remote.updated_at_millis,
                        remote.deleted,
                    ),
                )
            else:
                self._conn.execute(
                    """
                    INSERT OR REPLACE INTO qsos (
                        uuid, operation, start_at_millis, data,
                        updated_at_millis, deleted, synced
                    ) VALUES (?, ?, ?, ?, ?, ?, 1)
                    """,
                    (
                        remote.id,
                        remote.parent_id,
                        remote.start_at_millis,
                        json.dumps(remote.data),
                        remote.updated_at_millis,
                        remote.deleted,
                    ),
                )
        return True

    def reset_synced_status(self) -> None:
        """Mark every record dirty again, for a user-initiated full resync."""
        with self.transaction():
            self._conn.execute("UPDATE qsos SET synced = 0")
            self._conn.execute("UPDATE operations SET synced = 0")
        logger.info("All operations and QSOs marked for resync")

    # === Sync state ===

    def get_state(self, key: str) -> str | None:
        """Get a sync state value."""
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM sync_state WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        """Set a sync state value."""
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO sync_state (key, value) VALUES (?, ?)",
                (key, value),
            )

    def load_cursor(self) -> SyncCursor:
        """Load the persisted sync cursor."""
        ops = self.get_state(LAST_OPERATION_SYNCED_KEY)
        qsos = self.get_state(LAST_QSO_SYNCED_KEY)
        completed = self.get_state(COMPLETED_FULL_SYNC_KEY)
        return SyncCursor(
            last_operation_synced_at_millis=int(ops) if ops else 0,
            last_qso_synced_at_millis=int(qsos) if qsos else 0,
            completed_full_sync=completed == "true",
        )

    def save_cursor(self, cursor: SyncCursor) -> None:
        """Persist the sync cursor."""
        with self.transaction():
            self.set_state(LAST_OPERATION_SYNCED_KEY, str(cursor.last_operation_synced_at_millis))
            self.set_state(LAST_QSO_SYNCED_KEY, str(cursor.last_qso_synced_at_millis))
            self.set_state(
                COMPLETED_FULL_SYNC_KEY, "true" if cursor.completed_full_sync else "false"
            )
