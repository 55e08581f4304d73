"""Tests for merging remote records."""

from __future__ import annotations

from lofisync.client.state import LocalLogStore
from lofisync.client.sync.merge import MergeEngine
from lofisync.client.sync.types import SyncResponse
from tests.conftest import make_operation, make_qso


class TestMergeEngine:
    """Tests for MergeEngine."""

    def test_empty_response(self, store: LocalLogStore) -> None:
        """Nothing received, nothing to advance."""
        result = MergeEngine(store).apply(SyncResponse(ok=True))

        assert result.operations_received == 0
        assert result.qsos_received == 0
        assert result.latest_operation_millis is None
        assert result.latest_qso_millis is None

    def test_applies_records(self, store: LocalLogStore) -> None:
        """Operations and QSOs land in the store."""
        response = SyncResponse(
            ok=True,
            operations=[make_operation("op1", updated_at=100, title="Park")],
            qsos=[
                make_qso("q1", "op1", start=10, updated_at=300),
                make_qso("q2", "op1", start=20, updated_at=200),
            ],
        )

        result = MergeEngine(store).apply(response)

        assert result.operations_applied == 1
        assert result.qsos_applied == 2
        assert result.latest_operation_millis == 100
        assert result.latest_qso_millis == 300
        assert store.get_operation("op1").data == {"title": "Park"}
        assert store.get_qso("q2") is not None

    def test_counts_skipped_records(self, store: LocalLogStore) -> None:
        """Older remote copies are received but not applied."""
        store.save_qso(make_qso("q1", "op1", start=10, call="LOCAL"), stamp=500)
        response = SyncResponse(
            ok=True, qsos=[make_qso("q1", "op1", start=10, updated_at=400, call="REMOTE")]
        )

        result = MergeEngine(store).apply(response)

        assert result.qsos_received == 1
        assert result.qsos_applied == 0
        assert result.latest_qso_millis == 400
        assert store.get_qso("q1").data == {"call": "LOCAL"}

    def test_idempotent(self, store: LocalLogStore) -> None:
        """Applying the same response twice gives the same state."""
        response = SyncResponse(
            ok=True,
            operations=[make_operation("op1", updated_at=100, title="Park")],
            qsos=[make_qso("q1", "op1", start=10, updated_at=300, call="K1ABC")],
        )
        engine = MergeEngine(store)

        engine.apply(response)
        first = (store.get_operation("op1"), store.get_qso("q1"))
        engine.apply(response)

        assert (store.get_operation("op1"), store.get_qso("q1")) == first
