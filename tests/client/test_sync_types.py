"""Tests for sync engine data types."""

from __future__ import annotations

import pytest

from lofisync.client.sync.types import (
    SyncableRecord,
    SyncCursor,
    SyncRequest,
    SyncResponse,
    SyncWindow,
)
from lofisync.core.types import RecordKind
from tests.conftest import make_operation, make_qso


class TestSyncableRecord:
    """Tests for SyncableRecord serialization."""

    def test_operation_to_wire_strips_local_fields(self) -> None:
        """Fields derived from QSOs never leave the device."""
        op = make_operation(
            "op1",
            updated_at=100,
            title="POTA K-1234",
            startAtMillisMin=1,
            startAtMillisMax=2,
            qsoCount=3,
        )
        op.local_data = {"lastBand": "20m"}

        wire = op.to_wire()

        assert wire == {
            "uuid": "op1",
            "updatedAtMillis": 100,
            "deleted": False,
            "data": {"title": "POTA K-1234"},
        }
        assert op.data["qsoCount"] == 3

    def test_qso_to_wire(self) -> None:
        """QSOs carry their operation and start time."""
        wire = make_qso("q1", "op1", start=500, updated_at=100, call="K1ABC").to_wire()

        assert wire["operation"] == "op1"
        assert wire["startAtMillis"] == 500
        assert wire["data"] == {"call": "K1ABC"}

    def test_from_wire(self) -> None:
        """Server records are parsed as synced."""
        record = SyncableRecord.from_wire(
            RecordKind.QSO,
            {
                "uuid": "q1",
                "operation": "op1",
                "startAtMillis": 500,
                "updatedAtMillis": 100,
                "deleted": True,
                "data": {"call": "K1ABC"},
            },
        )

        assert record.id == "q1"
        assert record.parent_id == "op1"
        assert record.start_at_millis == 500
        assert record.deleted is True
        assert record.synced is True

    def test_from_wire_missing_uuid(self) -> None:
        """A record without uuid is malformed."""
        with pytest.raises(KeyError):
            SyncableRecord.from_wire(RecordKind.OPERATION, {"updatedAtMillis": 1})

    def test_from_wire_qso_without_operation(self) -> None:
        """A QSO without operation is malformed."""
        with pytest.raises(KeyError):
            SyncableRecord.from_wire(RecordKind.QSO, {"uuid": "q1", "updatedAtMillis": 1})

    def test_from_wire_bad_data(self) -> None:
        """Record data must be an object."""
        with pytest.raises(TypeError):
            SyncableRecord.from_wire(
                RecordKind.OPERATION,
                {"uuid": "op1", "updatedAtMillis": 1, "data": ["nope"]},
            )

    def test_from_wire_bad_stamp(self) -> None:
        """Timestamps must be integers."""
        with pytest.raises(ValueError):
            SyncableRecord.from_wire(
                RecordKind.OPERATION, {"uuid": "op1", "updatedAtMillis": "soon"}
            )


class TestSyncCursor:
    """Tests for cursor monotonicity."""

    def test_advances_forward(self) -> None:
        """Newer observations move the cursor."""
        cursor = SyncCursor(10, 20).advanced(operation_millis=15, qso_millis=25)
        assert cursor == SyncCursor(15, 25, False)

    def test_never_moves_backward(self) -> None:
        """Older observations leave the cursor alone."""
        cursor = SyncCursor(10, 20).advanced(operation_millis=5, qso_millis=None)
        assert cursor == SyncCursor(10, 20, False)

    def test_completed_is_sticky(self) -> None:
        """A completed full sync stays completed."""
        cursor = SyncCursor(completed_full_sync=True).advanced(completed=False)
        assert cursor.completed_full_sync is True


class TestSyncRequest:
    """Tests for the request body."""

    def test_to_dict(self) -> None:
        """Should build the documented body layout."""
        request = SyncRequest(
            qsos=[make_qso("q1", "op1", start=5, updated_at=10)],
            operations=[make_operation("op1", updated_at=9)],
            operations_window=SyncWindow(since_millis=1, limit=25, any_client=True),
            qsos_window=SyncWindow(since_millis=2, limit=5, any_client=True),
            consent_public=True,
        )

        body = request.to_dict()

        assert [q["uuid"] for q in body["qsos"]] == ["q1"]
        assert [o["uuid"] for o in body["operations"]] == ["op1"]
        assert body["meta"] == {
            "consent": {"app": True, "public": True},
            "sync": {
                "operations": {"sinceMillis": 1, "limit": 25, "anyClient": True},
                "qsos": {"sinceMillis": 2, "limit": 5, "anyClient": True},
            },
        }
        assert "settings" not in body

    def test_to_dict_with_settings(self) -> None:
        """The settings blob rides along when given."""
        request = SyncRequest(
            qsos=[],
            operations=[],
            operations_window=SyncWindow(1, 25, False),
            qsos_window=SyncWindow(1, 5, False),
            settings={"operatorCall": "N0CALL"},
        )
        assert request.to_dict()["settings"] == {"operatorCall": "N0CALL"}


class TestSyncResponse:
    """Tests for response parsing."""

    def test_from_dict(self) -> None:
        """Should parse records and meta."""
        response = SyncResponse.from_dict(
            {
                "operations": [{"uuid": "op1", "updatedAtMillis": 3}],
                "qsos": [{"uuid": "q1", "operation": "op1", "updatedAtMillis": 4}],
                "meta": {"suggestedSyncBatchSize": 20},
            }
        )

        assert response.ok is True
        assert [o.id for o in response.operations] == ["op1"]
        assert [q.id for q in response.qsos] == ["q1"]
        assert response.meta == {"suggestedSyncBatchSize": 20}

    def test_from_dict_empty(self) -> None:
        """Missing lists are empty."""
        response = SyncResponse.from_dict({})
        assert response.operations == []
        assert response.qsos == []
        assert response.meta == {}
