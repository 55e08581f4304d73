"""Shared fixtures and fakes for lofisync tests."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from lofisync.client.state import LocalLogStore
from lofisync.client.sync.types import SyncableRecord, SyncRequest, SyncResponse
from lofisync.core.config import SyncSettings
from lofisync.core.types import RecordKind


def make_operation(
    uuid: str,
    updated_at: int = 0,
    **data: Any,
) -> SyncableRecord:
    """Create an operation record."""
    return SyncableRecord(
        kind=RecordKind.OPERATION,
        id=uuid,
        updated_at_millis=updated_at,
        data=data,
    )


def make_qso(
    uuid: str,
    operation: str,
    start: int,
    updated_at: int = 0,
    **data: Any,
) -> SyncableRecord:
    """Create a QSO record."""
    return SyncableRecord(
        kind=RecordKind.QSO,
        id=uuid,
        updated_at_millis=updated_at,
        parent_id=operation,
        start_at_millis=start,
        data=data,
    )


def fast_settings(**overrides: Any) -> SyncSettings:
    """Settings with short delays for timer-driven tests."""
    values: dict[str, Any] = {
        "batch_size": 5,
        "small_batch_size": 2,
        "operation_batch_ratio": 5,
        "loop_delay": 0.0,
        "debounce_delay": 0.02,
        "debounce_max_wait": 0.2,
        "backoff_base_delay": 0.0,
        "backoff_unit": 0.005,
    }
    values.update(overrides)
    return SyncSettings(**values)


class FakeExchange:
    """In-memory remote exchange recording every request.

    Tracks how many calls overlap, to check single-flight execution.
    """

    def __init__(
        self,
        handler: Callable[[SyncRequest], SyncResponse] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.requests: list[SyncRequest] = []
        self.handler = handler
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def sync(self, request: SyncRequest) -> SyncResponse:
        with self._lock:
            self.requests.append(request)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.handler is not None:
                return self.handler(request)
            return SyncResponse(ok=True)
        finally:
            with self._lock:
                self.in_flight -= 1


class ImmediateTimers:
    """Timer factory that records requested delays but fires at once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(
        self,
        interval: float,
        function: Callable[..., None],
        args: Any = None,
        kwargs: Any = None,
    ) -> threading.Timer:
        self.delays.append(interval)
        return threading.Timer(0, function, args=args, kwargs=kwargs)


@pytest.fixture
def store(tmp_path: Path) -> Generator[LocalLogStore, None, None]:
    """Create a LocalLogStore instance."""
    s = LocalLogStore(tmp_path / "log.db")
    yield s
    s.close()
