"""Sync engine for operations and QSOs.

Architecture:
    trigger() → LoopController → SyncEngine cycle → RemoteExchange
                    ↑                    │
              SyncWatchdog       MergeEngine → LocalLogStore

Components:
- **SyncEngine**: Entry point; runs one cycle (compose, exchange, commit)
- **LoopController**: Single-flight scheduling with debounce and backoff
- **DirtyRecordSelector / BatchComposer**: Build the outbound batch
- **MergeEngine**: Applies inbound records, newest wins
- **BackoffPolicy**: Exponential retry delays with an attempt cap
- **SyncWatchdog**: Forces a cycle when none succeeded for too long

All public symbols are re-exported here.
"""

from lofisync.client.sync.composer import BatchComposer, SettingsProvider, SyncBatch
from lofisync.client.sync.engine import LARGE, SMALL, RemoteExchange, SyncEngine
from lofisync.client.sync.hints import ServerHints
from lofisync.client.sync.loop import CycleRunner, LoopController
from lofisync.client.sync.merge import MergeEngine, MergeResult
from lofisync.client.sync.retry import (
    DEFAULT_BACKOFF_UNIT,
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    BackoffPolicy,
)
from lofisync.client.sync.selector import DirtyRecordSelector, DirtySelection
from lofisync.client.sync.types import (
    LOCAL_ONLY_FIELDS,
    ApplicationError,
    AuthenticationError,
    CycleResult,
    LoopState,
    NetworkError,
    RecordStore,
    SyncableRecord,
    SyncCursor,
    SyncError,
    SyncRequest,
    SyncResponse,
    SyncStatus,
    SyncWindow,
    TransportError,
)
from lofisync.client.sync.watchdog import SyncWatchdog

__all__ = [
    # Retry
    "DEFAULT_BACKOFF_UNIT",
    "DEFAULT_BASE_DELAY",
    "DEFAULT_MAX_ATTEMPTS",
    "BackoffPolicy",
    # Errors
    "ApplicationError",
    "AuthenticationError",
    "NetworkError",
    "SyncError",
    "TransportError",
    # Types and dataclasses
    "LOCAL_ONLY_FIELDS",
    "CycleResult",
    "LoopState",
    "RecordStore",
    "ServerHints",
    "SyncableRecord",
    "SyncCursor",
    "SyncRequest",
    "SyncResponse",
    "SyncStatus",
    "SyncWindow",
    # Engine
    "LARGE",
    "SMALL",
    "RemoteExchange",
    "SyncEngine",
    # Components
    "BatchComposer",
    "CycleRunner",
    "DirtyRecordSelector",
    "DirtySelection",
    "LoopController",
    "MergeEngine",
    "MergeResult",
    "SettingsProvider",
    "SyncBatch",
    "SyncWatchdog",
]
