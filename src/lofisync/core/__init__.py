"""Core module - Shared configuration and types."""

from lofisync.core.config import (
    LARGE_BATCH_SIZE,
    OPERATION_BATCH_RATIO,
    SMALL_BATCH_SIZE,
    ServerConfig,
    SyncSettings,
)
from lofisync.core.types import RecordKind, SyncState

__all__ = [
    # Config
    "LARGE_BATCH_SIZE",
    "OPERATION_BATCH_RATIO",
    "SMALL_BATCH_SIZE",
    "ServerConfig",
    "SyncSettings",
    # Types
    "RecordKind",
    "SyncState",
]
