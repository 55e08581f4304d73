"""Shared configuration classes for lofisync.

This module defines the connection settings for the sync service and the
tuning knobs of the sync engine.
"""

from __future__ import annotations

from dataclasses import dataclass

SMALL_BATCH_SIZE = 5
LARGE_BATCH_SIZE = 50

# Operations are much smaller than QSOs, so more of them travel per batch
OPERATION_BATCH_RATIO = 5


@dataclass
class ServerConfig:
    """Configuration for connecting to the sync service.

    Attributes:
        server_url: Base URL of the server (e.g., "https://lofi.example.com").
        token: Bearer token for this device.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


@dataclass
class SyncSettings:
    """Tuning knobs of the sync engine.

    All delays are in seconds. The server may adjust batch_size, loop_delay
    and check_period at runtime through response meta hints.

    Attributes:
        enabled: Master switch; a disabled engine ignores triggers.
        batch_size: QSOs per cycle for large batches and continuations.
        small_batch_size: QSOs per cycle after a single user action.
        operation_batch_ratio: Operations allowed per QSO slot in a batch.
        loop_delay: Delay before a continuation cycle.
        check_period: Watchdog threshold since the last successful cycle.
        watchdog_interval: How often the watchdog checks the threshold.
        debounce_delay: Quiet time required after the last trigger.
        debounce_max_wait: Upper bound on how long triggers can defer a cycle.
        backoff_base_delay: Constant part of the retry delay.
        backoff_unit: Scale of the exponential part of the retry delay.
        max_attempts: Consecutive failures before auto-retry stops.
        consent_app: User consents to app-level data use.
        consent_public: User consents to public sharing.
    """

    enabled: bool = True
    batch_size: int = LARGE_BATCH_SIZE
    small_batch_size: int = SMALL_BATCH_SIZE
    operation_batch_ratio: int = OPERATION_BATCH_RATIO
    loop_delay: float = 1.0
    check_period: float = 60.0
    watchdog_interval: float = 5.0
    debounce_delay: float = 0.5
    debounce_max_wait: float = 3.0
    backoff_base_delay: float = 1.0
    backoff_unit: float = 1.0
    max_attempts: int = 8
    consent_app: bool = True
    consent_public: bool = False

    def __post_init__(self) -> None:
        """Validate values that would stall the engine."""
        if self.batch_size < 1 or self.small_batch_size < 1:
            raise ValueError("Batch sizes must be at least 1")
        if self.operation_batch_ratio < 1:
            raise ValueError("operation_batch_ratio must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def operations_limit(self, batch_size: int) -> int:
        """Operation slots for a batch of the given QSO size."""
        return batch_size * self.operation_batch_ratio
