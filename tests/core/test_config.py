"""Tests for core configuration classes."""

from __future__ import annotations

import pytest

from lofisync.core.config import (
    LARGE_BATCH_SIZE,
    OPERATION_BATCH_RATIO,
    SMALL_BATCH_SIZE,
    ServerConfig,
    SyncSettings,
)
from lofisync.core.types import RecordKind


class TestServerConfig:
    """Tests for ServerConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with required fields."""
        config = ServerConfig(server_url="https://example.com", token="test-token")
        assert config.server_url == "https://example.com"
        assert config.token == "test-token"
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from server URL."""
        config = ServerConfig(server_url="https://example.com/", token="test-token")
        assert config.server_url == "https://example.com"

    def test_is_secure(self) -> None:
        """Should detect HTTPS URLs."""
        assert ServerConfig(server_url="https://example.com", token="t").is_secure is True
        assert ServerConfig(server_url="http://localhost:8000", token="t").is_secure is False


class TestSyncSettings:
    """Tests for SyncSettings class."""

    def test_defaults(self) -> None:
        """Should use the documented defaults."""
        settings = SyncSettings()
        assert settings.enabled is True
        assert settings.batch_size == LARGE_BATCH_SIZE == 50
        assert settings.small_batch_size == SMALL_BATCH_SIZE == 5
        assert settings.operation_batch_ratio == OPERATION_BATCH_RATIO == 5
        assert settings.max_attempts == 8
        assert settings.debounce_delay == 0.5
        assert settings.debounce_max_wait == 3.0

    def test_operations_limit(self) -> None:
        """Operation slots scale with the QSO batch size."""
        settings = SyncSettings(operation_batch_ratio=5)
        assert settings.operations_limit(5) == 25
        assert settings.operations_limit(50) == 250

    @pytest.mark.parametrize(
        "field",
        ["batch_size", "small_batch_size", "operation_batch_ratio", "max_attempts"],
    )
    def test_rejects_zero(self, field: str) -> None:
        """Should reject values that would stall the engine."""
        with pytest.raises(ValueError):
            SyncSettings(**{field: 0})


class TestRecordKind:
    """Tests for RecordKind enum."""

    def test_tables(self) -> None:
        """Each kind maps to its table."""
        assert RecordKind.OPERATION.table == "operations"
        assert RecordKind.QSO.table == "qsos"
