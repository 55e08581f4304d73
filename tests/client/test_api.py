"""Tests for the lofisync HTTP client."""

from __future__ import annotations

import json

import httpx
import pytest

from lofisync.client.api import HTTPClient
from lofisync.client.sync.types import (
    AuthenticationError,
    NetworkError,
    SyncRequest,
    SyncWindow,
    TransportError,
)
from lofisync.core.config import ServerConfig
from tests.conftest import make_qso

SYNC_URL = "http://test/v1/sync"


def make_config(server_url: str = "http://test", token: str = "token123") -> ServerConfig:
    """Create a ServerConfig for testing."""
    return ServerConfig(server_url=server_url, token=token)


def make_request() -> SyncRequest:
    """Create a small sync request."""
    return SyncRequest(
        qsos=[make_qso("q1", "op1", start=5, updated_at=10, call="K1ABC")],
        operations=[],
        operations_window=SyncWindow(since_millis=1, limit=25, any_client=True),
        qsos_window=SyncWindow(since_millis=1, limit=5, any_client=True),
    )


class TestHTTPClient:
    """Tests for HTTPClient class."""

    def test_health_check_success(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return True when server is healthy."""
        httpx_mock.add_response(url="http://test/health", json={"status": "ok"})

        with HTTPClient(make_config()) as client:
            assert client.health_check() is True

    def test_health_check_failure(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return False when server is unhealthy."""
        httpx_mock.add_response(url="http://test/health", status_code=500)

        with HTTPClient(make_config()) as client:
            assert client.health_check() is False

    def test_sync_posts_body(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should POST the request body with the bearer token."""
        httpx_mock.add_response(method="POST", url=SYNC_URL, json={})

        with HTTPClient(make_config()) as client:
            client.sync(make_request())

        sent = httpx_mock.get_request()
        assert sent.headers["Authorization"] == "Bearer token123"
        assert sent.headers["User-Agent"].startswith("lofisync/")
        body = json.loads(sent.content)
        assert body["qsos"][0]["uuid"] == "q1"
        assert body["meta"]["sync"]["qsos"]["limit"] == 5

    def test_sync_parses_response(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should parse records and meta from the answer."""
        httpx_mock.add_response(
            method="POST",
            url=SYNC_URL,
            json={
                "operations": [{"uuid": "op2", "updatedAtMillis": 50, "data": {"title": "X"}}],
                "qsos": [
                    {
                        "uuid": "q2",
                        "operation": "op2",
                        "startAtMillis": 40,
                        "updatedAtMillis": 60,
                    }
                ],
                "meta": {"suggestedSyncLoopDelay": 3},
            },
        )

        with HTTPClient(make_config()) as client:
            response = client.sync(make_request())

        assert response.ok is True
        assert response.status_code == 200
        assert response.operations[0].data == {"title": "X"}
        assert response.qsos[0].parent_id == "op2"
        assert response.meta == {"suggestedSyncLoopDelay": 3}

    def test_sync_server_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Non-2xx answers are reported as not ok."""
        httpx_mock.add_response(method="POST", url=SYNC_URL, status_code=503)

        with HTTPClient(make_config()) as client:
            response = client.sync(make_request())

        assert response.ok is False
        assert response.status_code == 503
        assert response.qsos == []

    def test_authentication_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise AuthenticationError on 401."""
        httpx_mock.add_response(method="POST", url=SYNC_URL, status_code=401)

        with HTTPClient(make_config()) as client, pytest.raises(AuthenticationError) as exc:
            client.sync(make_request())
        assert exc.value.status_code == 401

    def test_network_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Connection failures become NetworkError."""
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))

        with HTTPClient(make_config()) as client, pytest.raises(NetworkError):
            client.sync(make_request())

    def test_invalid_json(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """An unparseable body is a transport failure."""
        httpx_mock.add_response(method="POST", url=SYNC_URL, text="<html>oops</html>")

        with HTTPClient(make_config()) as client, pytest.raises(TransportError):
            client.sync(make_request())

    def test_non_object_body(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """The body must be a JSON object."""
        httpx_mock.add_response(method="POST", url=SYNC_URL, json=[1, 2, 3])

        with HTTPClient(make_config()) as client, pytest.raises(TransportError):
            client.sync(make_request())

    def test_malformed_record(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """A record missing its uuid is a transport failure."""
        httpx_mock.add_response(
            method="POST",
            url=SYNC_URL,
            json={"qsos": [{"operation": "op1", "updatedAtMillis": 1}]},
        )

        with HTTPClient(make_config()) as client, pytest.raises(TransportError):
            client.sync(make_request())

    def test_server_url_trailing_slash(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should handle server URL with trailing slash."""
        httpx_mock.add_response(method="POST", url=SYNC_URL, json={})

        with HTTPClient(make_config(server_url="http://test/")) as client:
            assert client.sync(make_request()).ok is True

    def test_context_manager(self) -> None:
        """Should expose its configuration."""
        config = make_config()
        with HTTPClient(config) as client:
            assert client.config is config
