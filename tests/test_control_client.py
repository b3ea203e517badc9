"""Tests for the HTTP control client."""

import asyncio
import json
from datetime import UTC, datetime
from uuid import uuid4

import httpx
import pytest

from profiling_sessions.adapters.control_client import ControlApiError, HttpxControlClient

SESSION_ID = uuid4()


def _session_json(state: str = "RUNNING") -> dict[str, object]:
    return {
        "id": str(SESSION_ID),
        "owner": "alice",
        "state": state,
        "preset": "default",
        "max_duration_seconds": 60.0,
        "label": "checkout",
        "labels": {},
        "created_at": datetime(2026, 3, 1, 12, 0, tzinfo=UTC).isoformat(),
        "started_at": None,
        "ended_at": None,
        "artifact": None,
        "error": None,
        "stop_reason": None,
    }


def _client(handler) -> HttpxControlClient:  # type: ignore[no-untyped-def]
    transport = httpx.MockTransport(handler)
    return HttpxControlClient(
        base_url="http://profiler.local",
        api_token="token-a",
        http_client=httpx.AsyncClient(transport=transport),
    )


def test_start_sends_token_and_payload() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["token"] = request.headers["X-Api-Token"]
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"session": _session_json(), "duplicate": False})

    client = _client(handler)
    session = asyncio.run(
        client.start(preset="default", max_duration_seconds=60, label="checkout")
    )

    assert session.id == SESSION_ID
    assert seen == {
        "token": "token-a",
        "path": "/sessions",
        "body": {"preset": "default", "max_duration_seconds": 60, "label": "checkout"},
    }


def test_stop_reports_duplicate_flag() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == f"/sessions/{SESSION_ID}/stop"
        return httpx.Response(
            200, json={"session": _session_json("COMPLETED"), "duplicate": True}
        )

    envelope = asyncio.run(_client(handler).stop(SESSION_ID))

    assert envelope.duplicate is True
    assert envelope.session.state == "COMPLETED"


def test_list_passes_filters() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params.get_list("state") == ["RUNNING", "STOPPING"]
        assert request.url.params["owner"] == "alice"
        assert request.url.params["limit"] == "10"
        return httpx.Response(200, json={"sessions": [_session_json()]})

    sessions = asyncio.run(
        _client(handler).list(states=["RUNNING", "STOPPING"], owner="alice", limit=10)
    )

    assert [s.id for s in sessions] == [SESSION_ID]


def test_get_and_download_artifact() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/artifact"):
            return httpx.Response(200, content=b"main 1\n")
        return httpx.Response(200, json={"session": _session_json()})

    client = _client(handler)

    assert asyncio.run(client.get(SESSION_ID)).owner == "alice"
    assert asyncio.run(client.download_artifact(SESSION_ID)) == b"main 1\n"


def test_error_responses_raise_control_api_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/sessions":
            return httpx.Response(
                429, json={"error": "too_many_sessions", "message": "1 of 1 in use"}
            )
        return httpx.Response(401, json={"detail": "Unauthorized"})

    client = _client(handler)

    with pytest.raises(ControlApiError) as excinfo:
        asyncio.run(client.start())
    assert excinfo.value.status_code == 429
    assert excinfo.value.error == "too_many_sessions"

    with pytest.raises(ControlApiError) as excinfo:
        asyncio.run(client.get(SESSION_ID))
    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Unauthorized"


def test_create_strips_trailing_slash() -> None:
    client = HttpxControlClient.create("http://profiler.local/", "token-a")

    assert client.base_url == "http://profiler.local"
    asyncio.run(client.close())
