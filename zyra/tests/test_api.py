"""Tests for the HTTP surface: auth, plan endpoints, activity SSE stream, health."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from schemas.activity import ActivityEvent


@pytest.fixture
def app(db):
    from main import app as _app
    from database import get_db

    def _override_get_db():
        try:
            yield db
        finally:
            pass

    _app.dependency_overrides[get_db] = _override_get_db
    yield _app
    _app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers(api_key):
    return {"Authorization": f"Bearer {api_key.key}"}


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class TestAuth:
    def test_invalid_token_rejected(self, client):
        resp = client.get("/api/zyra/plan-experience", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_missing_header_rejected(self, client):
        resp = client.get("/api/zyra/plan-experience")
        assert resp.status_code in (401, 403)

    def test_stream_requires_auth(self, client):
        resp = client.get("/api/zyra/activity-stream", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_authenticate_token(self, db, api_key, user_profile):
        from auth import authenticate_token

        assert authenticate_token(api_key.key, db).id == user_profile.id
        assert authenticate_token("", db) is None
        assert authenticate_token("not-a-key", db) is None


# ---------------------------------------------------------------------------
# Plan endpoints
# ---------------------------------------------------------------------------

class TestPlanEndpoints:
    def test_plan_experience_for_growth_user(self, client, auth_headers):
        resp = client.get("/api/zyra/plan-experience", headers=auth_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["tier"] == "growth"
        assert data["auto_execute"]["low"] is True
        assert data["show_auto_applied_badges"] is True

    def test_plan_experience_follows_user_plan(self, client, db, user_profile, auth_headers):
        user_profile.plan = "Pro"
        db.commit()
        data = client.get("/api/zyra/plan-experience", headers=auth_headers).json()
        assert data["tier"] == "scale"
        assert data["autonomy_level"] == "full_auto"

    def test_user_id_in_log_context_during_request(self, client, auth_headers, user_profile):
        from logging_config import user_id_var
        from services.plan_experience import get_plan_experience

        seen = []

        def _capturing(plan):
            seen.append(user_id_var.get())
            return get_plan_experience(plan)

        with patch("api.plans.get_plan_experience", side_effect=_capturing):
            resp = client.get("/api/zyra/plan-experience", headers=auth_headers)

        assert resp.status_code == 200
        assert seen == [str(user_profile.id)]

    def test_plan_summary(self, client, auth_headers):
        data = client.get("/api/zyra/plan", headers=auth_headers).json()
        assert data["name"] == "Growth"
        assert data["credit_limit"] == 6000
        assert data["execution_priority"] == "fast"
        assert data["features"]["bulk_optimization"] is True


# ---------------------------------------------------------------------------
# Activity stream
# ---------------------------------------------------------------------------

class _FakeRequest:
    """Reports a disconnect after *polls* loop iterations."""

    def __init__(self, polls: int) -> None:
        self.polls = polls
        self.checks = 0

    async def is_disconnected(self) -> bool:
        self.checks += 1
        return self.checks > self.polls


def _mock_redis(messages):
    mock_pubsub = AsyncMock()
    mock_pubsub.get_message = AsyncMock(side_effect=messages)
    mock_r = MagicMock()
    mock_r.pubsub.return_value = mock_pubsub
    mock_r.close = AsyncMock()
    return mock_r, mock_pubsub


def _decode(frames: list[str]) -> list[dict]:
    out = []
    for frame in frames:
        assert frame.startswith("data: ") and frame.endswith("\n\n")
        out.append(json.loads(frame[len("data: "):]))
    return out


async def _collect(request, user_id):
    from api.activity import activity_event_stream

    return [frame async for frame in activity_event_stream(request, user_id)]


class TestActivityEventStream:
    @pytest.mark.asyncio
    async def test_connected_history_then_activity(self, make_event):
        history = [ActivityEvent.model_validate(make_event(1, phase="detect"))]
        live = make_event(2)
        mock_r, mock_pubsub = _mock_redis([
            {"type": "message", "data": json.dumps(live)},
            None,
            {"type": "message", "data": "{bad json"},
        ])

        with patch("api.activity.aioredis") as mock_aioredis, \
                patch("api.activity.get_recent_events", return_value=history) as mock_history:
            mock_aioredis.from_url.return_value = mock_r
            frames = _decode(await _collect(_FakeRequest(polls=3), 7))

        assert [f["type"] for f in frames] == ["connected", "history", "activity"]
        assert frames[1]["events"][0]["id"] == "loop-1-1"
        assert frames[1]["events"][0]["loopId"] == "loop-1"
        assert frames[2]["event"]["id"] == "loop-1-2"
        mock_history.assert_called_once_with(7, 20)
        mock_pubsub.subscribe.assert_awaited_once_with("zyra:activity:7")
        mock_pubsub.unsubscribe.assert_awaited_once_with("zyra:activity:7")
        mock_r.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_user_id_in_log_context_while_streaming(self):
        from logging_config import user_id_var

        seen = []

        def _history(user_id, limit):
            seen.append(user_id_var.get())
            return []

        mock_r, _ = _mock_redis([None])
        with patch("api.activity.aioredis") as mock_aioredis, \
                patch("api.activity.get_recent_events", side_effect=_history):
            mock_aioredis.from_url.return_value = mock_r
            await _collect(_FakeRequest(polls=1), 7)

        assert seen == ["7"]

    @pytest.mark.asyncio
    async def test_heartbeats(self, monkeypatch):
        from config import settings

        monkeypatch.setattr(settings, "STREAM_HEARTBEAT_SECONDS", 0)
        mock_r, _ = _mock_redis([None, None])

        with patch("api.activity.aioredis") as mock_aioredis, \
                patch("api.activity.get_recent_events", return_value=[]):
            mock_aioredis.from_url.return_value = mock_r
            frames = _decode(await _collect(_FakeRequest(polls=2), 7))

        assert [f["type"] for f in frames] == ["connected", "history", "heartbeat", "heartbeat"]

    @pytest.mark.asyncio
    async def test_heartbeats_continue_while_pubsub_reads_fail(self, monkeypatch):
        from config import settings

        monkeypatch.setattr(settings, "STREAM_HEARTBEAT_SECONDS", 0)
        mock_r, _ = _mock_redis([ConnectionError("redis down")] * 3)

        with patch("api.activity.aioredis") as mock_aioredis, \
                patch("api.activity.get_recent_events", return_value=[]), \
                patch("api.activity.asyncio.sleep", new=AsyncMock()):
            mock_aioredis.from_url.return_value = mock_r
            frames = _decode(await _collect(_FakeRequest(polls=3), 7))

        assert [f["type"] for f in frames] == ["connected", "history"] + ["heartbeat"] * 3

    @pytest.mark.asyncio
    async def test_pubsub_failure_is_retried(self, make_event):
        mock_r, _ = _mock_redis([
            ConnectionError("redis blip"),
            {"type": "message", "data": json.dumps(make_event(5))},
        ])

        with patch("api.activity.aioredis") as mock_aioredis, \
                patch("api.activity.get_recent_events", return_value=[]), \
                patch("api.activity.asyncio.sleep", new=AsyncMock()):
            mock_aioredis.from_url.return_value = mock_r
            frames = _decode(await _collect(_FakeRequest(polls=2), 7))

        assert frames[-1]["type"] == "activity"
        assert frames[-1]["event"]["id"] == "loop-1-5"

    def test_frames_parse_with_stream_client(self, make_event):
        """Whatever the endpoint emits, the client buffers."""
        from api.activity import sse_frame
        from services.activity_stream import ActivityStreamClient

        client = ActivityStreamClient("http://zyra.test", "tok")
        for line in sse_frame({"type": "activity", "event": make_event(3)}).splitlines():
            client._handle_line(line)
        assert [e.id for e in client.events] == ["loop-1-3"]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:
    def test_health_all_ok(self, client, session_factory):
        mock_r = MagicMock()
        mock_r.ping.return_value = True
        with patch("main.redis_lib.from_url", return_value=mock_r), \
                patch("main.SessionLocal", session_factory):
            data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["redis"] is True
        assert data["database"] is True
        assert "version" in data

    def test_health_redis_down(self, client, session_factory):
        with patch("main.redis_lib.from_url", side_effect=ConnectionError("Redis down")), \
                patch("main.SessionLocal", session_factory):
            data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["redis"] is False
        assert data["database"] is True
