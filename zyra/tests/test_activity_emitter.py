"""Tests for the activity emitter: defaults, capped history, pub/sub fan-out."""

from __future__ import annotations

import json

import pytest

from services.activity_emitter import (
    EVENT_PHASES,
    EVENT_STATUSES,
    activity_channel,
    clear_user_history,
    emit_activity,
    get_recent_events,
)


class TestEventTables:
    def test_every_event_type_has_phase_and_status(self):
        assert set(EVENT_PHASES) == set(EVENT_STATUSES)

    @pytest.mark.parametrize("event_type,phase,status", [
        ("LOOP_STARTED", "detect", "info"),
        ("DETECT_PROGRESS", "detect", "thinking"),
        ("DECIDE_COMPLETED", "decide", "action"),
        ("EXECUTE_COMPLETED", "execute", "success"),
        ("PROVE_UPDATED", "prove", "insight"),
        ("LEARN_COMPLETED", "learn", "success"),
        ("LOOP_STANDBY", "standby", "info"),
        ("ERROR", "standby", "error"),
    ])
    def test_defaults(self, fake_redis, event_type, phase, status):
        event = emit_activity(1, "loop-1", event_type, "msg")
        assert event.phase == phase
        assert event.status == status


class TestEmitActivity:
    def test_fills_id_and_timestamp(self, fake_redis):
        event = emit_activity(7, "loop-abc", "EXECUTE_STARTED", "Rewriting 3 product titles")
        assert event.id.startswith("loop-abc-")
        assert len(event.id.split("-")[-1]) == 9
        assert event.timestamp is not None
        assert event.user_id == "7"
        assert event.event_type == "EXECUTE_STARTED"

    def test_overrides_and_extras(self, fake_redis):
        event = emit_activity(
            7, "loop-abc", "EXECUTE_PROGRESS", "Halfway there",
            phase="prove",
            status="warning",
            detail="2 of 4 products",
            metrics=[{"label": "Products", "value": 4}],
            progress=50,
        )
        assert event.phase == "prove"
        assert event.status == "warning"
        assert event.metrics[0].label == "Products"
        assert event.progress == 50

    def test_unknown_event_type_rejected(self, fake_redis):
        with pytest.raises(ValueError):
            emit_activity(7, "loop-abc", "TELEPORTED", "nope")

    def test_appends_to_history(self, fake_redis):
        emit_activity(7, "loop-1", "DETECT_STARTED", "first")
        emit_activity(7, "loop-1", "DETECT_COMPLETED", "second")

        events = get_recent_events(7)
        assert [e.message for e in events] == ["first", "second"]

    def test_history_capped_at_50_oldest_evicted(self, fake_redis):
        for n in range(55):
            emit_activity(7, "loop-1", "EXECUTE_PROGRESS", f"step {n}")

        events = get_recent_events(7, limit=100)
        assert len(events) == 50
        assert events[0].message == "step 5"
        assert events[-1].message == "step 54"

    def test_history_is_per_user(self, fake_redis):
        emit_activity(7, "loop-1", "DETECT_STARTED", "mine")
        emit_activity(8, "loop-2", "DETECT_STARTED", "theirs")
        assert [e.message for e in get_recent_events(7)] == ["mine"]

    def test_log_context_scoped_to_emit(self, fake_redis, monkeypatch):
        import services.activity_emitter as emitter
        from logging_config import loop_id_var, user_id_var

        seen = []
        from_url = emitter.redis_lib.from_url

        def _capturing(url, **kwargs):
            seen.append((user_id_var.get(), loop_id_var.get()))
            return from_url(url, **kwargs)

        monkeypatch.setattr(emitter.redis_lib, "from_url", _capturing)
        emit_activity(7, "loop-ctx", "DETECT_STARTED", "Scanning catalogue")

        assert seen == [("7", "loop-ctx")]
        assert user_id_var.get() == ""
        assert loop_id_var.get() == ""

    def test_publishes_wire_payload(self, fake_redis):
        pubsub = fake_redis.pubsub()
        pubsub.subscribe(activity_channel(7))
        pubsub.get_message(timeout=1)  # subscribe confirmation

        emit_activity(7, "loop-1", "LEARN_COMPLETED", "Baseline updated")

        msg = pubsub.get_message(timeout=1)
        assert msg is not None and msg["type"] == "message"
        payload = json.loads(msg["data"])
        assert payload["loopId"] == "loop-1"
        assert payload["eventType"] == "LEARN_COMPLETED"
        assert payload["phase"] == "learn"
        assert "detail" not in payload
        pubsub.close()


class TestRecentEvents:
    def test_limit(self, fake_redis):
        for n in range(5):
            emit_activity(7, "loop-1", "EXECUTE_PROGRESS", f"step {n}")
        assert [e.message for e in get_recent_events(7, limit=2)] == ["step 3", "step 4"]

    def test_zero_limit(self, fake_redis):
        emit_activity(7, "loop-1", "EXECUTE_PROGRESS", "step")
        assert get_recent_events(7, limit=0) == []

    def test_skips_unreadable_entries(self, fake_redis):
        emit_activity(7, "loop-1", "EXECUTE_PROGRESS", "good")
        fake_redis.rpush("zyra:activity_history:7", "{garbage")
        assert [e.message for e in get_recent_events(7)] == ["good"]

    def test_clear_user_history(self, fake_redis):
        emit_activity(7, "loop-1", "EXECUTE_PROGRESS", "step")
        clear_user_history(7)
        assert get_recent_events(7) == []
