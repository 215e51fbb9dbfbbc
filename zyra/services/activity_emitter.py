"""Activity emitter: record Master Loop events and fan them out over Redis.

Each user has a capped history list and a pub/sub channel. The stream
endpoint replays the history on connect and then forwards the channel.
"""

from __future__ import annotations

import json
import logging
import secrets
import time
from datetime import datetime, timezone

import redis as redis_lib
from pydantic import ValidationError

from config import settings
from logging_config import loop_id_var, user_id_var
from schemas.activity import ActivityEvent, ActivityMetric

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "zyra:activity:"
HISTORY_KEY = "zyra:activity_history:{user_id}"

EVENT_PHASES: dict[str, str] = {
    "LOOP_STARTED": "detect",
    "DETECT_STARTED": "detect",
    "DETECT_PROGRESS": "detect",
    "DETECT_COMPLETED": "detect",
    "DECIDE_STARTED": "decide",
    "DECIDE_COMPLETED": "decide",
    "EXECUTE_STARTED": "execute",
    "EXECUTE_PROGRESS": "execute",
    "EXECUTE_COMPLETED": "execute",
    "PROVE_STARTED": "prove",
    "PROVE_UPDATED": "prove",
    "LEARN_STARTED": "learn",
    "LEARN_COMPLETED": "learn",
    "LOOP_COMPLETED": "standby",
    "LOOP_STANDBY": "standby",
    "ERROR": "standby",
}

EVENT_STATUSES: dict[str, str] = {
    "LOOP_STARTED": "info",
    "DETECT_STARTED": "info",
    "DETECT_PROGRESS": "thinking",
    "DETECT_COMPLETED": "insight",
    "DECIDE_STARTED": "thinking",
    "DECIDE_COMPLETED": "action",
    "EXECUTE_STARTED": "action",
    "EXECUTE_PROGRESS": "action",
    "EXECUTE_COMPLETED": "success",
    "PROVE_STARTED": "thinking",
    "PROVE_UPDATED": "insight",
    "LEARN_STARTED": "thinking",
    "LEARN_COMPLETED": "success",
    "LOOP_COMPLETED": "success",
    "LOOP_STANDBY": "info",
    "ERROR": "error",
}


def activity_channel(user_id: int | str) -> str:
    return f"{CHANNEL_PREFIX}{user_id}"


def _history_key(user_id: int | str) -> str:
    return HISTORY_KEY.format(user_id=user_id)


def _event_id(loop_id: str) -> str:
    return f"{loop_id}-{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


def emit_activity(
    user_id: int | str,
    loop_id: str,
    event_type: str,
    message: str,
    *,
    phase: str | None = None,
    detail: str | None = None,
    metrics: list[dict] | None = None,
    progress: float | None = None,
    status: str | None = None,
) -> ActivityEvent:
    """Record one activity event for *user_id* and publish it to live streams.

    Phase and status default from *event_type*. Sync; safe to call from
    FastAPI endpoints and background workers.
    """
    if event_type not in EVENT_PHASES:
        raise ValueError(f"Unknown activity event type: {event_type}")

    event = ActivityEvent(
        id=_event_id(loop_id),
        user_id=str(user_id),
        loop_id=loop_id,
        event_type=event_type,
        phase=phase or EVENT_PHASES[event_type],
        timestamp=datetime.now(timezone.utc),
        message=message,
        detail=detail,
        metrics=[ActivityMetric.model_validate(m) for m in metrics] if metrics else None,
        progress=progress,
        status=status or EVENT_STATUSES[event_type],
    )
    payload = json.dumps(event.to_wire())
    key = _history_key(user_id)

    user_token = user_id_var.set(str(user_id))
    loop_token = loop_id_var.set(loop_id)
    try:
        r = redis_lib.from_url(settings.REDIS_URL, decode_responses=True)
        try:
            pipe = r.pipeline()
            pipe.rpush(key, payload)
            pipe.ltrim(key, -settings.ACTIVITY_HISTORY_MAX, -1)
            pipe.publish(activity_channel(user_id), payload)
            pipe.execute()
        finally:
            r.close()
        logger.debug("Emitted %s", event_type)
    finally:
        loop_id_var.reset(loop_token)
        user_id_var.reset(user_token)
    return event


def get_recent_events(user_id: int | str, limit: int = 20) -> list[ActivityEvent]:
    """Return the last *limit* events for *user_id*, oldest first."""
    if limit <= 0:
        return []
    r = redis_lib.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        raw_items = r.lrange(_history_key(user_id), -limit, -1)
    finally:
        r.close()

    events: list[ActivityEvent] = []
    for raw in raw_items:
        try:
            events.append(ActivityEvent.model_validate_json(raw))
        except ValidationError:
            logger.warning("Skipping unreadable activity history entry for user %s", user_id)
    return events


def clear_user_history(user_id: int | str) -> None:
    r = redis_lib.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        r.delete(_history_key(user_id))
    finally:
        r.close()
