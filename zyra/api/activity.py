"""Activity stream endpoint: per-user Server-Sent Events fed by Redis pub/sub."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from auth import get_current_user
from config import settings
from logging_config import user_id_var
from models.user import UserProfile
from services.activity_emitter import activity_channel, get_recent_events

logger = logging.getLogger(__name__)

router = APIRouter()

POLL_TIMEOUT = 1.0  # seconds


def sse_frame(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def activity_event_stream(request: Request, user_id: int) -> AsyncIterator[str]:
    """Yield ``connected``, ``history``, then ``activity``/``heartbeat`` frames until disconnect."""
    # StreamingResponse drives this generator in its own task
    user_id_var.set(str(user_id))
    yield sse_frame({"type": "connected", "timestamp": time.time()})

    history = await asyncio.to_thread(get_recent_events, user_id, settings.STREAM_HISTORY_LIMIT)
    yield sse_frame({"type": "history", "events": [e.to_wire() for e in history]})

    r = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    pubsub = r.pubsub()
    channel = activity_channel(user_id)
    last_heartbeat = time.monotonic()
    try:
        await pubsub.subscribe(channel)
        logger.info("Activity stream opened for user %s", user_id)

        while not await request.is_disconnected():
            # heartbeats keep flowing while pub/sub reads fail
            now = time.monotonic()
            if now - last_heartbeat >= settings.STREAM_HEARTBEAT_SECONDS:
                yield sse_frame({"type": "heartbeat", "timestamp": time.time()})
                last_heartbeat = now

            try:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=POLL_TIMEOUT)
            except Exception:
                logger.warning("Redis pub/sub get_message failed, retrying", exc_info=True)
                await asyncio.sleep(1)
                continue

            if msg and msg["type"] == "message":
                try:
                    event = json.loads(msg["data"])
                except json.JSONDecodeError:
                    logger.debug("Dropping malformed activity payload on %s", channel)
                else:
                    yield sse_frame({"type": "activity", "event": event})
    finally:
        logger.info("Activity stream closed for user %s", user_id)
        try:
            await pubsub.unsubscribe(channel)
            await pubsub.close()
            await r.close()
        except Exception:
            logger.debug("Error releasing pub/sub for %s", channel, exc_info=True)


@router.get("/activity-stream")
async def activity_stream(
    request: Request,
    user: UserProfile = Depends(get_current_user),
):
    return StreamingResponse(
        activity_event_stream(request, user.id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
