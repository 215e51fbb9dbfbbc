"""Activity stream client: reconnecting consumer of the server-sent activity feed.

One client owns one background task. The task opens
``GET /api/zyra/activity-stream`` with the current bearer token, folds
``data:`` frames into a bounded event buffer and, when the stream ends or the
transport fails, reconnects with exponential backoff until the attempts
run out. Rotating the token or closing the client cancels the task; that
kind of abort is never counted as a failure.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from config import settings
from schemas.activity import PHASES, ActivityEvent, ConnectionState, ConnectionStatus

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/zyra/activity-stream"
RECONNECTING_ERROR = "Connection lost. Reconnecting..."
TERMINAL_ERROR = "Unable to connect to activity stream"


class StreamHTTPError(Exception):
    """The stream endpoint answered with a non-2xx status."""

    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP error! status: {status_code}")
        self.status_code = status_code


@dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential backoff: ``min(base * multiplier**attempt, max_delay)`` seconds."""

    base_delay: float = 2.0
    multiplier: float = 1.5
    max_delay: float = 30.0
    max_attempts: int = 10

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)

    @classmethod
    def from_settings(cls) -> ReconnectPolicy:
        return cls(
            base_delay=settings.STREAM_RECONNECT_BASE_SECONDS,
            multiplier=settings.STREAM_RECONNECT_MULTIPLIER,
            max_delay=settings.STREAM_RECONNECT_MAX_SECONDS,
            max_attempts=settings.STREAM_MAX_RECONNECT_ATTEMPTS,
        )

    @classmethod
    def doubling(cls) -> ReconnectPolicy:
        """2s, 4s, 8s, 16s, 30s, five attempts."""
        return cls(base_delay=2.0, multiplier=2.0, max_delay=30.0, max_attempts=5)


EventCallback = Callable[[ActivityEvent], None]
StateCallback = Callable[[ConnectionState], None]
SleepFunc = Callable[[float], Awaitable[Any]]


class ActivityStreamClient:
    """Keeps a live view of the user's activity feed and its connection health."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        *,
        policy: ReconnectPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        buffer_size: int | None = None,
        connect_delay: float | None = None,
        connect_timeout: float | None = None,
        stale_timeout: float | None = None,
        on_event: EventCallback | None = None,
        on_state_change: StateCallback | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self._base_url = (base_url or settings.PLATFORM_BASE_URL).rstrip("/")
        self._token = token or None
        self._policy = policy or ReconnectPolicy.from_settings()
        self._http = http_client
        self._owns_http = http_client is None
        self._events: deque[ActivityEvent] = deque(maxlen=buffer_size or settings.STREAM_BUFFER_SIZE)
        self._connect_delay = (
            settings.STREAM_CONNECT_DELAY_SECONDS if connect_delay is None else connect_delay
        )
        self._timeout = httpx.Timeout(
            settings.STREAM_STALE_TIMEOUT_SECONDS if stale_timeout is None else stale_timeout,
            connect=settings.STREAM_CONNECT_TIMEOUT_SECONDS if connect_timeout is None else connect_timeout,
        )
        self._on_event = on_event
        self._on_state_change = on_state_change
        self._sleep = sleep

        self._state = ConnectionState()
        self._attempts = 0
        self._task: asyncio.Task | None = None
        self._closed = False

    # ── Public surface ───────────────────────────────────────────────────────

    @property
    def events(self) -> list[ActivityEvent]:
        return list(self._events)

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def clear_events(self) -> None:
        self._events.clear()

    def start(self) -> bool:
        """Connect after the settle delay. Returns False if nothing was started."""
        return self._spawn(self._connect_delay)

    def connect(self) -> bool:
        """Connect now. A call while a connection attempt is outstanding is a no-op."""
        return self._spawn(0.0)

    async def set_token(self, token: str | None) -> None:
        """Rotate the credential: abort, reset counters and reconnect with *token*."""
        await self._abort()
        self._token = token or None
        self._attempts = 0
        self._set_state(
            status=ConnectionStatus.DISCONNECTED,
            is_connected=False,
            is_reconnecting=False,
            retry_count=0,
            error=None,
        )
        if self._token:
            self.start()

    async def close(self) -> None:
        """Abort the stream, cancel pending timers and release the HTTP client."""
        self._closed = True
        await self._abort()
        self._set_state(status=ConnectionStatus.DISCONNECTED, is_connected=False, is_reconnecting=False)
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def wait(self) -> None:
        """Block until the background task stops (terminal failure or abort)."""
        task = self._task
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    async def __aenter__(self) -> ActivityStreamClient:
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ── Connection loop ──────────────────────────────────────────────────────

    def _spawn(self, initial_delay: float) -> bool:
        if not self._token or self._closed or self.is_running:
            return False
        self._task = asyncio.get_running_loop().create_task(
            self._run(initial_delay), name="activity-stream",
        )
        return True

    async def _abort(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self, initial_delay: float) -> None:
        if initial_delay > 0:
            await self._sleep(initial_delay)

        while True:
            failed = False
            try:
                await self._consume()
                logger.info("Activity stream closed by server")
            except (httpx.HTTPError, StreamHTTPError) as exc:
                logger.warning("Activity stream connection error: %s", exc or type(exc).__name__)
                failed = True
            except Exception:
                logger.exception("Activity stream failed unexpectedly")
                failed = True

            if self._attempts >= self._policy.max_attempts:
                logger.error(
                    "Activity stream gave up after %d reconnect attempts", self._attempts,
                )
                self._set_state(
                    status=ConnectionStatus.FAILED,
                    is_connected=False,
                    is_reconnecting=False,
                    error=TERMINAL_ERROR,
                )
                return

            delay = self._policy.delay_for(self._attempts)
            changes: dict[str, Any] = {
                "status": ConnectionStatus.RECONNECTING,
                "is_connected": False,
                "is_reconnecting": True,
                "retry_count": self._attempts + 1,
            }
            if failed:
                changes["error"] = RECONNECTING_ERROR
            self._set_state(**changes)
            logger.info(
                "Reconnecting activity stream in %.1fs (attempt %d/%d)",
                delay, self._attempts + 1, self._policy.max_attempts,
            )
            await self._sleep(delay)
            self._attempts += 1

    async def _consume(self) -> None:
        """Hold one streaming request open until the server ends it."""
        if self._state.status != ConnectionStatus.RECONNECTING:
            self._set_state(status=ConnectionStatus.CONNECTING)

        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
        }
        async with self._client().stream(
            "GET", f"{self._base_url}{STREAM_PATH}", headers=headers, timeout=self._timeout,
        ) as response:
            if not response.is_success:
                raise StreamHTTPError(response.status_code)

            self._attempts = 0
            self._set_state(
                status=ConnectionStatus.CONNECTED,
                is_connected=True,
                is_reconnecting=False,
                retry_count=0,
                error=None,
            )
            async for line in response.aiter_lines():
                self._handle_line(line)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient()
            self._owns_http = True
        return self._http

    # ── Frame handling ───────────────────────────────────────────────────────

    def _handle_line(self, line: str) -> None:
        if not line.startswith("data:"):
            return
        payload = line[5:]
        if payload.startswith(" "):
            payload = payload[1:]

        try:
            frame = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Dropping malformed activity frame: %.200s", payload)
            return
        if not isinstance(frame, dict):
            return

        frame_type = frame.get("type")
        if frame_type == "connected":
            self._set_state(status=ConnectionStatus.CONNECTED, is_connected=True, is_reconnecting=False)

        elif frame_type == "heartbeat":
            self._attempts = 0
            self._set_state(
                status=ConnectionStatus.CONNECTED,
                is_connected=True,
                is_reconnecting=False,
                retry_count=0,
                error=None,
            )

        elif frame_type == "history":
            raw_events = frame.get("events")
            if not isinstance(raw_events, list):
                return
            parsed = [e for e in map(_parse_event, raw_events) if e is not None]
            self._events.clear()
            self._events.extend(parsed)

        elif frame_type == "activity":
            event = _parse_event(frame.get("event"))
            if event is None:
                return
            self._events.append(event)
            if self._on_event is not None:
                try:
                    self._on_event(event)
                except Exception:
                    logger.exception("Error in activity event callback")

    def _set_state(self, **changes: Any) -> None:
        new_state = self._state.model_copy(update=changes)
        if new_state == self._state:
            return
        self._state = new_state
        if self._on_state_change is not None:
            try:
                self._on_state_change(new_state)
            except Exception:
                logger.exception("Error in connection state callback")


def _parse_event(raw: Any) -> ActivityEvent | None:
    """Build one buffered event; None unless *raw* is a dict with a known phase.

    Only the phase gates an event. Fields that fail validation, such as a
    status added on the server later, are kept as sent; a missing id becomes "".
    """
    if not isinstance(raw, dict) or raw.get("phase") not in PHASES:
        return None
    try:
        return ActivityEvent.model_validate(raw)
    except ValidationError as exc:
        logger.debug(
            "Keeping unvalidated activity event %s (%d field errors)", raw.get("id"), exc.error_count(),
        )
        return ActivityEvent.model_construct(**{**raw, "id": raw.get("id") or ""})
