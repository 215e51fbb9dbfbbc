"""Activity event schemas shared by the stream endpoint, emitter and client."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Phase = Literal["detect", "decide", "execute", "prove", "learn", "standby"]
Status = Literal["info", "thinking", "insight", "action", "success", "warning", "error"]

PHASES: frozenset[str] = frozenset(("detect", "decide", "execute", "prove", "learn", "standby"))


class ActivityMetric(BaseModel):
    label: str
    value: str | int | float


class ActivityEvent(BaseModel):
    """One step of a Master Loop cycle as shown in the activity feed.

    Serialised with camelCase keys on the wire; unknown keys are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    user_id: str = Field(default="", alias="userId")
    loop_id: str = Field(default="", alias="loopId")
    event_type: str = Field(default="", alias="eventType")
    phase: Phase
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    message: str = ""
    detail: str | None = None
    metrics: list[ActivityMetric] | None = None
    progress: float | None = None
    status: Status = "info"

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class ConnectionState(BaseModel):
    """Health of the activity stream as seen by one client. Never persisted."""

    model_config = ConfigDict(frozen=True)

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    is_connected: bool = False
    is_reconnecting: bool = False
    retry_count: int = 0
    error: str | None = None
