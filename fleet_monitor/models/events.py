from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    CONNECTED = "connected"
    STATS_UPDATE = "stats_update"
    PING_UPDATE = "ping_update"
    ALERT = "alert"
    STATUS_CHANGE = "status_change"
    PONG = "pong"
    HEARTBEAT = "heartbeat"


class Event(BaseModel):
    """Envelope of every message pushed to real-time subscribers."""

    type: EventType
    data: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def of(cls, type_: EventType, data: Any = None) -> "Event":
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        return cls(type=type_, data=data)

    def to_message(self) -> dict:
        return self.model_dump(mode="json")
