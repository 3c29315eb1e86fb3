from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from typing import List, Optional, Dict, Any
from enum import Enum
from datetime import datetime, timezone
import uuid


class Quality(str, Enum):
    AUTO = "auto"
    SOURCE = "source"
    P720_60 = "720p60"
    P720 = "720p"
    P480 = "480p"
    P360 = "360p"
    P160 = "160p"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Quality":
        """Map a user supplied quality string to a Quality, defaulting to AUTO."""
        if not value:
            return cls.AUTO
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.AUTO


class EventType(str, Enum):
    RELAY_STARTED = "relay_started"
    RELAY_STOPPED = "relay_stopped"
    RELAY_EXITED = "relay_exited"
    RELAY_FAILED = "relay_failed"


class StartRelayRequest(BaseModel):
    """Body of a start request. Accepts the web UI's camelCase field names."""

    model_config = ConfigDict(populate_by_name=True)

    twitch_username: Optional[str] = Field(default=None, alias="twitchUsername")
    kick_stream_key: Optional[str] = Field(default=None, alias="kickStreamKey")
    quality: Optional[str] = None


class RelayEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType
    channel: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Dict[str, Any] = Field(default_factory=dict)


class WebhookSubscription(BaseModel):
    """An operator endpoint notified of relay lifecycle changes."""

    url: HttpUrl
    events: List[EventType] = Field(default_factory=lambda: list(EventType))
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=5.0, gt=0)
    retries: int = Field(default=2, ge=0)
    # Seconds before the first retry; doubled for each one after
    retry_backoff: float = Field(default=1.0, ge=0)

    def wants(self, event_type: EventType) -> bool:
        return event_type in self.events

    def summary(self) -> Dict[str, Any]:
        return {
            "url": str(self.url),
            "events": [e.value for e in self.events],
            "timeout": self.timeout,
            "retries": self.retries,
        }


class HealthCheck(BaseModel):
    status: str
    version: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ffmpeg: str
    relay_active: bool
