from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(UTC)


# --- Listings ---

class Property(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    title: str
    agent_id: UUID
    is_active: bool = True
    views_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)

class VisitRequest(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    property_id: UUID
    created_at: datetime = Field(default_factory=utcnow)

# --- Tracking ---

class PropertyView(BaseModel):
    """A single page visit. Never mutated after insert."""

    id: UUID = Field(default_factory=uuid4)
    property_id: UUID
    viewer_ip: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

class TrackingEvent(BaseModel):
    type: str
    timestamp: float  # client epoch millis
    data: Any = None

class PropertyTimeSession(BaseModel):
    """
    Timed engagement of one visitor with one property page.

    Incomplete while time_spent is None: the client never sent its
    departure signal (tab closed, network lost).
    """

    id: UUID = Field(default_factory=uuid4)
    session_id: str
    property_id: UUID
    viewer_ip: str | None = None
    user_agent: str | None = None
    user_id: str | None = None
    entered_at: datetime = Field(default_factory=utcnow)
    last_active_at: datetime | None = None
    left_at: datetime | None = None
    time_spent: int | None = None
    active_time: int | None = None
    scroll_depth: float | None = Field(default=None, ge=0, le=100)
    events: list[TrackingEvent] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.time_spent is not None
