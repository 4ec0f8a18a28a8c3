"""
Engagement component input/output models.

Session reconciliation works on PropertyTimeSession rows and produces
blended metrics; everything here is a plain value object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal
from uuid import UUID

OverCeilingPolicy = Literal["discard", "clamp"]


# --- Errors ---


class EngagementError(Exception):
    """Base error for engagement tracking and reporting."""


class PropertyNotFoundError(EngagementError):
    """Raised when a property does not exist (or is not active for tracking)."""

    def __init__(self, property_id: UUID) -> None:
        super().__init__(f"Property {property_id} not found")
        self.property_id = property_id


class InvalidWindowError(EngagementError, ValueError):
    """Raised when a reporting window length is out of range."""


class SessionNotFoundError(EngagementError):
    """Raised when a tracking session id is unknown."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Tracking session {session_id} not found")
        self.session_id = session_id


# --- Configuration ---


@dataclass(frozen=True)
class TimeRange:
    """Half-open duration range [min_seconds, max_seconds)."""

    label: str
    min_seconds: int
    max_seconds: int | None = None

    def contains(self, seconds: float) -> bool:
        if seconds < self.min_seconds:
            return False
        return self.max_seconds is None or seconds < self.max_seconds


DEFAULT_TIME_RANGES: tuple[TimeRange, ...] = (
    TimeRange("0-30s", 0, 30),
    TimeRange("30s-2min", 30, 120),
    TimeRange("2-5min", 120, 300),
    TimeRange("5-10min", 300, 600),
    TimeRange("10min+", 600, None),
)


@dataclass(frozen=True)
class EngagementConfig:
    """Thresholds used for reconciliation."""

    min_engagement_seconds: int = 5
    max_session_seconds: int = 3600
    over_ceiling_policy: OverCeilingPolicy = "discard"
    bounce_threshold_seconds: int = 30
    engaged_threshold_seconds: int = 120
    default_window_days: int = 30
    max_window_days: int = 365
    top_properties_limit: int = 10
    top_events_limit: int = 10
    time_ranges: tuple[TimeRange, ...] = DEFAULT_TIME_RANGES


DEFAULT_CONFIG = EngagementConfig()


# --- Intermediate values ---


@dataclass(frozen=True)
class EffectiveSession:
    """A session that survived validity bounds, with its effective duration."""

    session_id: str
    property_id: UUID
    entered_at: datetime
    duration: int
    active_time: int
    scroll_depth: float | None
    estimated: bool


@dataclass
class SessionTotals:
    """Running sums over effective sessions, used for blending."""

    count: int = 0
    time_sum: int = 0
    active_sum: int = 0
    scroll_sum: float = 0.0
    scroll_count: int = 0
    bounce_count: int = 0
    engaged_count: int = 0

    def merge(self, other: SessionTotals) -> SessionTotals:
        return SessionTotals(
            count=self.count + other.count,
            time_sum=self.time_sum + other.time_sum,
            active_sum=self.active_sum + other.active_sum,
            scroll_sum=self.scroll_sum + other.scroll_sum,
            scroll_count=self.scroll_count + other.scroll_count,
            bounce_count=self.bounce_count + other.bounce_count,
            engaged_count=self.engaged_count + other.engaged_count,
        )


# --- Input Models ---


@dataclass(frozen=True)
class PropertyAnalyticsInput:
    property_id: UUID
    days: int | None = None


@dataclass(frozen=True)
class AgentAnalyticsInput:
    agent_id: UUID
    days: int | None = None


# --- Output Models ---


@dataclass(frozen=True)
class EngagementOverview:
    total_sessions: int = 0
    completed_sessions: int = 0
    estimated_sessions: int = 0
    valid_sessions: int = 0
    average_time_spent: int = 0
    average_active_time: int = 0
    average_scroll_depth: float = 0.0
    bounce_rate: float = 0.0
    engagement_rate: float = 0.0
    views_count: int = 0


@dataclass(frozen=True)
class TimeRangeCount:
    time_range: str
    count: int
    percentage: float


@dataclass(frozen=True)
class EventCount:
    event_type: str
    count: int


@dataclass(frozen=True)
class DailyAverage:
    date: str  # YYYY-MM-DD (UTC)
    average_time_spent: int
    sessions_count: int


@dataclass(frozen=True)
class PropertyAnalyticsOutput:
    property_id: UUID
    window_start: datetime
    window_end: datetime
    overview: EngagementOverview
    time_distribution: tuple[TimeRangeCount, ...]
    engagement_events: tuple[EventCount, ...]
    daily_averages: tuple[DailyAverage, ...]


@dataclass(frozen=True)
class PropertyPerformance:
    property_id: UUID
    property_title: str
    total_sessions: int
    average_time_spent: int
    average_active_time: int
    average_scroll_depth: float
    bounce_rate: float
    conversion_rate: float


@dataclass(frozen=True)
class AgentAnalyticsOutput:
    agent_id: UUID
    window_start: datetime
    window_end: datetime
    overview: EngagementOverview
    properties_performance: tuple[PropertyPerformance, ...] = field(default_factory=tuple)
    time_distribution: tuple[TimeRangeCount, ...] = field(default_factory=tuple)
    engagement_events: tuple[EventCount, ...] = field(default_factory=tuple)
    daily_averages: tuple[DailyAverage, ...] = field(default_factory=tuple)
