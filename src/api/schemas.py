from dataclasses import asdict
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.components.engagement import AgentAnalyticsOutput, PropertyAnalyticsOutput


# --- Analytics ---
class OverviewModel(BaseModel):
    total_sessions: int
    completed_sessions: int
    estimated_sessions: int
    valid_sessions: int
    average_time_spent: int
    average_active_time: int
    average_scroll_depth: float
    bounce_rate: float
    engagement_rate: float
    views_count: int


class TimeRangeModel(BaseModel):
    time_range: str
    count: int
    percentage: float


class EventCountModel(BaseModel):
    event_type: str
    count: int


class DailyAverageModel(BaseModel):
    date: str
    average_time_spent: int
    sessions_count: int


class TrendsModel(BaseModel):
    daily_averages: list[DailyAverageModel]


class PeriodModel(BaseModel):
    days: int
    start: datetime
    end: datetime


class PropertyAnalyticsResponse(BaseModel):
    property_id: UUID
    period: PeriodModel
    overview: OverviewModel
    time_distribution: list[TimeRangeModel]
    engagement_events: list[EventCountModel]
    trends: TrendsModel

    @classmethod
    def from_output(cls, out: PropertyAnalyticsOutput, days: int) -> "PropertyAnalyticsResponse":
        data = asdict(out)
        return cls(
            property_id=out.property_id,
            period=PeriodModel(days=days, start=out.window_start, end=out.window_end),
            overview=OverviewModel(**data["overview"]),
            time_distribution=[TimeRangeModel(**r) for r in data["time_distribution"]],
            engagement_events=[EventCountModel(**e) for e in data["engagement_events"]],
            trends=TrendsModel(
                daily_averages=[DailyAverageModel(**d) for d in data["daily_averages"]]
            ),
        )


class PropertyPerformanceModel(BaseModel):
    property_id: UUID
    property_title: str
    total_sessions: int
    average_time_spent: int
    average_active_time: int
    average_scroll_depth: float
    bounce_rate: float
    conversion_rate: float


class AgentAnalyticsResponse(BaseModel):
    agent_id: UUID
    period: PeriodModel
    overview: OverviewModel
    properties_performance: list[PropertyPerformanceModel]
    time_distribution: list[TimeRangeModel]
    engagement_events: list[EventCountModel]
    trends: TrendsModel

    @classmethod
    def from_output(cls, out: AgentAnalyticsOutput, days: int) -> "AgentAnalyticsResponse":
        data = asdict(out)
        return cls(
            agent_id=out.agent_id,
            period=PeriodModel(days=days, start=out.window_start, end=out.window_end),
            overview=OverviewModel(**data["overview"]),
            properties_performance=[
                PropertyPerformanceModel(**p) for p in data["properties_performance"]
            ],
            time_distribution=[TimeRangeModel(**r) for r in data["time_distribution"]],
            engagement_events=[EventCountModel(**e) for e in data["engagement_events"]],
            trends=TrendsModel(
                daily_averages=[DailyAverageModel(**d) for d in data["daily_averages"]]
            ),
        )


# --- Tracking ---
# Browser clients send camelCase; snake_case is accepted too.
class ClientEventModel(BaseModel):
    type: str
    timestamp: float
    data: Any = None


class StartSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field("", alias="sessionId")
    user_id: str | None = Field(None, alias="userId")


class HeartbeatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field("", alias="sessionId")
    active_time: float | None = Field(None, alias="activeTime")
    scroll_depth: float | None = Field(None, alias="scrollDepth")
    events: list[ClientEventModel] = []


class TrackingErrorModel(BaseModel):
    code: str
    message: str
    field: str | None = None


class ViewRecordedResponse(BaseModel):
    success: bool = True
    view_id: UUID


class SessionStartedResponse(BaseModel):
    success: bool = True
    session_id: str
    started: bool


class HeartbeatResponse(BaseModel):
    success: bool = True
    session_id: str
    updated: bool


class SessionEndedResponse(BaseModel):
    success: bool = True
    session_id: str
    ended: bool
    total_time: int | None = None
    already_ended: bool = False
