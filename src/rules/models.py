from typing import Literal

from pydantic import BaseModel, Field, model_validator

OverCeilingPolicy = Literal["discard", "clamp"]


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class TimeRangeRule(BaseModel):
    label: str
    min: int
    max: int | None = None  # open-ended upper range


class EngagementRules(BaseModel):
    min_engagement_seconds: int = 5
    max_session_seconds: int = 3600
    over_ceiling_policy: OverCeilingPolicy = "discard"
    bounce_threshold_seconds: int = 30
    engaged_threshold_seconds: int = 120
    default_window_days: int = 30
    max_window_days: int = 365
    top_properties_limit: int = 10
    top_events_limit: int = 10
    time_ranges: list[TimeRangeRule] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_bounds(self) -> "EngagementRules":
        if self.min_engagement_seconds < 0:
            raise ValueError("min_engagement_seconds must be >= 0")
        if self.max_session_seconds <= self.min_engagement_seconds:
            raise ValueError("max_session_seconds must exceed min_engagement_seconds")
        if not 1 <= self.default_window_days <= self.max_window_days:
            raise ValueError("default_window_days must be within 1..max_window_days")
        return self


class HygieneRules(BaseModel):
    suspicious_sessions_per_view: float = 5
    suspicious_min_sessions: int = 10
    suspicious_max_views: int = 3


class RateLimitWindow(BaseModel):
    window_seconds: int
    max_requests: int


class RateLimitRules(BaseModel):
    tracking: RateLimitWindow
    analytics: RateLimitWindow


class OpsRules(BaseModel):
    data_dir_required: bool
    required_env: list[str] = Field(default_factory=list)


class Rules(BaseModel):
    project: ProjectRules
    engagement: EngagementRules
    hygiene: HygieneRules = Field(default_factory=HygieneRules)
    rate_limits: RateLimitRules
    ops: OpsRules
