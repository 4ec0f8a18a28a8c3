"""
Engagement component - session reconciliation and reporting.
"""

from .component import (
    apply_bounds,
    config_from_rules,
    daily_averages,
    effective_sessions,
    engagement_events,
    estimate_duration,
    partition_sessions,
    reconcile,
    reporting_window,
    run_agent_analytics,
    run_property_analytics,
    tally,
    time_distribution,
)
from .models import (
    DEFAULT_CONFIG,
    AgentAnalyticsInput,
    AgentAnalyticsOutput,
    DailyAverage,
    EffectiveSession,
    EngagementConfig,
    EngagementError,
    EngagementOverview,
    EventCount,
    InvalidWindowError,
    PropertyAnalyticsInput,
    PropertyAnalyticsOutput,
    PropertyNotFoundError,
    PropertyPerformance,
    SessionNotFoundError,
    SessionTotals,
    TimeRange,
    TimeRangeCount,
)
from .ports import (
    PropertyRepoPort,
    SessionRepoPort,
    TimePort,
    ViewRepoPort,
)

__all__ = [
    # Component functions
    "run_property_analytics",
    "run_agent_analytics",
    "config_from_rules",
    # Pure functions
    "estimate_duration",
    "apply_bounds",
    "partition_sessions",
    "effective_sessions",
    "tally",
    "reconcile",
    "time_distribution",
    "engagement_events",
    "daily_averages",
    "reporting_window",
    # Models
    "DEFAULT_CONFIG",
    "EngagementConfig",
    "TimeRange",
    "EffectiveSession",
    "SessionTotals",
    "PropertyAnalyticsInput",
    "AgentAnalyticsInput",
    "EngagementOverview",
    "TimeRangeCount",
    "EventCount",
    "DailyAverage",
    "PropertyAnalyticsOutput",
    "PropertyPerformance",
    "AgentAnalyticsOutput",
    # Errors
    "EngagementError",
    "PropertyNotFoundError",
    "SessionNotFoundError",
    "InvalidWindowError",
    # Ports
    "PropertyRepoPort",
    "SessionRepoPort",
    "ViewRepoPort",
    "TimePort",
]
