"""
Property engagement analytics.

Blends finalized sessions with heartbeat estimates for unfinished ones and
returns overview metrics, a duration histogram, event counts and daily
averages for a reporting window.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import SQLitePropertyRepo, SQLiteSessionRepo, SQLiteViewRepo
from src.api.deps import (
    analytics_rate_limit,
    get_clock,
    get_engagement_config,
    get_property_repo,
    get_session_repo,
    get_view_repo,
)
from src.api.schemas import AgentAnalyticsResponse, PropertyAnalyticsResponse
from src.components.engagement import (
    AgentAnalyticsInput,
    EngagementConfig,
    InvalidWindowError,
    PropertyAnalyticsInput,
    PropertyNotFoundError,
    run_agent_analytics,
    run_property_analytics,
)

router = APIRouter(dependencies=[Depends(analytics_rate_limit)])
agents_router = APIRouter(dependencies=[Depends(analytics_rate_limit)])


@router.get("/{property_id}/analytics", response_model=PropertyAnalyticsResponse)
def get_property_analytics(
    property_id: UUID,
    days: int | None = Query(None, description="Window length in days"),
    properties: SQLitePropertyRepo = Depends(get_property_repo),
    sessions: SQLiteSessionRepo = Depends(get_session_repo),
    views: SQLiteViewRepo = Depends(get_view_repo),
    clock: SystemClock = Depends(get_clock),
    config: EngagementConfig = Depends(get_engagement_config),
) -> PropertyAnalyticsResponse:
    try:
        out = run_property_analytics(
            PropertyAnalyticsInput(property_id=property_id, days=days),
            properties=properties,
            sessions=sessions,
            views=views,
            time_port=clock,
            config=config,
        )
    except InvalidWindowError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except PropertyNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    return PropertyAnalyticsResponse.from_output(out, days or config.default_window_days)


@agents_router.get("/{agent_id}/time-analytics", response_model=AgentAnalyticsResponse)
def get_agent_time_analytics(
    agent_id: UUID,
    days: int | None = Query(None, description="Window length in days"),
    properties: SQLitePropertyRepo = Depends(get_property_repo),
    sessions: SQLiteSessionRepo = Depends(get_session_repo),
    views: SQLiteViewRepo = Depends(get_view_repo),
    clock: SystemClock = Depends(get_clock),
    config: EngagementConfig = Depends(get_engagement_config),
) -> AgentAnalyticsResponse:
    """Engagement across every listing of one agent, busiest listings first."""
    try:
        out = run_agent_analytics(
            AgentAnalyticsInput(agent_id=agent_id, days=days),
            properties=properties,
            sessions=sessions,
            views=views,
            time_port=clock,
            config=config,
        )
    except InvalidWindowError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return AgentAnalyticsResponse.from_output(out, days or config.default_window_days)
