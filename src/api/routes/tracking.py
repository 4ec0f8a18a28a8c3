"""
Public tracking endpoints called from listing pages.

    POST   /{id}/views       one page view
    POST   /{id}/track-time  session start
    PUT    /{id}/track-time  heartbeat
    DELETE /{id}/track-time  session end (values in the query string, so
                             it works from navigator.sendBeacon fallbacks)
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import SQLitePropertyRepo, SQLiteSessionRepo, SQLiteViewRepo
from src.api.deps import (
    get_client_ip,
    get_clock,
    get_property_repo,
    get_session_repo,
    get_view_repo,
    tracking_rate_limit,
)
from src.api.schemas import (
    HeartbeatRequest,
    HeartbeatResponse,
    SessionEndedResponse,
    SessionStartedResponse,
    StartSessionRequest,
    TrackingErrorModel,
    ViewRecordedResponse,
)
from src.components.engagement import PropertyNotFoundError, SessionNotFoundError
from src.components.engagement.component import round_half_up
from src.components.tracking import (
    ClientEvent,
    EndSessionInput,
    HeartbeatInput,
    RecordViewInput,
    StartSessionInput,
    TrackingValidationError,
    run_end_session,
    run_heartbeat,
    run_record_view,
    run_start_session,
    validate_metrics,
)

router = APIRouter(dependencies=[Depends(tracking_rate_limit)])


def _bad_request(errors: list[TrackingValidationError]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=[
            TrackingErrorModel(code=e.code, message=e.message, field=e.field_name).model_dump()
            for e in errors
        ],
    )


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _check_metrics(**values: float | None) -> None:
    # Reject before rounding; round_half_up fails on inf and nan
    errors = validate_metrics(**values)
    if errors:
        raise _bad_request(errors)


def _seconds(value: float | None) -> int | None:
    return None if value is None else round_half_up(value)


@router.post(
    "/{property_id}/views",
    response_model=ViewRecordedResponse,
    status_code=status.HTTP_201_CREATED,
)
def record_view(
    property_id: UUID,
    client_ip: str = Depends(get_client_ip),
    properties: SQLitePropertyRepo = Depends(get_property_repo),
    views: SQLiteViewRepo = Depends(get_view_repo),
    clock: SystemClock = Depends(get_clock),
) -> ViewRecordedResponse:
    try:
        out = run_record_view(
            RecordViewInput(property_id=property_id, viewer_ip=client_ip),
            properties=properties,
            views=views,
            time_port=clock,
        )
    except PropertyNotFoundError as e:
        raise _not_found(e) from e

    return ViewRecordedResponse(view_id=out.view_id)


@router.post("/{property_id}/track-time", response_model=SessionStartedResponse)
def start_session(
    property_id: UUID,
    body: StartSessionRequest,
    request: Request,
    client_ip: str = Depends(get_client_ip),
    properties: SQLitePropertyRepo = Depends(get_property_repo),
    sessions: SQLiteSessionRepo = Depends(get_session_repo),
    clock: SystemClock = Depends(get_clock),
) -> SessionStartedResponse:
    try:
        out = run_start_session(
            StartSessionInput(
                property_id=property_id,
                session_id=body.session_id,
                viewer_ip=client_ip,
                user_agent=request.headers.get("user-agent"),
                user_id=body.user_id,
            ),
            properties=properties,
            sessions=sessions,
            time_port=clock,
        )
    except PropertyNotFoundError as e:
        raise _not_found(e) from e

    if not out.success:
        raise _bad_request(out.errors)
    return SessionStartedResponse(session_id=out.session_id, started=out.started)


@router.put("/{property_id}/track-time", response_model=HeartbeatResponse)
def heartbeat(
    property_id: UUID,
    body: HeartbeatRequest,
    sessions: SQLiteSessionRepo = Depends(get_session_repo),
    clock: SystemClock = Depends(get_clock),
) -> HeartbeatResponse:
    _check_metrics(active_time=body.active_time, scroll_depth=body.scroll_depth)
    try:
        out = run_heartbeat(
            HeartbeatInput(
                property_id=property_id,
                session_id=body.session_id,
                active_time=_seconds(body.active_time),
                scroll_depth=body.scroll_depth,
                events=tuple(
                    ClientEvent(type=e.type, timestamp=e.timestamp, data=e.data)
                    for e in body.events
                ),
            ),
            sessions=sessions,
            time_port=clock,
        )
    except SessionNotFoundError as e:
        raise _not_found(e) from e

    if not out.success:
        raise _bad_request(out.errors)
    return HeartbeatResponse(session_id=out.session_id, updated=out.updated)


@router.delete("/{property_id}/track-time", response_model=SessionEndedResponse)
def end_session(
    property_id: UUID,
    session_id: str = Query("", alias="sessionId"),
    time_spent: float = Query(0, alias="timeSpent"),
    active_time: float = Query(0, alias="activeTime"),
    scroll_depth: float = Query(0, alias="scrollDepth"),
    sessions: SQLiteSessionRepo = Depends(get_session_repo),
    clock: SystemClock = Depends(get_clock),
) -> SessionEndedResponse:
    _check_metrics(time_spent=time_spent, active_time=active_time, scroll_depth=scroll_depth)
    try:
        out = run_end_session(
            EndSessionInput(
                property_id=property_id,
                session_id=session_id,
                time_spent=_seconds(time_spent) or 0,
                active_time=_seconds(active_time) or 0,
                scroll_depth=scroll_depth,
            ),
            sessions=sessions,
            time_port=clock,
        )
    except SessionNotFoundError as e:
        raise _not_found(e) from e

    if not out.success:
        raise _bad_request(out.errors)
    return SessionEndedResponse(
        session_id=out.session_id,
        ended=out.ended,
        total_time=out.total_time,
        already_ended=out.already_ended,
    )
