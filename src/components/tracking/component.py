"""
Tracking component - page views and time-session lifecycle.

Invariants:
- A session is finalized at most once; later end signals are acknowledged
  but never overwrite stored durations.
- Heartbeats on a finalized session are ignored.
"""

from __future__ import annotations

import logging
import math

from src.components.engagement.component import estimate_duration
from src.components.engagement.models import PropertyNotFoundError, SessionNotFoundError
from src.domain.entities import PropertyTimeSession, PropertyView, TrackingEvent

from .models import (
    EndSessionInput,
    EndSessionOutput,
    HeartbeatInput,
    HeartbeatOutput,
    RecordViewInput,
    RecordViewOutput,
    StartSessionInput,
    StartSessionOutput,
    TrackingValidationError,
)
from .ports import PropertyLookupPort, TimePort, TrackingSessionRepoPort, ViewWriterPort

logger = logging.getLogger(__name__)


# --- Validation ---


def validate_session_id(session_id: str) -> list[TrackingValidationError]:
    if not session_id or not session_id.strip():
        return [
            TrackingValidationError(
                code="INVALID_SESSION_ID",
                message="sessionId is required",
                field_name="session_id",
            )
        ]
    return []


def validate_metrics(
    *,
    time_spent: float | None = None,
    active_time: float | None = None,
    scroll_depth: float | None = None,
) -> list[TrackingValidationError]:
    """Durations must be finite and non-negative; scroll depth is a percentage."""
    errors: list[TrackingValidationError] = []

    for name, value in (("time_spent", time_spent), ("active_time", active_time)):
        if value is None:
            continue
        if not math.isfinite(value):
            message = f"{name} must be a finite number"
        elif value < 0:
            message = f"{name} cannot be negative"
        else:
            continue
        errors.append(
            TrackingValidationError(code="INVALID_TIME", message=message, field_name=name)
        )

    # NaN fails the range comparison too
    if scroll_depth is not None and not 0 <= scroll_depth <= 100:
        errors.append(
            TrackingValidationError(
                code="INVALID_SCROLL",
                message="Scroll depth must be between 0 and 100",
                field_name="scroll_depth",
            )
        )

    return errors


def infer_time_spent(session: PropertyTimeSession) -> tuple[int, int] | None:
    """
    Infer (time_spent, active_time) for a client that reported zero.

    Uses the heartbeat span, never less than the reported active time.
    Returns None when no heartbeat was ever received.
    """
    span = estimate_duration(session)
    if span is None:
        return None
    time_spent = max(span, session.active_time or 0)
    active_time = session.active_time or time_spent
    return time_spent, active_time


def _load_session(
    sessions: TrackingSessionRepoPort, inp: HeartbeatInput | EndSessionInput
) -> PropertyTimeSession:
    session = sessions.get_by_session_id(inp.session_id)
    if session is None or session.property_id != inp.property_id:
        raise SessionNotFoundError(inp.session_id)
    return session


# --- Component Entry Points ---


def run_record_view(
    inp: RecordViewInput,
    *,
    properties: PropertyLookupPort,
    views: ViewWriterPort,
    time_port: TimePort,
) -> RecordViewOutput:
    prop = properties.get_by_id(inp.property_id)
    if prop is None or not prop.is_active:
        raise PropertyNotFoundError(inp.property_id)

    view = views.add(
        PropertyView(
            property_id=prop.id,
            viewer_ip=inp.viewer_ip,
            created_at=time_port.now_utc(),
        )
    )
    return RecordViewOutput(view_id=view.id)


def run_start_session(
    inp: StartSessionInput,
    *,
    properties: PropertyLookupPort,
    sessions: TrackingSessionRepoPort,
    time_port: TimePort,
) -> StartSessionOutput:
    """
    Start (or restart) a tracking session.

    Restarting an existing session id only refreshes its heartbeat and
    client details.
    """
    errors = validate_session_id(inp.session_id)
    if errors:
        return StartSessionOutput(
            session_id=inp.session_id, started=False, errors=errors, success=False
        )

    prop = properties.get_by_id(inp.property_id)
    if prop is None or not prop.is_active:
        raise PropertyNotFoundError(inp.property_id)

    now = time_port.now_utc()
    existing = sessions.get_by_session_id(inp.session_id)

    if existing is not None:
        if existing.property_id != prop.id:
            logger.warning(
                "Session %s belongs to property %s; start for %s keeps the original",
                inp.session_id,
                existing.property_id,
                prop.id,
            )
        session = existing.model_copy(
            update={
                "last_active_at": now,
                "viewer_ip": inp.viewer_ip,
                "user_agent": inp.user_agent,
            }
        )
    else:
        session = PropertyTimeSession(
            session_id=inp.session_id,
            property_id=prop.id,
            viewer_ip=inp.viewer_ip,
            user_agent=inp.user_agent,
            user_id=inp.user_id,
            entered_at=now,
        )

    sessions.save(session)
    return StartSessionOutput(session_id=session.session_id, started=True)


def run_heartbeat(
    inp: HeartbeatInput,
    *,
    sessions: TrackingSessionRepoPort,
    time_port: TimePort,
) -> HeartbeatOutput:
    errors = validate_session_id(inp.session_id) + validate_metrics(
        active_time=inp.active_time, scroll_depth=inp.scroll_depth
    )
    if errors:
        return HeartbeatOutput(
            session_id=inp.session_id, updated=False, errors=errors, success=False
        )

    session = _load_session(sessions, inp)
    if session.is_complete:
        logger.info("Heartbeat ignored for finalized session %s", inp.session_id)
        return HeartbeatOutput(session_id=inp.session_id, updated=False)

    update: dict[str, object] = {"last_active_at": time_port.now_utc()}
    if inp.active_time is not None:
        update["active_time"] = inp.active_time
    if inp.scroll_depth is not None:
        update["scroll_depth"] = inp.scroll_depth
    if inp.events:
        update["events"] = [
            *session.events,
            *(TrackingEvent(type=e.type, timestamp=e.timestamp, data=e.data) for e in inp.events),
        ]

    sessions.save(session.model_copy(update=update))
    return HeartbeatOutput(session_id=inp.session_id, updated=True)


def run_end_session(
    inp: EndSessionInput,
    *,
    sessions: TrackingSessionRepoPort,
    time_port: TimePort,
) -> EndSessionOutput:
    """
    Finalize a session.

    A zero time_spent means the client lost its timer (tab suspended,
    beacon truncated); the duration is then inferred from heartbeats.
    """
    errors = validate_session_id(inp.session_id) + validate_metrics(
        time_spent=inp.time_spent,
        active_time=inp.active_time,
        scroll_depth=inp.scroll_depth,
    )
    if errors:
        return EndSessionOutput(
            session_id=inp.session_id, ended=False, errors=errors, success=False
        )

    session = _load_session(sessions, inp)
    if session.is_complete:
        logger.info(
            "Session %s already ended with time_spent=%s", inp.session_id, session.time_spent
        )
        return EndSessionOutput(
            session_id=inp.session_id,
            ended=True,
            total_time=session.time_spent,
            already_ended=True,
        )

    time_spent = inp.time_spent
    active_time = inp.active_time
    if time_spent == 0:
        inferred = infer_time_spent(session)
        if inferred is not None:
            time_spent, active_time = inferred
            logger.info("Inferred %ss for session %s", time_spent, inp.session_id)

    written = sessions.finalize(
        inp.session_id,
        left_at=time_port.now_utc(),
        time_spent=time_spent,
        active_time=active_time or time_spent,
        scroll_depth=inp.scroll_depth or session.scroll_depth,
    )

    if not written:
        # Lost a race with another end signal or a backfill
        current = sessions.get_by_session_id(inp.session_id)
        return EndSessionOutput(
            session_id=inp.session_id,
            ended=True,
            total_time=current.time_spent if current else None,
            already_ended=True,
        )

    return EndSessionOutput(session_id=inp.session_id, ended=True, total_time=time_spent)
