"""
Tracking component - page views and time-session lifecycle.
"""

from .component import (
    infer_time_spent,
    run_end_session,
    run_heartbeat,
    run_record_view,
    run_start_session,
    validate_metrics,
    validate_session_id,
)
from .models import (
    ClientEvent,
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
from .ports import (
    PropertyLookupPort,
    TimePort,
    TrackingSessionRepoPort,
    ViewWriterPort,
)

__all__ = [
    "run_record_view",
    "run_start_session",
    "run_heartbeat",
    "run_end_session",
    "infer_time_spent",
    "validate_metrics",
    "validate_session_id",
    "ClientEvent",
    "RecordViewInput",
    "RecordViewOutput",
    "StartSessionInput",
    "StartSessionOutput",
    "HeartbeatInput",
    "HeartbeatOutput",
    "EndSessionInput",
    "EndSessionOutput",
    "TrackingValidationError",
    "PropertyLookupPort",
    "TrackingSessionRepoPort",
    "ViewWriterPort",
    "TimePort",
]
