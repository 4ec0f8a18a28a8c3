"""
Tracking component input/output models.

Lifecycle of a PropertyTimeSession: started on page load, refreshed by
heartbeats while the page is open, finalized once on departure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class TrackingValidationError:
    """Tracking validation error."""

    code: str
    message: str
    field_name: str | None = None


@dataclass(frozen=True)
class ClientEvent:
    type: str
    timestamp: float
    data: Any = None


# --- Input Models ---


@dataclass(frozen=True)
class RecordViewInput:
    property_id: UUID
    viewer_ip: str | None = None


@dataclass(frozen=True)
class StartSessionInput:
    property_id: UUID
    session_id: str
    viewer_ip: str | None = None
    user_agent: str | None = None
    user_id: str | None = None


@dataclass(frozen=True)
class HeartbeatInput:
    property_id: UUID
    session_id: str
    active_time: int | None = None
    scroll_depth: float | None = None
    events: tuple[ClientEvent, ...] = ()


@dataclass(frozen=True)
class EndSessionInput:
    property_id: UUID
    session_id: str
    time_spent: int = 0
    active_time: int = 0
    scroll_depth: float = 0.0


# --- Output Models ---


@dataclass(frozen=True)
class RecordViewOutput:
    view_id: UUID


@dataclass(frozen=True)
class StartSessionOutput:
    session_id: str
    started: bool
    errors: list[TrackingValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class HeartbeatOutput:
    session_id: str
    updated: bool
    errors: list[TrackingValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class EndSessionOutput:
    session_id: str
    ended: bool
    total_time: int | None = None
    already_ended: bool = False
    errors: list[TrackingValidationError] = field(default_factory=list)
    success: bool = True
