"""
Hygiene component models.

Every maintenance task produces a report; in dry-run mode the report
describes what would change, in execute mode what did change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal
from uuid import UUID

Mode = Literal["dry-run", "execute"]
RecordKind = Literal["session", "view"]
BackfillAction = Literal["update", "skip"]
SkipReason = Literal["no_heartbeat", "below_floor", "above_ceiling", "raced"]


@dataclass(frozen=True)
class HygieneConfig:
    suspicious_sessions_per_view: float = 5
    suspicious_min_sessions: int = 10
    suspicious_max_views: int = 3


DEFAULT_HYGIENE_CONFIG = HygieneConfig()


# --- Backfill ---


@dataclass(frozen=True)
class BackfillCandidate:
    record_id: UUID
    session_id: str
    property_id: UUID
    estimate: int | None
    action: BackfillAction
    reason: SkipReason | None = None
    clamped: bool = False


@dataclass
class BackfillReport:
    mode: Mode
    scanned: int = 0
    planned: int = 0
    updated: int = 0
    skipped: int = 0
    skipped_raced: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    candidates: list[BackfillCandidate] = field(default_factory=list)


# --- Antedated / orphaned rows ---


@dataclass(frozen=True)
class AntedatedRecord:
    """A row timestamped before its property was created."""

    kind: RecordKind
    record_id: UUID
    property_id: UUID
    recorded_at: datetime
    property_created_at: datetime

    @property
    def hours_before_creation(self) -> int:
        return round((self.property_created_at - self.recorded_at).total_seconds() / 3600)


@dataclass(frozen=True)
class OrphanRecord:
    """A row whose property no longer exists."""

    kind: RecordKind
    record_id: UUID
    property_id: UUID


@dataclass(frozen=True)
class ViewCountChange:
    property_id: UUID
    previous: int
    current: int


@dataclass
class PurgeReport:
    task: str
    mode: Mode
    sessions_found: int = 0
    views_found: int = 0
    sessions_deleted: int = 0
    views_deleted: int = 0
    records: list[AntedatedRecord | OrphanRecord] = field(default_factory=list)
    recounted: list[ViewCountChange] = field(default_factory=list)


@dataclass
class RecountReport:
    mode: Mode
    properties_checked: int = 0
    changes: list[ViewCountChange] = field(default_factory=list)


# --- Diagnostics ---


@dataclass(frozen=True)
class PropertyTrackingStats:
    property_id: UUID
    title: str
    views: int
    sessions: int

    @property
    def sessions_per_view(self) -> float:
        return self.sessions / max(self.views, 1)


@dataclass
class DiagnosticsReport:
    total_sessions: int = 0
    completed_sessions: int = 0
    incomplete_sessions: int = 0
    incomplete_without_heartbeat: int = 0
    completion_rate: float = 0.0
    antedated_sessions: int = 0
    antedated_views: int = 0
    orphan_sessions: int = 0
    orphan_views: int = 0
    suspicious_properties: list[PropertyTrackingStats] = field(default_factory=list)
