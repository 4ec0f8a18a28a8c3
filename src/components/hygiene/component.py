"""
Hygiene component - idempotent maintenance over the tracking tables.

Replaces per-incident cleanup scripts with a fixed set of tasks that all
support a dry run and report what they found.

Invariants:
- Dry runs never write.
- Backfill never overwrites a finalized session; every write is guarded by
  `time_spent IS NULL`, so reruns and concurrent runs are harmless.
- Backfill uses the same bounds policy as reporting.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable

from src.components.engagement.component import apply_bounds, estimate_duration
from src.components.engagement.models import DEFAULT_CONFIG, EngagementConfig
from src.domain.entities import PropertyTimeSession
from src.rules.models import HygieneRules

from .models import (
    DEFAULT_HYGIENE_CONFIG,
    AntedatedRecord,
    BackfillCandidate,
    BackfillReport,
    DiagnosticsReport,
    HygieneConfig,
    Mode,
    OrphanRecord,
    PropertyTrackingStats,
    PurgeReport,
    RecountReport,
    SkipReason,
)
from .ports import HygieneRepoPort

logger = logging.getLogger(__name__)


def _mode(execute: bool) -> Mode:
    return "execute" if execute else "dry-run"


# --- Pure Functions ---


def _skip(
    session: PropertyTimeSession, reason: SkipReason, estimate: int | None
) -> BackfillCandidate:
    return BackfillCandidate(
        record_id=session.id,
        session_id=session.session_id,
        property_id=session.property_id,
        estimate=estimate,
        action="skip",
        reason=reason,
    )


def plan_backfill_candidate(
    session: PropertyTimeSession,
    config: EngagementConfig = DEFAULT_CONFIG,
) -> BackfillCandidate:
    """Decide whether one incomplete session can be backfilled."""
    estimate = estimate_duration(session)
    if estimate is None:
        return _skip(session, "no_heartbeat", None)

    bounded = apply_bounds(estimate, config)
    if bounded is None:
        if estimate < config.min_engagement_seconds:
            return _skip(session, "below_floor", estimate)
        return _skip(session, "above_ceiling", estimate)

    return BackfillCandidate(
        record_id=session.id,
        session_id=session.session_id,
        property_id=session.property_id,
        estimate=bounded,
        action="update",
        clamped=bounded != estimate,
    )


def plan_backfill(
    sessions: Iterable[PropertyTimeSession],
    config: EngagementConfig = DEFAULT_CONFIG,
) -> list[BackfillCandidate]:
    return [
        plan_backfill_candidate(s, config) for s in sessions if s.time_spent is None
    ]


def find_suspicious(
    stats: Iterable[PropertyTrackingStats],
    config: HygieneConfig = DEFAULT_HYGIENE_CONFIG,
) -> list[PropertyTrackingStats]:
    """
    Properties whose session/view ratio points at synthetic traffic:
    many sessions per view, or many sessions with almost no views.
    """
    suspicious = [
        s
        for s in stats
        if (s.views > 0 and s.sessions / s.views > config.suspicious_sessions_per_view)
        or (s.sessions > config.suspicious_min_sessions and s.views < config.suspicious_max_views)
    ]
    return sorted(suspicious, key=lambda s: s.sessions_per_view, reverse=True)


# --- Component Entry Points ---


def run_backfill(
    *,
    repo: HygieneRepoPort,
    execute: bool = False,
    config: EngagementConfig = DEFAULT_CONFIG,
) -> BackfillReport:
    """
    Persist estimated durations for sessions that never finalized.

    Writes time_spent = estimate, active_time = estimate and
    left_at = last heartbeat.
    """
    sessions = {s.id: s for s in repo.list_incomplete_sessions()}
    candidates = plan_backfill(sessions.values(), config)
    report = BackfillReport(mode=_mode(execute), scanned=len(candidates))
    reasons: Counter[str] = Counter()

    for candidate in candidates:
        if candidate.action == "skip":
            report.skipped += 1
            reasons[candidate.reason or "unknown"] += 1
            logger.debug(
                "Skip session %s: %s (%ss)",
                candidate.session_id,
                candidate.reason,
                candidate.estimate,
            )
            continue

        report.planned += 1
        if not execute:
            continue

        session = sessions[candidate.record_id]
        assert candidate.estimate is not None and session.last_active_at is not None
        written = repo.backfill_session(
            candidate.record_id,
            time_spent=candidate.estimate,
            active_time=candidate.estimate,
            left_at=session.last_active_at,
        )
        if written:
            report.updated += 1
            logger.info("Backfilled session %s with %ss", candidate.session_id, candidate.estimate)
        else:
            report.skipped_raced += 1
            reasons["raced"] += 1
            logger.info("Session %s finalized concurrently, left untouched", candidate.session_id)

    report.skip_reasons = dict(reasons)
    report.candidates = candidates
    logger.info(
        "Backfill (%s): scanned=%d planned=%d updated=%d skipped=%d raced=%d",
        report.mode,
        report.scanned,
        report.planned,
        report.updated,
        report.skipped,
        report.skipped_raced,
    )
    return report


def _purge(
    task: str,
    records: list[AntedatedRecord] | list[OrphanRecord],
    *,
    repo: HygieneRepoPort,
    execute: bool,
    recount: bool,
) -> PurgeReport:
    session_ids = [r.record_id for r in records if r.kind == "session"]
    view_ids = [r.record_id for r in records if r.kind == "view"]

    report = PurgeReport(
        task=task,
        mode=_mode(execute),
        sessions_found=len(session_ids),
        views_found=len(view_ids),
        records=list(records),
    )

    if execute and records:
        report.sessions_deleted = repo.delete_sessions(session_ids)
        report.views_deleted = repo.delete_views(view_ids)
        if recount and view_ids:
            affected = sorted({r.property_id for r in records if r.kind == "view"}, key=str)
            report.recounted = repo.recount_views(affected, apply=True)

    logger.info(
        "%s (%s): sessions %d found / %d deleted, views %d found / %d deleted",
        task,
        report.mode,
        report.sessions_found,
        report.sessions_deleted,
        report.views_found,
        report.views_deleted,
    )
    return report


def run_purge_antedated(*, repo: HygieneRepoPort, execute: bool = False) -> PurgeReport:
    """Delete sessions and views dated before their property existed."""
    return _purge(
        "purge-antedated", repo.find_antedated(), repo=repo, execute=execute, recount=True
    )


def run_purge_orphans(*, repo: HygieneRepoPort, execute: bool = False) -> PurgeReport:
    """Delete sessions and views whose property was removed."""
    return _purge(
        "purge-orphans", repo.find_orphans(), repo=repo, execute=execute, recount=False
    )


def run_recount_views(*, repo: HygieneRepoPort, execute: bool = False) -> RecountReport:
    changes = repo.recount_views(None, apply=execute)
    report = RecountReport(
        mode=_mode(execute),
        properties_checked=repo.count_properties(),
        changes=changes,
    )
    logger.info("recount-views (%s): %d counters differ", report.mode, len(changes))
    return report


def run_diagnostics(
    *,
    repo: HygieneRepoPort,
    config: HygieneConfig = DEFAULT_HYGIENE_CONFIG,
) -> DiagnosticsReport:
    """Read-only health report over the tracking tables."""
    totals = repo.session_totals()
    total = totals.get("total_sessions", 0)
    completed = totals.get("completed_sessions", 0)
    incomplete = repo.list_incomplete_sessions()
    antedated = repo.find_antedated()
    orphans = repo.find_orphans()

    return DiagnosticsReport(
        total_sessions=total,
        completed_sessions=completed,
        incomplete_sessions=len(incomplete),
        incomplete_without_heartbeat=sum(1 for s in incomplete if s.last_active_at is None),
        completion_rate=round(completed / total * 100, 1) if total else 0.0,
        antedated_sessions=sum(1 for r in antedated if r.kind == "session"),
        antedated_views=sum(1 for r in antedated if r.kind == "view"),
        orphan_sessions=sum(1 for r in orphans if r.kind == "session"),
        orphan_views=sum(1 for r in orphans if r.kind == "view"),
        suspicious_properties=find_suspicious(repo.tracking_stats(), config),
    )


def config_from_rules(rules: HygieneRules) -> HygieneConfig:
    return HygieneConfig(
        suspicious_sessions_per_view=rules.suspicious_sessions_per_view,
        suspicious_min_sessions=rules.suspicious_min_sessions,
        suspicious_max_views=rules.suspicious_max_views,
    )
