"""
Engagement component - session reconciliation and reporting.

Blends completed sessions (explicit time_spent) with incomplete ones whose
duration is estimated from the last heartbeat, then derives averages,
bounce rate, distributions and daily trends.

Invariants:
- Read-only: nothing here writes to storage.
- Deterministic for a given set of rows and a given clock.
- The same bounds policy applies to every metric that uses estimates.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from uuid import UUID

from src.domain.entities import PropertyTimeSession
from src.rules.models import EngagementRules

from .models import (
    DEFAULT_CONFIG,
    AgentAnalyticsInput,
    AgentAnalyticsOutput,
    DailyAverage,
    EffectiveSession,
    EngagementConfig,
    EngagementOverview,
    EventCount,
    InvalidWindowError,
    PropertyAnalyticsInput,
    PropertyAnalyticsOutput,
    PropertyNotFoundError,
    PropertyPerformance,
    SessionTotals,
    TimeRange,
    TimeRangeCount,
)
from .ports import PropertyRepoPort, SessionRepoPort, TimePort, ViewRepoPort

logger = logging.getLogger(__name__)


# --- Rounding ---


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def round_pct(value: float) -> float:
    """Round to 2 decimal places, halves up."""
    return math.floor(value * 100 + 0.5) / 100


def _as_utc(dt: datetime) -> datetime:
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


# --- Pure Functions (Functional Core) ---


def estimate_duration(session: PropertyTimeSession) -> int | None:
    """
    Estimate how long an unfinalized session lasted.

    Returns last heartbeat minus entry in whole seconds, or None when the
    session never sent a heartbeat.
    """
    if session.last_active_at is None:
        return None
    delta = _as_utc(session.last_active_at) - _as_utc(session.entered_at)
    return round_half_up(delta.total_seconds())


def apply_bounds(estimate: int, config: EngagementConfig = DEFAULT_CONFIG) -> int | None:
    """
    Apply validity bounds to an estimated duration.

    Below the floor is load noise and is discarded (the floor itself is kept).
    Above the ceiling is an abandoned tab: discarded or clamped depending on
    config.over_ceiling_policy.
    """
    if estimate < config.min_engagement_seconds:
        return None
    if estimate > config.max_session_seconds:
        if config.over_ceiling_policy == "clamp":
            return config.max_session_seconds
        return None
    return estimate


def partition_sessions(
    sessions: Iterable[PropertyTimeSession],
) -> tuple[list[PropertyTimeSession], list[PropertyTimeSession]]:
    """
    Split sessions into (completed, incomplete).

    Incomplete sessions without any heartbeat cannot be estimated and are
    left out of both lists.
    """
    completed: list[PropertyTimeSession] = []
    incomplete: list[PropertyTimeSession] = []
    for session in sessions:
        if session.time_spent is not None:
            completed.append(session)
        elif session.last_active_at is not None:
            incomplete.append(session)
    return completed, incomplete


def effective_sessions(
    sessions: Iterable[PropertyTimeSession],
    config: EngagementConfig = DEFAULT_CONFIG,
) -> list[EffectiveSession]:
    """Resolve every usable session to its effective duration."""
    completed, incomplete = partition_sessions(sessions)
    result: list[EffectiveSession] = []

    for s in completed:
        assert s.time_spent is not None
        result.append(
            EffectiveSession(
                session_id=s.session_id,
                property_id=s.property_id,
                entered_at=_as_utc(s.entered_at),
                duration=s.time_spent,
                active_time=s.active_time if s.active_time is not None else s.time_spent,
                scroll_depth=s.scroll_depth,
                estimated=False,
            )
        )

    for s in incomplete:
        estimate = estimate_duration(s)
        if estimate is None:
            continue
        duration = apply_bounds(estimate, config)
        if duration is None:
            continue
        # Heartbeats may report active time; it can never exceed the duration
        active = min(s.active_time, duration) if s.active_time is not None else duration
        result.append(
            EffectiveSession(
                session_id=s.session_id,
                property_id=s.property_id,
                entered_at=_as_utc(s.entered_at),
                duration=duration,
                active_time=active,
                scroll_depth=s.scroll_depth,
                estimated=True,
            )
        )

    return result


def tally(
    sessions: Iterable[EffectiveSession],
    config: EngagementConfig = DEFAULT_CONFIG,
) -> SessionTotals:
    totals = SessionTotals()
    for e in sessions:
        totals.count += 1
        totals.time_sum += e.duration
        totals.active_sum += e.active_time
        if e.scroll_depth is not None:
            totals.scroll_sum += e.scroll_depth
            totals.scroll_count += 1
        if e.duration < config.bounce_threshold_seconds:
            totals.bounce_count += 1
        if e.duration > config.engaged_threshold_seconds:
            totals.engaged_count += 1
    return totals


def overview_from_totals(
    totals: SessionTotals,
    *,
    total_sessions: int,
    completed_sessions: int,
    views_count: int,
) -> EngagementOverview:
    """Turn blended sums into rounded metrics. Zero sessions give zeros."""
    n = totals.count
    if n == 0:
        return EngagementOverview(
            total_sessions=total_sessions,
            completed_sessions=completed_sessions,
            views_count=views_count,
        )

    average_scroll = totals.scroll_sum / totals.scroll_count if totals.scroll_count else 0.0

    return EngagementOverview(
        total_sessions=total_sessions,
        completed_sessions=completed_sessions,
        estimated_sessions=n - completed_sessions,
        valid_sessions=n,
        average_time_spent=round_half_up(totals.time_sum / n),
        average_active_time=round_half_up(totals.active_sum / n),
        average_scroll_depth=round_pct(average_scroll),
        bounce_rate=round_pct(totals.bounce_count / n * 100),
        engagement_rate=round_pct(totals.engaged_count / n * 100),
        views_count=views_count,
    )


def reconcile(
    sessions: Sequence[PropertyTimeSession],
    view_count: int = 0,
    config: EngagementConfig = DEFAULT_CONFIG,
) -> EngagementOverview:
    """
    Compute blended engagement metrics for a set of sessions.

    average_time_spent = (sum(completed) + sum(valid estimates))
                         / (completed count + valid estimate count)
    """
    effective = effective_sessions(sessions, config)
    completed = tally((e for e in effective if not e.estimated), config)
    estimated = tally((e for e in effective if e.estimated), config)

    return overview_from_totals(
        completed.merge(estimated),
        total_sessions=len(sessions),
        completed_sessions=completed.count,
        views_count=view_count,
    )


def time_distribution(
    effective: Sequence[EffectiveSession],
    ranges: Sequence[TimeRange] = DEFAULT_CONFIG.time_ranges,
) -> tuple[TimeRangeCount, ...]:
    total = len(effective)
    result = []
    for r in ranges:
        count = sum(1 for e in effective if r.contains(e.duration))
        result.append(
            TimeRangeCount(
                time_range=r.label,
                count=count,
                percentage=round_pct(count / total * 100) if total else 0.0,
            )
        )
    return tuple(result)


def engagement_events(
    sessions: Iterable[PropertyTimeSession],
    limit: int | None = None,
) -> tuple[EventCount, ...]:
    """Count client events by type, most frequent first."""
    counts: Counter[str] = Counter()
    for s in sessions:
        for event in s.events:
            counts[event.type] += 1
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    if limit is not None:
        ranked = ranked[:limit]
    return tuple(EventCount(event_type=t, count=c) for t, c in ranked)


def daily_averages(effective: Iterable[EffectiveSession]) -> tuple[DailyAverage, ...]:
    """Average effective duration per UTC day, oldest day first."""
    days: dict[str, list[int]] = {}
    for e in effective:
        if e.duration <= 0:
            continue
        days.setdefault(e.entered_at.date().isoformat(), []).append(e.duration)

    return tuple(
        DailyAverage(
            date=day,
            average_time_spent=round_half_up(sum(values) / len(values)),
            sessions_count=len(values),
        )
        for day, values in sorted(days.items())
    )


def reporting_window(now: datetime, days: int, created_at: datetime | None = None) -> datetime:
    """Start of the reporting window, never before the property existed."""
    start = _as_utc(now) - timedelta(days=days)
    if created_at is not None and _as_utc(created_at) > start:
        return _as_utc(created_at)
    return start


def resolve_days(days: int | None, config: EngagementConfig = DEFAULT_CONFIG) -> int:
    if days is None:
        return config.default_window_days
    if not 1 <= days <= config.max_window_days:
        raise InvalidWindowError(
            f"days must be between 1 and {config.max_window_days}, got {days}"
        )
    return days


# --- Component Entry Points ---


def run_property_analytics(
    inp: PropertyAnalyticsInput,
    *,
    properties: PropertyRepoPort,
    sessions: SessionRepoPort,
    views: ViewRepoPort,
    time_port: TimePort,
    config: EngagementConfig = DEFAULT_CONFIG,
) -> PropertyAnalyticsOutput:
    """
    Build the analytics report for one property.

    Raises:
        PropertyNotFoundError: unknown property id
        InvalidWindowError: days outside 1..max_window_days
    """
    days = resolve_days(inp.days, config)
    prop = properties.get_by_id(inp.property_id)
    if prop is None:
        raise PropertyNotFoundError(inp.property_id)

    now = _as_utc(time_port.now_utc())
    start = reporting_window(now, days, prop.created_at)

    rows = sessions.list_for_property(prop.id, start=start)
    view_count = views.count_for_property(prop.id, start=start)
    effective = effective_sessions(rows, config)

    logger.debug(
        "Reconciled property %s: %d rows, %d effective, window from %s",
        prop.id,
        len(rows),
        len(effective),
        start.isoformat(),
    )

    return PropertyAnalyticsOutput(
        property_id=prop.id,
        window_start=start,
        window_end=now,
        overview=reconcile(rows, view_count, config),
        time_distribution=time_distribution(effective, config.time_ranges),
        engagement_events=engagement_events(rows),
        daily_averages=daily_averages(effective),
    )


def _performance(
    property_id: UUID,
    title: str,
    effective: Sequence[EffectiveSession],
    visit_requests: int,
    config: EngagementConfig,
) -> PropertyPerformance:
    totals = tally(effective, config)
    overview = overview_from_totals(
        totals,
        total_sessions=totals.count,
        completed_sessions=sum(1 for e in effective if not e.estimated),
        views_count=0,
    )
    n = totals.count
    return PropertyPerformance(
        property_id=property_id,
        property_title=title,
        total_sessions=n,
        average_time_spent=overview.average_time_spent,
        average_active_time=overview.average_active_time,
        average_scroll_depth=overview.average_scroll_depth,
        bounce_rate=overview.bounce_rate,
        conversion_rate=round_pct(visit_requests / n * 100) if n else 0.0,
    )


def run_agent_analytics(
    inp: AgentAnalyticsInput,
    *,
    properties: PropertyRepoPort,
    sessions: SessionRepoPort,
    views: ViewRepoPort,
    time_port: TimePort,
    config: EngagementConfig = DEFAULT_CONFIG,
) -> AgentAnalyticsOutput:
    """
    Roll up engagement over every property an agent owns.

    Each property is windowed from its own creation date, so antedated
    rows never leak into the report.
    """
    days = resolve_days(inp.days, config)
    now = _as_utc(time_port.now_utc())
    window_start = now - timedelta(days=days)

    all_rows: list[PropertyTimeSession] = []
    all_effective: list[EffectiveSession] = []
    performances: list[PropertyPerformance] = []
    views_total = 0

    for prop in properties.list_by_agent(inp.agent_id):
        start = reporting_window(now, days, prop.created_at)
        rows = sessions.list_for_property(prop.id, start=start)
        effective = effective_sessions(rows, config)
        views_total += views.count_for_property(prop.id, start=start)

        all_rows.extend(rows)
        all_effective.extend(effective)
        if effective:
            performances.append(
                _performance(
                    prop.id,
                    prop.title,
                    effective,
                    properties.count_visit_requests(prop.id),
                    config,
                )
            )

    performances.sort(key=lambda p: p.total_sessions, reverse=True)

    completed = tally((e for e in all_effective if not e.estimated), config)
    estimated = tally((e for e in all_effective if e.estimated), config)
    overview = overview_from_totals(
        completed.merge(estimated),
        total_sessions=len(all_rows),
        completed_sessions=completed.count,
        views_count=views_total,
    )

    return AgentAnalyticsOutput(
        agent_id=inp.agent_id,
        window_start=window_start,
        window_end=now,
        overview=overview,
        properties_performance=tuple(performances[: config.top_properties_limit]),
        time_distribution=time_distribution(all_effective, config.time_ranges),
        engagement_events=engagement_events(all_rows, limit=config.top_events_limit),
        daily_averages=daily_averages(all_effective),
    )


def config_from_rules(rules: EngagementRules) -> EngagementConfig:
    """Build an EngagementConfig from the `engagement` section of rules.yaml."""
    ranges = tuple(
        TimeRange(label=r.label, min_seconds=r.min, max_seconds=r.max) for r in rules.time_ranges
    )
    return EngagementConfig(
        min_engagement_seconds=rules.min_engagement_seconds,
        max_session_seconds=rules.max_session_seconds,
        over_ceiling_policy=rules.over_ceiling_policy,
        bounce_threshold_seconds=rules.bounce_threshold_seconds,
        engaged_threshold_seconds=rules.engaged_threshold_seconds,
        default_window_days=rules.default_window_days,
        max_window_days=rules.max_window_days,
        top_properties_limit=rules.top_properties_limit,
        top_events_limit=rules.top_events_limit,
        time_ranges=ranges or DEFAULT_CONFIG.time_ranges,
    )
