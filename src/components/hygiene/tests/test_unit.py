"""
Hygiene component unit tests.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from src.components.engagement import EngagementConfig
from src.components.hygiene import (
    AntedatedRecord,
    HygieneConfig,
    OrphanRecord,
    PropertyTrackingStats,
    ViewCountChange,
    find_suspicious,
    plan_backfill_candidate,
    run_backfill,
    run_diagnostics,
    run_purge_antedated,
    run_purge_orphans,
    run_recount_views,
)
from src.domain.entities import Property, PropertyTimeSession, PropertyView

T0 = datetime(2024, 6, 1, tzinfo=UTC)


def session(
    property_id: UUID,
    *,
    heartbeat_after: int | None = None,
    time_spent: int | None = None,
    entered: datetime = T0,
) -> PropertyTimeSession:
    return PropertyTimeSession(
        session_id=str(uuid4()),
        property_id=property_id,
        entered_at=entered,
        last_active_at=(
            entered + timedelta(seconds=heartbeat_after) if heartbeat_after is not None else None
        ),
        time_spent=time_spent,
    )


class MockHygieneRepo:
    """In-memory implementation of HygieneRepoPort."""

    def __init__(self) -> None:
        self.properties: dict[UUID, Property] = {}
        self.sessions: dict[UUID, PropertyTimeSession] = {}
        self.views: dict[UUID, PropertyView] = {}
        self.writes = 0

    def add_property(self, **kw) -> Property:
        prop = Property(title=kw.pop("title", "Flat"), agent_id=uuid4(), **kw)
        self.properties[prop.id] = prop
        return prop

    def add_session(self, s: PropertyTimeSession) -> PropertyTimeSession:
        self.sessions[s.id] = s
        return s

    def add_view(self, property_id: UUID, created_at: datetime = T0) -> PropertyView:
        view = PropertyView(property_id=property_id, created_at=created_at)
        self.views[view.id] = view
        return view

    # --- port ---

    def list_incomplete_sessions(self) -> list[PropertyTimeSession]:
        return [s for s in self.sessions.values() if s.time_spent is None]

    def backfill_session(
        self, record_id: UUID, *, time_spent: int, active_time: int, left_at: datetime
    ) -> bool:
        row = self.sessions.get(record_id)
        if row is None or row.time_spent is not None:
            return False
        self.writes += 1
        self.sessions[record_id] = row.model_copy(
            update={"time_spent": time_spent, "active_time": active_time, "left_at": left_at}
        )
        return True

    def find_antedated(self) -> list[AntedatedRecord]:
        found: list[AntedatedRecord] = []
        for kind, rows, at in (
            ("session", self.sessions.values(), "entered_at"),
            ("view", self.views.values(), "created_at"),
        ):
            for r in rows:
                prop = self.properties.get(r.property_id)
                if prop is not None and getattr(r, at) < prop.created_at:
                    found.append(
                        AntedatedRecord(kind, r.id, r.property_id, getattr(r, at), prop.created_at)
                    )
        return found

    def find_orphans(self) -> list[OrphanRecord]:
        return [
            OrphanRecord(kind, r.id, r.property_id)
            for kind, rows in (("session", self.sessions.values()), ("view", self.views.values()))
            for r in rows
            if r.property_id not in self.properties
        ]

    def delete_sessions(self, record_ids: Sequence[UUID]) -> int:
        self.writes += 1
        return sum(1 for i in record_ids if self.sessions.pop(i, None) is not None)

    def delete_views(self, record_ids: Sequence[UUID]) -> int:
        self.writes += 1
        return sum(1 for i in record_ids if self.views.pop(i, None) is not None)

    def recount_views(
        self, property_ids: Sequence[UUID] | None = None, *, apply: bool
    ) -> list[ViewCountChange]:
        ids = list(self.properties) if property_ids is None else list(property_ids)
        changes = []
        for pid in ids:
            prop = self.properties[pid]
            actual = sum(1 for v in self.views.values() if v.property_id == pid)
            if actual != prop.views_count:
                changes.append(ViewCountChange(pid, prop.views_count, actual))
                if apply:
                    self.writes += 1
                    prop.views_count = actual
        return changes

    def count_properties(self) -> int:
        return len(self.properties)

    def tracking_stats(self) -> list[PropertyTrackingStats]:
        return [
            PropertyTrackingStats(
                property_id=p.id,
                title=p.title,
                views=sum(1 for v in self.views.values() if v.property_id == p.id),
                sessions=sum(1 for s in self.sessions.values() if s.property_id == p.id),
            )
            for p in self.properties.values()
        ]

    def session_totals(self) -> dict[str, int]:
        return {
            "total_sessions": len(self.sessions),
            "completed_sessions": sum(1 for s in self.sessions.values() if s.time_spent is not None),
        }


@pytest.fixture
def repo() -> MockHygieneRepo:
    return MockHygieneRepo()


# --- Backfill ---


class TestPlanBackfill:
    def test_reasons(self) -> None:
        pid = uuid4()
        assert plan_backfill_candidate(session(pid)).reason == "no_heartbeat"
        assert plan_backfill_candidate(session(pid, heartbeat_after=4)).reason == "below_floor"
        assert plan_backfill_candidate(session(pid, heartbeat_after=3601)).reason == "above_ceiling"

    def test_valid_estimate(self) -> None:
        candidate = plan_backfill_candidate(session(uuid4(), heartbeat_after=5))
        assert candidate.action == "update"
        assert candidate.estimate == 5
        assert candidate.clamped is False

    def test_clamp_policy_marks_clamped(self) -> None:
        candidate = plan_backfill_candidate(
            session(uuid4(), heartbeat_after=9000), EngagementConfig(over_ceiling_policy="clamp")
        )
        assert candidate.action == "update"
        assert candidate.estimate == 3600
        assert candidate.clamped is True


class TestRunBackfill:
    def test_dry_run_never_writes(self, repo: MockHygieneRepo) -> None:
        pid = repo.add_property().id
        repo.add_session(session(pid, heartbeat_after=60))

        report = run_backfill(repo=repo)

        assert report.mode == "dry-run"
        assert report.planned == 1
        assert report.updated == 0
        assert repo.writes == 0
        assert repo.list_incomplete_sessions()

    def test_execute_writes_estimates(self, repo: MockHygieneRepo) -> None:
        pid = repo.add_property().id
        good = repo.add_session(session(pid, heartbeat_after=60))
        repo.add_session(session(pid, heartbeat_after=2))
        repo.add_session(session(pid))
        done = repo.add_session(session(pid, heartbeat_after=90, time_spent=80))

        report = run_backfill(repo=repo, execute=True)

        assert report.scanned == 3
        assert report.updated == 1
        assert report.skipped == 2
        assert report.skip_reasons == {"below_floor": 1, "no_heartbeat": 1}
        row = repo.sessions[good.id]
        assert row.time_spent == 60
        assert row.active_time == 60
        assert row.left_at == good.last_active_at
        assert repo.sessions[done.id].time_spent == 80

    def test_rerun_is_noop(self, repo: MockHygieneRepo) -> None:
        pid = repo.add_property().id
        repo.add_session(session(pid, heartbeat_after=60))

        run_backfill(repo=repo, execute=True)
        writes = repo.writes
        second = run_backfill(repo=repo, execute=True)

        assert second.scanned == 0
        assert second.updated == 0
        assert repo.writes == writes

    def test_raced_rows_counted(self, repo: MockHygieneRepo) -> None:
        pid = repo.add_property().id
        s = repo.add_session(session(pid, heartbeat_after=60))

        class RacingRepo(MockHygieneRepo):
            def backfill_session(self, record_id, **kw) -> bool:
                # Client finalized after the scan
                self.sessions[record_id] = self.sessions[record_id].model_copy(
                    update={"time_spent": 61}
                )
                return super().backfill_session(record_id, **kw)

        racing = RacingRepo()
        racing.sessions = repo.sessions
        report = run_backfill(repo=racing, execute=True)

        assert report.updated == 0
        assert report.skipped_raced == 1
        assert report.skip_reasons["raced"] == 1
        assert racing.sessions[s.id].time_spent == 61


# --- Purges ---


class TestPurges:
    def test_antedated_dry_run(self, repo: MockHygieneRepo) -> None:
        prop = repo.add_property(created_at=T0)
        repo.add_session(session(prop.id, entered=T0 - timedelta(hours=5), time_spent=30))
        repo.add_session(session(prop.id, entered=T0 + timedelta(hours=1), time_spent=30))
        repo.add_view(prop.id, T0 - timedelta(days=1))

        report = run_purge_antedated(repo=repo)

        assert report.sessions_found == 1
        assert report.views_found == 1
        assert report.sessions_deleted == 0
        assert len(repo.sessions) == 2
        assert repo.writes == 0
        assert {r.hours_before_creation for r in report.records} == {5, 24}

    def test_antedated_execute_recounts(self, repo: MockHygieneRepo) -> None:
        prop = repo.add_property(created_at=T0, views_count=2)
        repo.add_view(prop.id, T0 - timedelta(days=1))
        repo.add_view(prop.id, T0 + timedelta(days=1))

        report = run_purge_antedated(repo=repo, execute=True)

        assert report.views_deleted == 1
        assert report.recounted == [ViewCountChange(prop.id, 2, 1)]
        assert prop.views_count == 1

    def test_orphans(self, repo: MockHygieneRepo) -> None:
        prop = repo.add_property()
        repo.add_session(session(prop.id, time_spent=10))
        gone = uuid4()
        repo.add_session(session(gone, time_spent=10))
        repo.add_view(gone)

        dry = run_purge_orphans(repo=repo)
        assert (dry.sessions_found, dry.views_found) == (1, 1)
        assert len(repo.sessions) == 2

        done = run_purge_orphans(repo=repo, execute=True)
        assert (done.sessions_deleted, done.views_deleted) == (1, 1)
        assert len(repo.sessions) == 1
        assert repo.views == {}

    def test_recount(self, repo: MockHygieneRepo) -> None:
        prop = repo.add_property(views_count=10)
        repo.add_view(prop.id)

        dry = run_recount_views(repo=repo)
        assert dry.changes == [ViewCountChange(prop.id, 10, 1)]
        assert prop.views_count == 10

        run_recount_views(repo=repo, execute=True)
        assert prop.views_count == 1
        assert run_recount_views(repo=repo).changes == []


# --- Diagnostics ---


class TestDiagnostics:
    def test_suspicious_ratios(self) -> None:
        stats = [
            PropertyTrackingStats(uuid4(), "ratio", views=2, sessions=11),
            PropertyTrackingStats(uuid4(), "no views", views=0, sessions=11),
            PropertyTrackingStats(uuid4(), "normal", views=10, sessions=12),
            PropertyTrackingStats(uuid4(), "edge", views=2, sessions=10),
        ]
        flagged = [s.title for s in find_suspicious(stats)]
        assert flagged == ["no views", "ratio"]

    def test_thresholds_configurable(self) -> None:
        stats = [PropertyTrackingStats(uuid4(), "p", views=1, sessions=3)]
        assert find_suspicious(stats, HygieneConfig(suspicious_sessions_per_view=2))

    def test_report(self, repo: MockHygieneRepo) -> None:
        prop = repo.add_property(created_at=T0)
        repo.add_session(session(prop.id, time_spent=30))
        repo.add_session(session(prop.id, heartbeat_after=30))
        repo.add_session(session(prop.id))
        repo.add_session(session(prop.id, time_spent=30, entered=T0 - timedelta(hours=1)))

        report = run_diagnostics(repo=repo)

        assert report.total_sessions == 4
        assert report.completed_sessions == 2
        assert report.incomplete_sessions == 2
        assert report.incomplete_without_heartbeat == 1
        assert report.completion_rate == 50.0
        assert report.antedated_sessions == 1
        assert repo.writes == 0
