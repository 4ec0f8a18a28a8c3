"""
SQLite adapter for listings and tracking tables.

Implements the engagement, tracking and hygiene ports. Timestamps are
stored as fixed-width UTC ISO-8601 strings so range filters can compare
them lexically.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from src.components.hygiene.models import (
    AntedatedRecord,
    OrphanRecord,
    PropertyTrackingStats,
    ViewCountChange,
)
from src.domain.entities import (
    Property,
    PropertyTimeSession,
    PropertyView,
    TrackingEvent,
    VisitRequest,
)

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def connect(db_path: str) -> sqlite3.Connection:
    """Open a connection configured the way the repositories expect."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = dict_factory
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def to_db_dt(dt: datetime | None) -> str | None:
    """Serialize a datetime as fixed-width UTC ISO string."""
    if dt is None:
        return None
    dt = dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)
    return dt.isoformat(timespec="microseconds")


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string (naive values are UTC)."""
    if not s:
        return None
    dt = datetime.fromisoformat(s)
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt


def _placeholders(n: int) -> str:
    return ",".join("?" for _ in range(n))


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn
        return connect(self.db_path)

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None


# -----------------------------------------------------------------------------
# Properties
# -----------------------------------------------------------------------------


class SQLitePropertyRepo(SQLiteRepoBase):
    """Listings, as far as analytics needs them."""

    def get_by_id(self, property_id: UUID) -> Property | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM properties WHERE id = ?", (str(property_id),)
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def list_by_agent(self, agent_id: UUID) -> list[Property]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM properties WHERE agent_id = ? ORDER BY created_at",
                (str(agent_id),),
            ).fetchall()
            return [self._map_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def save(self, prop: Property) -> Property:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO properties (id, title, agent_id, is_active, views_count, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    agent_id = excluded.agent_id,
                    is_active = excluded.is_active,
                    views_count = excluded.views_count,
                    created_at = excluded.created_at
                """,
                (
                    str(prop.id),
                    prop.title,
                    str(prop.agent_id),
                    1 if prop.is_active else 0,
                    prop.views_count,
                    to_db_dt(prop.created_at),
                ),
            )
            if self._should_close():
                conn.commit()
            return prop
        finally:
            if self._should_close():
                conn.close()

    def delete(self, property_id: UUID) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM properties WHERE id = ?", (str(property_id),))
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def add_visit_request(self, request: VisitRequest) -> VisitRequest:
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO visit_requests (id, property_id, created_at) VALUES (?, ?, ?)",
                (str(request.id), str(request.property_id), to_db_dt(request.created_at)),
            )
            if self._should_close():
                conn.commit()
            return request
        finally:
            if self._should_close():
                conn.close()

    def count_visit_requests(self, property_id: UUID) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM visit_requests WHERE property_id = ?",
                (str(property_id),),
            ).fetchone()
            return row["n"] if row else 0
        finally:
            if self._should_close():
                conn.close()

    def _map_row(self, row: dict[str, Any]) -> Property:
        return Property(
            id=UUID(row["id"]),
            title=row["title"],
            agent_id=UUID(row["agent_id"]),
            is_active=bool(row["is_active"]),
            views_count=row["views_count"],
            created_at=parse_dt(row["created_at"]),  # type: ignore[arg-type]
        )


# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------


class SQLiteViewRepo(SQLiteRepoBase):
    """PropertyView rows. Insert-only outside maintenance."""

    def add(self, view: PropertyView) -> PropertyView:
        """Insert the view and bump the denormalized counter together."""
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO property_views (id, property_id, viewer_ip, created_at) "
                "VALUES (?, ?, ?, ?)",
                (
                    str(view.id),
                    str(view.property_id),
                    view.viewer_ip,
                    to_db_dt(view.created_at),
                ),
            )
            conn.execute(
                "UPDATE properties SET views_count = views_count + 1 WHERE id = ?",
                (str(view.property_id),),
            )
            if self._should_close():
                conn.commit()
            return view
        finally:
            if self._should_close():
                conn.close()

    def count_for_property(self, property_id: UUID, start: datetime | None = None) -> int:
        conn = self._get_conn()
        try:
            query = "SELECT COUNT(*) AS n FROM property_views WHERE property_id = ?"
            params: list[Any] = [str(property_id)]
            if start is not None:
                query += " AND created_at >= ?"
                params.append(to_db_dt(start))
            row = conn.execute(query, params).fetchone()
            return row["n"] if row else 0
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Time sessions
# -----------------------------------------------------------------------------


class SQLiteSessionRepo(SQLiteRepoBase):
    """PropertyTimeSession rows for tracking and reporting."""

    def get_by_session_id(self, session_id: str) -> PropertyTimeSession | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM property_time_sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
            return map_session_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def list_for_property(
        self,
        property_id: UUID,
        start: datetime | None = None,
    ) -> list[PropertyTimeSession]:
        conn = self._get_conn()
        try:
            query = "SELECT * FROM property_time_sessions WHERE property_id = ?"
            params: list[Any] = [str(property_id)]
            if start is not None:
                query += " AND entered_at >= ?"
                params.append(to_db_dt(start))
            query += " ORDER BY entered_at DESC"
            rows = conn.execute(query, params).fetchall()
            return [map_session_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def save(self, session: PropertyTimeSession) -> PropertyTimeSession:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO property_time_sessions (
                    id, session_id, property_id, viewer_ip, user_agent, user_id,
                    entered_at, last_active_at, left_at, time_spent, active_time,
                    scroll_depth, events_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id) DO UPDATE SET
                    viewer_ip = excluded.viewer_ip,
                    user_agent = excluded.user_agent,
                    last_active_at = excluded.last_active_at,
                    left_at = excluded.left_at,
                    time_spent = excluded.time_spent,
                    active_time = excluded.active_time,
                    scroll_depth = excluded.scroll_depth,
                    events_json = excluded.events_json
                WHERE property_time_sessions.time_spent IS NULL
                """,
                (
                    str(session.id),
                    session.session_id,
                    str(session.property_id),
                    session.viewer_ip,
                    session.user_agent,
                    session.user_id,
                    to_db_dt(session.entered_at),
                    to_db_dt(session.last_active_at),
                    to_db_dt(session.left_at),
                    session.time_spent,
                    session.active_time,
                    session.scroll_depth,
                    json.dumps([e.model_dump() for e in session.events]),
                ),
            )
            if self._should_close():
                conn.commit()
            return session
        finally:
            if self._should_close():
                conn.close()

    def finalize(
        self,
        session_id: str,
        *,
        left_at: datetime,
        time_spent: int,
        active_time: int,
        scroll_depth: float | None,
    ) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE property_time_sessions
                SET left_at = ?, time_spent = ?, active_time = ?, scroll_depth = ?
                WHERE session_id = ? AND time_spent IS NULL
                """,
                (to_db_dt(left_at), time_spent, active_time, scroll_depth, session_id),
            )
            if self._should_close():
                conn.commit()
            return cur.rowcount == 1
        finally:
            if self._should_close():
                conn.close()


def map_session_row(row: dict[str, Any]) -> PropertyTimeSession:
    events = json.loads(row["events_json"] or "[]")
    return PropertyTimeSession(
        id=UUID(row["id"]),
        session_id=row["session_id"],
        property_id=UUID(row["property_id"]),
        viewer_ip=row["viewer_ip"],
        user_agent=row["user_agent"],
        user_id=row["user_id"],
        entered_at=parse_dt(row["entered_at"]),  # type: ignore[arg-type]
        last_active_at=parse_dt(row["last_active_at"]),
        left_at=parse_dt(row["left_at"]),
        time_spent=row["time_spent"],
        active_time=row["active_time"],
        scroll_depth=row["scroll_depth"],
        events=[TrackingEvent.model_validate(e) for e in events],
    )


# -----------------------------------------------------------------------------
# Maintenance
# -----------------------------------------------------------------------------


class SQLiteHygieneRepo(SQLiteRepoBase):
    """Implements HygieneRepoPort."""

    def list_incomplete_sessions(self) -> list[PropertyTimeSession]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM property_time_sessions WHERE time_spent IS NULL "
                "ORDER BY entered_at"
            ).fetchall()
            return [map_session_row(r) for r in rows]
        finally:
            if self._should_close():
                conn.close()

    def backfill_session(
        self,
        record_id: UUID,
        *,
        time_spent: int,
        active_time: int,
        left_at: datetime,
    ) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                """
                UPDATE property_time_sessions
                SET time_spent = ?, active_time = ?, left_at = ?
                WHERE id = ? AND time_spent IS NULL
                """,
                (time_spent, active_time, to_db_dt(left_at), str(record_id)),
            )
            if self._should_close():
                conn.commit()
            return cur.rowcount == 1
        finally:
            if self._should_close():
                conn.close()

    def find_antedated(self) -> list[AntedatedRecord]:
        conn = self._get_conn()
        try:
            sessions = conn.execute(
                """
                SELECT s.id, s.property_id, s.entered_at AS recorded_at, p.created_at
                FROM property_time_sessions s
                JOIN properties p ON p.id = s.property_id
                WHERE s.entered_at < p.created_at
                ORDER BY s.entered_at
                """
            ).fetchall()
            views = conn.execute(
                """
                SELECT v.id, v.property_id, v.created_at AS recorded_at, p.created_at
                FROM property_views v
                JOIN properties p ON p.id = v.property_id
                WHERE v.created_at < p.created_at
                ORDER BY v.created_at
                """
            ).fetchall()
        finally:
            if self._should_close():
                conn.close()

        return [
            AntedatedRecord(
                kind=kind,
                record_id=UUID(r["id"]),
                property_id=UUID(r["property_id"]),
                recorded_at=parse_dt(r["recorded_at"]),  # type: ignore[arg-type]
                property_created_at=parse_dt(r["created_at"]),  # type: ignore[arg-type]
            )
            for kind, rows in (("session", sessions), ("view", views))
            for r in rows
        ]

    def find_orphans(self) -> list[OrphanRecord]:
        conn = self._get_conn()
        try:
            sessions = conn.execute(
                """
                SELECT s.id, s.property_id FROM property_time_sessions s
                LEFT JOIN properties p ON p.id = s.property_id
                WHERE p.id IS NULL
                """
            ).fetchall()
            views = conn.execute(
                """
                SELECT v.id, v.property_id FROM property_views v
                LEFT JOIN properties p ON p.id = v.property_id
                WHERE p.id IS NULL
                """
            ).fetchall()
        finally:
            if self._should_close():
                conn.close()

        return [
            OrphanRecord(kind=kind, record_id=UUID(r["id"]), property_id=UUID(r["property_id"]))
            for kind, rows in (("session", sessions), ("view", views))
            for r in rows
        ]

    def _delete(self, table: str, record_ids: Sequence[UUID]) -> int:
        if not record_ids:
            return 0
        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"DELETE FROM {table} WHERE id IN ({_placeholders(len(record_ids))})",
                [str(i) for i in record_ids],
            )
            if self._should_close():
                conn.commit()
            return cur.rowcount
        finally:
            if self._should_close():
                conn.close()

    def delete_sessions(self, record_ids: Sequence[UUID]) -> int:
        return self._delete("property_time_sessions", record_ids)

    def delete_views(self, record_ids: Sequence[UUID]) -> int:
        return self._delete("property_views", record_ids)

    def recount_views(
        self, property_ids: Sequence[UUID] | None = None, *, apply: bool
    ) -> list[ViewCountChange]:
        conn = self._get_conn()
        try:
            query = """
                SELECT p.id, p.views_count,
                       (SELECT COUNT(*) FROM property_views v WHERE v.property_id = p.id) AS actual
                FROM properties p
            """
            params: list[Any] = []
            if property_ids is not None:
                if not property_ids:
                    return []
                query += f" WHERE p.id IN ({_placeholders(len(property_ids))})"
                params = [str(i) for i in property_ids]

            changes = [
                ViewCountChange(
                    property_id=UUID(r["id"]), previous=r["views_count"], current=r["actual"]
                )
                for r in conn.execute(query, params).fetchall()
                if r["views_count"] != r["actual"]
            ]

            if apply and changes:
                conn.executemany(
                    "UPDATE properties SET views_count = ? WHERE id = ?",
                    [(c.current, str(c.property_id)) for c in changes],
                )
                if self._should_close():
                    conn.commit()
            return changes
        finally:
            if self._should_close():
                conn.close()

    def count_properties(self) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT COUNT(*) AS n FROM properties").fetchone()
            return row["n"] if row else 0
        finally:
            if self._should_close():
                conn.close()

    def tracking_stats(self) -> list[PropertyTrackingStats]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT p.id, p.title,
                       (SELECT COUNT(*) FROM property_views v WHERE v.property_id = p.id) AS views,
                       (SELECT COUNT(*) FROM property_time_sessions s
                        WHERE s.property_id = p.id) AS sessions
                FROM properties p
                """
            ).fetchall()
            return [
                PropertyTrackingStats(
                    property_id=UUID(r["id"]),
                    title=r["title"],
                    views=r["views"],
                    sessions=r["sessions"],
                )
                for r in rows
            ]
        finally:
            if self._should_close():
                conn.close()

    def session_totals(self) -> dict[str, int]:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """
                SELECT COUNT(*) AS total,
                       SUM(CASE WHEN time_spent IS NOT NULL THEN 1 ELSE 0 END) AS completed
                FROM property_time_sessions
                """
            ).fetchone()
            return {
                "total_sessions": (row["total"] or 0) if row else 0,
                "completed_sessions": (row["completed"] or 0) if row else 0,
            }
        finally:
            if self._should_close():
                conn.close()
