"""
Tracking component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from src.domain.entities import Property, PropertyTimeSession, PropertyView


class PropertyLookupPort(Protocol):
    def get_by_id(self, property_id: UUID) -> Property | None:
        ...


class ViewWriterPort(Protocol):
    def add(self, view: PropertyView) -> PropertyView:
        """Insert a view and bump the property's views_count."""
        ...


class TrackingSessionRepoPort(Protocol):
    """Write access to PropertyTimeSession rows."""

    def get_by_session_id(self, session_id: str) -> PropertyTimeSession | None:
        ...

    def save(self, session: PropertyTimeSession) -> PropertyTimeSession:
        """
        Insert or update the row identified by session.session_id.

        A finalized row is left untouched.
        """
        ...

    def finalize(
        self,
        session_id: str,
        *,
        left_at: datetime,
        time_spent: int,
        active_time: int,
        scroll_depth: float | None,
    ) -> bool:
        """
        Set the duration fields if and only if time_spent is still NULL.

        Returns True when the row was written, False when it was already
        finalized (or does not exist).
        """
        ...


class TimePort(Protocol):
    def now_utc(self) -> datetime:
        ...
