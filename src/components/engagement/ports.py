"""
Engagement component port definitions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from src.domain.entities import Property, PropertyTimeSession


class PropertyRepoPort(Protocol):
    """Read access to listings."""

    def get_by_id(self, property_id: UUID) -> Property | None:
        ...

    def list_by_agent(self, agent_id: UUID) -> list[Property]:
        ...

    def count_visit_requests(self, property_id: UUID) -> int:
        ...


class SessionRepoPort(Protocol):
    """Read access to PropertyTimeSession rows."""

    def list_for_property(
        self,
        property_id: UUID,
        start: datetime | None = None,
    ) -> list[PropertyTimeSession]:
        """Sessions with entered_at >= start, newest first."""
        ...


class ViewRepoPort(Protocol):
    """Read access to PropertyView rows."""

    def count_for_property(self, property_id: UUID, start: datetime | None = None) -> int:
        ...


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        ...
