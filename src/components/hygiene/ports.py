"""
Hygiene component port definitions.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol
from uuid import UUID

from src.domain.entities import PropertyTimeSession

from .models import AntedatedRecord, OrphanRecord, PropertyTrackingStats, ViewCountChange


class HygieneRepoPort(Protocol):
    """Maintenance access to the tracking tables."""

    def list_incomplete_sessions(self) -> list[PropertyTimeSession]:
        """Sessions with time_spent IS NULL."""
        ...

    def backfill_session(
        self,
        record_id: UUID,
        *,
        time_spent: int,
        active_time: int,
        left_at: datetime,
    ) -> bool:
        """
        Persist an estimated duration, guarded by `time_spent IS NULL`.

        Returns False when another writer finalized the row first.
        """
        ...

    def find_antedated(self) -> list[AntedatedRecord]:
        ...

    def find_orphans(self) -> list[OrphanRecord]:
        ...

    def delete_sessions(self, record_ids: Sequence[UUID]) -> int:
        ...

    def delete_views(self, record_ids: Sequence[UUID]) -> int:
        ...

    def recount_views(
        self, property_ids: Sequence[UUID] | None = None, *, apply: bool
    ) -> list[ViewCountChange]:
        """Compare views_count against PropertyView rows; write when apply."""
        ...

    def count_properties(self) -> int:
        ...

    def tracking_stats(self) -> list[PropertyTrackingStats]:
        ...

    def session_totals(self) -> dict[str, int]:
        """Returns dict with total_sessions and completed_sessions."""
        ...
