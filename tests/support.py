"""Shared test helpers (not fixtures)."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


class FixedClock:
    """Deterministic clock for both TimePort flavours."""

    def __init__(self, now: datetime = NOW) -> None:
        self.current = now

    def now_utc(self) -> datetime:
        return self.current

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
