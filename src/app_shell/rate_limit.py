import math
from datetime import UTC, datetime, timedelta
from threading import Lock
from typing import Protocol

from src.rules.models import RateLimitRules, RateLimitWindow


class TimePort(Protocol):
    """Protocol for time operations (enables testing with deterministic time)."""

    def now(self) -> datetime:
        """Return current UTC time."""
        ...


class SystemTimeAdapter:
    """Production time adapter using system clock."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class RateLimiter:
    """
    In-process sliding-window limiter keyed by scope and client IP.

    State is per process; a multi-worker deployment limits per worker.
    """

    def __init__(
        self,
        rules: RateLimitRules,
        time_port: TimePort | None = None,
    ):
        self.rules = rules
        self._time = time_port if time_port is not None else SystemTimeAdapter()
        self._history: dict[str, list[datetime]] = {}
        self._lock = Lock()
        # Keys idle for longer than the longest window hold only expired entries
        self._sweep_every = timedelta(
            seconds=max(rules.tracking.window_seconds, rules.analytics.window_seconds)
        )
        self._last_sweep = self._time.now()

    def _sweep(self) -> None:
        now = self._time.now()
        if now - self._last_sweep < self._sweep_every:
            return
        cutoff = now - self._sweep_every
        for key in [k for k, hist in self._history.items() if hist[-1] <= cutoff]:
            del self._history[key]
        self._last_sweep = now

    def _cleanup(self, key: str, window: int) -> None:
        cutoff = self._time.now() - timedelta(seconds=window)
        if key in self._history:
            self._history[key] = [t for t in self._history[key] if t > cutoff]
            if not self._history[key]:
                del self._history[key]

    def allow_request(self, key: str, window: int, limit: int) -> bool:
        """
        Check if request is allowed.
        If allowed, records the attempt and returns True.
        If denied, returns False.
        """
        if limit <= 0:
            return False

        with self._lock:
            self._sweep_every = max(self._sweep_every, timedelta(seconds=window))
            self._sweep()
            self._cleanup(key, window)
            if len(self._history.get(key, [])) >= limit:
                return False
            self._history.setdefault(key, []).append(self._time.now())
            return True

    def retry_after(self, key: str, window: int) -> int:
        """Seconds until the oldest request in the window expires (at least 1)."""
        with self._lock:
            history = self._history.get(key)
            if not history:
                return 1
            expires = history[0] + timedelta(seconds=window)
            return max(1, math.ceil((expires - self._time.now()).total_seconds()))

    def _check(self, scope: str, cfg: RateLimitWindow, client_ip: str) -> tuple[bool, int]:
        key = f"{scope}:{client_ip}"
        if self.allow_request(key, cfg.window_seconds, cfg.max_requests):
            return True, 0
        return False, self.retry_after(key, cfg.window_seconds)

    def check_tracking(self, client_ip: str) -> tuple[bool, int]:
        """Returns (allowed, retry_after_seconds)."""
        return self._check("tracking", self.rules.tracking, client_ip)

    def check_analytics(self, client_ip: str) -> tuple[bool, int]:
        """Returns (allowed, retry_after_seconds)."""
        return self._check("analytics", self.rules.analytics, client_ip)

    def reset(self) -> None:
        with self._lock:
            self._history.clear()
