from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status

from src.adapters.clock import SystemClock
from src.adapters.sqlite_db import SQLitePropertyRepo, SQLiteSessionRepo, SQLiteViewRepo
from src.app_shell.config import Settings
from src.app_shell.rate_limit import RateLimiter
from src.components.engagement import EngagementConfig, config_from_rules
from src.rules.loader import load_rules
from src.rules.models import Rules


# --- Settings ---
@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules(settings: Settings = Depends(get_settings)) -> Rules:
    return load_rules(settings.rules_path)


def get_engagement_config(rules: Rules = Depends(get_rules)) -> EngagementConfig:
    return config_from_rules(rules.engagement)


# --- Repos ---
# Each repo receives the database path explicitly; there is no shared client.
def get_property_repo(settings: Settings = Depends(get_settings)) -> SQLitePropertyRepo:
    return SQLitePropertyRepo(settings.db_path)


def get_session_repo(settings: Settings = Depends(get_settings)) -> SQLiteSessionRepo:
    return SQLiteSessionRepo(settings.db_path)


def get_view_repo(settings: Settings = Depends(get_settings)) -> SQLiteViewRepo:
    return SQLiteViewRepo(settings.db_path)


def get_clock() -> SystemClock:
    return SystemClock()


# --- Rate limiting ---
@lru_cache
def get_rate_limiter() -> RateLimiter:
    return RateLimiter(get_rules(get_settings()).rate_limits)


def get_client_ip(request: Request) -> str:
    """Client address as seen behind Cloudflare or a reverse proxy."""
    headers = request.headers
    if cf_ip := headers.get("cf-connecting-ip"):
        return cf_ip.strip()
    if forwarded := headers.get("x-forwarded-for"):
        return forwarded.split(",")[0].strip()
    if real_ip := headers.get("x-real-ip"):
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def _too_many(retry_after: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests",
        headers={"Retry-After": str(retry_after)},
    )


def tracking_rate_limit(
    client_ip: str = Depends(get_client_ip),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    allowed, retry_after = limiter.check_tracking(client_ip)
    if not allowed:
        raise _too_many(retry_after)


def analytics_rate_limit(
    client_ip: str = Depends(get_client_ip),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    allowed, retry_after = limiter.check_analytics(client_ip)
    if not allowed:
        raise _too_many(retry_after)
