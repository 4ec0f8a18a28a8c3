from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.adapters.sqlite_db import SQLitePropertyRepo, SQLiteSessionRepo, SQLiteViewRepo
from src.api import deps
from src.api.routes import property_analytics, tracking
from src.app_shell.rate_limit import RateLimiter
from src.components.engagement import config_from_rules
from src.rules.models import RateLimitRules, Rules
from tests.support import FixedClock


@pytest.fixture
def rate_limits(rules: Rules) -> RateLimitRules:
    return rules.rate_limits


@pytest.fixture
def app(
    rules: Rules,
    rate_limits: RateLimitRules,
    clock: FixedClock,
    property_repo: SQLitePropertyRepo,
    session_repo: SQLiteSessionRepo,
    view_repo: SQLiteViewRepo,
) -> FastAPI:
    """Routes wired to a temp database, a fixed clock and a private limiter."""
    app = FastAPI()
    app.include_router(property_analytics.router, prefix="/api/properties")
    app.include_router(property_analytics.agents_router, prefix="/api/agents")
    app.include_router(tracking.router, prefix="/api/properties")

    limiter = RateLimiter(rate_limits, time_port=clock)
    app.dependency_overrides[deps.get_property_repo] = lambda: property_repo
    app.dependency_overrides[deps.get_session_repo] = lambda: session_repo
    app.dependency_overrides[deps.get_view_repo] = lambda: view_repo
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_engagement_config] = lambda: config_from_rules(
        rules.engagement
    )
    app.dependency_overrides[deps.get_rate_limiter] = lambda: limiter
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)
