from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path
from uuid import uuid4

import pytest

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite_db import (
    SQLiteHygieneRepo,
    SQLitePropertyRepo,
    SQLiteSessionRepo,
    SQLiteViewRepo,
)
from src.domain.entities import Property
from src.rules.loader import load_rules
from src.rules.models import Rules

from tests.support import NOW, PROJECT_ROOT, FixedClock


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Temporary SQLite DB with all migrations applied."""
    path = str(tmp_path / "properties.db")
    SQLiteMigrator(path, PROJECT_ROOT / "migrations").run_migrations()
    return path


@pytest.fixture
def rules() -> Rules:
    return load_rules(PROJECT_ROOT / "rules.yaml")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def property_repo(db_path: str) -> SQLitePropertyRepo:
    return SQLitePropertyRepo(db_path)


@pytest.fixture
def session_repo(db_path: str) -> SQLiteSessionRepo:
    return SQLiteSessionRepo(db_path)


@pytest.fixture
def view_repo(db_path: str) -> SQLiteViewRepo:
    return SQLiteViewRepo(db_path)


@pytest.fixture
def hygiene_repo(db_path: str) -> SQLiteHygieneRepo:
    return SQLiteHygieneRepo(db_path)


@pytest.fixture
def listing(property_repo: SQLitePropertyRepo) -> Property:
    """An active listing created 90 days before NOW."""
    return property_repo.save(
        Property(title="Harbour loft", agent_id=uuid4(), created_at=NOW - timedelta(days=90))
    )


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[Path]:
    """Point runtime settings at a temp data dir."""
    monkeypatch.setenv("PA_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("PA_RULES_PATH", str(PROJECT_ROOT / "rules.yaml"))
    yield tmp_path
