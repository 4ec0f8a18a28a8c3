from pathlib import Path

import pytest

from src.app_shell.config import ConfigurationError, Settings, validate_ops_rules
from src.rules.models import Rules


def test_creates_data_dir(rules: Rules, tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    validate_ops_rules(rules, data_dir)
    assert data_dir.is_dir()


def test_missing_required_env(
    rules: Rules, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("PA_TEST_SECRET", raising=False)
    strict = rules.model_copy(
        update={"ops": rules.ops.model_copy(update={"required_env": ["PA_TEST_SECRET"]})}
    )
    with pytest.raises(ConfigurationError, match="PA_TEST_SECRET"):
        validate_ops_rules(strict, tmp_path)

    monkeypatch.setenv("PA_TEST_SECRET", "x")
    validate_ops_rules(strict, tmp_path)


def test_settings_from_env(env: Path) -> None:
    settings = Settings()
    assert settings.data_dir == env
    assert settings.db_path == str(env / "properties.db")
    assert settings.rules_path.name == "rules.yaml"
