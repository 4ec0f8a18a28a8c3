import logging
import os
from pathlib import Path

from src.rules.models import Rules

logger = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when the runtime environment does not satisfy ops rules."""


def validate_ops_rules(rules: Rules, data_dir: Path) -> None:
    """
    Validate operational requirements before startup.
    """
    ops = rules.ops

    # 1. Data dir must exist (created if missing) and be writable
    if ops.data_dir_required:
        data_dir.mkdir(parents=True, exist_ok=True)
        if not os.access(data_dir, os.W_OK):
            raise ConfigurationError(f"Data directory {data_dir} is not writable")

    # 2. Required env
    missing = [name for name in ops.required_env if name not in os.environ]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    logger.info("Configuration validated (data dir %s)", data_dir)


class Settings:
    """Runtime paths, taken from the environment."""

    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("PA_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "properties.db")
        self.rules_path = Path(os.environ.get("PA_RULES_PATH", str(self.base_dir / "rules.yaml")))
