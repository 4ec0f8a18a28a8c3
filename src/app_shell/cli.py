"""
Maintenance command for the tracking tables.

    pa-maintenance backfill-sessions [--dry-run | --execute]
    pa-maintenance purge-antedated   [--dry-run | --execute]
    pa-maintenance purge-orphans     [--dry-run | --execute]
    pa-maintenance recount-views     [--dry-run | --execute]
    pa-maintenance report

Every task defaults to a dry run and prints a JSON report on stdout.
"""

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from contextlib import closing
from dataclasses import asdict
from pathlib import Path
from typing import Any

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.adapters.sqlite_db import SQLiteHygieneRepo, connect
from src.app_shell.config import Settings
from src.components.engagement import config_from_rules as engagement_config
from src.components.hygiene import (
    config_from_rules as hygiene_config,
    run_backfill,
    run_diagnostics,
    run_purge_antedated,
    run_purge_orphans,
    run_recount_views,
)
from src.rules.loader import load_rules
from src.rules.models import Rules

logger = logging.getLogger("cli")


def build_parser() -> argparse.ArgumentParser:
    settings = Settings()
    parser = argparse.ArgumentParser(
        prog="pa-maintenance", description="Property analytics maintenance"
    )
    parser.add_argument("--db", default=settings.db_path, help="SQLite database path")
    parser.add_argument("--rules", default=str(settings.rules_path), help="rules.yaml path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every record")

    mode = argparse.ArgumentParser(add_help=False)
    group = mode.add_mutually_exclusive_group()
    group.add_argument(
        "--dry-run",
        dest="execute",
        action="store_false",
        help="Report what would change (default)",
    )
    group.add_argument("--execute", dest="execute", action="store_true", help="Apply changes")
    mode.set_defaults(execute=False)

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser(
        "backfill-sessions", parents=[mode], help="Estimate durations of unfinished sessions"
    )
    subparsers.add_parser(
        "purge-antedated", parents=[mode], help="Delete rows dated before their property"
    )
    subparsers.add_parser(
        "purge-orphans", parents=[mode], help="Delete rows whose property is gone"
    )
    subparsers.add_parser(
        "recount-views", parents=[mode], help="Recompute views_count from view rows"
    )
    subparsers.add_parser("report", help="Read-only diagnostics")
    return parser


def run_task(command: str, repo: SQLiteHygieneRepo, rules: Rules, execute: bool) -> Any:
    if command == "backfill-sessions":
        return run_backfill(
            repo=repo, execute=execute, config=engagement_config(rules.engagement)
        )
    if command == "purge-antedated":
        return run_purge_antedated(repo=repo, execute=execute)
    if command == "purge-orphans":
        return run_purge_orphans(repo=repo, execute=execute)
    if command == "recount-views":
        return run_recount_views(repo=repo, execute=execute)
    if command == "report":
        return run_diagnostics(repo=repo, config=hygiene_config(rules.hygiene))
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        rules = load_rules(Path(args.rules))
    except (FileNotFoundError, ValueError) as e:
        logger.error("Cannot load rules: %s", e)
        return 2

    db_path = Path(args.db)
    if not db_path.exists():
        logger.error("Database %s not found.", db_path)
        return 2

    SQLiteMigrator(str(db_path)).run_migrations()
    execute = getattr(args, "execute", False)

    with closing(connect(str(db_path))) as conn:
        # Commits on success, rolls back if the task raises
        with conn:
            report = run_task(args.command, SQLiteHygieneRepo(str(db_path), conn), rules, execute)

    payload = {"task": args.command, **asdict(report)}
    print(json.dumps(payload, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
