"""
Hygiene component - maintenance tasks over tracking data.
"""

from .component import (
    config_from_rules,
    find_suspicious,
    plan_backfill,
    plan_backfill_candidate,
    run_backfill,
    run_diagnostics,
    run_purge_antedated,
    run_purge_orphans,
    run_recount_views,
)
from .models import (
    DEFAULT_HYGIENE_CONFIG,
    AntedatedRecord,
    BackfillCandidate,
    BackfillReport,
    DiagnosticsReport,
    HygieneConfig,
    OrphanRecord,
    PropertyTrackingStats,
    PurgeReport,
    RecountReport,
    ViewCountChange,
)
from .ports import HygieneRepoPort

__all__ = [
    "run_backfill",
    "run_purge_antedated",
    "run_purge_orphans",
    "run_recount_views",
    "run_diagnostics",
    "plan_backfill",
    "plan_backfill_candidate",
    "find_suspicious",
    "config_from_rules",
    "DEFAULT_HYGIENE_CONFIG",
    "HygieneConfig",
    "BackfillCandidate",
    "BackfillReport",
    "AntedatedRecord",
    "OrphanRecord",
    "ViewCountChange",
    "PurgeReport",
    "RecountReport",
    "PropertyTrackingStats",
    "DiagnosticsReport",
    "HygieneRepoPort",
]
