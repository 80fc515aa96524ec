"""Email-to-formation fusion: the pure engine and the orchestrated pass."""

from .engine import (
    FusionInput,
    FusionResult,
    FusionStats,
    find_by_key,
    fuse_emails,
    group_by_key,
    merge_fields,
    same_formation,
)
from .orchestrator import (
    AnalyzedCount,
    FusionOrchestrator,
    FusionProgress,
    FusionReport,
    FusionRunStats,
    FusionStatus,
    MessageSource,
    StoreMessageSource,
)

__all__ = [
    "AnalyzedCount",
    "FusionInput",
    "FusionOrchestrator",
    "FusionProgress",
    "FusionReport",
    "FusionResult",
    "FusionRunStats",
    "FusionStats",
    "FusionStatus",
    "MessageSource",
    "StoreMessageSource",
    "find_by_key",
    "fuse_emails",
    "group_by_key",
    "merge_fields",
    "same_formation",
]
