"""Formation Tracker: training-session emails fused into canonical records.

Public API re-exported here for convenience::

    from formation_tracker import ExtractionCache, GeocodingCache, fuse_emails
"""

from .config import (
    GeocodingConfig,
    ImapConfig,
    LLMConfig,
    RetryConfig,
    StoreConfig,
    TrackerConfig,
)
from .errors import (
    InvalidKeyError,
    LLMError,
    LLMErrorCode,
    ProviderNotConfiguredError,
    StoreError,
)
from .extraction_cache import ExtractionCache
from .fusion import (
    FusionInput,
    FusionOrchestrator,
    FusionProgress,
    FusionReport,
    FusionResult,
    FusionStats,
    FusionStatus,
    StoreMessageSource,
    fuse_emails,
    merge_fields,
)
from .geocoding import GeocodingCache, build_registry, normalize_address
from .keys import derive_id, natural_key
from .logging import setup_logging
from .models import (
    CacheEntry,
    ClassificationResult,
    Coordinates,
    EmailCategory,
    ExtractionResult,
    Formation,
    FormationPatch,
    FormationStatus,
    GeocacheEntry,
    SourceMessage,
)
from .retry import with_retry
from .store import TrackerStore, open_store
from .virtual import apply_virtual_location, is_virtual_code

__all__ = [
    "CacheEntry",
    "ClassificationResult",
    "Coordinates",
    "EmailCategory",
    "ExtractionCache",
    "ExtractionResult",
    "Formation",
    "FormationPatch",
    "FormationStatus",
    "FusionInput",
    "FusionOrchestrator",
    "FusionProgress",
    "FusionReport",
    "FusionResult",
    "FusionStats",
    "FusionStatus",
    "GeocacheEntry",
    "GeocodingCache",
    "GeocodingConfig",
    "ImapConfig",
    "InvalidKeyError",
    "LLMConfig",
    "LLMError",
    "LLMErrorCode",
    "ProviderNotConfiguredError",
    "RetryConfig",
    "SourceMessage",
    "StoreConfig",
    "StoreError",
    "StoreMessageSource",
    "TrackerConfig",
    "TrackerStore",
    "apply_virtual_location",
    "build_registry",
    "derive_id",
    "fuse_emails",
    "is_virtual_code",
    "merge_fields",
    "natural_key",
    "normalize_address",
    "open_store",
    "setup_logging",
    "with_retry",
]
