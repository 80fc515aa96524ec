"""Shared test fixtures for the formation_tracker test suite."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
import structlog
from pydantic import SecretStr

from formation_tracker.config import GeocodingConfig, LLMConfig, RetryConfig, StoreConfig
from formation_tracker.extraction_cache import ExtractionCache
from formation_tracker.fusion.engine import FusionInput
from formation_tracker.geocoding.base import GeocodingProvider, GeocodingResult
from formation_tracker.models import (
    ClassificationResult,
    Coordinates,
    EmailCategory,
    ExtractionResult,
    FormationPatch,
    SourceMessage,
)
from formation_tracker.store import TrackerStore

MODEL_VERSION = "test-model-v1"
BASE_DATE = datetime(2025, 1, 6, 9, 0, tzinfo=UTC)


class FakeProvider(GeocodingProvider):
    """In-memory provider: answers from a dict and records every call."""

    def __init__(self, answers: dict[str, Coordinates | None] | None = None, name: str = "fake"):
        self.answers = answers or {}
        self.calls: list[str] = []
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def is_configured(self) -> bool:
        return True

    async def geocode(self, address: str) -> GeocodingResult:
        self.calls.append(address)
        return GeocodingResult(coordinates=self.answers.get(address))


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo setup_logging, whose stderr may be a closed capture stream."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def llm_config() -> LLMConfig:
    return LLMConfig(
        api_key=SecretStr("sk-test"),
        base_url="https://llm.test/v1",
        model="test-model",
        model_version=MODEL_VERSION,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_attempts=3,
        initial_wait_seconds=0.01,
        max_wait_seconds=0.1,
        multiplier=2.0,
    )


@pytest.fixture
def geocoding_config() -> GeocodingConfig:
    return GeocodingConfig(
        google_api_key=SecretStr("g-key"),
        mapbox_api_key=SecretStr("mb-token"),
        min_interval_seconds=0.0,
    )


@pytest.fixture
def store_config() -> StoreConfig:
    return StoreConfig(backend="s3", bucket="test-bucket", prefix="tracker", region="eu-west-3")


@pytest.fixture
def store() -> TrackerStore:
    return TrackerStore.in_memory()


@pytest.fixture
def extraction_cache(store: TrackerStore) -> ExtractionCache:
    return ExtractionCache(store.extraction_cache, MODEL_VERSION)


@pytest.fixture
def message_factory():
    """Factory for SourceMessage; ``minutes`` offsets the date from BASE_DATE."""

    def _make(id: str = "msg-1", minutes: int = 0, **overrides) -> SourceMessage:
        defaults = dict(
            id=id,
            thread_id=f"thread-{id}",
            sender="formation@orsys.fr",
            subject=f"Subject {id}",
            date=BASE_DATE + timedelta(minutes=minutes),
            body="Bonjour,",
        )
        defaults.update(overrides)
        return SourceMessage(**defaults)

    return _make


@pytest.fixture
def input_factory(message_factory):
    """Factory for FusionInput built from a message id, a category and patch fields."""

    def _make(
        id: str = "msg-1",
        category: EmailCategory = EmailCategory.INTER_CONFIRMATION,
        minutes: int = 0,
        confidence: float = 0.95,
        **fields,
    ) -> FusionInput:
        return FusionInput(
            message=message_factory(id, minutes),
            extraction=ExtractionResult(formation=FormationPatch(**fields)),
            classification=ClassificationResult(category=category, confidence=confidence),
        )

    return _make
