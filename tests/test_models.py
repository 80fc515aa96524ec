"""Tests for formation_tracker.models."""

from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from formation_tracker.models import (
    IGNORED_CATEGORIES,
    CacheEntry,
    ClassificationResult,
    EmailCategory,
    Formation,
    FormationStatus,
    SourceMessage,
)


class TestSourceMessage:
    def test_frozen(self, message_factory):
        message = message_factory()
        with pytest.raises(ValidationError):
            message.processed = True

    def test_processed_copy(self, message_factory):
        message = message_factory()
        processed = message.model_copy(update={"processed": True})
        assert processed.processed is True
        assert message.processed is False

    def test_requires_timezone_aware_date(self):
        with pytest.raises(ValidationError):
            SourceMessage(id="m", date=datetime(2025, 1, 6, 9, 0))


class TestClassificationResult:
    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            ClassificationResult(category=EmailCategory.OTHER, confidence=1.5)

    def test_category_from_value(self):
        result = ClassificationResult(category="annulation", confidence=0.9)
        assert result.category is EmailCategory.CANCELLATION


class TestFormation:
    def test_defaults(self):
        formation = Formation(id="f-1")
        assert formation.status is FormationStatus.CONFIRMED
        assert formation.participants == []
        assert formation.location.coordinates is None
        assert not formation.is_cancelled

    def test_json_roundtrip_keeps_accented_enums(self):
        formation = Formation(id="f-1", status=FormationStatus.CANCELLED)
        data = formation.model_dump(mode="json")
        assert data["status"] == "annulée"
        assert Formation.model_validate(data) == formation


class TestCategories:
    def test_ignored_categories(self):
        assert IGNORED_CATEGORIES == {
            EmailCategory.INTRA_REQUEST,
            EmailCategory.REMINDER,
            EmailCategory.OTHER,
        }

    def test_cache_entry_requires_version(self):
        with pytest.raises(ValidationError):
            CacheEntry(email_id="m")
