"""Parsing of the model's JSON answers into typed results.

Classification answers are validated strictly and raise ``PARSE_ERROR``.
Extraction answers are read leniently: a field of the wrong type is
treated as missing, never as a failure of the whole email.
"""

from __future__ import annotations

import json
import math
from typing import Any

import structlog

from ..errors import LLMError, LLMErrorCode
from ..models import (
    BillingInfo,
    ClassificationResult,
    CompanyContact,
    CustomizationLevel,
    EmailCategory,
    ExtractionResult,
    FormationPatch,
    FormationStatus,
    LocationPatch,
    Participant,
    SessionType,
)

logger = structlog.get_logger()

#: Billing entity assumed when an intra email names none.
DEFAULT_BILLING_ENTITY = "ORSYS"


def _load_object(text: str) -> dict[str, Any]:
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise LLMError(f"Invalid JSON response: {text}", LLMErrorCode.PARSE_ERROR) from exc
    if not isinstance(parsed, dict):
        raise LLMError(f"Invalid response structure: {text}", LLMErrorCode.PARSE_ERROR)
    return parsed


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def parse_classification_response(text: str, min_confidence: float = 0.7) -> ClassificationResult:
    """Validate a classification answer.

    Answers below *min_confidence* are downgraded to ``autre``; the
    suggested category is kept in the reason.
    """
    data = _load_object(text)
    if not {"type", "confidence", "reason"} <= data.keys():
        raise LLMError(f"Invalid response structure: {text}", LLMErrorCode.PARSE_ERROR)

    raw_type, confidence, reason = data["type"], data["confidence"], data["reason"]
    try:
        category = EmailCategory(raw_type)
    except ValueError as exc:
        raise LLMError(f"Invalid email type: {raw_type}", LLMErrorCode.PARSE_ERROR) from exc
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not 0 <= confidence <= 1:
        raise LLMError(f"Invalid confidence: {confidence}", LLMErrorCode.PARSE_ERROR)
    if not isinstance(reason, str):
        raise LLMError(f"Invalid reason: {reason}", LLMErrorCode.PARSE_ERROR)

    if confidence < min_confidence:
        logger.warning("classification_low_confidence", category=category.value, confidence=confidence)
        return ClassificationResult(
            category=EmailCategory.OTHER,
            confidence=confidence,
            reason=(
                f"Low confidence ({confidence:.2f} < {min_confidence}). "
                f"Suggested type: {category.value}. {reason}"
            ),
        )
    return ClassificationResult(category=category, confidence=confidence, reason=reason)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _text(data: Any, key: str) -> str | None:
    value = data.get(key) if isinstance(data, dict) else None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _number(data: dict, key: str) -> float | None:
    value = data.get(key)
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.replace(",", ".").strip())
        except ValueError:
            return None
    # json.loads accepts Infinity, NaN and 1e999
    if isinstance(value, (int, float)) and value > 0 and (isinstance(value, int) or math.isfinite(value)):
        return value
    return None


def _integer(data: dict, key: str) -> int | None:
    value = _number(data, key)
    return int(value) if value is not None else None


def _customization(raw: str | None) -> CustomizationLevel:
    level = (raw or "").lower()
    if "ultra" in level:
        return CustomizationLevel.ULTRA_SPECIFIC
    if "spécifique" in level or "specifique" in level:
        return CustomizationLevel.SPECIFIC
    return CustomizationLevel.STANDARD


class _Extraction:
    """Collects patch fields along with the extracted / missing field lists."""

    def __init__(self, data: dict) -> None:
        self.data = data
        self.fields: dict[str, Any] = {}
        self.extracted: list[str] = []
        self.missing: list[str] = []
        self.warnings: list[str] = []

    def set(self, name: str, value: Any, *, required: bool = True) -> None:
        if value is None or value == []:
            if required:
                self.missing.append(name)
            return
        self.fields[name] = value
        self.extracted.append(name)

    def text(self, name: str, *, required: bool = True) -> None:
        self.set(name, _text(self.data, name), required=required)

    def result(self) -> ExtractionResult:
        return ExtractionResult(
            formation=FormationPatch(**self.fields),
            fields_extracted=self.extracted,
            fields_missing=self.missing,
            warnings=self.warnings,
        )

    # Shared groups ---------------------------------------------------

    def common(self) -> None:
        for name in ("title", "extended_code", "start_date", "end_date"):
            self.text(name)

    def dates(self) -> None:
        raw = self.data.get("dates")
        dates = [d.strip() for d in raw if isinstance(d, str) and d.strip()] if isinstance(raw, list) else []
        self.set("dates", dates)

    def dates_from_bounds(self) -> None:
        start, end = self.fields.get("start_date"), self.fields.get("end_date")
        if start and end:
            self.fields["dates"] = sorted({start, end})

    def location(self, *, with_room: bool = False, required: bool = True) -> None:
        raw = self.data.get("location")
        if isinstance(raw, str) and raw.strip():
            self.set("location", LocationPatch(name=raw.strip(), address=raw.strip()))
            return
        if not isinstance(raw, dict) or not (_text(raw, "name") or _text(raw, "address")):
            self.set("location", None, required=required)
            return
        self.set(
            "location",
            LocationPatch(
                name=_text(raw, "name") or "",
                address=_text(raw, "address") or "",
                room=_text(raw, "room") if with_room else None,
            ),
        )

    def customization(self) -> None:
        raw = _text(self.data, "customization_level")
        self.fields["customization_level"] = _customization(raw)
        if raw:
            self.extracted.append("customization_level")

    def passwords(self) -> None:
        self.text("trainer_password", required=False)
        self.text("participant_password", required=False)


def _inter(ex: _Extraction) -> None:
    ex.fields.update(
        session_type=SessionType.INTER,
        customization_level=CustomizationLevel.STANDARD,
        status=FormationStatus.CONFIRMED,
    )
    ex.common()
    ex.dates()
    ex.set("day_count", _integer(ex.data, "day_count"))
    ex.location()
    ex.set("participant_count", _integer(ex.data, "participant_count"))
    raw = ex.data.get("participants")
    participants = (
        [
            Participant(name=_text(p, "name") or "", email=_text(p, "email") or "")
            for p in raw
            if isinstance(p, dict) and (_text(p, "name") or _text(p, "email"))
        ]
        if isinstance(raw, list)
        else []
    )
    ex.set("participants", participants)
    ex.passwords()


def _intra(ex: _Extraction) -> None:
    ex.fields.update(session_type=SessionType.INTRA, status=FormationStatus.CONFIRMED)
    ex.common()
    reference = _text(ex.data, "intra_reference")
    if reference:
        ex.set("billing", BillingInfo(entity=DEFAULT_BILLING_ENTITY, intra_reference=reference))
    ex.text("client", required=False)
    ex.dates()
    ex.set("day_count", _integer(ex.data, "day_count"))
    ex.location(with_room=True)
    ex.set("participant_count", _integer(ex.data, "participant_count"))
    ex.customization()
    contact = ex.data.get("company_contact")
    if isinstance(contact, dict) and any(_text(contact, k) for k in ("name", "phone", "email")):
        ex.set(
            "company_contact",
            CompanyContact(
                name=_text(contact, "name"),
                phone=_text(contact, "phone"),
                email=_text(contact, "email"),
            ),
        )
    ex.passwords()


def _cancellation(ex: _Extraction) -> None:
    ex.fields["status"] = FormationStatus.CANCELLED
    ex.common()
    ex.dates_from_bounds()
    ex.location()
    reason = _text(ex.data, "cancellation_reason")
    if reason:
        ex.warnings.append(f"Cancellation reason: {reason}")
        ex.extracted.append("cancellation_reason")


def _purchase_order(ex: _Extraction) -> None:
    ex.fields.update(session_type=SessionType.INTRA, status=FormationStatus.CONFIRMED)
    ex.common()
    intra_ref = _text(ex.data, "intra_reference")
    order_ref = _text(ex.data, "order_reference")
    entity = _text(ex.data, "billing_entity")
    if intra_ref or order_ref or entity:
        ex.fields["billing"] = BillingInfo(
            entity=entity or DEFAULT_BILLING_ENTITY,
            intra_reference=intra_ref,
            order_reference=order_ref,
        )
        ex.extracted.extend(
            name
            for name, value in (
                ("intra_reference", intra_ref),
                ("order_reference", order_ref),
                ("billing_entity", entity),
            )
            if value
        )
    ex.text("client", required=False)
    ex.dates_from_bounds()
    ex.set("day_count", _integer(ex.data, "day_count"))
    ex.set("hour_count", _number(ex.data, "hour_count"), required=False)
    ex.location(required=False)
    ex.set("participant_count", _integer(ex.data, "participant_count"), required=False)
    ex.customization()


def _billing_info(ex: _Extraction) -> None:
    ex.common()
    ex.dates_from_bounds()
    ex.set("day_count", _integer(ex.data, "day_count"))
    entity = _text(ex.data, "billing_entity")
    rate = _number(ex.data, "rate")
    cap = _number(ex.data, "expense_cap")
    if entity or rate or cap:
        ex.fields["billing"] = BillingInfo(entity=entity, rate=rate, expense_cap=cap)
        ex.extracted.extend(
            name
            for name, value in (("billing_entity", entity), ("rate", rate), ("expense_cap", cap))
            if value
        )


_CONVERTERS = {
    EmailCategory.INTER_CONFIRMATION: _inter,
    EmailCategory.INTRA_CONFIRMATION: _intra,
    EmailCategory.CANCELLATION: _cancellation,
    EmailCategory.PURCHASE_ORDER: _purchase_order,
    EmailCategory.BILLING_INFO: _billing_info,
}


def not_extractable(category: EmailCategory) -> ExtractionResult:
    return ExtractionResult(warnings=[f"Email type not extractable: {category.value}"])


def parse_extraction_response(text: str, category: EmailCategory) -> ExtractionResult:
    """Turn an extraction answer for a *category* email into a partial formation."""
    converter = _CONVERTERS.get(category)
    if converter is None:
        return not_extractable(category)
    extraction = _Extraction(_load_object(text))
    try:
        converter(extraction)
        return extraction.result()
    except (ArithmeticError, TypeError, ValueError) as exc:
        raise LLMError(f"Unusable extraction answer: {exc}", LLMErrorCode.PARSE_ERROR) from exc
