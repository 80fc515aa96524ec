"""Fusion engine: merges analyzed emails into canonical formation records.

Emails are grouped by the natural key ``(extended_code, start_date)`` of
their extraction.  Each group is folded, oldest email first, into either
the existing record for that key or a fresh one.  Merging only ever
enriches a record: empty values never overwrite, lists are unioned, and
a cancellation is permanent.  Running the engine again over its own
output with the same inputs changes nothing.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from pydantic import BaseModel

from ..keys import derive_id, is_valid_key_part, natural_key
from ..models import (
    IGNORED_CATEGORIES,
    ClassificationResult,
    EmailCategory,
    ExtractionResult,
    Formation,
    FormationPatch,
    FormationStatus,
    Participant,
    SourceMessage,
    utc_now,
)
from ..virtual import apply_virtual_location

logger = structlog.get_logger()

# Plain fields copied from a patch whenever the patch carries a value.
_SCALAR_FIELDS = (
    "title",
    "short_code",
    "extended_code",
    "start_date",
    "end_date",
    "session_type",
    "customization_level",
    "client",
    "trainer_password",
    "participant_password",
)

_POSITIVE_FIELDS = ("day_count", "hour_count", "participant_count")


@dataclass
class FusionInput:
    """One analyzed email, ready to be fused."""

    message: SourceMessage
    extraction: ExtractionResult
    classification: ClassificationResult

    @property
    def key_parts(self) -> tuple[str, str] | None:
        patch = self.extraction.formation
        if not is_valid_key_part(patch.extended_code) or not is_valid_key_part(patch.start_date):
            return None
        return patch.extended_code.strip(), patch.start_date.strip()


class FusionStats(BaseModel):
    total_emails: int = 0
    emails_fused: int = 0
    formations_created: int = 0
    formations_updated: int = 0
    cancellations_processed: int = 0
    emails_ignored: int = 0


@dataclass
class FusionResult:
    created: list[Formation] = field(default_factory=list)
    updated: list[Formation] = field(default_factory=list)
    ignored: list[SourceMessage] = field(default_factory=list)
    stats: FusionStats = field(default_factory=FusionStats)


# ---------------------------------------------------------------------------
# Field merge
# ---------------------------------------------------------------------------


def _present(value: object) -> bool:
    return value is not None and value != ""


def _merge_participants(
    current: list[Participant], incoming: list[Participant]
) -> list[Participant]:
    merged = list(current)
    by_email = {p.email.strip().lower(): i for i, p in enumerate(merged) if p.email.strip()}
    anonymous = {p.name.strip().lower() for p in merged if not p.email.strip()}

    for participant in incoming:
        email = participant.email.strip().lower()
        if email:
            if email in by_email:
                merged[by_email[email]] = participant
            else:
                by_email[email] = len(merged)
                merged.append(participant)
            continue
        # No email to key on: keep it unless the same name is already listed.
        name = participant.name.strip().lower()
        if not name or name in anonymous:
            continue
        anonymous.add(name)
        merged.append(participant)
    return merged


def _merge_nested(current: BaseModel | None, incoming: BaseModel | None):
    if incoming is None:
        return current
    present = {k: v for k, v in incoming.model_dump().items() if _present(v)}
    if not present:
        return current
    if current is None:
        return type(incoming)(**present)
    return current.model_copy(update=present)


def merge_fields(target: Formation, patch: FormationPatch) -> Formation:
    """Return *target* enriched with the non-empty values of *patch*.

    Pure: *target* is left untouched and returned as-is when the patch
    brings nothing new.  ``patch.status`` is ignored; only a cancellation
    email changes the status.
    """
    update: dict = {}

    for name in _SCALAR_FIELDS:
        value = getattr(patch, name)
        if _present(value):
            update[name] = value

    for name in _POSITIVE_FIELDS:
        value = getattr(patch, name)
        if value is not None and value > 0:
            update[name] = value

    if patch.location is not None:
        loc_update = {
            name: getattr(patch.location, name)
            for name in ("name", "address", "room")
            if _present(getattr(patch.location, name))
        }
        if patch.location.coordinates is not None and not target.is_cancelled:
            loc_update["coordinates"] = patch.location.coordinates
        if loc_update:
            update["location"] = target.location.model_copy(update=loc_update)

    if patch.dates:
        update["dates"] = sorted(set(target.dates) | {d for d in patch.dates if d})

    if patch.participants:
        participants = _merge_participants(target.participants, patch.participants)
        update["participants"] = participants
        count = update.get("participant_count", target.participant_count)
        update["participant_count"] = max(count, len(participants))

    contact = _merge_nested(target.company_contact, patch.company_contact)
    if contact is not target.company_contact:
        update["company_contact"] = contact
    billing = _merge_nested(target.billing, patch.billing)
    if billing is not target.billing:
        update["billing"] = billing

    changed = {k: v for k, v in update.items() if getattr(target, k) != v}
    if not changed:
        return target
    return target.model_copy(update=changed)


# ---------------------------------------------------------------------------
# Lookup helpers
# ---------------------------------------------------------------------------


def _record_key(formation: Formation) -> str | None:
    if not is_valid_key_part(formation.extended_code) or not is_valid_key_part(
        formation.start_date
    ):
        return None
    return natural_key(formation.extended_code, formation.start_date)


def find_by_key(
    formations: Iterable[Formation], extended_code: str, start_date: str
) -> Formation | None:
    """First formation whose natural key is ``(extended_code, start_date)``."""
    if not is_valid_key_part(extended_code) or not is_valid_key_part(start_date):
        return None
    key = natural_key(extended_code, start_date)
    return next((f for f in formations if _record_key(f) == key), None)


def same_formation(a: Formation, b: Formation) -> bool:
    """True when *a* and *b* share a (usable) natural key."""
    key = _record_key(a)
    return key is not None and key == _record_key(b)


def group_by_key(inputs: Iterable[FusionInput]) -> dict[str, list[FusionInput]]:
    """Group keyable inputs by natural key, in order of first appearance.

    Inputs without a usable code or start date are left out.
    """
    groups: dict[str, list[FusionInput]] = {}
    for item in inputs:
        parts = item.key_parts
        if parts is None:
            continue
        groups.setdefault(natural_key(*parts), []).append(item)
    return groups


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _fold_group(start: Formation, group: list[FusionInput]) -> Formation:
    formation = start
    for item in sorted(group, key=lambda i: i.message.date):
        if item.message.id not in formation.email_ids:
            formation = formation.model_copy(
                update={"email_ids": [*formation.email_ids, item.message.id]}
            )

        code, date = item.key_parts
        patch = item.extraction.formation.model_copy(
            update={"extended_code": code, "start_date": date}
        )
        formation = merge_fields(formation, patch)

        if item.classification.category is EmailCategory.CANCELLATION and not formation.is_cancelled:
            formation = formation.model_copy(update={"status": FormationStatus.CANCELLED})

    return apply_virtual_location(formation)


def fuse_emails(
    inputs: Iterable[FusionInput],
    existing: Iterable[Formation] = (),
    *,
    now: datetime | None = None,
) -> FusionResult:
    """Fuse *inputs* into new or *existing* formations.

    Never raises for a malformed input: emails of an ignored category or
    without a usable extended code and start date end up in
    ``result.ignored``.  *existing* is not modified.
    """
    inputs = list(inputs)
    now = now or utc_now()
    result = FusionResult(stats=FusionStats(total_emails=len(inputs)))
    stats = result.stats

    by_key: dict[str, Formation] = {}
    for formation in existing:
        key = _record_key(formation)
        if key is not None:
            by_key.setdefault(key, formation)

    keyable: list[FusionInput] = []
    for item in inputs:
        if item.classification.category in IGNORED_CATEGORIES or item.key_parts is None:
            result.ignored.append(item.message)
            stats.emails_ignored += 1
            continue
        keyable.append(item)

    for key, group in group_by_key(keyable).items():
        current = by_key.get(key)

        if current is not None:
            start = current.model_copy(deep=True)
            merged = _fold_group(start, group)
            if merged != start:
                merged = merged.model_copy(update={"updated_at": now})
            result.updated.append(merged)
            stats.formations_updated += 1
            if merged.is_cancelled and not current.is_cancelled:
                stats.cancellations_processed += 1
        else:
            code, date = group[0].key_parts
            start = Formation(
                id=derive_id(code, date),
                extended_code=code,
                start_date=date,
                created_at=now,
                updated_at=now,
            )
            merged = _fold_group(start, group)
            result.created.append(merged)
            stats.formations_created += 1
            if merged.is_cancelled:
                stats.cancellations_processed += 1

        stats.emails_fused += len(group) - 1

    logger.info(
        "fusion_completed",
        total=stats.total_emails,
        created=stats.formations_created,
        updated=stats.formations_updated,
        fused=stats.emails_fused,
        cancelled=stats.cancellations_processed,
        ignored=stats.emails_ignored,
    )
    return result
