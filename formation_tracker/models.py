"""Data models shared by the caches, the fusion engine and the collaborators.

Every persisted shape is a pydantic model serialized to plain JSON, so the
same classes describe the raw-message, formation, extraction-cache and
geocache tables.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class EmailCategory(str, Enum):
    """Kind of training email, as decided by the classifier."""

    INTER_CONFIRMATION = "convocation-inter"
    INTRA_CONFIRMATION = "convocation-intra"
    CANCELLATION = "annulation"
    PURCHASE_ORDER = "bon-commande"
    BILLING_INFO = "info-facturation"
    REMINDER = "rappel"
    INTRA_REQUEST = "demande-intra"
    OTHER = "autre"


#: Categories that never contribute to a formation record.
IGNORED_CATEGORIES = frozenset(
    {EmailCategory.INTRA_REQUEST, EmailCategory.REMINDER, EmailCategory.OTHER}
)


class FormationStatus(str, Enum):
    CONFIRMED = "confirmée"
    CANCELLED = "annulée"


class SessionType(str, Enum):
    INTER = "inter"
    INTRA = "intra"


class CustomizationLevel(str, Enum):
    STANDARD = "standard"
    SPECIFIC = "spécifique"
    ULTRA_SPECIFIC = "ultra-spécifique"


# ---------------------------------------------------------------------------
# Source emails and LLM results
# ---------------------------------------------------------------------------


class SourceMessage(BaseModel):
    """One ingested email.

    Immutable: the only field that ever changes is ``processed``, and that
    is done by storing a copy (``model_copy(update={"processed": True})``).
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Stable unique message identifier")
    thread_id: str = Field(default="", description="Conversation/thread identifier")
    sender: str = Field(default="", description="From header")
    subject: str = Field(default="", description="Subject header")
    date: AwareDatetime = Field(description="Reception timestamp")
    body: str = Field(default="", description="Plain-text body")
    body_html: str | None = Field(default=None, description="HTML body, if any")
    processed: bool = Field(default=False, description="Already analyzed by the LLM")


class ClassificationResult(BaseModel):
    category: EmailCategory
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""


class Coordinates(BaseModel):
    lat: float
    lng: float


class Location(BaseModel):
    name: str = ""
    address: str = ""
    coordinates: Coordinates | None = None
    room: str | None = None


class LocationPatch(BaseModel):
    name: str | None = None
    address: str | None = None
    coordinates: Coordinates | None = None
    room: str | None = None


class Participant(BaseModel):
    name: str = ""
    email: str = ""


class CompanyContact(BaseModel):
    """On-site contact for intra sessions."""

    name: str | None = None
    phone: str | None = None
    email: str | None = None


class BillingInfo(BaseModel):
    """Who to invoice and with which references."""

    entity: str | None = None
    intra_reference: str | None = None
    order_reference: str | None = None
    rate: float | None = None
    expense_cap: float | None = None


# ---------------------------------------------------------------------------
# Canonical record
# ---------------------------------------------------------------------------


class Formation(BaseModel):
    """Canonical training-session record merged from one or more emails.

    Identified by the natural key ``(extended_code, start_date)``; ``id``
    is derived from that pair by :func:`formation_tracker.keys.derive_id`.
    """

    id: str = Field(description="Derived, stable storage key")
    title: str = ""
    short_code: str | None = Field(default=None, description="Course code, e.g. BOA")
    extended_code: str = Field(default="", description="Session code, e.g. GIAPA1")
    status: FormationStatus = FormationStatus.CONFIRMED
    start_date: str = Field(default="", description="ISO 8601 date")
    end_date: str = Field(default="", description="ISO 8601 date")
    dates: list[str] = Field(default_factory=list, description="All session days, sorted")
    day_count: int = 0
    hour_count: float | None = None
    location: Location = Field(default_factory=Location)
    session_type: SessionType = SessionType.INTER
    customization_level: CustomizationLevel = CustomizationLevel.STANDARD
    client: str | None = None
    participant_count: int = 0
    participants: list[Participant] = Field(default_factory=list)
    trainer_password: str | None = None
    participant_password: str | None = None
    company_contact: CompanyContact | None = None
    billing: BillingInfo | None = None
    email_ids: list[str] = Field(default_factory=list, description="Contributing emails")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_cancelled(self) -> bool:
        return self.status is FormationStatus.CANCELLED


class FormationPatch(BaseModel):
    """Partial view of a :class:`Formation` carried by one extraction.

    Every field is optional; an email rarely mentions everything.
    """

    title: str | None = None
    short_code: str | None = None
    extended_code: str | None = None
    status: FormationStatus | None = None
    start_date: str | None = None
    end_date: str | None = None
    dates: list[str] | None = None
    day_count: int | None = None
    hour_count: float | None = None
    location: LocationPatch | None = None
    session_type: SessionType | None = None
    customization_level: CustomizationLevel | None = None
    client: str | None = None
    participant_count: int | None = None
    participants: list[Participant] | None = None
    trainer_password: str | None = None
    participant_password: str | None = None
    company_contact: CompanyContact | None = None
    billing: BillingInfo | None = None


class ExtractionResult(BaseModel):
    formation: FormationPatch = Field(default_factory=FormationPatch)
    fields_extracted: list[str] = Field(default_factory=list)
    fields_missing: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Cache entries
# ---------------------------------------------------------------------------


class CacheEntry(BaseModel):
    """Memoized LLM analysis of one email.

    Usable only while ``model_version`` equals the active version; stale
    entries stay in the table until explicitly invalidated.
    """

    email_id: str
    classification: ClassificationResult | None = None
    extraction: ExtractionResult | None = None
    cached_at: datetime = Field(default_factory=utc_now)
    model_version: str


class GeocacheEntry(BaseModel):
    """Resolved (or known-unresolvable) address.

    ``coordinates is None`` is a cached failure: the provider is not asked
    again until the entry is cleared.
    """

    address: str = Field(description="Normalized address (cache key)")
    coordinates: Coordinates | None = None
    provider: str = Field(description="Provider that produced the entry")
    cached_at: datetime = Field(default_factory=utc_now)
