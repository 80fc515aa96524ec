"""Fusion orchestrator: runs one fusion pass end to end.

Loads the analyzed emails, looks up their analyses in the extraction
cache, fuses them with the stored formations, persists the result and
optionally geocodes new locations.  Progress is reported through a
callback as :class:`FusionProgress` snapshots; a set ``stop_event`` ends
the run early without undoing what was already written.
"""

from __future__ import annotations

import abc
import asyncio
from collections.abc import Callable
from enum import Enum

import structlog
from pydantic import BaseModel

from ..errors import ProviderNotConfiguredError
from ..extraction_cache import ExtractionCache
from ..geocoding.cache import GeocodingCache
from ..models import IGNORED_CATEGORIES, Formation, SourceMessage
from ..store.base import Table
from .engine import FusionInput, FusionResult, FusionStats, fuse_emails

logger = structlog.get_logger()


class FusionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    FUSING = "fusing"
    GEOCODING = "geocoding"
    DONE = "done"
    ERROR = "error"


class FusionProgress(BaseModel):
    """Snapshot of a running fusion pass."""

    status: FusionStatus = FusionStatus.IDLE
    message: str = ""
    emails_analyzed: int = 0
    formations_created: int = 0
    formations_updated: int = 0
    emails_fused: int = 0
    emails_ignored: int = 0
    geocoding_current: int = 0
    geocoding_total: int = 0
    error_message: str | None = None


class FusionRunStats(FusionStats):
    emails_without_analysis: int = 0
    geocoding_succeeded: int = 0
    geocoding_failed: int = 0
    geocoding_error: str | None = None


class FusionReport(BaseModel):
    success: bool
    stats: FusionRunStats
    error: str | None = None


class AnalyzedCount(BaseModel):
    total: int
    with_cache: int


class MessageSource(abc.ABC):
    """Where the orchestrator finds the emails already analyzed by the LLM."""

    @abc.abstractmethod
    async def list_analyzed_messages(self) -> list[SourceMessage]:
        """Every message whose ``processed`` flag is set."""


class StoreMessageSource(MessageSource):
    """Reads analyzed messages from the raw-message table."""

    def __init__(self, table: Table[SourceMessage]) -> None:
        self._table = table

    async def list_analyzed_messages(self) -> list[SourceMessage]:
        return await self._table.scan(lambda message: message.processed)


class FusionOrchestrator:
    """Drives one pass: load, fuse, persist, geocode.

    Not reentrant; build one orchestrator per concurrent run.
    """

    def __init__(
        self,
        message_source: MessageSource,
        cache: ExtractionCache,
        formations: Table[Formation],
        geocoder: GeocodingCache | None = None,
        on_progress: Callable[[FusionProgress], None] | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        self._source = message_source
        self._cache = cache
        self._formations = formations
        self._geocoder = geocoder
        self._on_progress = on_progress
        self._stop_event = stop_event
        self._progress = FusionProgress()

    @property
    def progress(self) -> FusionProgress:
        return self._progress.model_copy()

    def _emit(self, **changes) -> None:
        self._progress = self._progress.model_copy(update=changes)
        if self._on_progress is not None:
            self._on_progress(self._progress.model_copy())

    def _stop_requested(self) -> bool:
        return self._stop_event is not None and self._stop_event.is_set()

    def _stopped(self, stats: FusionRunStats) -> FusionReport:
        logger.info("fusion_stopped", status=self._progress.status.value)
        self._emit(status=FusionStatus.DONE, message="Fusion stopped on request; completed work kept.")
        return FusionReport(success=True, stats=stats)

    async def count_analyzed(self) -> AnalyzedCount:
        """Analyzed emails, and how many of them have a usable cached analysis."""
        messages = await self._source.list_analyzed_messages()
        if not messages:
            return AnalyzedCount(total=0, with_cache=0)
        analyses = await self._cache.get_analyses(m.id for m in messages)
        return AnalyzedCount(total=len(messages), with_cache=len(analyses))

    async def run(self, geocode: bool = True) -> FusionReport:
        """Run a full pass.

        Never raises: a failure, persistence failures included, ends the
        run in the ``error`` state and is reported in the returned report.
        """
        self._progress = FusionProgress()
        stats = FusionRunStats()
        logger.info("fusion_started", geocode=geocode)
        try:
            return await self._run(stats, geocode)
        except Exception as exc:
            logger.exception("fusion_failed", error=str(exc))
            self._emit(
                status=FusionStatus.ERROR,
                message=f"Error: {exc}",
                error_message=str(exc),
            )
            return FusionReport(success=False, stats=stats, error=str(exc))

    async def _run(self, stats: FusionRunStats, geocode: bool) -> FusionReport:
        self._emit(status=FusionStatus.LOADING, message="Loading analyzed emails...")
        messages = await self._source.list_analyzed_messages()
        if not messages:
            self._emit(status=FusionStatus.DONE, message="No analyzed emails to fuse.")
            return FusionReport(success=True, stats=stats)

        # every loaded message, with or without a usable analysis
        stats.total_emails = len(messages)
        self._emit(
            emails_analyzed=len(messages),
            message=f"{len(messages)} analyzed emails found",
        )
        if self._stop_requested():
            return self._stopped(stats)

        analyses = await self._cache.get_analyses(m.id for m in messages)
        inputs: list[FusionInput] = []
        for message in messages:
            analysis = analyses.get(message.id)
            if analysis is None:
                stats.emails_without_analysis += 1
                continue
            classification, extraction = analysis
            if classification.category in IGNORED_CATEGORIES:
                stats.emails_ignored += 1
                continue
            inputs.append(FusionInput(message, extraction, classification))

        if stats.emails_without_analysis:
            logger.info("fusion_emails_without_analysis", count=stats.emails_without_analysis)

        self._emit(
            status=FusionStatus.FUSING,
            message=f"Fusing {len(inputs)} emails...",
            emails_ignored=stats.emails_ignored,
        )
        existing = await self._formations.scan()
        result = fuse_emails(inputs, existing)
        self._merge_stats(stats, result)
        self._emit(
            formations_created=stats.formations_created,
            formations_updated=stats.formations_updated,
            emails_fused=stats.emails_fused,
            emails_ignored=stats.emails_ignored,
        )

        for formation in [*result.created, *result.updated]:
            await self._formations.put(formation)
        logger.info(
            "fusion_persisted",
            created=len(result.created),
            updated=len(result.updated),
        )

        if geocode and self._geocoder is not None:
            if self._stop_requested():
                return self._stopped(stats)
            if not await self._geocode(result, stats):
                return self._stopped(stats)

        message = (
            f"Fusion complete. {stats.formations_created} created, "
            f"{stats.formations_updated} updated."
        )
        if stats.geocoding_error:
            message += f" Geocoding skipped: {stats.geocoding_error}"
        self._emit(status=FusionStatus.DONE, message=message)
        logger.info("fusion_finished", **stats.model_dump())
        return FusionReport(success=True, stats=stats)

    @staticmethod
    def _merge_stats(stats: FusionRunStats, result: FusionResult) -> None:
        stats.emails_fused = result.stats.emails_fused
        stats.formations_created = result.stats.formations_created
        stats.formations_updated = result.stats.formations_updated
        stats.cancellations_processed = result.stats.cancellations_processed
        stats.emails_ignored += result.stats.emails_ignored

    async def _geocode(self, result: FusionResult, stats: FusionRunStats) -> bool:
        """Geocode fused formations that still lack coordinates.

        Returns False when stopped before the end.
        """
        pending = [
            f
            for f in [*result.created, *result.updated]
            if f.location.address and f.location.coordinates is None and not f.is_cancelled
        ]
        if not pending:
            return True

        self._emit(
            status=FusionStatus.GEOCODING,
            geocoding_total=len(pending),
            message=f"Geocoding {len(pending)} addresses...",
        )
        for index, formation in enumerate(pending, start=1):
            if self._stop_requested():
                return False
            try:
                coordinates = await self._geocoder.resolve(formation.location.address)
            except ProviderNotConfiguredError as exc:
                logger.error("fusion_geocoding_not_configured", error=str(exc))
                stats.geocoding_failed += len(pending) - index + 1
                stats.geocoding_error = str(exc)
                self._emit(message=f"Geocoding skipped: {exc}")
                return True
            except Exception as exc:
                logger.warning(
                    "fusion_geocoding_failed",
                    formation_id=formation.id,
                    address=formation.location.address,
                    error=str(exc),
                )
                coordinates = None

            if coordinates is None:
                stats.geocoding_failed += 1
            else:
                location = formation.location.model_copy(update={"coordinates": coordinates})
                await self._formations.put(formation.model_copy(update={"location": location}))
                stats.geocoding_succeeded += 1

            self._emit(
                geocoding_current=index,
                message=f"Geocoding {index}/{len(pending)}...",
            )
        return True
