"""Extraction cache: memoized LLM classification + extraction per email.

Entries are tagged with the model version that produced them.  Readers
only ever see entries of the current version; older entries stay in the
table, inert, until :meth:`ExtractionCache.invalidate_stale` removes them.
"""

from __future__ import annotations

from collections.abc import Iterable

import structlog

from .models import CacheEntry, ClassificationResult, ExtractionResult, utc_now
from .store.base import Table

logger = structlog.get_logger()


class ExtractionCache:
    """Model-version-aware cache over a :class:`CacheEntry` table.

    The cache never decides whether the LLM should be called: failures
    propagate and the caller picks between failing and recomputing.
    """

    def __init__(self, table: Table[CacheEntry], model_version: str) -> None:
        self._table = table
        self._model_version = model_version

    @property
    def model_version(self) -> str:
        return self._model_version

    def is_current(self, entry: CacheEntry | None) -> bool:
        return entry is not None and entry.model_version == self._model_version

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, email_id: str) -> CacheEntry | None:
        """Raw entry for *email_id*, whatever its model version."""
        return await self._table.get(email_id)

    async def _current_entries(self, email_ids: Iterable[str]) -> list[CacheEntry]:
        entries = await self._table.bulk_get(list(email_ids))
        return [entry for entry in entries if entry is not None and self.is_current(entry)]

    async def get_classifications(
        self, email_ids: Iterable[str]
    ) -> dict[str, ClassificationResult]:
        return {
            entry.email_id: entry.classification
            for entry in await self._current_entries(email_ids)
            if entry.classification is not None
        }

    async def get_extractions(self, email_ids: Iterable[str]) -> dict[str, ExtractionResult]:
        return {
            entry.email_id: entry.extraction
            for entry in await self._current_entries(email_ids)
            if entry.extraction is not None
        }

    async def get_analyses(
        self, email_ids: Iterable[str]
    ) -> dict[str, tuple[ClassificationResult, ExtractionResult]]:
        """Emails with both a classification and an extraction at the current version."""
        return {
            entry.email_id: (entry.classification, entry.extraction)
            for entry in await self._current_entries(email_ids)
            if entry.classification is not None and entry.extraction is not None
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def put_classification(self, email_id: str, classification: ClassificationResult) -> None:
        existing = await self._table.get(email_id)
        if existing is None:
            entry = CacheEntry(
                email_id=email_id,
                classification=classification,
                model_version=self._model_version,
            )
        else:
            entry = existing.model_copy(
                update={
                    "classification": classification,
                    "cached_at": utc_now(),
                    "model_version": self._model_version,
                }
            )
        await self._table.put(entry)

    async def put_extraction(self, email_id: str, extraction: ExtractionResult) -> None:
        existing = await self._table.get(email_id)
        if existing is None:
            entry = CacheEntry(
                email_id=email_id,
                extraction=extraction,
                model_version=self._model_version,
            )
        else:
            entry = existing.model_copy(
                update={
                    "extraction": extraction,
                    "cached_at": utc_now(),
                    "model_version": self._model_version,
                }
            )
        await self._table.put(entry)

    async def put_both(
        self,
        email_id: str,
        classification: ClassificationResult,
        extraction: ExtractionResult | None,
    ) -> None:
        """Replace the whole entry, whatever was cached before."""
        await self._table.put(
            CacheEntry(
                email_id=email_id,
                classification=classification,
                extraction=extraction,
                model_version=self._model_version,
            )
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def invalidate_stale(self) -> int:
        """Delete every entry produced by another model version."""
        stale = await self._table.scan(lambda entry: not self.is_current(entry))
        await self._table.bulk_delete(entry.email_id for entry in stale)
        logger.info(
            "extraction_cache_invalidated",
            removed=len(stale),
            model_version=self._model_version,
        )
        return len(stale)

    async def delete(self, email_id: str) -> None:
        await self._table.delete(email_id)

    async def clear(self) -> None:
        await self._table.clear()

    async def count(self) -> int:
        return await self._table.count()
