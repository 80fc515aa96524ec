"""Classify and extract a batch of emails, memoized by the extraction cache."""

from __future__ import annotations

from collections.abc import Callable, Iterable

import structlog
from pydantic import BaseModel, Field

from ..config import LLMConfig
from ..errors import LLMError, LLMErrorCode, StoreError
from ..extraction_cache import ExtractionCache
from ..models import ClassificationResult, ExtractionResult, SourceMessage
from ..store.base import Table
from .client import LLMClient
from .parser import not_extractable, parse_classification_response, parse_extraction_response
from .prompts import (
    CLASSIFICATION_SYSTEM_PROMPT,
    EXTRACTION_SYSTEM_PROMPT,
    build_classification_prompt,
    build_extraction_prompt,
)

logger = structlog.get_logger()


class AnalysisReport(BaseModel):
    analyzed: int = 0
    from_cache: int = 0
    failures: dict[str, str] = Field(default_factory=dict, description="email id -> error")


class EmailAnalyzer:
    """Runs classification then extraction for each email.

    The cache is best-effort: a failing read counts as a miss and a
    failing write is logged.  A message is flagged ``processed`` once its
    analysis is known.
    """

    def __init__(
        self,
        client: LLMClient,
        cache: ExtractionCache,
        messages: Table[SourceMessage],
        config: LLMConfig,
    ) -> None:
        self._client = client
        self._cache = cache
        self._messages = messages
        self._config = config

    async def _cached(self, message: SourceMessage) -> tuple[ClassificationResult, ExtractionResult] | None:
        try:
            entry = await self._cache.get(message.id)
        except StoreError as exc:
            logger.warning("extraction_cache_read_failed", email_id=message.id, error=str(exc))
            return None
        if not self._cache.is_current(entry) or entry.classification is None or entry.extraction is None:
            return None
        return entry.classification, entry.extraction

    async def classify(self, message: SourceMessage) -> ClassificationResult:
        text = await self._client.complete_json(
            CLASSIFICATION_SYSTEM_PROMPT,
            build_classification_prompt(message.subject, message.body),
        )
        return parse_classification_response(text, self._config.min_confidence)

    async def extract(self, message: SourceMessage, classification: ClassificationResult) -> ExtractionResult:
        prompt = build_extraction_prompt(classification.category, message.body)
        if prompt is None:
            return not_extractable(classification.category)
        text = await self._client.complete_json(EXTRACTION_SYSTEM_PROMPT, prompt)
        return parse_extraction_response(text, classification.category)

    async def _remember(
        self,
        message: SourceMessage,
        classification: ClassificationResult,
        extraction: ExtractionResult,
    ) -> None:
        try:
            await self._cache.put_both(message.id, classification, extraction)
        except StoreError as exc:
            logger.warning("extraction_cache_write_failed", email_id=message.id, error=str(exc))

    async def analyze(
        self,
        messages: Iterable[SourceMessage],
        *,
        force: bool = False,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> AnalysisReport:
        """Analyze *messages* one by one.

        A failing email is recorded in ``report.failures`` and the batch
        goes on; only a missing API key stops it, as :class:`LLMError`
        with ``CONFIG_ERROR``.  With *force*, cached analyses are ignored.
        """
        pending = list(messages)
        report = AnalysisReport()

        for index, message in enumerate(pending, start=1):
            analysis = None if force else await self._cached(message)
            if analysis is not None:
                report.from_cache += 1
            else:
                try:
                    classification = await self.classify(message)
                    extraction = await self.extract(message, classification)
                except LLMError as exc:
                    if exc.code is LLMErrorCode.CONFIG_ERROR:
                        raise
                    logger.error("email_analysis_failed", email_id=message.id, code=exc.code.value, error=str(exc))
                    report.failures[message.id] = str(exc)
                    if on_progress is not None:
                        on_progress(index, len(pending))
                    continue
                await self._remember(message, classification, extraction)
                report.analyzed += 1
                logger.info(
                    "email_analyzed",
                    email_id=message.id,
                    category=classification.category.value,
                    confidence=classification.confidence,
                )

            if not message.processed:
                await self._messages.put(message.model_copy(update={"processed": True}))
            if on_progress is not None:
                on_progress(index, len(pending))

        logger.info(
            "analysis_batch_finished",
            analyzed=report.analyzed,
            from_cache=report.from_cache,
            failed=len(report.failures),
        )
        return report

    async def analyze_pending(self, **kwargs) -> AnalysisReport:
        """Analyze every stored message not yet flagged ``processed``."""
        pending = await self._messages.scan(lambda message: not message.processed)
        return await self.analyze(pending, **kwargs)
