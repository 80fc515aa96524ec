"""Copies new mailbox messages into the raw-message table."""

from __future__ import annotations

from datetime import datetime

import structlog
from pydantic import BaseModel

from ..models import SourceMessage
from ..store.base import Table
from .imap_client import AsyncImapClient
from .parser import MimeParser

logger = structlog.get_logger()


class IngestReport(BaseModel):
    fetched: int = 0
    stored: int = 0
    already_known: int = 0
    unparseable: int = 0


class MailIngestor:
    """Stores messages not seen before, unanalyzed.

    Known messages are left alone so their ``processed`` flag survives a
    re-ingest.
    """

    def __init__(
        self,
        client: AsyncImapClient,
        messages: Table[SourceMessage],
        parser: MimeParser | None = None,
    ) -> None:
        self._client = client
        self._messages = messages
        self._parser = parser or MimeParser()

    async def ingest(self, since: datetime | None = None) -> IngestReport:
        fetched = await self._client.fetch(since)
        report = IngestReport(fetched=len(fetched))

        for item in fetched:
            try:
                message = self._parser.parse(item.raw_bytes, item.uid)
            except ValueError as exc:
                logger.warning("email_parse_failed", uid=item.uid, error=str(exc))
                report.unparseable += 1
                continue

            if await self._messages.get(message.id) is not None:
                report.already_known += 1
                continue
            await self._messages.put(message)
            report.stored += 1

        logger.info("mail_ingested", **report.model_dump())
        return report
