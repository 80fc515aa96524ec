"""Async IMAP client wrapping stdlib imaplib with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import imaplib
from dataclasses import dataclass
from datetime import datetime

import structlog

from ..config import ImapConfig

logger = structlog.get_logger()


@dataclass
class FetchedEmail:
    """Raw RFC 822 bytes of one message, with its mailbox UID."""

    uid: str
    raw_bytes: bytes


class AsyncImapClient:
    """Reads the training mailbox.

    All blocking ``imaplib`` calls run in ``asyncio.to_thread()``.  Usable
    as an async context manager that connects and logs out.
    """

    def __init__(self, config: ImapConfig) -> None:
        self._config = config
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None

    async def __aenter__(self) -> AsyncImapClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    async def connect(self) -> None:
        await asyncio.to_thread(self._connect_sync)
        logger.info("imap_connected", host=self._config.host, mailbox=self._config.mailbox)

    def _connect_sync(self) -> None:
        if self._config.use_ssl:
            self._conn = imaplib.IMAP4_SSL(self._config.host, self._config.port)
        else:
            self._conn = imaplib.IMAP4(self._config.host, self._config.port)
        self._conn.login(self._config.username, self._config.password.get_secret_value())
        # Read-only: fetching must not flag messages as seen.
        self._conn.select(self._config.mailbox, readonly=True)

    async def disconnect(self) -> None:
        if self._conn is not None:
            await asyncio.to_thread(self._disconnect_sync)
            self._conn = None
            logger.info("imap_disconnected")

    def _disconnect_sync(self) -> None:
        assert self._conn is not None
        try:
            self._conn.close()
        except imaplib.IMAP4.error:
            pass
        try:
            self._conn.logout()
        except imaplib.IMAP4.error:
            pass

    async def fetch(self, since: datetime | None = None) -> list[FetchedEmail]:
        """Every message of the mailbox, or those received on or after *since*.

        IMAP date search is day-granular.
        """
        assert self._conn is not None, "Not connected"
        criteria = f"SINCE {since.strftime('%d-%b-%Y')}" if since is not None else "ALL"
        return await asyncio.to_thread(self._search_and_fetch, criteria)

    def _search_and_fetch(self, criteria: str) -> list[FetchedEmail]:
        assert self._conn is not None
        status, data = self._conn.uid("SEARCH", None, criteria)
        if status != "OK" or not data or not data[0]:
            return []

        results: list[FetchedEmail] = []
        for uid_bytes in data[0].split():
            uid = uid_bytes.decode()
            status, msg_data = self._conn.uid("FETCH", uid, "(RFC822)")
            if status != "OK" or not msg_data or not msg_data[0]:
                logger.warning("imap_fetch_failed", uid=uid, status=status)
                continue
            results.append(FetchedEmail(uid=uid, raw_bytes=msg_data[0][1]))  # type: ignore[index]

        logger.debug("imap_fetch_complete", criteria=criteria, fetched=len(results))
        return results
