"""Mailbox collaborator: IMAP retrieval and MIME parsing."""

from .imap_client import AsyncImapClient, FetchedEmail
from .ingest import IngestReport, MailIngestor
from .parser import MimeParser, html_to_text

__all__ = [
    "AsyncImapClient",
    "FetchedEmail",
    "IngestReport",
    "MailIngestor",
    "MimeParser",
    "html_to_text",
]
