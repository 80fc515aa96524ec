"""MIME parsing of fetched emails into :class:`SourceMessage` records."""

from __future__ import annotations

import email
import email.policy
import email.utils
import html
import re
from datetime import UTC

from ..models import SourceMessage, utc_now

_TAG = re.compile(r"<[^>]+>")
_BLOCK_END = re.compile(r"(?i)<br\s*/?>|</(p|div|tr|li|h[1-6])>")
_SCRIPT_STYLE = re.compile(r"(?is)<(script|style)\b.*?</\1>")
_BLANK_LINES = re.compile(r"\n\s*\n+")


def html_to_text(markup: str) -> str:
    """Rough plain-text rendering of an HTML body."""
    text = _SCRIPT_STYLE.sub("", markup)
    text = _BLOCK_END.sub("\n", text)
    text = html.unescape(_TAG.sub("", text))
    lines = (" ".join(line.split()) for line in text.splitlines())
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


class MimeParser:
    """Stateless parser: raw RFC 822 bytes → SourceMessage."""

    def parse(self, raw_bytes: bytes, uid: str = "") -> SourceMessage:
        msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)
        body_text, body_html = self._extract_bodies(msg)

        message_id = str(msg.get("Message-ID", "")).strip() or f"imap-uid-{uid}"
        return SourceMessage(
            id=message_id,
            thread_id=self._thread_id(msg) or message_id,
            sender=str(msg.get("From", "")),
            subject=str(msg.get("Subject", "")),
            date=self._date(msg.get("Date")),
            body=body_text if body_text is not None else html_to_text(body_html or ""),
            body_html=body_html,
        )

    @staticmethod
    def _thread_id(msg: email.message.Message) -> str:
        references = str(msg.get("References", "")).split()
        if references:
            return references[0]
        return str(msg.get("In-Reply-To", "")).strip()

    @staticmethod
    def _date(header: object):
        if not header:
            return utc_now()
        try:
            parsed = email.utils.parsedate_to_datetime(str(header))
        except (TypeError, ValueError):
            return utc_now()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed

    def _extract_bodies(self, msg: email.message.Message) -> tuple[str | None, str | None]:
        """Walk MIME parts and return (plain_text, html_text), attachments skipped."""
        body_text: str | None = None
        body_html: str | None = None

        for part in msg.walk():
            if part.get_content_maintype() == "multipart":
                continue
            if "attachment" in str(part.get("Content-Disposition", "")):
                continue

            content_type = part.get_content_type()
            try:
                payload = part.get_content()
            except (LookupError, ValueError):
                continue
            if not isinstance(payload, str):
                continue
            if content_type == "text/plain" and body_text is None:
                body_text = payload
            elif content_type == "text/html" and body_html is None:
                body_html = payload

        return body_text, body_html
