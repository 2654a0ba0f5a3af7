"""
Email Normalizer

Thin, pure adapters turning provider webhook payloads into the standard
InboundEmail envelope consumed by the referral pipeline:

- Generic JSON webhooks (already in envelope shape)
- Postmark inbound webhooks
- Microsoft Graph (Microsoft 365) messages
"""

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

from bs4 import BeautifulSoup

from .models import InboundEmail

_NON_CONTENT_TAGS = ["script", "style", "head", "title", "meta"]
_BLOCK_TAGS = ["p", "div", "li", "tr", "h1", "h2", "h3", "h4", "h5", "h6", "table", "ul", "ol"]
_SPACE_RE = re.compile(r"[ \t\xa0]+")


def strip_html(markup: str) -> str:
    """
    Convert an HTML body to plain text.

    Script, style and head content is dropped. Block elements and <br>
    end a line so labeled lines ("Patient: ...") stay on their own line.
    """
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup.find_all(_NON_CONTENT_TAGS):
        tag.decompose()
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.append("\n")

    text = soup.get_text()
    lines = [_SPACE_RE.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line).strip()


def _parse_timestamp(value: Optional[str]) -> datetime:
    """Parse ISO 8601 or RFC 2822 dates; fall back to now (UTC)."""
    if not value:
        return datetime.now(timezone.utc)
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)


def normalize_generic(payload: dict[str, Any], provider: Optional[str] = None) -> InboundEmail:
    """
    Validate a payload that is already in envelope shape.

    Args:
        payload: JSON body with from/to/subject/text/html/timestamp/messageId
        provider: Overrides payload["provider"] when given (e.g. from a query parameter)

    Returns:
        Normalized envelope
    """
    data = dict(payload)
    if provider:
        data["provider"] = provider
    return InboundEmail.model_validate(data)


def normalize_postmark(payload: dict[str, Any]) -> InboundEmail:
    """Transform a Postmark inbound webhook payload."""
    from_full = payload.get("FromFull") or {}
    to_full = payload.get("ToFull") or []

    return InboundEmail(
        from_address=from_full.get("Email") or payload.get("From") or "",
        to_address=(to_full[0].get("Email") if to_full else None) or payload.get("To") or "",
        subject=payload.get("Subject") or "",
        text=payload.get("TextBody"),
        html=payload.get("HtmlBody"),
        timestamp=_parse_timestamp(payload.get("Date")),
        message_id=payload.get("MessageID") or "",
        provider="postmark",
    )


def normalize_microsoft(payload: dict[str, Any]) -> InboundEmail:
    """Transform a Microsoft Graph message resource."""
    sender = (payload.get("from") or payload.get("sender") or {}).get("emailAddress") or {}
    recipients = payload.get("toRecipients") or []
    body = payload.get("body") or {}
    is_html = (body.get("contentType") or "").lower() == "html"

    to_address = ""
    if recipients:
        to_address = (recipients[0].get("emailAddress") or {}).get("address") or ""

    return InboundEmail(
        from_address=sender.get("address") or "",
        to_address=to_address or payload.get("to") or "",
        subject=payload.get("subject") or "",
        text=None if is_html else (body.get("content") or payload.get("bodyPreview")),
        html=body.get("content") if is_html else None,
        timestamp=_parse_timestamp(payload.get("receivedDateTime") or payload.get("sentDateTime")),
        message_id=payload.get("id") or payload.get("internetMessageId") or "",
        provider="microsoft",
    )
