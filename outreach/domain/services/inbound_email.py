"""
Inbound Email Normalizer
Converts provider-specific webhook payloads into a CanonicalEmail

One strategy per provider tag. The tag always comes from the webhook route;
payload shape is never sniffed.
"""
import base64
import binascii
import logging
import re
from datetime import datetime, timezone
from email.utils import getaddresses, parseaddr, parsedate_to_datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from outreach.core.clock import ensure_utc
from outreach.domain.models.inbound_email import CanonicalEmail, EmailProviderTag

logger = logging.getLogger(__name__)

_TAG_PATTERN = re.compile(r"<[^>]+>")
_BLOCK_TAG_PATTERN = re.compile(r"<\s*(br|/p|/div|/li)\s*/?>", re.IGNORECASE)


class InboundEmailRejected(ValueError):
    """Raised when an inbound webhook fails validation."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def extract_address(value: Optional[str]) -> Optional[str]:
    """'Jane Doe <jane@x.com>' -> 'jane@x.com'. None when no address is present."""
    if not value:
        return None
    _, address = parseaddr(str(value))
    address = address.strip().lower()
    return address if "@" in address else None


def extract_addresses(value: Any) -> List[str]:
    """All addresses from a header value or list of values."""
    if not value:
        return []
    values = value if isinstance(value, (list, tuple)) else [value]
    addresses = []
    for _, address in getaddresses([str(v) for v in values]):
        address = address.strip().lower()
        if "@" in address:
            addresses.append(address)
    return addresses


def html_to_text(html: str) -> str:
    text = _BLOCK_TAG_PATTERN.sub("\n", html)
    text = _TAG_PATTERN.sub("", text)
    return "\n".join(line.strip() for line in text.splitlines()).strip()


def parse_timestamp(value: Any, default: datetime) -> datetime:
    """ISO-8601, RFC 2822 or epoch (seconds or milliseconds); default when unparseable."""
    if value is None or value == "":
        return default
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.isdigit()):
        seconds = float(value)
        if seconds > 1e11:
            seconds /= 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            logger.warning(f"Out-of-range inbound email timestamp: {value!r}")
            return default
    text = str(value).strip()
    try:
        return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    try:
        return ensure_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError):
        logger.warning(f"Unparseable inbound email timestamp: {text!r}")
        return default


def _first(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return None


def _body(text: Any, html: Any) -> Optional[str]:
    if text and str(text).strip():
        return str(text).strip()
    if html and str(html).strip():
        return html_to_text(str(html))
    return None


def _normalize_generic(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "from": _first(data, "from", "sender"),
        "to": _first(data, "to", "recipient"),
        "subject": data.get("subject"),
        "body": _body(_first(data, "text", "body"), data.get("html")),
        "timestamp": data.get("timestamp"),
        "message_id": _first(data, "messageId", "message_id"),
    }


def _normalize_zoho(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "from": _first(data, "fromAddress", "from", "sender"),
        "to": _first(data, "toAddress", "to", "recipient"),
        "subject": data.get("subject"),
        "body": _body(_first(data, "textContent", "content", "body", "summary"), data.get("htmlContent")),
        "timestamp": _first(data, "receivedTime", "sentDateInGMT", "timestamp"),
        "message_id": _first(data, "messageId", "message_id"),
    }


def _gmail_header(payload: Dict[str, Any], name: str) -> Optional[str]:
    for header in payload.get("headers") or []:
        if str(header.get("name", "")).lower() == name.lower():
            return header.get("value")
    return None


def _gmail_part_text(part: Dict[str, Any], mime_type: str) -> Optional[str]:
    if part.get("mimeType") == mime_type:
        data = (part.get("body") or {}).get("data")
        if data:
            try:
                padded = data + "=" * (-len(data) % 4)
                return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError):
                logger.warning("Undecodable Gmail message part")
                return None
    for child in part.get("parts") or []:
        found = _gmail_part_text(child, mime_type)
        if found:
            return found
    return None


def _normalize_gmail(data: Dict[str, Any]) -> Dict[str, Any]:
    payload = data.get("payload") or {}
    text = _gmail_part_text(payload, "text/plain") or data.get("text") or data.get("snippet")
    html = _gmail_part_text(payload, "text/html") or data.get("html")
    timestamp = _gmail_header(payload, "Date") or data.get("internalDate") or data.get("timestamp")
    return {
        "from": _gmail_header(payload, "From") or data.get("from"),
        "to": _gmail_header(payload, "To") or data.get("to"),
        "subject": _gmail_header(payload, "Subject") or data.get("subject"),
        "body": _body(text, html),
        "timestamp": timestamp,
        "message_id": _gmail_header(payload, "Message-ID") or data.get("id") or data.get("messageId"),
    }


def _normalize_sendgrid(data: Dict[str, Any]) -> Dict[str, Any]:
    message_id = None
    headers = data.get("headers")
    if isinstance(headers, str):
        match = re.search(r"^Message-ID:\s*(\S+)", headers, re.IGNORECASE | re.MULTILINE)
        if match:
            message_id = match.group(1)
    return {
        "from": data.get("from"),
        "to": data.get("to"),
        "subject": data.get("subject"),
        "body": _body(data.get("text"), data.get("html")),
        "timestamp": data.get("timestamp"),
        "message_id": message_id,
    }


NormalizeStrategy = Callable[[Dict[str, Any]], Dict[str, Any]]


class InboundEmailNormalizer:
    """
    Provider strategy registry plus validation.

    Rejections:
    - unknown provider tag
    - no recipient in the configured inbox set (or no recipient at all)
    - missing sender
    - missing body
    """

    def __init__(self, inbox_addresses: Iterable[str]):
        self.inbox_addresses = {address.strip().lower() for address in inbox_addresses}
        if not self.inbox_addresses:
            raise ValueError("At least one inbox address is required")

        self._strategies: Dict[str, NormalizeStrategy] = {
            EmailProviderTag.GENERIC.value: _normalize_generic,
            EmailProviderTag.ZOHO.value: _normalize_zoho,
            EmailProviderTag.GMAIL.value: _normalize_gmail,
            EmailProviderTag.SENDGRID.value: _normalize_sendgrid,
        }

    def normalize(self, raw: Dict[str, Any], provider: str, now: datetime) -> CanonicalEmail:
        """
        Normalize one webhook payload.

        Raises:
            InboundEmailRejected: If the payload is not a valid inbound email
        """
        strategy = self._strategies.get((provider or "").lower())
        if strategy is None:
            raise InboundEmailRejected(f"Unknown email provider: {provider}")
        if not isinstance(raw, dict):
            raise InboundEmailRejected("Webhook payload must be a JSON object")

        fields = strategy(raw)

        recipients = extract_addresses(fields.get("to"))
        if not recipients:
            raise InboundEmailRejected("Missing recipient address")
        to_address = next((r for r in recipients if r in self.inbox_addresses), None)
        if to_address is None:
            raise InboundEmailRejected(f"Email not for an inbox address: {', '.join(recipients)}")

        from_address = extract_address(fields.get("from"))
        if from_address is None:
            raise InboundEmailRejected("Missing sender address")

        body = fields.get("body")
        if not body:
            raise InboundEmailRejected("Missing email body")

        return CanonicalEmail(
            from_address=from_address,
            to_address=to_address,
            subject=(fields.get("subject") or "No Subject").strip(),
            body=body,
            timestamp=parse_timestamp(fields.get("timestamp"), now),
            message_id=fields.get("message_id"),
            provider=provider.lower(),
        )
