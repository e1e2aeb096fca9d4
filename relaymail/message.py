# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Inbound message model and RFC 5322 parsing.

``parse_message`` turns raw bytes received over SMTP into an
``InboundMessage``: decoded headers, the plain-text and HTML bodies, and
the sender address used by the filter.
"""

import logging
import re
from dataclasses import dataclass, field
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parseaddr, parsedate_to_datetime
from typing import Any


logger = logging.getLogger(__name__)

# Strict addr-spec check applied to the parsed From address
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9.-]+$")


def extract_address(value: str | None) -> str | None:
    """Extract a lower-cased email address from a header value.

    Handles bare addresses and ``Name <user@example.com>``.

    Args:
        value: Raw header value.

    Returns:
        Lower-cased address, or None if no valid address is present.
    """
    if not value:
        return None
    _, addr = parseaddr(value)
    addr = addr.strip()
    if not addr or not _EMAIL_RE.match(addr):
        return None
    return addr.lower()


@dataclass
class InboundMessage:
    """A parsed message as delivered by the inbound transport.

    Attributes:
        sender: Display text of the From header (e.g. ``Steam
            <noreply@steampowered.com>``).
        sender_address: Lower-cased sender address, or None when the From
            header carries no usable address.
        recipient: Display text of the To header or envelope recipient.
        subject: Decoded subject, or None if absent.
        date: Date header as ISO 8601 when parseable, else as delivered.
        text: Plain-text body.
        html: HTML body.
        headers: Decoded header values keyed by header name.
        size: Approximate size in bytes.
    """

    sender: str = ""
    sender_address: str | None = None
    recipient: str = ""
    subject: str | None = None
    date: str | None = None
    text: str | None = None
    html: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    size: int = 0

    def __post_init__(self) -> None:
        if self.sender_address is None:
            self.sender_address = extract_address(self.sender)
        if not self.size:
            # Same approximation the size ceiling was tuned against
            self.size = len(self.text or "") + len(self.html or "")

    @property
    def sender_domain(self) -> str | None:
        """Domain part of the sender address, lower-cased."""
        if not self.sender_address or "@" not in self.sender_address:
            return None
        return self.sender_address.rsplit("@", 1)[1]

    def to_content(self) -> dict[str, Any]:
        """JSON-compatible mapping persisted as the stored content."""
        return {
            "from": self.sender,
            "to": self.recipient,
            "subject": self.subject,
            "date": self.date,
            "text": self.text,
            "html": self.html,
            "headers": dict(self.headers),
        }

    def summary_metadata(self) -> dict[str, Any]:
        """Denormalized summary persisted alongside the content."""
        return {
            "from": self.sender,
            "subject": self.subject,
            "date": self.date,
        }


def _normalize_date(value: str | None) -> str | None:
    """Convert a Date header to ISO 8601, keeping unparseable values."""
    if not value:
        return None
    value = str(value)
    try:
        return parsedate_to_datetime(value).isoformat()
    except (TypeError, ValueError):
        logger.debug("Unparseable Date header: %s", value[:100])
        return value


def _body_part(message: EmailMessage, subtype: str) -> str | None:
    """Return the decoded body of the preferred part of a given subtype."""
    part = message.get_body(preferencelist=(subtype,))
    if part is None:
        return None
    try:
        return part.get_content()
    except (LookupError, UnicodeDecodeError) as e:
        # Unknown or lying charset: fall back to a lossy decode
        logger.warning("Failed to decode text/%s part: %s", subtype, e)
        payload = part.get_payload(decode=True)
        if isinstance(payload, bytes):
            return payload.decode("utf-8", errors="replace")
        return None


def parse_message(
    raw: bytes,
    *,
    envelope_from: str | None = None,
    envelope_to: str | None = None,
) -> InboundMessage:
    """Parse raw RFC 5322 bytes into an ``InboundMessage``.

    Args:
        raw: Message bytes as received.
        envelope_from: SMTP ``MAIL FROM`` address, used when the message
            has no From header.
        envelope_to: First SMTP ``RCPT TO`` address, used when the
            message has no To header.

    Returns:
        Parsed message. ``size`` is the length of ``raw``.
    """
    message = BytesParser(policy=policy.default).parsebytes(raw)
    assert isinstance(message, EmailMessage)

    headers: dict[str, str] = {}
    for name, value in message.items():
        # Repeated headers (e.g. Received) are joined in order
        if name in headers:
            headers[name] = f"{headers[name]}\n{value}"
        else:
            headers[name] = str(value)

    sender = str(message.get("From", "")) or (envelope_from or "")
    recipient = str(message.get("To", "")) or (envelope_to or "")
    subject = message.get("Subject")

    parsed = InboundMessage(
        sender=sender,
        recipient=recipient,
        subject=str(subject) if subject is not None else None,
        date=_normalize_date(message.get("Date")),
        text=_body_part(message, "plain"),
        html=_body_part(message, "html"),
        headers=headers,
        size=len(raw),
    )
    logger.debug(
        "Parsed message from %s (%d bytes, text=%s, html=%s)",
        parsed.sender_address,
        parsed.size,
        parsed.text is not None,
        parsed.html is not None,
    )
    return parsed
