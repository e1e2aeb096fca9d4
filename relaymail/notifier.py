# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Outbound notification of relayed messages.

A ``NotificationSummary`` carries only display text, the retrieval link
and the extracted code; the message itself stays in the store.
``WebhookNotifier`` posts it as a Discord-compatible embed.  Delivery is
best effort: a failed post raises ``NotifierError`` and is not retried.
"""

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from relaymail.config import NotifierConfig
from relaymail.logging import SecretFilter


logger = logging.getLogger(__name__)

_COLOR_DEFAULT = 0x1B2838
_COLOR_CODE = 0x4CAF50

# Discord rejects embed field values longer than this
_MAX_FIELD_LENGTH = 1024


class NotifierError(Exception):
    """Raised when a notification cannot be delivered."""


@dataclass(frozen=True)
class NotificationSummary:
    """What the notifier is told about a relayed message.

    Attributes:
        sender: Display text of the sender.
        subject: Message subject.
        view_url: Retrieval link including the capability token.
        code: Extracted one-time code.
    """

    sender: str
    subject: str
    view_url: str | None = None
    code: str | None = None


class Notifier(Protocol):
    """Anything that can deliver a ``NotificationSummary``."""

    def notify(self, summary: NotificationSummary) -> None: ...


def _field(name: str, value: str, *, inline: bool) -> dict[str, Any]:
    if len(value) > _MAX_FIELD_LENGTH:
        value = value[: _MAX_FIELD_LENGTH - 3] + "..."
    return {"name": name, "value": value, "inline": inline}


def build_webhook_payload(
    summary: NotificationSummary,
    *,
    username: str,
    avatar_url: str | None = None,
    timestamp: datetime | None = None,
) -> dict[str, Any]:
    """Build the webhook JSON body for a summary.

    Args:
        summary: Summary to announce.
        username: Display name for the post.
        avatar_url: Avatar image for the post and embed footer.
        timestamp: Embed timestamp; defaults to now.

    Returns:
        Discord-compatible webhook payload.
    """
    fields = [
        _field("From", summary.sender or "Unknown", inline=True),
        _field("Subject", summary.subject or "No Subject", inline=True),
    ]
    color = _COLOR_DEFAULT
    if summary.code:
        fields.append(
            _field("Steam Guard Code", f"```{summary.code}```", inline=False)
        )
        color = _COLOR_CODE
    if summary.view_url:
        fields.append(
            _field(
                "Actions",
                f"[View Full Email]({summary.view_url})",
                inline=False,
            )
        )

    footer: dict[str, Any] = {"text": "Mail Relay"}
    if avatar_url:
        footer["icon_url"] = avatar_url

    embed = {
        "title": "New Email Received",
        "color": color,
        "fields": fields,
        "timestamp": (timestamp or datetime.now(UTC)).isoformat(),
        "footer": footer,
    }
    payload: dict[str, Any] = {"username": username, "embeds": [embed]}
    if avatar_url:
        payload["avatar_url"] = avatar_url
    return payload


class WebhookNotifier:
    """Posts summaries to a webhook URL.

    The URL is registered with ``SecretFilter`` since it embeds the
    webhook credential.
    """

    def __init__(
        self,
        webhook_url: str,
        username: str = "Steam Guard",
        avatar_url: str | None = None,
        timeout_seconds: float = 10,
    ) -> None:
        self.webhook_url = webhook_url
        self.username = username
        self.avatar_url = avatar_url
        self.timeout_seconds = timeout_seconds
        SecretFilter.register_secret(webhook_url)

    def notify(self, summary: NotificationSummary) -> None:
        """Post a summary to the webhook.

        Raises:
            NotifierError: If the URL is malformed, the request fails, or
                the webhook answers with an HTTP error.
        """
        payload = build_webhook_payload(
            summary, username=self.username, avatar_url=self.avatar_url
        )
        try:
            request = urllib.request.Request(
                self.webhook_url,
                data=json.dumps(payload).encode(),
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": "relaymail",
                },
                method="POST",
            )
            with urllib.request.urlopen(
                request, timeout=self.timeout_seconds
            ) as resp:
                resp.read()
        except urllib.error.HTTPError as e:
            raise NotifierError(f"Webhook returned HTTP {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise NotifierError(f"Webhook request failed: {e}") from e
        except ValueError as e:
            # Malformed URL; the message echoes it, so keep it out
            raise NotifierError("Webhook URL is not a valid URL") from e

        logger.info(
            "Sent notification for email from %s (code=%s)",
            summary.sender,
            "yes" if summary.code else "no",
        )


class LogNotifier:
    """Notifier used when no webhook is configured; only logs."""

    def notify(self, summary: NotificationSummary) -> None:
        logger.info(
            "Notification (no webhook configured): from=%s subject=%s "
            "code=%s",
            summary.sender,
            summary.subject,
            summary.code,
        )


def create_notifier(config: NotifierConfig) -> Notifier:
    """Build the notifier described by the ``notifier`` config section."""
    if not config.webhook_url:
        logger.warning("No webhook URL configured; notifications are logged")
        return LogNotifier()
    return WebhookNotifier(
        webhook_url=config.webhook_url,
        username=config.username,
        avatar_url=config.avatar_url,
        timeout_seconds=config.timeout_seconds,
    )
