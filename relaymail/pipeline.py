# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Inbound message pipeline: classify, extract, store, notify.

``RelayPipeline.process`` is transport-agnostic.  It is called by the
SMTP handler with a parsed message and reports what happened; storage
failures (including ``CapacityError``) propagate so the transport can
refuse the delivery, while notifier failures are logged and swallowed
since the message is already safely stored.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from relaymail.codes import CodeExtractor
from relaymail.filtering import FilterEngine
from relaymail.message import InboundMessage
from relaymail.notifier import NotificationSummary, Notifier, NotifierError
from relaymail.storage import EmailStore


logger = logging.getLogger(__name__)


class ProcessStatus(Enum):
    """Outcome of processing one inbound message."""

    DROPPED = "dropped"
    STORED = "stored"


@dataclass(frozen=True)
class ProcessResult:
    """Result of ``RelayPipeline.process``.

    Attributes:
        status: Whether the message was dropped or stored.
        email_id: Id of the stored record.
        code: Extracted one-time code.
        notified: Whether the notifier accepted the summary.
    """

    status: ProcessStatus
    email_id: str | None = None
    code: str | None = None
    notified: bool = False


def build_view_url(base_url: str, email_id: str, token: str) -> str:
    """Return the retrieval link for a stored message."""
    return f"{base_url.rstrip('/')}/view-email/{email_id}?token={token}"


class RelayPipeline:
    """Wires the filter, extractor, store and notifier together."""

    def __init__(
        self,
        filter_engine: FilterEngine,
        code_extractor: CodeExtractor,
        store: EmailStore,
        notifier: Notifier,
        base_url: str,
    ) -> None:
        self.filter_engine = filter_engine
        self.code_extractor = code_extractor
        self.store = store
        self.notifier = notifier
        self.base_url = base_url

    def extract_code(self, message: InboundMessage) -> str | None:
        """Extract a code from the text body, falling back to HTML."""
        code = self.code_extractor.extract(message.text)
        if code is None and message.html:
            code = self.code_extractor.extract(message.html, is_html=True)
        return code

    def process(self, message: InboundMessage) -> ProcessResult:
        """Run one message through the pipeline.

        Args:
            message: Parsed inbound message.

        Returns:
            What happened to the message.

        Raises:
            CapacityError: If the store refused the write for lack of
                free space.
            StorageError: If the message could not be written.
        """
        logger.info(
            "Received email from %s to %s", message.sender, message.recipient
        )
        if not self.filter_engine.accept(message):
            return ProcessResult(status=ProcessStatus.DROPPED)

        code = self.extract_code(message)
        stored = self.store.store(
            message.to_content(), message.summary_metadata()
        )

        summary = NotificationSummary(
            sender=message.sender or "Unknown",
            subject=message.subject or "No Subject",
            view_url=build_view_url(
                self.base_url, stored.email_id, stored.auth_token
            ),
            code=code,
        )

        notified = False
        try:
            self.notifier.notify(summary)
            notified = True
        except NotifierError as e:
            logger.error(
                "Failed to notify about email %s: %s", stored.email_id, e
            )

        return ProcessResult(
            status=ProcessStatus.STORED,
            email_id=stored.email_id,
            code=code,
            notified=notified,
        )
