# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Accept/reject policy for inbound messages.

A message is accepted only if all of the following hold, checked in
this order (the order decides which reason is reported, not the
verdict):

1. The sender domain is in the allowed-domain set.  A message without a
   usable sender address is rejected.
2. The lower-cased subject contains none of the blocked keywords.  A
   missing subject never blocks.
3. The message size does not exceed the configured ceiling.

Rejected messages are dropped without storage or notification.
"""

import logging
from collections.abc import Iterable

from relaymail.config import FilterConfig
from relaymail.message import InboundMessage


logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """Raised when a message fails the accept policy.

    Attributes:
        reason: Short machine-readable rejection reason
            (``no_sender``, ``domain``, ``keyword`` or ``size``).
    """

    def __init__(self, reason: str, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason


class FilterEngine:
    """Pure accept/reject predicate over messages and static policy.

    Attributes:
        allowed_domains: Lower-cased admitted sender domains.
        blocked_keywords: Lower-cased subject substrings that reject.
        max_message_size: Byte ceiling for acceptance.
    """

    def __init__(
        self,
        allowed_domains: Iterable[str],
        blocked_keywords: Iterable[str] = (),
        max_message_size: int = 10 * 1024 * 1024,
    ) -> None:
        self.allowed_domains = frozenset(d.lower() for d in allowed_domains)
        self.blocked_keywords = tuple(
            k.lower() for k in blocked_keywords if k
        )
        self.max_message_size = max_message_size
        logger.debug(
            "Initialized filter: %d domains, %d keywords, max size %d",
            len(self.allowed_domains),
            len(self.blocked_keywords),
            self.max_message_size,
        )

    @classmethod
    def from_config(cls, config: FilterConfig) -> "FilterEngine":
        """Build a filter from the ``filter`` config section."""
        return cls(
            allowed_domains=config.allowed_domains,
            blocked_keywords=config.blocked_keywords,
            max_message_size=config.max_message_size,
        )

    def check(self, message: InboundMessage) -> None:
        """Validate a message against the policy.

        Args:
            message: Message to classify.

        Raises:
            ValidationError: With the first failing condition.
        """
        domain = message.sender_domain
        if domain is None:
            raise ValidationError("no_sender", "Message has no sender address")
        if domain not in self.allowed_domains:
            raise ValidationError(
                "domain", f"Sender domain {domain} not in allowed list"
            )

        subject = (message.subject or "").lower()
        for keyword in self.blocked_keywords:
            if keyword in subject:
                raise ValidationError(
                    "keyword",
                    f"Subject contains blocked keyword {keyword!r}",
                )

        if message.size > self.max_message_size:
            raise ValidationError(
                "size",
                f"Message size {message.size} exceeds maximum "
                f"{self.max_message_size}",
            )

    def accept(self, message: InboundMessage) -> bool:
        """Return True if the message passes every policy condition."""
        try:
            self.check(message)
        except ValidationError as e:
            logger.info("Message from %s rejected: %s", message.sender, e)
            return False
        return True
