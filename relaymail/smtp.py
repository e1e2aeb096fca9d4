# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""SMTP receiving endpoint.

``RelaySMTPHandler`` is an aiosmtpd handler: each DATA command hands the
received bytes to the relay pipeline in a worker thread, and the outcome
is mapped to an SMTP reply:

- ``250`` when the message was stored or dropped by the filter
  (filtered mail is accepted and discarded, not bounced);
- ``452`` when the store is out of free space, so the sender retries;
- ``451`` for any other processing failure.

``SMTPServer`` owns the aiosmtpd ``Controller`` and optional STARTTLS.
"""

import asyncio
import logging
import ssl
from pathlib import Path

from aiosmtpd.controller import Controller
from aiosmtpd.smtp import SMTP, Envelope, Session

from relaymail.config import SMTPConfig
from relaymail.message import parse_message
from relaymail.pipeline import ProcessStatus, RelayPipeline
from relaymail.storage import CapacityError


logger = logging.getLogger(__name__)

REPLY_ACCEPTED = "250 Message accepted"
REPLY_NO_STORAGE = "452 Insufficient storage"
REPLY_FAILED = "451 Error processing message"


class RelaySMTPHandler:
    """aiosmtpd handler feeding the relay pipeline."""

    def __init__(self, pipeline: RelayPipeline) -> None:
        self.pipeline = pipeline

    async def handle_DATA(
        self,
        server: SMTP,
        session: Session,
        envelope: Envelope,
    ) -> str:
        """Process a received message and return the SMTP reply."""
        peer = session.peer
        raw = envelope.original_content or envelope.content
        if isinstance(raw, str):
            raw = raw.encode("utf-8", errors="surrogateescape")
        if raw is None:
            raw = b""

        envelope_from = envelope.mail_from or None
        envelope_to = envelope.rcpt_tos[0] if envelope.rcpt_tos else None

        try:
            message = parse_message(
                raw, envelope_from=envelope_from, envelope_to=envelope_to
            )
            result = await asyncio.to_thread(self.pipeline.process, message)
        except CapacityError as e:
            logger.error("Refusing message from %s: %s", peer, e)
            return REPLY_NO_STORAGE
        except Exception:
            logger.exception("Error processing message from %s", peer)
            return REPLY_FAILED

        if result.status is ProcessStatus.DROPPED:
            logger.info("Email from %s filtered out by rules", envelope_from)
        return REPLY_ACCEPTED


def create_tls_context(
    key_path: Path | None, cert_path: Path | None
) -> ssl.SSLContext | None:
    """Load a server TLS context for STARTTLS.

    Returns None (plain SMTP) when either path is unset or the files
    cannot be loaded.
    """
    if not key_path or not cert_path:
        return None
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    try:
        context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    except (OSError, ssl.SSLError) as e:
        logger.warning(
            "Failed to load TLS certificates, running without TLS: %s", e
        )
        return None
    logger.info("TLS certificates loaded; STARTTLS enabled")
    return context


class SMTPServer:
    """Runs ``RelaySMTPHandler`` on an aiosmtpd controller thread."""

    def __init__(self, pipeline: RelayPipeline, config: SMTPConfig) -> None:
        self.config = config
        self.handler = RelaySMTPHandler(pipeline)
        self._controller: Controller | None = None

    def start(self) -> None:
        """Start listening."""
        kwargs: dict[str, object] = {}
        tls_context = create_tls_context(
            self.config.tls_key_path, self.config.tls_cert_path
        )
        if tls_context is not None:
            kwargs["tls_context"] = tls_context

        self._controller = Controller(
            self.handler,
            hostname=self.config.host,
            port=self.config.port,
            server_hostname=self.config.server_name,
            **kwargs,
        )
        self._controller.start()
        logger.info(
            "SMTP server running on %s:%d", self.config.host, self.config.port
        )

    def stop(self) -> None:
        """Stop listening."""
        if self._controller is not None:
            self._controller.stop()
            self._controller = None
            logger.info("SMTP server stopped")
