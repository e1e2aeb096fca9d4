# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Relay service entry point.

Builds every component explicitly from ``RelayConfig`` and passes them
into the pipeline and servers; nothing is shared through module-level
instances.
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

from relaymail.codes import CodeExtractor
from relaymail.config import ConfigError, RelayConfig
from relaymail.filtering import FilterEngine
from relaymail.logging import configure_logging
from relaymail.notifier import create_notifier
from relaymail.pipeline import RelayPipeline
from relaymail.smtp import SMTPServer
from relaymail.storage import EmailStore
from relaymail.web import RetrievalServer


logger = logging.getLogger(__name__)


class RelayService:
    """Owns the store, pipeline, SMTP listener and retrieval server."""

    def __init__(self, config: RelayConfig) -> None:
        self.config = config
        self.store = EmailStore.from_config(config.storage)
        self.pipeline = RelayPipeline(
            filter_engine=FilterEngine.from_config(config.filter),
            code_extractor=CodeExtractor(),
            store=self.store,
            notifier=create_notifier(config.notifier),
            base_url=config.web.public_base_url,
        )
        self.web_server = RetrievalServer(
            self.store, host=config.web.host, port=config.web.port
        )
        self.smtp_server = SMTPServer(self.pipeline, config.smtp)
        self._stop_event = threading.Event()

    def start(self) -> None:
        """Prepare storage and start both servers."""
        self.store.initialize()
        self.store.cleanup_sweep()
        self.web_server.start()
        self.smtp_server.start()

    def wait(self) -> None:
        """Block until ``request_stop`` is called."""
        self._stop_event.wait()

    def request_stop(self) -> None:
        """Ask ``wait`` to return; safe to call from a signal handler."""
        self._stop_event.set()

    def stop(self) -> None:
        """Stop both servers."""
        self.smtp_server.stop()
        self.web_server.stop()
        logger.info("Servers stopped")


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0=success, 1=config error, 2=startup error).
    """
    parser = argparse.ArgumentParser(
        description="Inbound mail relay with token-protected retrieval",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML config (default: config/relaymail.yaml)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args(argv)

    configure_logging(level=logging.DEBUG if args.debug else logging.INFO)

    try:
        config = RelayConfig.from_yaml(args.config)
    except ConfigError as e:
        logger.critical("Configuration error: %s", e)
        return 1

    service = RelayService(config)

    def shutdown_handler(signum: int, frame: object) -> None:
        logger.info("Received signal %d, shutting down...", signum)
        service.request_stop()

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    try:
        service.start()
    except Exception as e:
        logger.exception("Failed to start servers: %s", e)
        service.stop()
        return 2

    try:
        service.wait()
    finally:
        service.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
