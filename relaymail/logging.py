# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Logging setup for the relay service, with secret redaction.

Usage:
    # In the service entry point
    from relaymail.logging import configure_logging
    configure_logging(level=logging.INFO)

    # In library modules
    import logging
    logger = logging.getLogger(__name__)
    logger.info("Stored email %s", email_id)

Two kinds of value must never reach log output:

- Webhook URLs, which embed their credential in the path.  The notifier
  registers them with ``SecretFilter``.
- Retrieval tokens.  Relay code never logs them, and the request loggers
  of the servers (which print full request lines, query string included)
  are held at WARNING.
"""

import logging
import re
from collections.abc import Mapping
from typing import ClassVar


REDACTED = "[REDACTED]"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that echo request lines or SMTP commands at INFO
_QUIET_LOGGERS = ("mail.log", "werkzeug")


class SecretFilter(logging.Filter):
    """Logging filter that redacts registered secrets from log output.

    Secrets are registered process-wide.  The message, string arguments
    and any formatted exception text are redacted; records are never
    suppressed.

    Example:
        SecretFilter.register_secret("https://hooks.example/abc")
        logger.error("POST %s failed", url)
        # Output: "POST [REDACTED] failed"
    """

    _secrets: ClassVar[set[str]] = set()
    _pattern: ClassVar[re.Pattern[str] | None] = None

    @classmethod
    def redact(cls, text: str) -> str:
        """Return ``text`` with every registered secret replaced."""
        if cls._pattern is None:
            return text
        return cls._pattern.sub(REDACTED, text)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is None:
            return True

        record.msg = self.redact(str(record.msg))
        if isinstance(record.args, Mapping):
            record.args = {
                k: self.redact(v) if isinstance(v, str) else v
                for k, v in record.args.items()
            }
        elif record.args:
            record.args = tuple(
                self.redact(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        if record.exc_info and not record.exc_text:
            # Format now so the traceback text itself can be redacted
            record.exc_text = logging.Formatter().formatException(
                record.exc_info
            )
        if record.exc_text:
            record.exc_text = self.redact(record.exc_text)
        return True

    @classmethod
    def register_secret(cls, secret: str) -> None:
        """Register a secret to be redacted from all log output.

        Args:
            secret: The secret string to redact. Empty strings are ignored.
        """
        if secret and secret not in cls._secrets:
            cls._secrets.add(secret)
            cls._rebuild_pattern()

    @classmethod
    def clear_secrets(cls) -> None:
        """Clear all registered secrets. Primarily for testing."""
        cls._secrets.clear()
        cls._pattern = None

    @classmethod
    def _rebuild_pattern(cls) -> None:
        # Longest first so a secret containing another is redacted whole
        ordered = sorted(cls._secrets, key=len, reverse=True)
        cls._pattern = (
            re.compile("|".join(re.escape(s) for s in ordered))
            if ordered
            else None
        )


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
) -> None:
    """Install a single stream handler on the root logger.

    Replaces any handlers already on the root logger, so calling this
    again reconfigures rather than duplicating output.

    Args:
        level: Root log level.
        format_string: Record format; defaults to ``DEFAULT_FORMAT``.
        add_secret_filter: Attach ``SecretFilter`` to the handler.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root_logger = logging.getLogger()
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
