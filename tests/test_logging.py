# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for relaymail/logging.py."""

import logging
import sys
from collections.abc import Iterator

import pytest

from relaymail.logging import SecretFilter, configure_logging


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=args,
        exc_info=None,
    )


class TestSecretFilter:
    """Tests for SecretFilter class."""

    def test_filter_returns_true(self) -> None:
        """Filter never suppresses records."""
        assert SecretFilter().filter(_record("test message")) is True

    def test_no_secrets_no_redaction(self) -> None:
        record = _record("webhook https://hooks.example/abc")
        SecretFilter().filter(record)
        assert record.msg == "webhook https://hooks.example/abc"

    def test_redacts_registered_secret(self) -> None:
        SecretFilter.register_secret("https://hooks.example/abc")
        record = _record("Posting to https://hooks.example/abc")
        SecretFilter().filter(record)
        assert record.msg == "Posting to [REDACTED]"

    def test_redacts_in_args(self) -> None:
        """String args are redacted; other args pass through."""
        SecretFilter.register_secret("hook-secret")
        record = _record("%s %d", "url=hook-secret", 3)
        SecretFilter().filter(record)
        assert record.args == ("url=[REDACTED]", 3)

    def test_longer_secret_redacted_whole(self) -> None:
        """A secret containing another is not partially redacted."""
        SecretFilter.register_secret("abc")
        SecretFilter.register_secret("abcdef")
        record = _record("value abcdef")
        SecretFilter().filter(record)
        assert record.msg == "value [REDACTED]"

    def test_redacts_mapping_args(self) -> None:
        SecretFilter.register_secret("hook-secret")
        record = _record("%(url)s", {"url": "hook-secret"})
        SecretFilter().filter(record)
        assert record.args == {"url": "[REDACTED]"}

    def test_redacts_exception_text(self) -> None:
        SecretFilter.register_secret("https://hooks.example/abc")
        try:
            raise OSError("POST https://hooks.example/abc failed")
        except OSError:
            record = _record("Webhook failed")
            record.exc_info = sys.exc_info()

        SecretFilter().filter(record)

        assert record.exc_text is not None
        assert "https://hooks.example/abc" not in record.exc_text
        assert "POST [REDACTED] failed" in record.exc_text

    def test_redact_helper(self) -> None:
        assert SecretFilter.redact("nothing registered") == (
            "nothing registered"
        )
        SecretFilter.register_secret("s3cr3t")
        assert SecretFilter.redact("a s3cr3t b") == "a [REDACTED] b"

    def test_special_regex_chars(self) -> None:
        SecretFilter.register_secret("https://x/?token=a+b")
        record = _record("GET https://x/?token=a+b")
        SecretFilter().filter(record)
        assert record.msg == "GET [REDACTED]"

    def test_ignores_empty_secret(self) -> None:
        SecretFilter.register_secret("")
        assert len(SecretFilter._secrets) == 0
        assert SecretFilter._pattern is None

    def test_clear_secrets(self) -> None:
        SecretFilter.register_secret("secret1")
        SecretFilter.clear_secrets()
        assert len(SecretFilter._secrets) == 0
        assert SecretFilter._pattern is None


class TestConfigureLogging:
    """Tests for configure_logging function."""

    @pytest.fixture(autouse=True)
    def _restore_root(self) -> Iterator[None]:
        root = logging.getLogger()
        handlers = root.handlers[:]
        level = root.level
        quiet = {
            name: logging.getLogger(name).level
            for name in ("mail.log", "werkzeug")
        }
        yield
        root.handlers[:] = handlers
        root.setLevel(level)
        for name, quiet_level in quiet.items():
            logging.getLogger(name).setLevel(quiet_level)

    def test_sets_log_level(self) -> None:
        configure_logging(level=logging.DEBUG)
        assert logging.getLogger().level == logging.DEBUG

    def test_single_stream_handler(self) -> None:
        """Calling twice does not duplicate handlers."""
        configure_logging()
        configure_logging()
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_custom_format(self) -> None:
        configure_logging(format_string="%(message)s")
        formatter = logging.getLogger().handlers[0].formatter
        assert formatter is not None
        assert formatter._fmt == "%(message)s"

    def test_adds_secret_filter_by_default(self) -> None:
        configure_logging()
        filters = logging.getLogger().handlers[0].filters
        assert any(isinstance(f, SecretFilter) for f in filters)

    def test_can_disable_secret_filter(self) -> None:
        configure_logging(add_secret_filter=False)
        filters = logging.getLogger().handlers[0].filters
        assert not any(isinstance(f, SecretFilter) for f in filters)

    def test_quiets_request_loggers(self) -> None:
        """Loggers that echo request lines stay at WARNING or above."""
        configure_logging(level=logging.INFO)
        assert logging.getLogger("mail.log").level == logging.WARNING
        assert logging.getLogger("werkzeug").level == logging.WARNING

        configure_logging(level=logging.ERROR)
        assert logging.getLogger("mail.log").level == logging.ERROR
