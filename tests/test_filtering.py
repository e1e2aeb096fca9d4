# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the inbound accept/reject policy."""

import logging

import pytest

from relaymail.config import FilterConfig
from relaymail.filtering import FilterEngine, ValidationError
from relaymail.message import InboundMessage


@pytest.fixture
def engine() -> FilterEngine:
    return FilterEngine(
        allowed_domains=["steampowered.com", "gmail.com"],
        blocked_keywords=["spam", "unwanted"],
        max_message_size=10 * 1024 * 1024,
    )


def _message(
    sender: str = "noreply@steampowered.com",
    subject: str | None = "Steam Guard Code",
    size: int = 100,
) -> InboundMessage:
    return InboundMessage(sender=sender, subject=subject, size=size)


class TestAccept:
    """Tests for FilterEngine.accept."""

    def test_allowed_domain(self, engine: FilterEngine) -> None:
        assert engine.accept(_message()) is True

    def test_display_name_sender(self, engine: FilterEngine) -> None:
        message = _message(sender="Steam <noreply@steampowered.com>")
        assert engine.accept(message) is True

    def test_domain_case_insensitive(self, engine: FilterEngine) -> None:
        assert engine.accept(_message(sender="Someone@GMAIL.com")) is True

    def test_disallowed_domain(self, engine: FilterEngine) -> None:
        assert engine.accept(_message(sender="test@evil.com")) is False

    def test_subdomain_not_allowed(self, engine: FilterEngine) -> None:
        """Only exact domain matches are admitted."""
        message = _message(sender="a@mail.steampowered.com")
        assert engine.accept(message) is False

    def test_blocked_keyword(self, engine: FilterEngine) -> None:
        message = _message(subject="This is SPAM")
        assert engine.accept(message) is False

    def test_blocked_keyword_substring(self, engine: FilterEngine) -> None:
        message = _message(subject="Antispam report")
        assert engine.accept(message) is False

    def test_missing_subject_never_blocks(self, engine: FilterEngine) -> None:
        assert engine.accept(_message(subject=None)) is True

    def test_size_at_limit_accepted(self, engine: FilterEngine) -> None:
        message = _message(size=engine.max_message_size)
        assert engine.accept(message) is True

    def test_size_over_limit_rejected(self, engine: FilterEngine) -> None:
        message = _message(size=11 * 1024 * 1024)
        assert engine.accept(message) is False

    def test_no_sender(self, engine: FilterEngine) -> None:
        assert engine.accept(_message(sender="")) is False

    def test_empty_allow_list_rejects_all(self) -> None:
        engine = FilterEngine(allowed_domains=[])
        assert engine.accept(_message()) is False

    def test_rejection_logged(
        self, engine: FilterEngine, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.INFO, logger="relaymail.filtering"):
            engine.accept(_message(sender="test@evil.com"))

        assert "evil.com not in allowed list" in caplog.text

    def test_deterministic(self, engine: FilterEngine) -> None:
        message = _message(subject="unwanted offer")
        assert engine.accept(message) == engine.accept(message)


class TestCheckReason:
    """The first failing condition decides the reported reason."""

    def _reason(self, engine: FilterEngine, message: InboundMessage) -> str:
        with pytest.raises(ValidationError) as exc_info:
            engine.check(message)
        return exc_info.value.reason

    def test_domain_before_keyword(self, engine: FilterEngine) -> None:
        message = _message(sender="a@evil.com", subject="spam")
        assert self._reason(engine, message) == "domain"

    def test_keyword_before_size(self, engine: FilterEngine) -> None:
        message = _message(subject="spam", size=11 * 1024 * 1024)
        assert self._reason(engine, message) == "keyword"

    def test_size(self, engine: FilterEngine) -> None:
        message = _message(size=11 * 1024 * 1024)
        assert self._reason(engine, message) == "size"

    def test_no_sender(self, engine: FilterEngine) -> None:
        assert self._reason(engine, _message(sender="nobody")) == "no_sender"

    def test_pass_raises_nothing(self, engine: FilterEngine) -> None:
        engine.check(_message())


class TestFromConfig:
    """Tests for FilterEngine.from_config."""

    def test_normalizes_case(self) -> None:
        config = FilterConfig(
            allowed_domains=frozenset({"SteamPowered.com"}),
            blocked_keywords=("Spam", ""),
            max_message_size=512,
        )

        engine = FilterEngine.from_config(config)

        assert engine.allowed_domains == frozenset({"steampowered.com"})
        assert engine.blocked_keywords == ("spam",)
        assert engine.max_message_size == 512
