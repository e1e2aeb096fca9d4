# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for one-time code extraction."""

import re

import pytest

from relaymail.codes import (
    CodeExtractor,
    RegexMatcher,
    default_matchers,
    labeled_matcher,
)


@pytest.fixture
def extractor() -> CodeExtractor:
    return CodeExtractor()


class TestExtract:
    """Tests for CodeExtractor.extract."""

    def test_labeled_code(self, extractor: CodeExtractor) -> None:
        body = "Hello,\n\nSteam Guard code: 2DWGV\n\nThanks"
        assert extractor.extract(body) == "2DWGV"

    def test_labeled_case_insensitive(self, extractor: CodeExtractor) -> None:
        assert extractor.extract("STEAM GUARD CODE 4KQ7P") == "4KQ7P"

    def test_word_after_label_not_a_code(
        self, extractor: CodeExtractor
    ) -> None:
        """A lower-case word after the label falls through to line start."""
        body = "Enter the Steam Guard code below.\n\n2DWGV"
        assert extractor.extract(body) == "2DWGV"

    def test_no_code(self, extractor: CodeExtractor) -> None:
        assert extractor.extract("no code here") is None

    def test_label_outranks_positional(self, extractor: CodeExtractor) -> None:
        body = "Some text ABC12\nYour Steam Guard code is: XYZ45"
        assert extractor.extract(body) == "XYZ45"

    def test_line_start_fallback(self, extractor: CodeExtractor) -> None:
        body = "Your login code follows.\nQ7W2E\nIt expires soon."
        assert extractor.extract(body) == "Q7W2E"

    def test_after_space_fallback(self, extractor: CodeExtractor) -> None:
        assert extractor.extract("Use R4T5Y to sign in") == "R4T5Y"

    def test_line_start_before_after_space(
        self, extractor: CodeExtractor
    ) -> None:
        """Line-start matches win even when a spaced token comes first."""
        body = "Token AAAAA is old\nBBBBB"
        assert extractor.extract(body) == "BBBBB"

    def test_longer_tokens_ignored(self, extractor: CodeExtractor) -> None:
        assert extractor.extract("Order ABCDEF12 shipped") is None

    def test_lowercase_tokens_ignored_by_fallback(
        self, extractor: CodeExtractor
    ) -> None:
        assert extractor.extract("hello world, again") is None

    @pytest.mark.parametrize("body", [None, ""])
    def test_empty_input(
        self, extractor: CodeExtractor, body: str | None
    ) -> None:
        assert extractor.extract(body) is None

    def test_html_body(self, extractor: CodeExtractor) -> None:
        html = (
            "<html><head><style>.X1Y2Z { color: red }</style></head>"
            "<body><p>Steam Guard code:</p>"
            '<div class="code">F9G8H</div></body></html>'
        )
        assert extractor.extract(html, is_html=True) == "F9G8H"

    def test_html_markup_not_matched(self, extractor: CodeExtractor) -> None:
        """Attribute values never reach the matchers."""
        html = '<a href="https://x.example/ QWERT">link</a>'
        assert extractor.extract(html, is_html=True) is None


class TestFind:
    """Tests for CodeExtractor.find."""

    def test_reports_matcher(self, extractor: CodeExtractor) -> None:
        match = extractor.find("Steam Guard code: 2DWGV")

        assert match is not None
        assert match.code == "2DWGV"
        assert match.matcher == "label:Steam Guard code"

    def test_reports_fallback(self, extractor: CodeExtractor) -> None:
        match = extractor.find("Use R4T5Y to sign in")

        assert match is not None
        assert match.matcher == "after_space"

    def test_short_circuits(self) -> None:
        """Matchers after the first hit are never called."""
        calls: list[str] = []

        def first(text: str) -> str | None:
            calls.append("first")
            return "11111"

        def second(text: str) -> str | None:
            calls.append("second")
            return "22222"

        extractor = CodeExtractor([first, second])

        assert extractor.extract("anything") == "11111"
        assert calls == ["first"]

    def test_custom_matcher_chain(self) -> None:
        extractor = CodeExtractor(
            [RegexMatcher("digits", re.compile(r"\b(\d{6})\b"))]
        )

        match = extractor.find("Your code is 123456")

        assert match is not None
        assert match.code == "123456"
        assert match.matcher == "digits"


class TestMatchers:
    """Tests for matcher construction."""

    def test_label_code_is_case_sensitive(self) -> None:
        matcher = labeled_matcher("Steam Guard code")

        assert matcher("steam guard code: 2DWGV") == "2DWGV"
        assert matcher("Steam Guard code below") is None
        assert matcher("Steam Guard code: 2dwgv") is None

    def test_default_chain_order(self) -> None:
        names = [getattr(m, "name") for m in default_matchers()]
        assert names == ["label:Steam Guard code", "line_start", "after_space"]

    def test_labeled_matcher_custom_length(self) -> None:
        matcher = labeled_matcher("Verification code", length=6)

        assert matcher("Verification code: A1B2C3") == "A1B2C3"
        assert matcher("Verification code: A1B2C") is None

    def test_label_escaped(self) -> None:
        matcher = labeled_matcher("Code (one-time)")

        assert matcher("Code (one-time): ZZ9ZZ") == "ZZ9ZZ"
