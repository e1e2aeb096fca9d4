# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""One-time code extraction from message bodies.

Matchers are tried in order, most specific first, and the first one that
finds a code wins:

1. Labeled: a known phrase (``Steam Guard code``) followed by the code,
   e.g. ``Steam Guard code: 2DWGV`` or ``Steam Guard code is: 2DWGV``.
2. A code at the start of a line.
3. A code anywhere after whitespace.

The positional matchers only run when no labeled code exists, since bare
five-character tokens are common in ordinary text.
"""

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from relaymail.html_to_text import html_to_text


logger = logging.getLogger(__name__)

DEFAULT_LABELS = ("Steam Guard code",)
DEFAULT_CODE_LENGTH = 5

#: A matcher returns the code it found in the text, or None.
Matcher = Callable[[str], str | None]


@dataclass(frozen=True)
class CodeMatch:
    """A code found by a named matcher."""

    code: str
    matcher: str


class RegexMatcher:
    """Matcher backed by a regex whose first group is the code."""

    def __init__(self, name: str, pattern: re.Pattern[str]) -> None:
        self.name = name
        self.pattern = pattern

    def __call__(self, text: str) -> str | None:
        match = self.pattern.search(text)
        if match is None:
            return None
        return match.group(1)

    def __repr__(self) -> str:
        return f"RegexMatcher({self.name!r}, {self.pattern.pattern!r})"


def labeled_matcher(
    label: str, length: int = DEFAULT_CODE_LENGTH
) -> RegexMatcher:
    """Build a matcher for ``<label>[ is][:] <code>``.

    Only the label is case-insensitive; the code is upper case and digits.
    """
    pattern = re.compile(
        rf"{re.escape(label)}(?:\s+is)?\s*:?\s*"
        rf"(?-i:([A-Z0-9]{{{length}}})(?![A-Za-z0-9]))",
        re.IGNORECASE,
    )
    return RegexMatcher(f"label:{label}", pattern)


def default_matchers(
    labels: Sequence[str] = DEFAULT_LABELS,
    length: int = DEFAULT_CODE_LENGTH,
) -> list[Matcher]:
    """Return the standard matcher chain: labels, then positional."""
    matchers: list[Matcher] = [
        labeled_matcher(label, length) for label in labels
    ]
    matchers.append(
        RegexMatcher(
            "line_start",
            re.compile(rf"\n([A-Z0-9]{{{length}}})(?![A-Za-z0-9])"),
        )
    )
    matchers.append(
        RegexMatcher(
            "after_space",
            re.compile(rf"\s([A-Z0-9]{{{length}}})(?![A-Za-z0-9])"),
        )
    )
    return matchers


class CodeExtractor:
    """Ordered-fallback scanner for short one-time codes."""

    def __init__(self, matchers: Sequence[Matcher] | None = None) -> None:
        self.matchers: list[Matcher] = (
            list(matchers) if matchers is not None else default_matchers()
        )

    def find(
        self, body: str | None, *, is_html: bool = False
    ) -> CodeMatch | None:
        """Run the matcher chain and report which matcher hit.

        Args:
            body: Message body, or None.
            is_html: Whether ``body`` is HTML and must be reduced to text.

        Returns:
            The first match, or None when no matcher finds a code.
        """
        if not body:
            return None
        text = html_to_text(body) if is_html else body
        if not text:
            return None

        for matcher in self.matchers:
            code = matcher(text)
            if code:
                name = getattr(matcher, "name", repr(matcher))
                logger.debug("Code found by matcher %s", name)
                return CodeMatch(code=code, matcher=name)
        return None

    def extract(
        self, body: str | None, *, is_html: bool = False
    ) -> str | None:
        """Return the first code found in ``body``, or None."""
        match = self.find(body, is_html=is_html)
        return match.code if match else None
