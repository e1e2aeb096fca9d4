# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Lightweight HTML to text conversion for email bodies.

Reduces an HTML email body to plain text so that code extraction and the
retrieval view can work on text only.  Block-level elements become line
breaks, ``<script>``/``<style>``/``<head>`` content is dropped, and HTML
entities are decoded.  Inline formatting is discarded: unlike a
reading-oriented conversion, the output must keep short tokens such as
one-time codes intact and free of markup characters.
"""

import re
from html.parser import HTMLParser


# Elements whose content is never visible text
_SKIP_TAGS = frozenset({"script", "style", "head", "title", "template"})

# Elements that start and end on their own line
_BLOCK_TAGS = frozenset(
    {
        "address",
        "article",
        "blockquote",
        "center",
        "dd",
        "div",
        "dl",
        "dt",
        "footer",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "header",
        "hr",
        "li",
        "ol",
        "p",
        "pre",
        "section",
        "table",
        "tbody",
        "td",
        "th",
        "thead",
        "tr",
        "ul",
    }
)

_INLINE_SPACE_RE = re.compile(r"[ \t\r\f\v\xa0]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def html_to_text(html_content: str | None) -> str:
    """Convert HTML to plain text.

    Args:
        html_content: HTML string to convert. None or empty yields "".

    Returns:
        Plain text with one line per block element and collapsed
        whitespace.
    """
    if not html_content:
        return ""

    parser = _HTMLToTextParser()
    parser.feed(html_content)
    parser.close()
    return parser.get_text()


class _HTMLToTextParser(HTMLParser):
    """HTML parser that collects visible text."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._output: list[str] = []
        self._skip_depth = 0
        self._in_pre = False

    def handle_starttag(
        self, tag: str, attrs: list[tuple[str, str | None]]
    ) -> None:
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
            return
        if tag == "br":
            self._output.append("\n")
        elif tag in _BLOCK_TAGS:
            self._output.append("\n")
            if tag == "pre":
                self._in_pre = True
            elif tag in ("td", "th"):
                self._output.append(" ")

    def handle_startendtag(
        self, tag: str, attrs: list[tuple[str, str | None]]
    ) -> None:
        # <br/> and friends must not bump the skip depth
        if tag in _SKIP_TAGS:
            return
        self.handle_starttag(tag, attrs)

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIP_TAGS:
            if self._skip_depth:
                self._skip_depth -= 1
            return
        if tag in _BLOCK_TAGS:
            self._output.append("\n")
            if tag == "pre":
                self._in_pre = False

    def handle_data(self, data: str) -> None:
        if self._skip_depth:
            return
        if self._in_pre:
            self._output.append(data)
        else:
            # Source newlines inside flowing text are layout, not content
            self._output.append(data.replace("\n", " "))

    def get_text(self) -> str:
        """Return the collected text with normalized whitespace."""
        raw = "".join(self._output)
        lines = [
            _INLINE_SPACE_RE.sub(" ", line).strip() for line in raw.split("\n")
        ]
        text = "\n".join(lines)
        return _BLANK_LINES_RE.sub("\n\n", text).strip()
