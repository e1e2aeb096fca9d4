# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""HTML rendering for the read-only message view."""

import html
from datetime import datetime

from relaymail.html_to_text import html_to_text
from relaymail.storage import StoredMessage


def format_date(value: object) -> str:
    """Format a stored date for display.

    ISO 8601 strings are shown as ``YYYY-MM-DD HH:MM:SS`` with their UTC
    offset; anything else is shown as stored.
    """
    if not value:
        return "Unknown"
    text = str(value)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return text
    formatted = parsed.strftime("%Y-%m-%d %H:%M:%S")
    offset = parsed.strftime("%z")
    return f"{formatted} {offset}" if offset else formatted


def body_text(record: StoredMessage) -> str:
    """Return the plain-text body, converting an HTML-only body."""
    text = record.content.get("text")
    if text:
        return str(text)
    html_body = record.content.get("html")
    if html_body:
        return html_to_text(str(html_body))
    return ""


def render_email(record: StoredMessage) -> str:
    """Render a stored message as a standalone HTML page.

    Subject, sender, date and body are always shown; every value is
    HTML-escaped.

    Args:
        record: Message returned by ``EmailStore.retrieve``.

    Returns:
        HTML document.
    """
    metadata = record.metadata
    subject = html.escape(str(metadata.get("subject") or "No Subject"))
    sender = html.escape(str(metadata.get("from") or "Unknown"))
    date = html.escape(format_date(metadata.get("date")))
    body = html.escape(body_text(record) or "No content")

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <meta name="robots" content="noindex">
    <title>{subject} - Email Viewer</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto,
                         "Helvetica Neue", Arial, sans-serif;
            max-width: 800px;
            margin: 0 auto;
            padding: 20px;
            background: #f5f5f5;
        }}
        .email-container {{
            background: white;
            padding: 20px;
            border-radius: 8px;
            box-shadow: 0 2px 4px rgba(0, 0, 0, 0.1);
        }}
        .email-header {{
            border-bottom: 1px solid #eee;
            padding-bottom: 10px;
            margin-bottom: 20px;
        }}
        .email-meta {{
            color: #666;
            font-size: 0.9em;
        }}
        .email-content {{
            white-space: pre-wrap;
            line-height: 1.5;
        }}
    </style>
</head>
<body>
    <div class="email-container">
        <div class="email-header">
            <h2>{subject}</h2>
            <div class="email-meta">
                <p><strong>From:</strong> {sender}</p>
                <p><strong>Date:</strong> {date}</p>
            </div>
        </div>
        <div class="email-content">{body}</div>
    </div>
</body>
</html>
"""
