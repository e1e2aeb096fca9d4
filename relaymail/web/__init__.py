# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""HTTP retrieval surface for stored messages."""

from relaymail.web.server import RetrievalServer, json_response
from relaymail.web.views import render_email


__all__ = [
    "RetrievalServer",
    "json_response",
    "render_email",
]
