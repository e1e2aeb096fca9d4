# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Inbound mail relay with ephemeral, token-protected message storage.

Accepted messages are stored under a capability token, a one-time code
is extracted from the body, and a summary with a retrieval link is handed
to a webhook notifier.
"""
