# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Ephemeral message storage, eviction, and the free-space gate."""

from relaymail.storage.capacity import CapacityGuard
from relaymail.storage.store import (
    CapacityError,
    EmailStore,
    NotFoundError,
    StorageError,
    StoredMessage,
    StoreResult,
    SweepResult,
    UnauthorizedError,
)


__all__ = [
    "CapacityError",
    "CapacityGuard",
    "EmailStore",
    "NotFoundError",
    "StorageError",
    "StoredMessage",
    "StoreResult",
    "SweepResult",
    "UnauthorizedError",
]
