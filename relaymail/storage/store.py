# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Ephemeral message storage under capability tokens.

Each stored message is one JSON file, ``<id>.json``, in a flat directory::

    {
      "id": "<uuid4>",
      "authToken": "<32 hex chars>",
      "storedAt": "2026-01-15T12:00:00+00:00",
      "metadata": {"from": ..., "subject": ..., "date": ...},
      "content": {...}
    }

Records are written to a temporary file in the same directory and then
renamed into place, so readers never see a partial record.  Records are
never modified; they are deleted only by ``cleanup_sweep``, which runs
before every store:

1. Age sweep: records older than the retention window are deleted.
2. Capacity sweep: while the remaining records exceed the byte budget,
   the oldest by modification time are deleted.

Sweeps run without locks.  Files may vanish between listing and access
(a concurrent sweep, or a reader racing one), so every per-file failure
is logged and skipped.
"""

import hmac
import json
import logging
import re
import secrets
import tempfile
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from relaymail.config import StorageConfig
from relaymail.storage.capacity import CapacityGuard


logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"
_TEMP_SUFFIX = ".tmp"

# Temp files older than this are left over from an interrupted write
_STALE_TEMP_AGE = timedelta(hours=1)

# Only canonical UUID4-style ids are ever mapped to a file path
_EMAIL_ID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)

# Metadata keys filled from content when the caller omits them
_METADATA_KEYS = ("from", "subject", "date")


class StorageError(Exception):
    """Base exception for storage failures."""


class NotFoundError(StorageError):
    """Raised when no record exists for an id."""


class UnauthorizedError(StorageError):
    """Raised when a record exists but the token does not match."""


class CapacityError(StorageError):
    """Raised when free space is too low to admit a write."""


@dataclass(frozen=True)
class StoreResult:
    """Identifier and capability token of a newly stored message."""

    email_id: str
    auth_token: str


@dataclass
class StoredMessage:
    """A stored message as read back from disk.

    Attributes:
        id: Record identifier.
        auth_token: Capability token granting read access.
        stored_at: UTC time the record was written.
        metadata: Summary fields (``from``, ``subject``, ``date``).
        content: Full parsed message.
    """

    id: str
    auth_token: str
    stored_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)
    content: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk record layout."""
        return {
            "id": self.id,
            "authToken": self.auth_token,
            "storedAt": self.stored_at.isoformat(),
            "metadata": self.metadata,
            "content": self.content,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoredMessage":
        """Deserialize from the on-disk record layout.

        Raises:
            KeyError: If a required key is missing.
            TypeError: If a value has the wrong type.
            ValueError: If ``storedAt`` is not an ISO 8601 timestamp.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Record must be an object, got {type(data)}")
        stored_at = datetime.fromisoformat(data["storedAt"])
        if stored_at.tzinfo is None:
            stored_at = stored_at.replace(tzinfo=UTC)
        return cls(
            id=str(data["id"]),
            auth_token=str(data["authToken"]),
            stored_at=stored_at,
            metadata=dict(data.get("metadata") or {}),
            content=data.get("content") or {},
        )


@dataclass
class SweepResult:
    """Outcome of a cleanup sweep.

    Attributes:
        expired: Records deleted by the age sweep.
        evicted: Records deleted by the capacity sweep.
        stale_temp: Leftover temp files from interrupted writes removed.
        skipped: Records that could not be read or deleted.
        remaining_bytes: Total size of records left after the sweep.
    """

    expired: int = 0
    evicted: int = 0
    stale_temp: int = 0
    skipped: int = 0
    remaining_bytes: int = 0


@dataclass(frozen=True)
class _RecordFile:
    path: Path
    size: int
    mtime: float


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EmailStore:
    """File-backed store of message copies, keyed by id.

    Attributes:
        storage_dir: Directory holding the record files.
        capacity_guard: Free-space check run before every write.
        max_email_age: Retention window.
        max_storage_size: Soft byte budget enforced by eviction.
    """

    def __init__(
        self,
        storage_dir: Path,
        capacity_guard: CapacityGuard,
        max_email_age: timedelta = timedelta(days=7),
        max_storage_size: int = 5 * 1024 * 1024 * 1024,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the store.

        Args:
            storage_dir: Directory for record files (see ``initialize``).
            capacity_guard: Pre-flight free-space check.
            max_email_age: Records older than this are swept.
            max_storage_size: Byte budget for all records together.
            clock: Returns the current UTC time.
        """
        self.storage_dir = storage_dir
        self.capacity_guard = capacity_guard
        self.max_email_age = max_email_age
        self.max_storage_size = max_storage_size
        self._clock = clock

    @classmethod
    def from_config(cls, config: StorageConfig) -> "EmailStore":
        """Build a store and capacity guard from the ``storage`` section."""
        return cls(
            storage_dir=config.directory,
            capacity_guard=CapacityGuard(
                config.directory, config.min_free_space
            ),
            max_email_age=timedelta(seconds=config.max_email_age_seconds),
            max_storage_size=config.max_storage_size,
        )

    def initialize(self) -> None:
        """Create the storage directory if needed.

        Raises:
            OSError: If the directory cannot be created.
        """
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Email storage initialized at %s", self.storage_dir)

    def _record_path(self, email_id: str) -> Path:
        return self.storage_dir / f"{email_id}{RECORD_SUFFIX}"

    # ------------------------------------------------------------------
    # Store / retrieve
    # ------------------------------------------------------------------

    def store(
        self,
        content: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> StoreResult:
        """Persist a message copy and return its id and token.

        Summary keys (``from``, ``subject``, ``date``) missing from
        ``metadata`` are taken from ``content``.

        Args:
            content: JSON-compatible parsed message.
            metadata: Summary fields for rendering.

        Returns:
            The new record's id and capability token.

        Raises:
            CapacityError: If free space is at or below the floor. Nothing
                is written.
            StorageError: If the record cannot be written.
        """
        if not self.capacity_guard.has_headroom():
            raise CapacityError("Insufficient disk space for storing email")

        self.cleanup_sweep()

        summary = dict(metadata or {})
        for key in _METADATA_KEYS:
            if key not in summary and key in content:
                summary[key] = content[key]

        record = StoredMessage(
            id=str(uuid.uuid4()),
            auth_token=secrets.token_hex(16),
            stored_at=self._clock(),
            metadata=summary,
            content=content,
        )
        self._write_atomic(record)
        logger.info("Stored email %s", record.id)
        return StoreResult(email_id=record.id, auth_token=record.auth_token)

    def _write_atomic(self, record: StoredMessage) -> None:
        """Write a record to a temp file, then rename it into place."""
        target = self._record_path(record.id)
        try:
            data = json.dumps(record.to_dict())
        except (TypeError, ValueError) as e:
            raise StorageError(
                f"Email content is not serializable: {e}"
            ) from e

        try:
            fd, tmp = tempfile.mkstemp(
                dir=self.storage_dir, prefix=".", suffix=_TEMP_SUFFIX
            )
            try:
                with open(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                Path(tmp).replace(target)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error("Failed to store email %s: %s", record.id, e)
            raise StorageError(f"Failed to store email: {e}") from e

    def retrieve(self, email_id: str, token: str) -> StoredMessage:
        """Load a record, checking existence before the token.

        Args:
            email_id: Record identifier.
            token: Capability token presented by the caller.

        Returns:
            A fresh copy of the stored record.

        Raises:
            NotFoundError: If no record with this id exists, regardless of
                the token presented.
            UnauthorizedError: If the record exists but the token does not
                match.
            StorageError: If the record exists but cannot be read.
        """
        if not _EMAIL_ID_RE.match(email_id):
            raise NotFoundError("Email not found")

        path = self._record_path(email_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFoundError("Email not found") from None
        except OSError as e:
            raise StorageError(f"Failed to read email {email_id}: {e}") from e

        try:
            record = StoredMessage.from_dict(json.loads(raw))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Corrupt email record %s: %s", path, e)
            raise StorageError(f"Corrupt email record {email_id}") from e

        if not hmac.compare_digest(
            record.auth_token.encode(), token.encode()
        ):
            logger.info("Rejected retrieval of %s: token mismatch", email_id)
            raise UnauthorizedError("Invalid authentication token")

        return record

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def _list_records(self) -> list[_RecordFile]:
        """Stat every record file, skipping entries that vanish."""
        records: list[_RecordFile] = []
        try:
            paths = list(self.storage_dir.glob(f"*{RECORD_SUFFIX}"))
        except OSError as e:
            logger.error("Failed to list %s: %s", self.storage_dir, e)
            return records

        for path in paths:
            try:
                st = path.stat()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Failed to stat %s: %s", path, e)
                continue
            records.append(_RecordFile(path, st.st_size, st.st_mtime))
        return records

    def total_size(self) -> int:
        """Return the total size in bytes of all record files."""
        return sum(r.size for r in self._list_records())

    def _delete(self, path: Path) -> bool:
        """Delete a record file; True if this call removed it."""
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Failed to delete %s: %s", path, e)
            return False
        return True

    def _remove_stale_temp_files(self, now: datetime) -> int:
        """Delete temp files an interrupted write left behind."""
        removed = 0
        cutoff = (now - _STALE_TEMP_AGE).timestamp()
        try:
            paths = list(self.storage_dir.glob(f".*{_TEMP_SUFFIX}"))
        except OSError as e:
            logger.error("Failed to list %s: %s", self.storage_dir, e)
            return removed

        for path in paths:
            try:
                if path.stat().st_mtime >= cutoff:
                    continue
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Failed to stat %s: %s", path, e)
                continue
            if self._delete(path):
                removed += 1
                logger.debug("Removed stale temp file %s", path.name)
        return removed

    def cleanup_sweep(self) -> SweepResult:
        """Delete expired records, then evict oldest records over budget.

        Temp files left by interrupted writes are removed first once they
        are older than an hour; younger ones may belong to a write in
        progress.

        Never raises; per-record failures are logged and counted as
        skipped.

        Returns:
            Counts of deleted and skipped records.
        """
        result = SweepResult()
        now = self._clock()
        result.stale_temp = self._remove_stale_temp_files(now)
        survivors: list[_RecordFile] = []

        for entry in self._list_records():
            try:
                data = json.loads(entry.path.read_text(encoding="utf-8"))
                stored_at = StoredMessage.from_dict(data).stored_at
            except FileNotFoundError:
                continue
            except (
                OSError,
                json.JSONDecodeError,
                KeyError,
                TypeError,
                ValueError,
            ) as e:
                logger.warning(
                    "Skipping unreadable record %s: %s", entry.path, e
                )
                result.skipped += 1
                survivors.append(entry)
                continue

            if now - stored_at > self.max_email_age:
                if self._delete(entry.path):
                    result.expired += 1
                    logger.debug("Expired %s", entry.path.name)
                continue
            survivors.append(entry)

        total = sum(r.size for r in survivors)
        if total > self.max_storage_size:
            survivors.sort(key=lambda r: r.mtime)
            for entry in survivors:
                if total <= self.max_storage_size:
                    break
                try:
                    entry.path.unlink()
                except FileNotFoundError:
                    total -= entry.size
                    continue
                except OSError as e:
                    logger.warning("Failed to evict %s: %s", entry.path, e)
                    result.skipped += 1
                    continue
                total -= entry.size
                result.evicted += 1
                logger.debug(
                    "Evicted %s (%d bytes)", entry.path.name, entry.size
                )

        result.remaining_bytes = total
        if result.expired or result.evicted or result.stale_temp:
            logger.info(
                "Cleanup sweep: %d expired, %d evicted, %d stale temp files, "
                "%d bytes remaining",
                result.expired,
                result.evicted,
                result.stale_temp,
                total,
            )
        return result
