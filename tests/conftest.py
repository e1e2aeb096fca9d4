# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures used across multiple test packages."""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from types import SimpleNamespace

import pytest

from relaymail.logging import SecretFilter
from relaymail.storage import CapacityGuard, EmailStore


class FakeClock:
    """Settable clock for store tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def fixed_disk_usage(free: int):
    """Return a ``shutil.disk_usage`` stand-in reporting ``free`` bytes."""

    def disk_usage(path: Path) -> SimpleNamespace:
        return SimpleNamespace(total=free * 2, used=free, free=free)

    return disk_usage


@pytest.fixture(autouse=True)
def _clear_secrets() -> Iterator[None]:
    """Keep registered log secrets from leaking between tests."""
    yield
    SecretFilter.clear_secrets()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    path = tmp_path / "email-storage"
    path.mkdir()
    return path


@pytest.fixture
def make_store(
    storage_dir: Path, clock: FakeClock
) -> Callable[..., EmailStore]:
    """Factory for stores over ``storage_dir`` driven by ``clock``.

    Keyword arguments set the reported free space, the free-space floor
    and the eviction limits.
    """

    def factory(
        *,
        free: int = 10**9,
        min_free_space: int = 1024,
        max_email_age: timedelta = timedelta(days=7),
        max_storage_size: int = 10**8,
    ) -> EmailStore:
        guard = CapacityGuard(
            storage_dir,
            min_free_space=min_free_space,
            disk_usage=fixed_disk_usage(free),
        )
        return EmailStore(
            storage_dir,
            guard,
            max_email_age=max_email_age,
            max_storage_size=max_storage_size,
            clock=clock,
        )

    return factory


@pytest.fixture
def store(make_store: Callable[..., EmailStore]) -> EmailStore:
    """Store with plenty of free space and default limits."""
    return make_store()
