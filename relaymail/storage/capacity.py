# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Free-space pre-flight check for the storage volume.

Eviction keeps the logical store under its byte budget, but it cannot
protect the device from other writers or from a burst that lands between
sweeps.  ``CapacityGuard`` is checked before every write; when free space
is at or below the reserved floor the write is refused outright.
"""

import logging
import shutil
from collections.abc import Callable
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)

#: Returns an object with a ``free`` attribute, like ``shutil.disk_usage``.
DiskUsageFn = Callable[[Path], Any]


class CapacityGuard:
    """Checks physical free space against a reserved floor.

    Attributes:
        path: Any path on the volume to check (normally the storage dir).
        min_free_space: Free bytes that must remain available.
    """

    def __init__(
        self,
        path: Path,
        min_free_space: int,
        disk_usage: DiskUsageFn = shutil.disk_usage,
    ) -> None:
        self.path = path
        self.min_free_space = min_free_space
        self._disk_usage = disk_usage

    def free_space(self) -> int:
        """Return free bytes on the volume holding ``path``.

        Raises:
            OSError: If the volume cannot be queried.
        """
        return int(self._disk_usage(self.path).free)

    def has_headroom(self) -> bool:
        """Return True if free space is above the reserved floor.

        Failing to read disk usage counts as no headroom.
        """
        try:
            free = self.free_space()
        except OSError as e:
            logger.error("Error checking disk space on %s: %s", self.path, e)
            return False

        if free > self.min_free_space:
            return True

        logger.warning(
            "Free space on %s is %d bytes, at or below floor of %d",
            self.path,
            free,
            self.min_free_space,
        )
        return False
