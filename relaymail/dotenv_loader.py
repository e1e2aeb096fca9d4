# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Idempotent .env loading for the relay service."""

import logging
from pathlib import Path

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

_dotenv_loaded = False


def load_dotenv_once(env_path: Path | None = None) -> None:
    """Load .env (and .env.local overrides) once per process.

    Calling this again after the first load has no effect.

    Args:
        env_path: Explicit path to a .env file. If None, ``.env`` and
            ``.env.local`` are looked up from the current directory.
    """
    global _dotenv_loaded
    if _dotenv_loaded:
        return

    if env_path is not None:
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug("Loaded .env from %s", env_path)
    else:
        load_dotenv()
        local = Path(".env.local")
        if local.exists():
            load_dotenv(local, override=True)
            logger.debug("Loaded overrides from %s", local)
    _dotenv_loaded = True


def reset_dotenv_state() -> None:
    """Reset the dotenv loaded state. For testing only."""
    global _dotenv_loaded
    _dotenv_loaded = False
