# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for relay dotenv loader."""

import os
from pathlib import Path
from unittest.mock import MagicMock, call, patch

import pytest

from relaymail.dotenv_loader import load_dotenv_once, reset_dotenv_state


class TestLoadDotenvOnce:
    """Tests for load_dotenv_once."""

    def setup_method(self) -> None:
        """Reset state before each test."""
        reset_dotenv_state()

    def teardown_method(self) -> None:
        reset_dotenv_state()

    def test_idempotent(self, tmp_path: Path) -> None:
        """Second call is a no-op."""
        env = tmp_path / ".env"
        env.touch()
        mock_ld = MagicMock()
        with patch("relaymail.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once(env)
            load_dotenv_once(env)
        assert mock_ld.call_count == 1

    def test_explicit_path(self, tmp_path: Path) -> None:
        env = tmp_path / ".env"
        env.touch()
        mock_ld = MagicMock()
        with patch("relaymail.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once(env)
        mock_ld.assert_called_once_with(env)

    def test_explicit_path_missing(self, tmp_path: Path) -> None:
        """A missing explicit file is skipped silently."""
        mock_ld = MagicMock()
        with patch("relaymail.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once(tmp_path / ".env")
        mock_ld.assert_not_called()

    def test_local_overrides(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """.env.local is loaded after .env with override."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env.local").touch()
        mock_ld = MagicMock()
        with patch("relaymail.dotenv_loader.load_dotenv", mock_ld):
            load_dotenv_once()
        assert mock_ld.call_args_list == [
            call(),
            call(Path(".env.local"), override=True),
        ]

    def test_values_reach_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("RELAYMAIL_TEST_VALUE", raising=False)
        env = tmp_path / ".env"
        env.write_text("RELAYMAIL_TEST_VALUE=from-dotenv\n")

        load_dotenv_once(env)

        try:
            assert os.environ["RELAYMAIL_TEST_VALUE"] == "from-dotenv"
        finally:
            os.environ.pop("RELAYMAIL_TEST_VALUE", None)
