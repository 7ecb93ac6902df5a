"""Tests for the command line entry point."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

import main
from core.exceptions import ConfigurationError


@pytest.fixture
def config_file(tmp_path: Path) -> str:
    path = tmp_path / "deploy_config.json"
    path.write_text("{}")
    return str(path)


def _exit_code(argv) -> int:
    with pytest.raises(SystemExit) as excinfo:
        main.main(argv)
    return excinfo.value.code


class TestMain:
    """Argument parsing and dispatch."""

    def test_missing_config(self, tmp_path: Path, capsys) -> None:
        """A missing configuration file exits 1 with a message."""
        assert _exit_code([str(tmp_path / "missing.json")]) == 1
        assert "Configuration file not found" in capsys.readouterr().out

    def test_diagnose_missing_config_exits_zero(self, tmp_path: Path, capsys) -> None:
        """Diagnose reports a missing configuration file without failing."""
        assert _exit_code([str(tmp_path / "missing.json"), "--diagnose"]) == 0
        assert "Configuration file not found" in capsys.readouterr().out

    @patch("main.PromoteAgent")
    def test_promote(self, mock_agent: MagicMock, config_file: str) -> None:
        """The default mode runs the promotion with its exit code."""
        mock_agent.return_value.run.return_value = 0

        assert _exit_code([config_file, "--yes"]) == 0
        mock_agent.assert_called_once_with(config_file, verbose=None, assume_yes=True)

    @patch("main.PromoteAgent")
    def test_promote_failure_code(self, mock_agent: MagicMock, config_file: str) -> None:
        """A failed promotion exits 1."""
        mock_agent.return_value.run.return_value = 1
        assert _exit_code([config_file]) == 1

    @patch("main.PromoteAgent")
    def test_verbose_flag(self, mock_agent: MagicMock, config_file: str) -> None:
        """-v forces verbose console output."""
        mock_agent.return_value.run.return_value = 0

        _exit_code([config_file, "-v"])

        assert mock_agent.call_args.kwargs["verbose"] is True

    @patch("main.PromoteAgent")
    def test_diagnose(self, mock_agent: MagicMock, config_file: str) -> None:
        """--diagnose runs diagnostics instead of the pipeline."""
        mock_agent.return_value.diagnose.return_value = 0

        assert _exit_code([config_file, "--diagnose"]) == 0
        mock_agent.return_value.run.assert_not_called()

    @patch("main.PromoteAgent", side_effect=ConfigurationError("Missing required field in config: stage_path"))
    def test_diagnose_config_error_exits_zero(self, mock_agent: MagicMock, config_file: str, capsys) -> None:
        """Diagnose never fails the caller, even on a bad config."""
        assert _exit_code([config_file, "-d"]) == 0
        assert "stage_path" in capsys.readouterr().out

    @patch("main.PromoteAgent", side_effect=ConfigurationError("bad"))
    def test_config_error_exits_one(self, mock_agent: MagicMock, config_file: str) -> None:
        """Configuration errors fail the promotion."""
        assert _exit_code([config_file]) == 1

    @patch("main.RestoreAgent")
    def test_restore(self, mock_agent: MagicMock, config_file: str) -> None:
        """--restore runs the restore agent."""
        mock_agent.return_value.run.return_value = 0

        assert _exit_code([config_file, "--restore"]) == 0
        mock_agent.assert_called_once_with(config_file, verbose=None, assume_yes=False)

    def test_diagnose_and_restore_exclusive(self, config_file: str) -> None:
        """The two modes cannot be combined."""
        assert _exit_code([config_file, "--diagnose", "--restore"]) == 2
