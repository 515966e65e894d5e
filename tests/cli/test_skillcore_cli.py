"""Tests for the skillcore CLI entry point."""

from __future__ import annotations

import sys
from unittest.mock import patch

from typer.testing import CliRunner

from skillcore_cli import __version__
from skillcore_cli.main import app, cli_main

runner = CliRunner()


def test_cli_help() -> None:
    """Test that --help flag works."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "Usage" in result.output
    assert "skillcore" in result.output


def test_cli_version() -> None:
    """Test that --version flag works."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout
    assert "skillcore CLI version" in result.stdout


def test_cli_version_short() -> None:
    """Test that -v flag works for version."""
    result = runner.invoke(app, ["-v"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_version_command() -> None:
    """Test the version command reports the runtime version."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "Runtime version" in result.stdout


def test_cli_main_keyboard_interrupt() -> None:
    """Test that KeyboardInterrupt is handled gracefully in cli_main()."""
    with patch("skillcore_cli.main.app") as mock_app, patch.object(sys, "exit") as mock_exit:
        mock_app.side_effect = KeyboardInterrupt()
        cli_main()
        mock_exit.assert_called_once_with(130)


def test_cli_main_generic_exception() -> None:
    """Test that generic exceptions are handled in cli_main()."""
    with patch("skillcore_cli.main.app") as mock_app, patch.object(sys, "exit") as mock_exit:
        mock_app.side_effect = RuntimeError("Test error")
        cli_main()
        mock_exit.assert_called_once_with(1)
