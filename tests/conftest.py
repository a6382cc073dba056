"""Shared test fixtures for specforge.

Provides reusable fixtures for loading the sample API definition, creating
isolated config environments, managing output state, and running CLI
commands. These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from specforge.models import ApiDefinition, NormalizedApi
from specforge.output import OutputFormat, OutputManager, reset_output, set_output


FIXTURES_DIR = Path(__file__).parent / "fixtures"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# API definition fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def user_toml() -> str:
    """Text of the sample ``user.toml`` API definition."""
    return (FIXTURES_DIR / "user.toml").read_text(encoding="utf-8")


@pytest.fixture
def user_definition(user_toml: str) -> ApiDefinition:
    """The sample definition, parsed but not yet validated."""
    from specforge.parser import parse_api

    return parse_api(user_toml, source="user.toml")


@pytest.fixture
def user_api(user_definition: ApiDefinition) -> NormalizedApi:
    """The sample definition, validated and normalized."""
    from specforge.normalizer import normalize

    return normalize([user_definition], title="shop", version="1.0.0")


@pytest.fixture
def api_dir(tmp_path: Path, user_toml: str) -> Path:
    """A directory holding the sample definition as ``user.toml``."""
    directory = tmp_path / "api"
    directory.mkdir()
    (directory / "user.toml").write_text(user_toml, encoding="utf-8")
    return directory


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path so
    that tests never touch real user config. Clears all SPECFORGE_*
    environment variables and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("specforge.config._is_xdg_platform", lambda: True)

    for var in ["SPECFORGE_API_DIR", "SPECFORGE_OPENAPI_OUTPUT"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager for the duration of a test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner.

    Returns a CliRunner instance that captures stdout/stderr and
    provides a consistent interface for invoking Typer apps in tests.
    """
    from typer.testing import CliRunner

    return CliRunner()


@pytest.fixture
def cli_app():
    """The root Typer app with every built-in command registered."""
    from specforge.app import app, register_commands

    register_commands()
    return app
