"""End-to-end tests for the specforge commands through the Typer app.

Every invocation passes ``--no-color`` so that diagnostics are written as
plain lines; Rich would otherwise wrap long messages on a non-TTY stream.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from specforge import __version__
from specforge.exit_codes import (
    EXIT_INVALID_USAGE,
    EXIT_IO_ERROR,
    EXIT_PARSE_ERROR,
    EXIT_VALIDATION_ERROR,
)


def _invoke(runner: CliRunner, app: typer.Typer, *args: str, **kwargs):
    return runner.invoke(app, ["--no-color", *args], **kwargs)


@pytest.fixture
def shop(cli_runner: CliRunner, cli_app: typer.Typer, isolated_config: Path) -> Path:
    result = _invoke(cli_runner, cli_app, "new", "shop", "--no-git")
    assert result.exit_code == 0, result.output
    return isolated_config / "shop"


class TestRoot:
    def test_version(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        result = cli_runner.invoke(cli_app, ["--version"])
        assert result.exit_code == 0
        assert f"specforge {__version__}" in result.output

    def test_no_args_shows_help(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        result = cli_runner.invoke(cli_app, [])
        assert "generate" in result.output
        assert "translate" in result.output


class TestNewCommand:
    def test_creates_project(
        self, cli_runner: CliRunner, cli_app: typer.Typer, isolated_config: Path
    ) -> None:
        result = _invoke(cli_runner, cli_app, "new", "shop", "--no-git")
        assert result.exit_code == 0, result.output
        assert "Created project 'shop'" in result.output
        assert "specforge generate" in result.output
        assert (isolated_config / "shop" / "specforge.json").is_file()

    def test_path_option(
        self, cli_runner: CliRunner, cli_app: typer.Typer, isolated_config: Path
    ) -> None:
        parent = isolated_config / "work"
        result = _invoke(cli_runner, cli_app, "new", "shop", "--path", str(parent), "--no-git")
        assert result.exit_code == 0, result.output
        assert (parent / "shop" / "src" / "shop" / "routes.py").is_file()

    def test_dry_run(
        self, cli_runner: CliRunner, cli_app: typer.Typer, isolated_config: Path
    ) -> None:
        result = _invoke(cli_runner, cli_app, "new", "shop", "--dry-run", "--no-git")
        assert result.exit_code == 0, result.output
        assert "Dry run" in result.output
        assert "docs/openapi.json" in result.output
        assert not (isolated_config / "shop").exists()

    def test_non_empty_target(
        self, cli_runner: CliRunner, cli_app: typer.Typer, shop: Path
    ) -> None:
        result = _invoke(cli_runner, cli_app, "new", "shop", "--no-git")
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "not empty" in result.output

    def test_git_failure_is_a_warning(
        self,
        cli_runner: CliRunner,
        cli_app: typer.Typer,
        isolated_config: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr("shutil.which", lambda name: None)
        result = _invoke(cli_runner, cli_app, "new", "shop", "--git")
        assert result.exit_code == 0, result.output
        assert "Warning: Skipped git init: git was not found on PATH" in result.output


class TestGenerateCommand:
    def test_up_to_date(self, cli_runner: CliRunner, cli_app: typer.Typer, shop: Path) -> None:
        result = _invoke(cli_runner, cli_app, "generate", "--path", str(shop))
        assert result.exit_code == 0, result.output
        assert "Generated:" in result.output
        assert "unchanged" in result.output

    def test_runs_in_current_directory(
        self,
        cli_runner: CliRunner,
        cli_app: typer.Typer,
        shop: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.chdir(shop)
        (shop / "config" / "openapi" / "orders.toml").write_text(
            '[[endpoints]]\npath = "/order"\nmethod = "GET"\n', encoding="utf-8"
        )
        result = _invoke(cli_runner, cli_app, "generate")
        assert result.exit_code == 0, result.output
        assert "patched" in result.output
        doc = json.loads((shop / "docs" / "openapi.json").read_text(encoding="utf-8"))
        assert "/order" in doc["paths"]

    def test_skipped_region_warns(
        self, cli_runner: CliRunner, cli_app: typer.Typer, shop: Path
    ) -> None:
        (shop / "src" / "shop" / "routes.py").write_text("ROUTES = []\n", encoding="utf-8")
        result = _invoke(cli_runner, cli_app, "generate", "--path", str(shop))
        assert result.exit_code == 0, result.output
        assert "Warning: src/shop/routes.py: region 'routes' markers not found" in result.output

    def test_validation_error(
        self, cli_runner: CliRunner, cli_app: typer.Typer, shop: Path
    ) -> None:
        (shop / "config" / "openapi" / "bad.toml").write_text(
            '[schemas.a]\nowner = "ghost"\n', encoding="utf-8"
        )
        result = _invoke(cli_runner, cli_app, "generate", "--path", str(shop))
        assert result.exit_code == EXIT_VALIDATION_ERROR
        assert "unknown schema 'ghost'" in result.output

    def test_write_failure_exit_code(
        self,
        cli_runner: CliRunner,
        cli_app: typer.Typer,
        shop: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def refuse(path: Path, data: str) -> None:
            raise PermissionError(13, "Permission denied", str(path))

        (shop / "docs" / "openapi.json").unlink()
        monkeypatch.setattr("specforge.render.merger.atomic_write", refuse)
        result = _invoke(cli_runner, cli_app, "generate", "--path", str(shop))
        assert result.exit_code == EXIT_IO_ERROR
        assert "Error: docs/openapi.json" in result.output

    def test_not_a_project(
        self, cli_runner: CliRunner, cli_app: typer.Typer, isolated_config: Path
    ) -> None:
        result = _invoke(cli_runner, cli_app, "generate")
        assert result.exit_code == 1
        assert "specforge.json" in result.output


class TestCheckCommand:
    def test_valid_directory(
        self, cli_runner: CliRunner, cli_app: typer.Typer, api_dir: Path
    ) -> None:
        result = _invoke(cli_runner, cli_app, "check", str(api_dir))
        assert result.exit_code == 0, result.output
        assert "OK: 7 endpoint(s), 4 schema(s), 4 translation table(s)" in result.output
        assert "post_user_new" in result.output

    def test_stdin(self, cli_runner: CliRunner, cli_app: typer.Typer, user_toml: str) -> None:
        result = _invoke(cli_runner, cli_app, "check", "-", input=user_toml)
        assert result.exit_code == 0, result.output
        assert "OK: 7 endpoint(s)" in result.output

    def test_every_problem_listed(
        self, cli_runner: CliRunner, cli_app: typer.Typer, tmp_path: Path
    ) -> None:
        source = tmp_path / "bad.toml"
        source.write_text(
            '[[endpoints]]\npath = "/a"\nmethod = "POST"\nbody = "ghost"\n\n'
            '[schemas.user]\nrequired = ["email"]\n',
            encoding="utf-8",
        )
        result = _invoke(cli_runner, cli_app, "check", str(source))
        assert result.exit_code == EXIT_VALIDATION_ERROR
        assert "request body references unknown schema 'ghost'" in result.output
        assert "required field 'email' is not declared" in result.output
        assert "2 validation errors" in result.output

    def test_parse_error(self, cli_runner: CliRunner, cli_app: typer.Typer, tmp_path: Path) -> None:
        source = tmp_path / "bad.toml"
        source.write_text('[[endpoints]]\npath = "/a"\nmethod = "FETCH"\n', encoding="utf-8")
        result = _invoke(cli_runner, cli_app, "check", str(source))
        assert result.exit_code == EXIT_PARSE_ERROR
        assert "unknown HTTP method 'FETCH'" in result.output

    def test_defaults_to_project(
        self,
        cli_runner: CliRunner,
        cli_app: typer.Typer,
        shop: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.chdir(shop)
        result = _invoke(cli_runner, cli_app, "check")
        assert result.exit_code == 0, result.output
        assert "OK: 7 endpoint(s)" in result.output


class TestOpenapiCommand:
    def test_stdout(self, cli_runner: CliRunner, cli_app: typer.Typer, api_dir: Path) -> None:
        result = _invoke(cli_runner, cli_app, "openapi", str(api_dir))
        assert result.exit_code == 0, result.output
        doc = json.loads(result.stdout)
        assert doc["openapi"] == "3.1.0"
        assert doc["info"] == {"title": "Users", "version": "0.1.0", "description": "User accounts"}

    def test_output_file(
        self, cli_runner: CliRunner, cli_app: typer.Typer, api_dir: Path, tmp_path: Path
    ) -> None:
        target = tmp_path / "out" / "openapi.json"
        result = _invoke(cli_runner, cli_app, "openapi", str(api_dir), "--output", str(target))
        assert result.exit_code == 0, result.output
        assert "Wrote" in result.output
        assert json.loads(target.read_text(encoding="utf-8"))["paths"]

    def test_missing_source(self, cli_runner: CliRunner, cli_app: typer.Typer, tmp_path: Path) -> None:
        result = _invoke(cli_runner, cli_app, "openapi", str(tmp_path / "nope.toml"))
        assert result.exit_code == EXIT_PARSE_ERROR


class TestTranslateCommand:
    def test_literal(self, cli_runner: CliRunner, cli_app: typer.Typer, api_dir: Path) -> None:
        result = _invoke(cli_runner, cli_app, "translate", "user", "status", "Active", str(api_dir))
        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "😄"

    def test_span_with_as_of(self, cli_runner: CliRunner, cli_app: typer.Typer, api_dir: Path) -> None:
        result = _invoke(
            cli_runner, cli_app,
            "translate", "user", "updated_at", "2024-05-01T10:00:00Z", str(api_dir),
            "--as-of", "2024-05-04T10:00:00Z",
        )
        assert result.exit_code == 0, result.output
        assert "Updated within 1 week" in result.output

    def test_no_match(self, cli_runner: CliRunner, cli_app: typer.Typer, api_dir: Path) -> None:
        result = _invoke(cli_runner, cli_app, "translate", "user", "status", "Gone", str(api_dir))
        assert result.exit_code == 1
        assert "No translation of 'Gone' for user.status" in result.output

    def test_unknown_field(self, cli_runner: CliRunner, cli_app: typer.Typer, api_dir: Path) -> None:
        result = _invoke(cli_runner, cli_app, "translate", "user", "nickname", "x", str(api_dir))
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "No translations declared for user.nickname" in result.output

    def test_bad_as_of(self, cli_runner: CliRunner, cli_app: typer.Typer, api_dir: Path) -> None:
        result = _invoke(
            cli_runner, cli_app,
            "translate", "user", "updated_at", "2024-05-01", str(api_dir), "--as-of", "tomorrow",
        )
        assert result.exit_code == EXIT_INVALID_USAGE
        assert "--as-of" in result.output
