"""Helpers shared by the command modules."""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer

from specforge.exceptions import SpecforgeError, ValidationFailedError
from specforge.models import GenerationReport, NormalizedApi, OperationKind
from specforge.output import error, get_output
from specforge.render.merger import EXISTS_REASON


def resolve_source(source: Optional[str]) -> tuple[str, Optional[str], Optional[str]]:
    """Work out where API definitions come from.

    An explicit *source* is used as given. Otherwise the ``api_dir`` of the
    project in the current directory is used, and the project name and
    version become the document title and version.

    Returns:
        ``(source, title, version)``.

    Raises:
        ConfigError: If no source was given and the current directory is not
            a specforge project.
    """
    if source is not None:
        return source, None, None

    from specforge.config import resolve_project_config

    root = Path.cwd()
    config = resolve_project_config(root)
    return str(root / config.api_dir), config.name, config.version


def load_api(source: Optional[str]) -> NormalizedApi:
    """Parse and normalize the definitions at *source* (see :func:`resolve_source`)."""
    from specforge.normalizer import normalize
    from specforge.parser import load_source, parse_sources

    path, title, version = resolve_source(source)
    return normalize(parse_sources(load_source(path)), title=title, version=version)


def fail(exc: SpecforgeError) -> NoReturn:
    """Report *exc* on stderr and exit with its code.

    Validation failures list every collected problem before the summary.
    """
    if isinstance(exc, ValidationFailedError):
        for problem in exc.errors:
            error(str(problem))
    error(str(exc))
    raise typer.Exit(code=exc.exit_code) from None


def print_report(report: GenerationReport, root: Path) -> None:
    """Print the per-file operations table and warn about skipped files."""
    output = get_output()
    rows: list[list[str]] = []
    for op in report.operations:
        if op.path in report.failures:
            action = "failed"
        elif op.kind in (OperationKind.PATCH, OperationKind.REGENERATE) and not op.changed:
            action = "unchanged"
        else:
            action = op.kind.value
        rows.append([action, op.path, op.region or "", op.reason or report.failures.get(op.path, "")])
    for path, message in report.failures.items():
        if not any(op.path == path for op in report.operations):
            rows.append(["failed", path, "", message])

    output.print_table(["Action", "Path", "Region", "Note"], rows, title=str(root))

    for op in report.operations:
        if op.kind == OperationKind.SKIP and op.reason != EXISTS_REASON:
            output.warning(f"{op.path}: {op.reason}")
    for path, message in report.failures.items():
        output.error(f"{path}: {message}")
