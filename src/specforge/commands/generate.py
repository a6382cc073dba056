"""Generate command -- refresh documents and generated regions.

Implements ``specforge generate``: regenerates the OpenAPI and translation
documents and patches the marked regions of project sources. Files are
processed independently; one that cannot be written does not stop the rest,
but makes the command exit with the I/O error code.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from specforge.exceptions import SpecforgeError
from specforge.exit_codes import EXIT_IO_ERROR
from specforge.output import info, success


def generate_command(
    path: Path = typer.Option(Path("."), "--path", help="Project root."),
    api_dir: Optional[str] = typer.Option(
        None, "--api-dir", help="Override the API definition directory."
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Show planned changes without writing."
    ),
) -> None:
    """Regenerate a project from its API definitions.

    Example::

        specforge generate
        specforge generate --path ./shop --dry-run
    """
    from specforge.commands.common import fail, print_report
    from specforge.scaffold import generate_project

    try:
        result = generate_project(path, dry_run=dry_run, api_dir=api_dir)
    except SpecforgeError as exc:
        fail(exc)

    report = result.report
    print_report(report, result.root)

    counts = report.counts()
    summary = ", ".join(f"{count} {label}" for label, count in counts.items() if count)
    if result.dry_run:
        info(f"Dry run: {summary or 'nothing to do'}")
        return
    if report.failures:
        raise typer.Exit(code=EXIT_IO_ERROR)
    success(f"Generated: {summary or 'nothing to do'}")
