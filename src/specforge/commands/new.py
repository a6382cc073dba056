"""New command -- scaffold a project from the starter API definition.

Implements ``specforge new``. The whole project is rendered and validated
in memory first; only then is anything written, so a failure leaves no
partial project behind.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from specforge.exceptions import SpecforgeError
from specforge.output import info, success, suggest, warning


def new_command(
    name: str = typer.Argument(help="Project name (also the directory name)."),
    path: Path = typer.Option(
        Path("."), "--path", help="Directory to create the project in."
    ),
    git: Optional[bool] = typer.Option(
        None,
        "--git/--no-git",
        help="Initialise a git repository (default from global config).",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Show what would be written without writing."
    ),
) -> None:
    """Create a new project.

    Writes the starter API definition, ``specforge.json``, the generated
    documents and the project sources into ``PATH/NAME``.

    Args:
        name: Project name; must not exist yet or be an empty directory.
        path: Parent directory.
        git: Whether to run ``git init``. ``None`` uses the ``git_init``
            setting from the global config.
        dry_run: Plan only.

    Example::

        specforge new shop
        specforge new shop --path ~/src --no-git
    """
    from specforge.commands.common import fail, print_report
    from specforge.config import load_global_config
    from specforge.scaffold import new_project

    try:
        git_init = git if git is not None else load_global_config().git_init
        result = new_project(name, path, git_init=git_init, dry_run=dry_run)
    except SpecforgeError as exc:
        fail(exc)

    print_report(result.report, result.root)
    if result.dry_run:
        info("Dry run: nothing was written.")
        return

    if result.git_error:
        warning(f"Skipped git init: {result.git_error}")
    success(f"Created project '{name}' in {result.root}")
    suggest(f"cd {result.root} && specforge generate")
