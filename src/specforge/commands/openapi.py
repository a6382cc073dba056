"""OpenAPI command -- print or write the OpenAPI document."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from specforge.exceptions import ProjectIOError, SpecforgeError
from specforge.output import print_data, success


def openapi_command(
    source: Optional[str] = typer.Argument(
        None,
        help="Definition file, directory, or '-' for stdin "
        "(default: the current project's API directory).",
    ),
    output: str = typer.Option(
        "-", "--output", "-o", help="File to write, or '-' for stdout."
    ),
) -> None:
    """Build the OpenAPI 3.1 document.

    Example::

        specforge openapi
        specforge openapi config/openapi --output docs/openapi.json
    """
    from specforge.commands.common import fail, load_api
    from specforge.config import atomic_write
    from specforge.generator.openapi import build_openapi, render_openapi

    try:
        text = render_openapi(build_openapi(load_api(source)))
        if output == "-":
            print_data(text)
            return
        try:
            atomic_write(Path(output), text)
        except OSError as exc:
            raise ProjectIOError(f"Cannot write {output}: {exc}", path=output) from exc
    except SpecforgeError as exc:
        fail(exc)
    success(f"Wrote {output}")
