"""Check command -- parse and validate API definitions without writing."""

from __future__ import annotations

from typing import Optional

import typer

from specforge.exceptions import SpecforgeError
from specforge.output import get_output, success


def check_command(
    source: Optional[str] = typer.Argument(
        None,
        help="Definition file, directory, or '-' for stdin "
        "(default: the current project's API directory).",
    ),
) -> None:
    """Validate API definitions and report every problem found.

    On success prints one row per endpoint.

    Example::

        specforge check
        specforge check config/openapi/user.toml
        cat user.toml | specforge check -
    """
    from specforge.commands.common import fail, load_api
    from specforge.generator.openapi import operation_id

    try:
        api = load_api(source)
    except SpecforgeError as exc:
        fail(exc)

    rows = [
        [endpoint.method.value, endpoint.path, operation_id(endpoint), endpoint.summary]
        for endpoint in api.endpoints
    ]
    get_output().print_table(
        ["Method", "Path", "Operation", "Summary"], rows, title=f"{api.title} {api.version}"
    )
    success(
        f"OK: {len(api.endpoints)} endpoint(s), {len(api.schemas)} schema(s), "
        f"{len(api.models)} translation table(s)"
    )
