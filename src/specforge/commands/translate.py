"""Translate command -- look up the label for a model field value."""

from __future__ import annotations

import datetime
from typing import Optional

import typer

from specforge.exceptions import InvalidUsageError, SpecforgeError
from specforge.output import print_data, warning


def translate_command(
    model: str = typer.Argument(help="Model name, e.g. 'user'."),
    field: str = typer.Argument(help="Field name, e.g. 'status'."),
    value: str = typer.Argument(help="Field value; timestamps for span rules."),
    source: Optional[str] = typer.Argument(
        None,
        help="Definition file, directory, or '-' for stdin "
        "(default: the current project's API directory).",
    ),
    as_of: Optional[str] = typer.Option(
        None, "--as-of", help="Reference time for span rules (ISO 8601, default: now)."
    ),
) -> None:
    """Print the translation label for VALUE.

    Rules are tried in declaration order and the first match wins. Exits
    with code 1 when no rule matches.

    Example::

        specforge translate user status Active
        specforge translate user updated_at 2024-05-01T10:00:00Z --as-of 2024-05-02T09:00:00Z
    """
    from specforge.commands.common import fail, load_api
    from specforge.generator.translations import TranslationTable, to_timestamp

    try:
        reference: Optional[datetime.datetime] = None
        if as_of is not None:
            reference = to_timestamp(as_of)
            if reference is None:
                raise InvalidUsageError(f"--as-of is not an ISO 8601 timestamp: {as_of!r}")

        table = TranslationTable.from_models(load_api(source).models)
        if (model, field) not in table:
            raise InvalidUsageError(f"No translations declared for {model}.{field}")
    except SpecforgeError as exc:
        fail(exc)

    label = table.translate(model, field, value, as_of=reference)
    if label is None:
        warning(f"No translation of {value!r} for {model}.{field}")
        raise typer.Exit(code=1)
    print_data(label)
