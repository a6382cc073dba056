"""Artifact mappers -- turn a normalized API into generated documents.

Both mappers are pure functions of the :class:`~specforge.models.NormalizedApi`
and produce byte-stable output, so regenerating an unchanged API leaves the
documents on disk untouched.

Typical usage::

    from specforge.generator import build_openapi, render_openapi, TranslationTable

    text = render_openapi(build_openapi(api))
    table = TranslationTable.from_models(api.models)

Sub-modules:

* :mod:`~specforge.generator.openapi` -- OpenAPI 3.1 ``paths`` and
  ``components.schemas`` from endpoints and schemas.
* :mod:`~specforge.generator.translations` -- Model translation tables with
  literal and ``$span:`` matchers.
"""

from specforge.generator.openapi import build_openapi, operation_id, render_openapi
from specforge.generator.translations import (
    TranslationTable,
    parse_duration,
    render_translations,
)

__all__ = [
    "TranslationTable",
    "build_openapi",
    "operation_id",
    "parse_duration",
    "render_openapi",
    "render_translations",
]
