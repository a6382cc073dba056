"""Validate and normalize parsed API definitions into a :class:`NormalizedApi`.

The parser accepts anything that is structurally well formed. This module
applies the semantic rules and completes the IR:

**Checks** (independent; every failure is collected, none short-circuits):

* request bodies reference declared schemas -- exactly one error per
  offending endpoint;
* query and path parameters typed by a schema name reference a declared
  schema;
* reference field types resolve to declared schemas;
* no schema references itself, at any nesting depth inside its own
  definition (cycles spanning several schemas are not checked);
* every ``required`` name is a declared field, for schemas and inline
  objects alike;
* ``enum`` lists are non-empty and contain the ``default``/``example``;
* path placeholders and declared ``path_params`` agree, and no
  ``(method, path)`` pair is declared twice;
* schema names and ``(model, field)`` translation tables are unique across
  definition files;
* ``$span:`` durations parse.

**Normalization**: missing descriptions become ``""``; implicit path
parameters are materialized as required ``string`` parameters in placeholder
order; fields declared on an array schema are folded into its object items.

Use :func:`collect_errors` to get the error list without raising, or
:func:`normalize` to get the IR or a :class:`ValidationFailedError`.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional, Sequence, Union

from specforge.exceptions import ValidationError, ValidationFailedError
from specforge.generator.translations import SPAN_PREFIX, parse_duration
from specforge.models import (
    ApiDefinition,
    ApiTag,
    ArrayFieldType,
    Endpoint,
    FieldSpec,
    ModelTranslation,
    NormalizedApi,
    ObjectFieldType,
    ParameterSpec,
    PrimitiveType,
    ReferenceFieldType,
    Schema,
)

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")

Definitions = Union[ApiDefinition, Sequence[ApiDefinition]]


def path_placeholders(path: str) -> list[str]:
    """Return the ``{param}`` names in *path*, in order."""
    return _PLACEHOLDER_RE.findall(path)


def collect_errors(definitions: Definitions) -> list[ValidationError]:
    """Run every check and return the problems found (empty when valid)."""
    normalizer = _Normalizer(_as_list(definitions))
    normalizer.run()
    return normalizer.errors


def normalize(
    definitions: Definitions,
    title: Optional[str] = None,
    version: Optional[str] = None,
    description: Optional[str] = None,
) -> NormalizedApi:
    """Validate one or more definitions and merge them into a :class:`NormalizedApi`.

    Definitions are merged in the order given, which becomes the order of
    paths and schemas in every generated artifact.

    Args:
        definitions: A single definition or a sequence of them.
        title: API title; defaults to the first definition's ``name``.
        version: API version; defaults to the first declared ``version``.
        description: API description; defaults to the first declared one.

    Raises:
        ValidationFailedError: Carrying every :class:`ValidationError` found.
    """
    defs = _as_list(definitions)
    normalizer = _Normalizer(defs)
    normalizer.run()
    if normalizer.errors:
        raise ValidationFailedError(normalizer.errors)

    api = NormalizedApi(
        title=title or _first(d.name for d in defs) or "API",
        version=version or _first(d.version for d in defs) or "0.1.0",
        description=description or _first(d.description for d in defs) or "",
        tags=normalizer.tags,
        endpoints=normalizer.endpoints,
        schemas=normalizer.schemas,
        models=normalizer.models,
    )
    logger.debug(
        "Normalized %d endpoint(s), %d schema(s), %d translation table(s)",
        len(api.endpoints), len(api.schemas), len(api.models),
    )
    return api


def _as_list(definitions: Definitions) -> list[ApiDefinition]:
    if isinstance(definitions, ApiDefinition):
        return [definitions]
    return list(definitions)


def _first(values: Any) -> Optional[str]:
    return next((v for v in values if v), None)


def _enum_contains(enum: list[Any], value: Any) -> bool:
    """Membership that keeps booleans apart from the numbers they equal."""
    return any(
        isinstance(member, bool) == isinstance(value, bool) and member == value
        for member in enum
    )


class _Normalizer:
    """Single-use worker: walks the definitions once, collecting errors and output."""

    def __init__(self, definitions: list[ApiDefinition]) -> None:
        self._definitions = definitions
        self.errors: list[ValidationError] = []
        self.endpoints: list[Endpoint] = []
        self.schemas: dict[str, Schema] = {}
        self.models: list[ModelTranslation] = []
        self.tags: list[ApiTag] = []
        self._schema_sources: dict[str, str] = {}

    def _error(self, message: str, source: str, location: str) -> None:
        self.errors.append(ValidationError(message, source=source, location=location))

    def run(self) -> None:
        # Collect every schema name first so references may point forward
        # and across files.
        for definition in self._definitions:
            for name in definition.schemas:
                if name in self._schema_sources:
                    self._error(
                        f"schema '{name}' is already declared in {self._schema_sources[name]}",
                        definition.source,
                        f"schemas.{name}",
                    )
                else:
                    self._schema_sources[name] = definition.source

        seen_tags: set[str] = set()
        for definition in self._definitions:
            if definition.name and definition.name not in seen_tags:
                seen_tags.add(definition.name)
                self.tags.append(
                    ApiTag(name=definition.name, description=definition.description or "")
                )

        for definition in self._definitions:
            for name, schema in definition.schemas.items():
                if self._schema_sources.get(name) != definition.source or name in self.schemas:
                    continue
                self.schemas[name] = self._normalize_schema(schema, definition.source)

        seen_operations: dict[tuple[str, str], str] = {}
        for definition in self._definitions:
            for index, endpoint in enumerate(definition.endpoints):
                location = f"endpoints[{index}] {endpoint.label}"
                key = (endpoint.method.value, endpoint.path)
                if key in seen_operations:
                    self._error(
                        f"{endpoint.label} is already declared in {seen_operations[key]}",
                        definition.source,
                        location,
                    )
                    continue
                seen_operations[key] = definition.source
                self.endpoints.append(self._normalize_endpoint(endpoint, definition.source, location))

        seen_models: dict[tuple[str, str], str] = {}
        for definition in self._definitions:
            for translation in definition.models:
                key = (translation.model, translation.field)
                location = f"models.{translation.model}.{translation.field}"
                if key in seen_models:
                    self._error(
                        f"translations for '{location}' are already declared in {seen_models[key]}",
                        definition.source,
                        location,
                    )
                    continue
                seen_models[key] = definition.source
                self._check_translation(translation, definition.source, location)
                self.models.append(translation)

    # -- schemas -----------------------------------------------------------

    def _normalize_schema(self, schema: Schema, source: str) -> Schema:
        location = f"schemas.{schema.name}"
        self._check_enum(schema.enum, None, schema.example, source, location)

        fields = schema.fields
        required = schema.required
        items = schema.items

        if schema.type == PrimitiveType.ARRAY:
            if fields:
                items = self._fold_array_fields(schema, source, location)
                fields, required = {}, []
            elif required:
                self._error(
                    "'required' needs fields to refer to", source, f"{location}.required"
                )
                required = []
            if items is not None:
                items = self._normalize_field(items, source, f"{location}.items", schema.name)
        elif schema.type == PrimitiveType.OBJECT:
            self._check_required(required, fields, source, f"{location}.required")
        elif fields or required:
            self._error(
                f"fields are only allowed on object and array schemas, not '{schema.type.value}'",
                source,
                location,
            )
            fields, required = {}, []

        return schema.model_copy(
            update={
                "description": schema.description or "",
                "fields": {
                    name: self._normalize_field(spec, source, f"{location}.{name}", schema.name)
                    for name, spec in fields.items()
                },
                "required": list(required),
                "items": items,
            }
        )

    def _fold_array_fields(self, schema: Schema, source: str, location: str) -> Optional[FieldSpec]:
        """Move fields declared on an array schema onto its object items."""
        items = schema.items
        if items is not None and not isinstance(items.type, ObjectFieldType):
            self._error(
                "array schema declares fields but its items are not objects",
                source,
                f"{location}.items",
            )
            return items
        existing = items.type.properties if items is not None else {}
        if existing:
            self._error(
                "array schema declares fields both inline and on its items",
                source,
                f"{location}.items",
            )
            return items
        obj = ObjectFieldType(properties=dict(schema.fields), required=list(schema.required))
        if items is None:
            return FieldSpec(type=obj)
        return items.model_copy(update={"type": obj})

    def _normalize_field(self, spec: FieldSpec, source: str, location: str, owner: str) -> FieldSpec:
        self._check_enum(spec.enum, spec.default, spec.example, source, location)
        field_type = spec.type

        if isinstance(field_type, ReferenceFieldType):
            if field_type.schema_name == owner:
                self._error(f"schema '{owner}' references itself", source, location)
            elif field_type.schema_name not in self._schema_sources:
                self._error(
                    f"unknown schema '{field_type.schema_name}'", source, location
                )
        elif isinstance(field_type, ArrayFieldType) and field_type.items is not None:
            field_type = field_type.model_copy(
                update={
                    "items": self._normalize_field(
                        field_type.items, source, f"{location}.items", owner
                    )
                }
            )
        elif isinstance(field_type, ObjectFieldType):
            self._check_required(
                field_type.required, field_type.properties, source, f"{location}.required"
            )
            field_type = field_type.model_copy(
                update={
                    "properties": {
                        name: self._normalize_field(prop, source, f"{location}.{name}", owner)
                        for name, prop in field_type.properties.items()
                    }
                }
            )

        return spec.model_copy(update={"type": field_type, "description": spec.description or ""})

    def _check_required(
        self, required: list[str], fields: dict[str, FieldSpec], source: str, location: str
    ) -> None:
        for name in required:
            if name not in fields:
                self._error(f"required field '{name}' is not declared", source, location)

    def _check_enum(
        self,
        enum: Optional[list[Any]],
        default: Any,
        example: Any,
        source: str,
        location: str,
    ) -> None:
        if enum is None:
            return
        if not enum:
            self._error("'enum' must not be empty", source, f"{location}.enum")
            return
        if default is not None and not _enum_contains(enum, default):
            self._error(f"default {default!r} is not one of the enum values", source, f"{location}.default")
        if example is not None and not isinstance(example, list) and not _enum_contains(enum, example):
            self._error(f"example {example!r} is not one of the enum values", source, f"{location}.example")

    # -- endpoints ---------------------------------------------------------

    def _normalize_endpoint(self, endpoint: Endpoint, source: str, location: str) -> Endpoint:
        if endpoint.body is not None and endpoint.body.schema_name not in self._schema_sources:
            self._error(
                f"request body references unknown schema '{endpoint.body.schema_name}'",
                source,
                location,
            )

        query = {
            name: self._normalize_parameter(param, source, f"{location} query.{name}")
            for name, param in endpoint.query.items()
        }

        placeholders = path_placeholders(endpoint.path)
        path_params: dict[str, ParameterSpec] = {}
        for name in placeholders:
            if name in path_params:
                self._error(f"path parameter '{name}' appears twice in the path", source, location)
                continue
            declared = endpoint.path_params.get(name)
            if declared is None:
                param = ParameterSpec(type=PrimitiveType.STRING, required=True, description="")
            else:
                param = self._normalize_parameter(
                    declared, source, f"{location} path_params.{name}"
                ).model_copy(update={"required": True})
            path_params[name] = param

        for name in endpoint.path_params:
            if name not in placeholders:
                self._error(
                    f"path parameter '{name}' has no {{{name}}} placeholder in the path",
                    source,
                    f"{location} path_params.{name}",
                )

        body = endpoint.body
        if body is not None:
            body = body.model_copy(update={"description": body.description or ""})

        return endpoint.model_copy(
            update={
                "description": endpoint.description or "",
                "query": query,
                "path_params": path_params,
                "body": body,
            }
        )

    def _normalize_parameter(self, param: ParameterSpec, source: str, location: str) -> ParameterSpec:
        self._check_enum(param.enum, param.default, param.example, source, location)
        if param.schema_name is not None and param.schema_name not in self._schema_sources:
            self._error(
                f"parameter references unknown schema '{param.schema_name}'", source, location
            )
        return param.model_copy(update={"description": param.description or ""})

    # -- models ------------------------------------------------------------

    def _check_translation(self, translation: ModelTranslation, source: str, location: str) -> None:
        for index, rule in enumerate(translation.rules):
            if not rule.is_span:
                continue
            try:
                parse_duration(rule.matcher[len(SPAN_PREFIX):])
            except ValueError as exc:
                self._error(f"invalid span duration: {exc}", source, f"{location}.translations[{index}]")

