"""Map a :class:`~specforge.models.NormalizedApi` to an OpenAPI 3.1 document.

The document is plain dicts and lists, built in declaration order so that
:func:`render_openapi` produces byte-identical output for identical input.
Keys whose value would be empty (descriptions, ``required`` lists) are
omitted rather than emitted as ``""`` or ``[]``.
"""

from __future__ import annotations

import json
import re
from typing import Any

from specforge.models import (
    ArrayFieldType,
    Endpoint,
    FieldSpec,
    NormalizedApi,
    ObjectFieldType,
    ParameterSpec,
    PrimitiveType,
    ReferenceFieldType,
    Schema,
)

OPENAPI_VERSION = "3.1.0"
SCHEMA_REF_PREFIX = "#/components/schemas/"

_PLACEHOLDER_RE = re.compile(r"^\{([^{}]+)\}$")
_CAMEL_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_NON_WORD_RE = re.compile(r"[^0-9a-zA-Z]+")


def build_openapi(api: NormalizedApi) -> dict[str, Any]:
    """Build the OpenAPI document for *api*.

    Paths appear in the order their first endpoint was declared; further
    methods on the same path are grouped under it. Schemas keep their
    declaration order under ``components.schemas``.
    """
    info: dict[str, Any] = {"title": api.title, "version": api.version}
    if api.description:
        info["description"] = api.description

    document: dict[str, Any] = {"openapi": OPENAPI_VERSION, "info": info}
    if api.tags:
        document["tags"] = [_tag(tag.name, tag.description) for tag in api.tags]

    paths: dict[str, dict[str, Any]] = {}
    for endpoint in api.endpoints:
        paths.setdefault(endpoint.path, {})[endpoint.method.operation_key] = _operation(endpoint)
    document["paths"] = paths

    document["components"] = {
        "schemas": {name: _schema(schema) for name, schema in api.schemas.items()}
    }
    return document


def render_openapi(document: dict[str, Any]) -> str:
    """Serialise an OpenAPI document as 2-space indented JSON with a trailing newline."""
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


def operation_id(endpoint: Endpoint) -> str:
    """Derive a stable ``operationId`` such as ``post_user_by_user_id_update``.

    The lower-case method is followed by each path segment in snake_case;
    ``{param}`` placeholders become ``by_<param>``.
    """
    parts = [endpoint.method.operation_key]
    for segment in endpoint.path.split("/"):
        if not segment:
            continue
        placeholder = _PLACEHOLDER_RE.match(segment)
        if placeholder:
            parts.append(f"by_{_snake(placeholder.group(1))}")
        else:
            word = _snake(segment)
            if word:
                parts.append(word)
    return "_".join(parts)


def schema_ref(name: str) -> dict[str, str]:
    return {"$ref": f"{SCHEMA_REF_PREFIX}{name}"}


def _snake(text: str) -> str:
    text = _CAMEL_RE.sub("_", text)
    return _NON_WORD_RE.sub("_", text).strip("_").lower()


def _tag(name: str, description: str) -> dict[str, str]:
    tag = {"name": name}
    if description:
        tag["description"] = description
    return tag


def _operation(endpoint: Endpoint) -> dict[str, Any]:
    operation: dict[str, Any] = {}
    if endpoint.tags:
        operation["tags"] = list(endpoint.tags)
    if endpoint.summary:
        operation["summary"] = endpoint.summary
    if endpoint.description:
        operation["description"] = endpoint.description
    operation["operationId"] = operation_id(endpoint)
    if endpoint.deprecated:
        operation["deprecated"] = True

    parameters = [
        _parameter(name, param, "path") for name, param in endpoint.path_params.items()
    ]
    parameters.extend(_parameter(name, param, "query") for name, param in endpoint.query.items())
    if parameters:
        operation["parameters"] = parameters

    if endpoint.body is not None:
        body: dict[str, Any] = {}
        if endpoint.body.description:
            body["description"] = endpoint.body.description
        body["required"] = endpoint.body.required
        body["content"] = {
            endpoint.body.content_type: {"schema": schema_ref(endpoint.body.schema_name)}
        }
        operation["requestBody"] = body

    operation["responses"] = {"200": {"description": "Successful response"}}
    return operation


def _parameter(name: str, param: ParameterSpec, location: str) -> dict[str, Any]:
    parameter: dict[str, Any] = {"name": name, "in": location}
    if param.description:
        parameter["description"] = param.description
    parameter["required"] = True if location == "path" else param.required

    schema: dict[str, Any] = (
        {"type": param.type.value} if param.schema_name is None else schema_ref(param.schema_name)
    )
    if param.format:
        schema["format"] = param.format
    _annotate(schema, enum=param.enum, default=param.default, example=param.example)
    parameter["schema"] = schema
    return parameter


def _field(spec: FieldSpec) -> dict[str, Any]:
    field_type = spec.type
    if isinstance(field_type, ReferenceFieldType):
        result: dict[str, Any] = schema_ref(field_type.schema_name)
    elif isinstance(field_type, ArrayFieldType):
        result = {"type": PrimitiveType.ARRAY.value}
        if field_type.items is not None:
            result["items"] = _field(field_type.items)
    elif isinstance(field_type, ObjectFieldType):
        result = _object(field_type.properties, field_type.required)
    else:
        result = {"type": field_type.name.value}

    if spec.format and not isinstance(field_type, ReferenceFieldType):
        result["format"] = spec.format
    if spec.description:
        result["description"] = spec.description
    _annotate(result, enum=spec.enum, default=spec.default, example=spec.example)
    return result


def _object(properties: dict[str, FieldSpec], required: list[str]) -> dict[str, Any]:
    result: dict[str, Any] = {
        "type": PrimitiveType.OBJECT.value,
        "properties": {name: _field(spec) for name, spec in properties.items()},
    }
    if required:
        result["required"] = list(required)
    return result


def _schema(schema: Schema) -> dict[str, Any]:
    if schema.type == PrimitiveType.OBJECT:
        result = _object(schema.fields, schema.required)
    else:
        result = {"type": schema.type.value}
        if schema.type == PrimitiveType.ARRAY and schema.items is not None:
            result["items"] = _field(schema.items)
        if schema.format:
            result["format"] = schema.format

    if schema.title:
        result["title"] = schema.title
    if schema.description:
        result["description"] = schema.description
    _annotate(result, enum=schema.enum, default=None, example=schema.example)
    return result


def _annotate(target: dict[str, Any], *, enum: Any, default: Any, example: Any) -> None:
    if enum is not None:
        target["enum"] = list(enum)
    if default is not None:
        target["default"] = default
    if example is not None:
        target["example"] = example

