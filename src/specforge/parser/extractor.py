"""Build the typed IR from decoded API definition documents.

This module walks the dict produced by
:func:`~specforge.parser.loader.decode_toml` and builds an
:class:`~specforge.models.ApiDefinition`. It is purely structural: every
value satisfying the grammar is accepted, including references to schemas
that do not exist. Referential checks live in :mod:`specforge.normalizer`.

The single public entry point is :func:`parse_api`. Internally it delegates
to private helpers that each handle one section of the document:

* ``_parse_endpoint`` -- one ``[[endpoints]]`` table, its ``body``,
  ``query`` and ``path_params``.
* ``_parse_schema`` -- one ``[schemas.<name>]`` table; reserved keys
  describe the schema when their value fits the attribute, every other
  key declares a field.
* ``_parse_field`` -- a field declaration in shorthand (``"string"``) or
  table form, recursively through ``items`` and ``properties``.
* ``_parse_models`` -- ``[models.<model>.<field>]`` translation tables.

Shorthand is resolved here, at the parser boundary, into the tagged
:data:`~specforge.models.FieldType` variant so later stages see one shape.
Structural errors raise :class:`~specforge.exceptions.ParseError` located by
:class:`_SourceIndex`, a best-effort map from key paths back to lines.
"""

from __future__ import annotations

import datetime
import re
from typing import Any, Iterable, NoReturn, Optional, Sequence, Union

from specforge.exceptions import ParseError
from specforge.models import (
    ApiDefinition,
    ArrayFieldType,
    BodySpec,
    Endpoint,
    FieldSpec,
    HTTPMethod,
    ModelTranslation,
    ObjectFieldType,
    ParameterSpec,
    PrimitiveFieldType,
    PrimitiveType,
    ReferenceFieldType,
    Schema,
    TranslationRule,
)
from specforge.parser.loader import SourceText, decode_toml

KeyPath = tuple[Union[str, int], ...]

_PRIMITIVES = frozenset(p.value for p in PrimitiveType)

_TOP_LEVEL_KEYS = frozenset({"name", "version", "description", "endpoints", "schemas", "models"})
_ENDPOINT_KEYS = frozenset(
    {"path", "method", "summary", "description", "tags", "deprecated", "body", "query", "path_params"}
)
_BODY_KEYS = frozenset({"schema", "description", "content_type", "required"})
_PARAMETER_KEYS = frozenset(
    {"type", "enum", "default", "description", "required", "format", "example"}
)
_FIELD_KEYS = frozenset(
    {"type", "schema", "format", "items", "properties", "required", "example", "description", "enum", "default"}
)
_SCHEMA_RESERVED_KEYS = frozenset(
    {"type", "required", "items", "format", "description", "example", "enum", "title"}
)
_TRANSLATION_KEYS = frozenset({"translations"})


def parse_api(text: str, source: str = "<string>") -> ApiDefinition:
    """Parse one API definition document into an :class:`ApiDefinition`.

    Args:
        text: TOML text of the definition.
        source: File name used in error locations.

    Returns:
        The un-validated IR for this document. Endpoints without explicit
        ``tags`` are tagged with the document's ``name``.

    Raises:
        ParseError: On invalid TOML or any structural problem (unknown key,
            type mismatch, malformed table, unknown HTTP method).

    Example::

        api = parse_api(Path("user.toml").read_text(), "user.toml")
        for endpoint in api.endpoints:
            print(endpoint.label)
    """
    data = decode_toml(text, source)
    return _Extractor(data, source, _SourceIndex(text)).extract()


def parse_sources(sources: Iterable[SourceText]) -> list[ApiDefinition]:
    """Parse every loaded source, stopping at the first :class:`ParseError`."""
    return [parse_api(src.text, src.name) for src in sources]


class _Extractor:
    """Walks one decoded document. Holds the source name and index for errors."""

    def __init__(self, data: dict[str, Any], source: str, index: _SourceIndex) -> None:
        self._data = data
        self._source = source
        self._index = index

    # -- error helpers -----------------------------------------------------

    def _fail(self, cause: str, path: KeyPath) -> NoReturn:
        line, column = self._index.locate(path)
        raise ParseError(f"{cause} (at {_format_path(path)})", self._source, line, column)

    def _check_keys(self, table: dict[str, Any], allowed: frozenset[str], path: KeyPath) -> None:
        for key in table:
            if key not in allowed:
                where = _format_path(path) or "top level"
                self._fail(f"unknown key '{key}' in {where}", path + (key,))

    def _table(self, value: Any, path: KeyPath) -> dict[str, Any]:
        if not isinstance(value, dict):
            self._fail(f"expected a table, got {_type_name(value)}", path)
        return value

    def _string(self, value: Any, path: KeyPath) -> str:
        if not isinstance(value, str):
            self._fail(f"expected a string, got {_type_name(value)}", path)
        return value

    def _opt_string(self, table: dict[str, Any], key: str, path: KeyPath) -> Optional[str]:
        if key not in table:
            return None
        return self._string(table[key], path + (key,))

    def _bool(self, table: dict[str, Any], key: str, default: bool, path: KeyPath) -> bool:
        if key not in table:
            return default
        value = table[key]
        if not isinstance(value, bool):
            self._fail(f"expected a boolean, got {_type_name(value)}", path + (key,))
        return value

    def _string_list(self, value: Any, path: KeyPath) -> list[str]:
        if not isinstance(value, list):
            self._fail(f"expected an array of strings, got {_type_name(value)}", path)
        return [self._string(item, path + (i,)) for i, item in enumerate(value)]

    def _opt_list(self, table: dict[str, Any], key: str, path: KeyPath) -> Optional[list[Any]]:
        if key not in table:
            return None
        value = table[key]
        if not isinstance(value, list):
            self._fail(f"expected an array, got {_type_name(value)}", path + (key,))
        return list(value)

    # -- document ----------------------------------------------------------

    def extract(self) -> ApiDefinition:
        data = self._data
        self._check_keys(data, _TOP_LEVEL_KEYS, ())

        name = self._opt_string(data, "name", ())
        endpoints_raw = data.get("endpoints", [])
        if not isinstance(endpoints_raw, list):
            self._fail("'endpoints' must be an array of tables ([[endpoints]])", ("endpoints",))

        endpoints = [
            self._parse_endpoint(self._table(raw, ("endpoints", i)), ("endpoints", i), name)
            for i, raw in enumerate(endpoints_raw)
        ]

        schemas: dict[str, Schema] = {}
        for schema_name, raw in self._table(data.get("schemas", {}), ("schemas",)).items():
            path: KeyPath = ("schemas", schema_name)
            schemas[schema_name] = self._parse_schema(schema_name, self._table(raw, path), path)

        return ApiDefinition(
            source=self._source,
            name=name,
            version=self._opt_string(data, "version", ()),
            description=self._opt_string(data, "description", ()),
            endpoints=endpoints,
            schemas=schemas,
            models=self._parse_models(self._table(data.get("models", {}), ("models",))),
        )

    # -- endpoints ---------------------------------------------------------

    def _parse_endpoint(self, raw: dict[str, Any], path: KeyPath, doc_name: Optional[str]) -> Endpoint:
        self._check_keys(raw, _ENDPOINT_KEYS, path)

        if "path" not in raw:
            self._fail("endpoint is missing 'path'", path)
        if "method" not in raw:
            self._fail("endpoint is missing 'method'", path)

        url = self._string(raw["path"], path + ("path",))
        method_str = self._string(raw["method"], path + ("method",))
        try:
            method = HTTPMethod(method_str.upper())
        except ValueError:
            choices = ", ".join(m.value for m in HTTPMethod)
            self._fail(f"unknown HTTP method '{method_str}' (expected one of {choices})", path + ("method",))

        if "tags" in raw:
            tags = self._string_list(raw["tags"], path + ("tags",))
        else:
            tags = [doc_name] if doc_name else []

        return Endpoint(
            path=url,
            method=method,
            summary=self._opt_string(raw, "summary", path) or "",
            description=self._opt_string(raw, "description", path),
            tags=tags,
            deprecated=self._bool(raw, "deprecated", False, path),
            body=self._parse_body(raw["body"], path + ("body",)) if "body" in raw else None,
            query=self._parse_parameters(raw.get("query", {}), path + ("query",)),
            path_params=self._parse_parameters(raw.get("path_params", {}), path + ("path_params",)),
        )

    def _parse_body(self, raw: Any, path: KeyPath) -> BodySpec:
        # `body = "newUser"` is shorthand for `[endpoints.body] schema = "newUser"`.
        if isinstance(raw, str):
            return BodySpec(schema_name=raw)
        table = self._table(raw, path)
        self._check_keys(table, _BODY_KEYS, path)
        if "schema" not in table:
            self._fail("request body is missing 'schema'", path)
        return BodySpec(
            schema_name=self._string(table["schema"], path + ("schema",)),
            description=self._opt_string(table, "description", path),
            content_type=self._opt_string(table, "content_type", path) or "application/json",
            required=self._bool(table, "required", True, path),
        )

    def _parse_parameters(self, raw: Any, path: KeyPath) -> dict[str, ParameterSpec]:
        table = self._table(raw, path)
        return {name: self._parse_parameter(spec, path + (name,)) for name, spec in table.items()}

    def _parse_parameter(self, raw: Any, path: KeyPath) -> ParameterSpec:
        if isinstance(raw, str):
            return ParameterSpec(**_parameter_type(raw))
        table = self._table(raw, path)
        self._check_keys(table, _PARAMETER_KEYS, path)
        type_name = self._opt_string(table, "type", path) or PrimitiveType.STRING.value
        return ParameterSpec(
            **_parameter_type(type_name),
            format=self._opt_string(table, "format", path),
            enum=self._opt_list(table, "enum", path),
            default=_plain(table.get("default")),
            example=_plain(table.get("example")),
            description=self._opt_string(table, "description", path),
            required=self._bool(table, "required", False, path),
        )

    def _primitive(self, value: str, path: KeyPath) -> PrimitiveType:
        if value not in _PRIMITIVES:
            choices = ", ".join(sorted(_PRIMITIVES))
            self._fail(f"unknown type '{value}' (expected one of {choices})", path)
        return PrimitiveType(value)

    # -- schemas -----------------------------------------------------------

    def _parse_schema(self, name: str, raw: dict[str, Any], path: KeyPath) -> Schema:
        type_value = raw.get("type")
        type_name = type_value if isinstance(type_value, str) else PrimitiveType.OBJECT.value
        schema_type = self._primitive(type_name, path + ("type",))

        attrs: dict[str, Any] = {}
        fields: dict[str, FieldSpec] = {}
        for key, value in raw.items():
            if _is_schema_attribute(key, value, schema_type):
                attrs[key] = value
            else:
                fields[key] = self._parse_field(value, path + (key,))

        items = None
        if "items" in attrs:
            items = self._parse_field(attrs["items"], path + ("items",))

        return Schema(
            name=name,
            type=schema_type,
            title=attrs.get("title"),
            description=attrs.get("description"),
            format=attrs.get("format"),
            example=_plain(attrs.get("example")),
            enum=attrs.get("enum"),
            required=self._string_list(attrs["required"], path + ("required",)) if "required" in attrs else [],
            fields=fields,
            items=items,
        )

    def _parse_field(self, raw: Any, path: KeyPath) -> FieldSpec:
        if isinstance(raw, str):
            return FieldSpec(type=_shorthand_type(raw))
        if not isinstance(raw, dict):
            self._fail(
                f"field must be a type name or a table, got {_type_name(raw)}", path
            )

        self._check_keys(raw, _FIELD_KEYS, path)
        if "schema" in raw:
            if "type" in raw:
                self._fail("a field may declare 'type' or 'schema', not both", path + ("schema",))
            field_type: Any = ReferenceFieldType(
                schema_name=self._string(raw["schema"], path + ("schema",))
            )
        elif "type" in raw:
            type_name = self._string(raw["type"], path + ("type",))
            field_type = self._field_type(type_name, raw, path)
        else:
            self._fail("field is missing 'type'", path)

        if "items" in raw and type_name_of(field_type) != "array":
            self._fail("'items' is only allowed on array fields", path + ("items",))
        if ("properties" in raw or "required" in raw) and type_name_of(field_type) != "object":
            self._fail("'properties' and 'required' are only allowed on object fields", path)

        return FieldSpec(
            type=field_type,
            format=self._opt_string(raw, "format", path),
            description=self._opt_string(raw, "description", path),
            example=_plain(raw.get("example")),
            enum=self._opt_list(raw, "enum", path),
            default=_plain(raw.get("default")),
        )

    def _field_type(self, type_name: str, raw: dict[str, Any], path: KeyPath) -> Any:
        if type_name == PrimitiveType.ARRAY.value:
            items = self._parse_field(raw["items"], path + ("items",)) if "items" in raw else None
            return ArrayFieldType(items=items)
        if type_name == PrimitiveType.OBJECT.value:
            props_path = path + ("properties",)
            properties = {
                key: self._parse_field(value, props_path + (key,))
                for key, value in self._table(raw.get("properties", {}), props_path).items()
            }
            required = (
                self._string_list(raw["required"], path + ("required",)) if "required" in raw else []
            )
            return ObjectFieldType(properties=properties, required=required)
        if type_name in _PRIMITIVES:
            return PrimitiveFieldType(name=PrimitiveType(type_name))
        return ReferenceFieldType(schema_name=type_name)

    # -- models ------------------------------------------------------------

    def _parse_models(self, raw: dict[str, Any]) -> list[ModelTranslation]:
        translations: list[ModelTranslation] = []
        for model, fields in raw.items():
            model_path: KeyPath = ("models", model)
            for field, table in self._table(fields, model_path).items():
                path = model_path + (field,)
                table = self._table(table, path)
                self._check_keys(table, _TRANSLATION_KEYS, path)
                rules = self._parse_rules(table.get("translations", []), path + ("translations",))
                translations.append(ModelTranslation(model=model, field=field, rules=rules))
        return translations

    def _parse_rules(self, raw: Any, path: KeyPath) -> list[TranslationRule]:
        if not isinstance(raw, list):
            self._fail(f"expected an array of [matcher, label] pairs, got {_type_name(raw)}", path)
        rules = []
        for i, pair in enumerate(raw):
            if not isinstance(pair, list) or len(pair) != 2:
                self._fail("each translation must be a [matcher, label] pair", path + (i,))
            matcher, label = pair
            if isinstance(matcher, (dict, list)):
                self._fail("translation matcher must be a scalar value", path + (i,))
            rules.append(
                TranslationRule(
                    matcher=stringify_value(matcher),
                    label=self._string(label, path + (i, 1)),
                )
            )
        return rules


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _shorthand_type(name: str) -> Any:
    """Expand a bare type string into a :data:`~specforge.models.FieldType`."""
    if name == PrimitiveType.ARRAY.value:
        return ArrayFieldType()
    if name == PrimitiveType.OBJECT.value:
        return ObjectFieldType()
    if name in _PRIMITIVES:
        return PrimitiveFieldType(name=PrimitiveType(name))
    return ReferenceFieldType(schema_name=name)


def _is_schema_attribute(key: str, value: Any, schema_type: PrimitiveType) -> bool:
    """Whether *key* of a schema table describes the schema rather than a field.

    Reserved names remain usable as field names: a value of the wrong shape
    for the attribute (a table under ``title``, a string under ``required``,
    ``items`` on a schema that is not an array) declares a field instead.
    """
    if key not in _SCHEMA_RESERVED_KEYS:
        return False
    if key == "items":
        return schema_type == PrimitiveType.ARRAY
    if key in ("required", "enum"):
        return isinstance(value, list)
    if key == "example":
        return not (isinstance(value, dict) and ("type" in value or "schema" in value))
    return isinstance(value, str)


def _parameter_type(name: str) -> dict[str, Any]:
    """``type``/``schema_name`` arguments for a parameter declared as *name*."""
    if name in _PRIMITIVES:
        return {"type": PrimitiveType(name)}
    return {"schema_name": name}


def type_name_of(field_type: Any) -> str:
    """Return the JSON type name of a field type, or ``"$ref"`` for references."""
    if isinstance(field_type, PrimitiveFieldType):
        return field_type.name.value
    if isinstance(field_type, ArrayFieldType):
        return "array"
    if isinstance(field_type, ObjectFieldType):
        return "object"
    return "$ref"


def stringify_value(value: Any) -> str:
    """Render a scalar the way translation matchers compare it.

    Booleans are lower case (``true``/``false``) to match TOML and JSON,
    integral floats lose their trailing ``.0``.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    return str(value)


def _plain(value: Any) -> Any:
    """Convert TOML date/time values to ISO strings so the IR stays JSON-ready."""
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


def _type_name(value: Any) -> str:
    if isinstance(value, dict):
        return "table"
    if isinstance(value, list):
        return "array"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _format_path(path: KeyPath) -> str:
    """Render ``("endpoints", 2, "query", "roles")`` as ``endpoints[2].query.roles``."""
    out = ""
    for part in path:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else part
    return out


# ---------------------------------------------------------------------------
# Source location index
# ---------------------------------------------------------------------------

_HEADER_RE = re.compile(r"^\s*(\[\[?)\s*([^\[\]]+?)\s*\]\]?\s*(?:#.*)?$")


class _SourceIndex:
    """Best-effort map from a decoded key path back to a line and column.

    TOML decoders do not report positions for successfully decoded values,
    so structural errors are located by scanning the text: table headers
    (``[schemas.newUser]``, ``[[endpoints]]``) narrow the search to a block,
    then ``key =`` assignments inside the block (or inside an inline table on
    the matched line) pinpoint the column.
    """

    def __init__(self, text: str) -> None:
        self._lines = text.splitlines()
        self._headers: list[tuple[int, str, bool]] = []
        for lineno, line in enumerate(self._lines):
            match = _HEADER_RE.match(line)
            if match:
                name = ".".join(part.strip().strip("\"'") for part in match.group(2).split("."))
                self._headers.append((lineno, name, match.group(1) == "[["))

    def locate(self, path: Sequence[Union[str, int]]) -> tuple[Optional[int], Optional[int]]:
        """Return a 1-based ``(line, column)`` for *path*, or ``(None, None)``."""
        prefix = ""
        block_start = -1  # line index of the current table header; -1 = root
        found: Optional[tuple[int, int]] = None
        inline_line: Optional[int] = None

        for part in path:
            if inline_line is not None:
                if isinstance(part, str):
                    column = _find_key(self._lines[inline_line], part)
                    if column is not None:
                        found = (inline_line, column)
                continue

            if isinstance(part, int):
                header = self._nth_array_header(prefix, part)
                if header is not None:
                    block_start = header
                    found = (header, _indent(self._lines[header]))
                continue

            candidate = f"{prefix}.{part}" if prefix else part
            header = self._header_after(candidate, block_start)
            if header is not None:
                prefix, block_start = candidate, header
                found = (header, _indent(self._lines[header]))
                continue
            if self._has_subtables(candidate):
                # Implicit super-table such as `schemas` in `[schemas.newUser]`.
                prefix = candidate
                continue

            key_line = self._key_in_block(part, block_start)
            if key_line is None:
                break
            found = key_line
            inline_line = key_line[0]

        if found is None:
            return None, None
        return found[0] + 1, found[1] + 1

    def _nth_array_header(self, name: str, index: int) -> Optional[int]:
        matches = [line for line, header, is_array in self._headers if is_array and header == name]
        return matches[index] if index < len(matches) else None

    def _header_after(self, name: str, start: int) -> Optional[int]:
        for line, header, _ in self._headers:
            if line > start and header == name:
                return line
        return None

    def _has_subtables(self, name: str) -> bool:
        return any(header.startswith(f"{name}.") for _, header, _ in self._headers)

    def _key_in_block(self, key: str, start: int) -> Optional[tuple[int, int]]:
        header_lines = {line for line, _, _ in self._headers}
        for lineno in range(start + 1, len(self._lines)):
            if lineno in header_lines:
                break
            line = self._lines[lineno]
            stripped = line.lstrip()
            if stripped.startswith((key, f'"{key}"', f"'{key}'")):
                column = _find_key(line, key)
                if column is not None and column == len(line) - len(stripped):
                    return lineno, column
        return None


def _find_key(line: str, key: str) -> Optional[int]:
    match = re.search(rf"(?:^|[\s{{,])([\"']?){re.escape(key)}\1\s*=", line)
    if match is None:
        return None
    return match.start(1)


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())
