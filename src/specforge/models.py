"""Canonical Pydantic models shared across all specforge modules.

This is the single source of truth for data shapes in the project. Every other
module imports from here rather than defining its own models. The models fall
into three groups:

**Configuration models** -- serialised as JSON on disk:
    :class:`OutputConfig`, :class:`GlobalConfig` and :class:`ProjectConfig`.

**Intermediate representation (IR)** -- produced by the parser, checked and
completed by the normalizer, consumed by the mappers and renderer:
    :class:`HTTPMethod`, :class:`PrimitiveType`, :class:`ParameterSpec`,
    :class:`FieldSpec` with its tagged :data:`FieldType` variant,
    :class:`BodySpec`, :class:`Endpoint`, :class:`Schema`,
    :class:`TranslationRule`, :class:`ModelTranslation`,
    :class:`ApiDefinition` and :class:`NormalizedApi`.

**Generation output** -- the plan and result of writing a project:
    :class:`OperationKind`, :class:`FileOperation` and
    :class:`GenerationReport`.

IR models are frozen: once built they are never mutated, and the normalizer
derives new instances with ``model_copy(update=...)``.
"""

from __future__ import annotations

import enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# --- Configuration ---


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/specforge/config.json``.

    Loaded by :func:`~specforge.config.load_global_config`.
    """

    git_init: bool = Field(
        default=True, description="Run `git init` in newly scaffolded projects"
    )
    output: OutputConfig = Field(default_factory=OutputConfig)


class ProjectConfig(BaseModel):
    """Per-project settings stored as ``specforge.json`` at the project root.

    Written by ``specforge new`` and read by ``specforge generate``. Paths
    are relative to the project root. Extra keys are preserved so that
    projects can carry their own settings alongside the generator's.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    package: Optional[str] = Field(
        default=None, description="Python package name (derived from name if omitted)"
    )
    version: str = "0.1.0"
    api_dir: str = Field(
        default="config/openapi", description="Directory holding *.toml API definitions"
    )
    openapi_output: str = Field(
        default="docs/openapi.json", description="Where the OpenAPI document is written"
    )
    translations_output: str = Field(
        default="docs/translations.json",
        description="Where the model translation document is written",
    )


# --- Intermediate representation ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods an endpoint may declare.

    Values are upper case as written in API definitions; the OpenAPI
    path-item key is :attr:`operation_key`.
    """

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"

    @property
    def operation_key(self) -> str:
        return self.value.lower()


class PrimitiveType(str, enum.Enum):
    """JSON Schema primitive types accepted for parameters, fields and schemas."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ParameterSpec(BaseModel):
    """A query or path parameter of an :class:`Endpoint`.

    The parameter name is the key it is stored under in
    :attr:`Endpoint.query` or :attr:`Endpoint.path_params`. A parameter
    whose ``type`` names a schema carries it in :attr:`schema_name`; its
    ``type`` is then unused.
    """

    model_config = ConfigDict(frozen=True)

    type: PrimitiveType = PrimitiveType.STRING
    schema_name: Optional[str] = Field(
        default=None, description="Referenced schema, when the type is not a primitive"
    )
    format: Optional[str] = None
    enum: Optional[list[Any]] = None
    default: Any = None
    example: Any = None
    description: Optional[str] = None
    required: bool = False


class PrimitiveFieldType(BaseModel):
    """A field holding a plain JSON value (``string``, ``integer``, ...)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["primitive"] = "primitive"
    name: PrimitiveType


class ArrayFieldType(BaseModel):
    """A list field; ``items`` is ``None`` when the element type is unconstrained."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["array"] = "array"
    items: Optional[FieldSpec] = None


class ObjectFieldType(BaseModel):
    """An inline object field with its own ordered properties."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["object"] = "object"
    properties: dict[str, FieldSpec] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)


class ReferenceFieldType(BaseModel):
    """A field whose type is another named :class:`Schema`."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["reference"] = "reference"
    schema_name: str


FieldType = Annotated[
    Union[PrimitiveFieldType, ArrayFieldType, ObjectFieldType, ReferenceFieldType],
    Field(discriminator="kind"),
]
"""Tagged variant covering every shape a field type can take."""


class FieldSpec(BaseModel):
    """Full description of a schema field, array item, or object property.

    Shorthand declarations (a bare type string) are expanded into this form
    by the parser, so downstream stages only ever see one canonical shape.
    """

    model_config = ConfigDict(frozen=True)

    type: FieldType
    format: Optional[str] = None
    description: Optional[str] = None
    example: Any = None
    enum: Optional[list[Any]] = None
    default: Any = None


class BodySpec(BaseModel):
    """Request body of an endpoint, always a reference to a named schema."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    description: Optional[str] = None
    content_type: str = "application/json"
    required: bool = True


class Endpoint(BaseModel):
    """One HTTP operation (path + method) declared in ``[[endpoints]]``."""

    model_config = ConfigDict(frozen=True)

    path: str
    method: HTTPMethod
    summary: str = ""
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    deprecated: bool = False
    body: Optional[BodySpec] = None
    query: dict[str, ParameterSpec] = Field(default_factory=dict)
    path_params: dict[str, ParameterSpec] = Field(default_factory=dict)

    @property
    def label(self) -> str:
        """``METHOD /path`` -- used in messages and reports."""
        return f"{self.method.value} {self.path}"


class Schema(BaseModel):
    """A named, reusable type definition from ``[schemas.<name>]``.

    Object schemas use :attr:`fields` and :attr:`required`. Array schemas use
    :attr:`items`; fields declared on an array schema describe its object
    items and are folded into :attr:`items` during normalization. Primitive
    schemas (e.g. a ``string`` with ``format = "uuid"``) use :attr:`format`.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    type: PrimitiveType = PrimitiveType.OBJECT
    title: Optional[str] = None
    description: Optional[str] = None
    format: Optional[str] = None
    example: Any = None
    enum: Optional[list[Any]] = None
    required: list[str] = Field(default_factory=list)
    fields: dict[str, FieldSpec] = Field(default_factory=dict)
    items: Optional[FieldSpec] = None


class TranslationRule(BaseModel):
    """One ``[matcher, label]`` pair of a model field's translation table.

    ``matcher`` is either a literal value or ``$span:<duration>``.
    """

    model_config = ConfigDict(frozen=True)

    matcher: str
    label: str

    @property
    def is_span(self) -> bool:
        return self.matcher.startswith("$span:")


class ModelTranslation(BaseModel):
    """Translations for one field of one model, in declaration order."""

    model_config = ConfigDict(frozen=True)

    model: str
    field: str
    rules: list[TranslationRule] = Field(default_factory=list)


class ApiDefinition(BaseModel):
    """Parsed (not yet validated) contents of one API definition file."""

    model_config = ConfigDict(frozen=True)

    source: str = "<string>"
    name: Optional[str] = None
    version: Optional[str] = None
    description: Optional[str] = None
    endpoints: list[Endpoint] = Field(default_factory=list)
    schemas: dict[str, Schema] = Field(default_factory=dict)
    models: list[ModelTranslation] = Field(default_factory=list)


class ApiTag(BaseModel):
    """An OpenAPI tag, one per named definition file."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""


class NormalizedApi(BaseModel):
    """Validated, merged IR across every definition file of a project.

    Produced only by :func:`~specforge.normalizer.normalize`; every
    reference inside it resolves and every description is a string.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    version: str = "0.1.0"
    description: str = ""
    tags: list[ApiTag] = Field(default_factory=list)
    endpoints: list[Endpoint] = Field(default_factory=list)
    schemas: dict[str, Schema] = Field(default_factory=dict)
    models: list[ModelTranslation] = Field(default_factory=list)


# --- Generation output ---


class OperationKind(str, enum.Enum):
    """What the writer does with one target file (or one region of it)."""

    CREATE = "create"
    PATCH = "patch"
    SKIP = "skip"
    REGENERATE = "regenerate"


class FileOperation(BaseModel):
    """A single planned change to the project tree.

    * ``create`` -- write ``content`` to a file that does not exist yet.
    * ``patch`` -- replace the body of ``region`` inside an existing file.
    * ``skip`` -- leave the file alone; ``reason`` says why.
    * ``regenerate`` -- rewrite a fully generated document.

    ``changed`` is ``False`` for patches and regenerations whose new content
    equals what is already on disk; those are never written.
    """

    kind: OperationKind
    path: str
    region: Optional[str] = None
    content: str = ""
    reason: Optional[str] = None
    changed: bool = True


class GenerationReport(BaseModel):
    """Outcome of applying a list of :class:`FileOperation` objects."""

    operations: list[FileOperation] = Field(default_factory=list)
    failures: dict[str, str] = Field(
        default_factory=dict, description="Path -> I/O error message"
    )

    def counts(self) -> dict[str, int]:
        """Tally operations for the end-of-run summary."""
        tally = {
            "created": 0,
            "patched": 0,
            "unchanged": 0,
            "skipped": 0,
            "regenerated": 0,
            "failed": len(self.failures),
        }
        for op in self.operations:
            if op.path in self.failures:
                continue
            if op.kind == OperationKind.CREATE:
                tally["created"] += 1
            elif op.kind == OperationKind.SKIP:
                tally["skipped"] += 1
            elif not op.changed:
                tally["unchanged"] += 1
            elif op.kind == OperationKind.PATCH:
                tally["patched"] += 1
            else:
                tally["regenerated"] += 1
        return tally


ArrayFieldType.model_rebuild()
ObjectFieldType.model_rebuild()
FieldSpec.model_rebuild()
