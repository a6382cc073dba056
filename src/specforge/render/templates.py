"""Jinja2 rendering of the packaged templates.

``specforge/templates/project/`` mirrors the layout of a generated project;
``specforge/templates/starter/`` holds the API definition a new project
starts from. Two tokens in template paths are rewritten on output:

* ``__package__`` becomes the project's Python package name;
* a ``dot-`` prefix on any path component becomes ``.`` (``dot-gitignore``
  is rendered to ``.gitignore``), so dotfiles ship inside the wheel.

Each template is rendered with ``begin(region)`` and ``end(region)``
helpers bound to its output path, which emit region markers in that file's
comment syntax.
"""

from __future__ import annotations

import re
from functools import partial
from pathlib import Path, PurePosixPath
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from specforge.models import (
    ArrayFieldType,
    FieldSpec,
    ObjectFieldType,
    PrimitiveType,
    ReferenceFieldType,
)
from specforge.render.merger import begin_marker, end_marker

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
"""Packaged template root (``specforge/templates/``)."""

PROJECT_PREFIX = "project"
STARTER_TEMPLATE = "starter/user.toml.j2"

TEMPLATE_SUFFIX = ".j2"
PACKAGE_TOKEN = "__package__"
DOTFILE_PREFIX = "dot-"

_PYTHON_TYPES: dict[PrimitiveType, str] = {
    PrimitiveType.STRING: "str",
    PrimitiveType.INTEGER: "int",
    PrimitiveType.NUMBER: "float",
    PrimitiveType.BOOLEAN: "bool",
    PrimitiveType.ARRAY: "list[Any]",
    PrimitiveType.OBJECT: "dict[str, Any]",
}

_WORD_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|[^0-9a-zA-Z]+")


class TemplateRenderer:
    """Renders packaged templates for one project context.

    Args:
        template_dir: Root of the template tree. Defaults to the packaged
            :data:`TEMPLATE_DIR`.
    """

    def __init__(self, template_dir: Optional[str | Path] = None) -> None:
        self.template_dir = Path(template_dir) if template_dir is not None else TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=StrictUndefined,
        )
        self.env.filters["snake_case"] = snake_case
        self.env.filters["pascal_case"] = pascal_case
        self.env.filters["python_type"] = python_type
        self.env.filters["py_literal"] = py_literal

    def template_names(self, prefix: str = PROJECT_PREFIX) -> list[str]:
        """Every ``*.j2`` template under *prefix*, relative to it, sorted."""
        base = self.template_dir / prefix
        return sorted(
            p.relative_to(base).as_posix()
            for p in base.rglob(f"*{TEMPLATE_SUFFIX}")
            if p.is_file()
        )

    def render(self, template_name: str, context: dict[str, Any], output_path: str) -> str:
        """Render one template with ``begin``/``end`` bound to *output_path*."""
        template = self.env.get_template(template_name)
        return template.render(
            **context,
            begin=partial(begin_marker, output_path),
            end=partial(end_marker, output_path),
        )

    def render_project(
        self, context: dict[str, Any], prefix: str = PROJECT_PREFIX
    ) -> dict[str, str]:
        """Render every template under *prefix*.

        Args:
            context: Template variables; must include ``package``.
            prefix: Sub-directory of the template root to render.

        Returns:
            File contents keyed by project-relative POSIX path, in template
            order.
        """
        rendered: dict[str, str] = {}
        for name in self.template_names(prefix):
            output = self.output_path(name, context["package"])
            rendered[output] = self.render(f"{prefix}/{name}", context, output)
        return rendered

    @staticmethod
    def output_path(template_name: str, package: str) -> str:
        """Map a template name to the project-relative file it renders to."""
        parts = []
        for part in PurePosixPath(template_name).parts:
            if part.startswith(DOTFILE_PREFIX):
                part = "." + part[len(DOTFILE_PREFIX):]
            parts.append(part.replace(PACKAGE_TOKEN, package))
        path = "/".join(parts)
        if path.endswith(TEMPLATE_SUFFIX):
            path = path[: -len(TEMPLATE_SUFFIX)]
        return path


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def _words(text: str) -> list[str]:
    return [w for w in _WORD_BOUNDARY_RE.split(text) if w]


def snake_case(text: str) -> str:
    """``newUser`` / ``user-info`` -> ``new_user`` / ``user_info``."""
    return "_".join(w.lower() for w in _words(text))


def pascal_case(text: str) -> str:
    """``new_user`` / ``userInfo`` -> ``NewUser`` / ``UserInfo``."""
    return "".join(w[:1].upper() + w[1:] for w in _words(text))


def python_type(spec: FieldSpec) -> str:
    """Python annotation for a field, e.g. ``list[str]`` or ``UserInfo``.

    Schema references become the schema's PascalCase name; inline objects
    are typed loosely as ``dict[str, Any]``.
    """
    field_type = spec.type
    if isinstance(field_type, ReferenceFieldType):
        return pascal_case(field_type.schema_name)
    if isinstance(field_type, ArrayFieldType):
        if field_type.items is None:
            return _PYTHON_TYPES[PrimitiveType.ARRAY]
        return f"list[{python_type(field_type.items)}]"
    if isinstance(field_type, ObjectFieldType):
        return _PYTHON_TYPES[PrimitiveType.OBJECT]
    return _PYTHON_TYPES[field_type.name]


def py_literal(value: Any) -> str:
    """Render a value as Python source (``repr`` of plain data)."""
    return repr(value)
