"""Create and regenerate specforge projects.

Both entry points run the whole pipeline -- parse, normalize, map, render,
plan -- before writing a single file:

* :func:`new_project` is all-or-nothing. The target must be empty or
  missing, every file is a ``create``, and an I/O failure while writing
  removes what was written.
* :func:`generate_project` works on an existing tree. It snapshots every
  candidate file, patches generated regions, regenerates the documents and
  never deletes anything. A file that cannot be written is recorded in the
  report; the other files are still written.
"""

from __future__ import annotations

import keyword
import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from specforge.config import (
    PROJECT_CONFIG_FILENAME,
    dump_project_config,
    package_name_for,
    resolve_project_config,
)
from specforge.exceptions import InvalidUsageError, ProjectIOError
from specforge.generator.openapi import build_openapi, operation_id, render_openapi
from specforge.generator.translations import TranslationTable, render_translations
from specforge.models import (
    GenerationReport,
    NormalizedApi,
    ObjectFieldType,
    PrimitiveType,
    ProjectConfig,
)
from specforge.normalizer import normalize
from specforge.parser import load_source, parse_api, parse_sources
from specforge.render.merger import FileSnapshot, apply_operations, plan_operations
from specforge.render.templates import (
    STARTER_TEMPLATE,
    TemplateRenderer,
    pascal_case,
    python_type,
)

logger = logging.getLogger(__name__)

STARTER_FILENAME = "user.toml"
_GIT_TIMEOUT = 60.0

_PRIMITIVE_ALIASES = {
    PrimitiveType.STRING: "str",
    PrimitiveType.INTEGER: "int",
    PrimitiveType.NUMBER: "float",
    PrimitiveType.BOOLEAN: "bool",
}


@dataclass
class ProjectResult:
    """What a scaffold run did (or, for a dry run, would do)."""

    root: Path
    report: GenerationReport
    dry_run: bool = False
    git_initialized: bool = False
    git_error: Optional[str] = None


def new_project(
    name: str,
    parent_dir: Path,
    git_init: bool = True,
    dry_run: bool = False,
) -> ProjectResult:
    """Scaffold a new project named *name* under *parent_dir*.

    Args:
        name: Project name; also the directory name.
        parent_dir: Directory the project directory is created in.
        git_init: Run ``git init`` after writing. Failures only produce a
            warning in the result.
        dry_run: Plan without touching the filesystem.

    Raises:
        InvalidUsageError: If *name* is not a plain directory name or the
            target exists and is not empty.
        ProjectIOError: If a file cannot be written. Nothing is left behind.
    """
    if not name.strip() or Path(name).name != name or name in (".", ".."):
        raise InvalidUsageError(f"Invalid project name '{name}'")

    root = Path(parent_dir) / name
    if root.exists() and (not root.is_dir() or any(root.iterdir())):
        raise InvalidUsageError(f"{root} already exists and is not empty")

    config = ProjectConfig(name=name, package=package_name_for(name))
    renderer = TemplateRenderer()

    starter_path = f"{config.api_dir}/{STARTER_FILENAME}"
    starter = renderer.render(
        STARTER_TEMPLATE,
        {"project_name": name, "package": config.package},
        starter_path,
    )
    api = normalize([parse_api(starter, source=starter_path)], title=name, version=config.version)
    table = TranslationTable.from_models(api.models)

    rendered = renderer.render_project(build_context(config, api, table))
    rendered[starter_path] = starter
    rendered[PROJECT_CONFIG_FILENAME] = dump_project_config(config)

    operations = plan_operations(rendered, FileSnapshot(root=root), build_documents(config, api, table))
    if dry_run:
        return ProjectResult(root=root, report=GenerationReport(operations=operations), dry_run=True)

    created_root = not root.exists()
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ProjectIOError(f"Cannot create {root}: {exc}", path=str(root)) from exc

    report = apply_operations(root, operations)
    if report.failures:
        _discard(root, operations, created_root)
        path, message = next(iter(report.failures.items()))
        raise ProjectIOError(f"Failed to write {path}: {message}", path=path)

    result = ProjectResult(root=root, report=report)
    if git_init:
        result.git_error = init_git(root)
        result.git_initialized = result.git_error is None
    logger.debug("Created project %s with %d file(s)", root, len(report.operations))
    return result


def generate_project(
    root: Path,
    dry_run: bool = False,
    api_dir: Optional[str] = None,
    openapi_output: Optional[str] = None,
) -> ProjectResult:
    """Regenerate documents and generated regions of the project at *root*.

    Args:
        root: Project root holding ``specforge.json``.
        dry_run: Plan without writing.
        api_dir: Override for the API definition directory.
        openapi_output: Override for the OpenAPI document path.

    Raises:
        ConfigError: If ``specforge.json`` is missing or invalid.
        ParseError: If an API definition cannot be read or parsed.
        ValidationFailedError: If the definitions fail validation.
    """
    root = Path(root)
    config = resolve_project_config(root, cli_api_dir=api_dir, cli_openapi_output=openapi_output)
    definitions = parse_sources(load_source(root / config.api_dir))
    api = normalize(definitions, title=config.name, version=config.version)
    table = TranslationTable.from_models(api.models)

    rendered = TemplateRenderer().render_project(build_context(config, api, table))
    documents = build_documents(config, api, table)

    snapshot = FileSnapshot.capture(root, [*rendered, *documents])
    operations = plan_operations(rendered, snapshot, documents)
    if dry_run:
        report = GenerationReport(operations=operations, failures=dict(snapshot.errors))
        return ProjectResult(root=root, report=report, dry_run=True)

    return ProjectResult(root=root, report=apply_operations(root, operations, snapshot))


def build_documents(
    config: ProjectConfig, api: NormalizedApi, table: TranslationTable
) -> dict[str, str]:
    """The fully generated documents, keyed by project-relative path."""
    return {
        config.openapi_output: render_openapi(build_openapi(api)),
        config.translations_output: render_translations(table),
    }


def build_context(
    config: ProjectConfig, api: NormalizedApi, table: TranslationTable
) -> dict[str, Any]:
    """Template variables for the project tree."""
    records, aliases = _python_types(api)
    return {
        "project_name": config.name,
        "package": config.package or package_name_for(config.name),
        "config": config,
        "api": api,
        "endpoints": [
            {
                "method": endpoint.method.value,
                "path": endpoint.path,
                "summary": endpoint.summary,
                "operation_id": operation_id(endpoint),
                "body": endpoint.body.schema_name if endpoint.body else None,
            }
            for endpoint in api.endpoints
        ],
        "records": records,
        "aliases": aliases,
        "translations": table.to_document(),
    }


def _python_types(api: NormalizedApi) -> tuple[list[dict[str, Any]], list[dict[str, str]]]:
    """Split schemas into TypedDict records and type aliases.

    Primitive aliases come before array aliases so that an array alias can
    refer to them at import time.
    """
    records: list[dict[str, Any]] = []
    primitive_aliases: list[dict[str, str]] = []
    array_aliases: list[dict[str, str]] = []

    for name, schema in api.schemas.items():
        type_name = pascal_case(name)
        if schema.type == PrimitiveType.OBJECT:
            records.append(_record(type_name, schema.description, schema.fields, schema.required))
        elif schema.type == PrimitiveType.ARRAY:
            items = schema.items
            if items is not None and isinstance(items.type, ObjectFieldType):
                item_name = f"{type_name}Item"
                records.append(
                    _record(item_name, schema.description, items.type.properties, items.type.required)
                )
                annotation = f"list[{item_name}]"
            elif items is not None:
                annotation = f"list[{python_type(items)}]"
            else:
                annotation = "list[Any]"
            array_aliases.append({"name": type_name, "annotation": annotation})
        else:
            primitive_aliases.append(
                {"name": type_name, "annotation": _PRIMITIVE_ALIASES[schema.type]}
            )
    return records, primitive_aliases + array_aliases


def _record(name: str, description: Optional[str], fields: dict, required: list[str]) -> dict[str, Any]:
    # Field names that cannot be class attributes need the functional form.
    functional = any(not field.isidentifier() or keyword.iskeyword(field) for field in fields)
    return {
        "name": name,
        "description": description or "",
        "functional": functional,
        "fields": [
            {"name": field, "annotation": python_type(spec), "required": field in required}
            for field, spec in fields.items()
        ],
    }


def _discard(root: Path, operations: list, created_root: bool) -> None:
    """Remove what a failed :func:`new_project` wrote.

    An existing *root* was empty, so every directory below it was created
    by the failed run and is removed too, deepest first.
    """
    if created_root:
        shutil.rmtree(root, ignore_errors=True)
        return
    directories: set[Path] = set()
    for op in operations:
        target = root / op.path
        directories.update(parent for parent in target.parents if root in parent.parents)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove %s: %s", target, exc)
    for directory in sorted(directories, key=lambda p: len(p.parts), reverse=True):
        if not directory.is_dir():
            continue
        try:
            directory.rmdir()
        except OSError as exc:
            logger.warning("Could not remove %s: %s", directory, exc)


def init_git(root: Path) -> Optional[str]:
    """Run ``git init`` in *root*; return an error message, or ``None`` on success."""
    if shutil.which("git") is None:
        return "git was not found on PATH"
    try:
        proc = subprocess.run(
            ["git", "init", "--quiet"],
            cwd=str(root),
            capture_output=True,
            text=True,
            timeout=_GIT_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        return f"git init failed: {exc}"
    if proc.returncode != 0:
        return f"git init failed: {proc.stderr.strip() or f'exit code {proc.returncode}'}"
    logger.debug("Initialised git repository in %s", root)
    return None
