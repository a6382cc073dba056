"""Project scaffolding: the ``new`` and ``generate`` workflows."""

from specforge.scaffold.project import (
    ProjectResult,
    build_context,
    build_documents,
    generate_project,
    new_project,
)

__all__ = [
    "ProjectResult",
    "build_context",
    "build_documents",
    "generate_project",
    "new_project",
]
