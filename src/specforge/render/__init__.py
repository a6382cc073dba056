"""Template rendering and edit-preserving merge into a project tree.

Sub-modules:

* :mod:`~specforge.render.templates` -- :class:`TemplateRenderer` over the
  packaged Jinja2 project templates.
* :mod:`~specforge.render.merger` -- region markers, the pre-write
  :class:`FileSnapshot`, and the plan/apply steps that turn rendered output
  into ``create``/``patch``/``skip``/``regenerate`` operations.
"""

from specforge.render.merger import (
    FileSnapshot,
    apply_operations,
    begin_marker,
    end_marker,
    find_regions,
    plan_operations,
    splice_region,
)
from specforge.render.templates import TemplateRenderer

__all__ = [
    "FileSnapshot",
    "TemplateRenderer",
    "apply_operations",
    "begin_marker",
    "end_marker",
    "find_regions",
    "plan_operations",
    "splice_region",
]
