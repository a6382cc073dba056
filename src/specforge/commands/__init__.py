"""Built-in CLI commands for specforge.

Each module exports a plain callback registered on the root app in
:func:`specforge.app.main`:

* :mod:`~specforge.commands.new` -- scaffold a project.
* :mod:`~specforge.commands.generate` -- regenerate documents and regions.
* :mod:`~specforge.commands.check` -- parse and validate definitions.
* :mod:`~specforge.commands.openapi` -- print or write the OpenAPI document.
* :mod:`~specforge.commands.translate` -- look up a model translation.

Shared loading and error reporting lives in :mod:`~specforge.commands.common`.
"""
