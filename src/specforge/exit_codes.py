"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~specforge.exceptions.SpecforgeError` subclass.
External tooling (CI scripts, pre-commit hooks) can inspect the exit code to
determine the failure class without parsing stderr.

Example::

    $ specforge generate
    $ echo $?
    8   # EXIT_VALIDATION_ERROR -- the API definition has semantic errors
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_PARSE_ERROR = 7
"""The API definition could not be parsed (TOML syntax or structure)."""

EXIT_VALIDATION_ERROR = 8
"""The API definition parsed but failed semantic validation."""

EXIT_IO_ERROR = 9
"""One or more project files could not be read or written."""
