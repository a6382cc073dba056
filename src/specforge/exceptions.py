"""Exception hierarchy for specforge.

All exceptions inherit from :class:`SpecforgeError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`specforge.exit_codes`.
The top-level error handler in :func:`specforge.app.main` catches
``SpecforgeError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    SpecforgeError (exit 1)
    +-- InvalidUsageError      (exit 2)
    +-- ConfigError            (exit 1)
    +-- ParseError             (exit 7)
    +-- ValidationError        (exit 8)
    +-- ValidationFailedError  (exit 8)
    +-- MergeConflict          (exit 1, never fatal in practice)
    +-- ProjectIOError         (exit 9)

:class:`ValidationError` instances are *collected* by the normalizer rather
than raised one at a time; the batch is raised as a single
:class:`ValidationFailedError`. :class:`MergeConflict` is caught by the
merger and downgraded to a ``skip`` file operation.
"""

from __future__ import annotations

from typing import Optional, Sequence

from specforge.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_IO_ERROR,
    EXIT_PARSE_ERROR,
    EXIT_VALIDATION_ERROR,
)


class SpecforgeError(Exception):
    """Base exception for all specforge errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`specforge.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(SpecforgeError):
    """Raised for invalid CLI arguments (e.g. scaffolding into a non-empty directory)."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(SpecforgeError):
    """Raised for configuration problems (invalid JSON, bad project settings)."""

    exit_code = EXIT_GENERIC_FAILURE


class ParseError(SpecforgeError):
    """Raised when API definition text is malformed.

    Carries the source name plus a 1-based line/column location so the
    message reads like a compiler diagnostic::

        config/openapi/user.toml:12:1: unknown key 'sumary' in endpoints[2]

    Args:
        cause: What went wrong, without location.
        source: File name (or ``<stdin>``/``<string>``) the text came from.
        line: 1-based line number, or ``None`` when unknown.
        column: 1-based column number, or ``None`` when unknown.
    """

    exit_code = EXIT_PARSE_ERROR

    def __init__(
        self,
        cause: str,
        source: str = "<string>",
        line: Optional[int] = None,
        column: Optional[int] = None,
    ):
        self.cause = cause
        self.source = source
        self.line = line
        self.column = column
        super().__init__(f"{self.location}: {cause}")

    @property
    def location(self) -> str:
        """``source:line:column`` with unknown parts omitted."""
        parts = [self.source]
        if self.line is not None:
            parts.append(str(self.line))
            if self.column is not None:
                parts.append(str(self.column))
        return ":".join(parts)


class ValidationError(SpecforgeError):
    """A single semantic problem found in a parsed API definition.

    Args:
        message: Description of the problem.
        source: File the offending declaration came from.
        location: Section inside the file, e.g. ``endpoints[0] POST /user/new``
            or ``schemas.newUser.required``.
    """

    exit_code = EXIT_VALIDATION_ERROR

    def __init__(self, message: str, source: str = "<string>", location: str = ""):
        self.message = message
        self.source = source
        self.location = location
        where = f"{source} [{location}]" if location else source
        super().__init__(f"{where}: {message}")


class ValidationFailedError(SpecforgeError):
    """Raised once with every :class:`ValidationError` found in a run."""

    exit_code = EXIT_VALIDATION_ERROR

    def __init__(self, errors: Sequence[ValidationError]):
        self.errors = list(errors)
        noun = "error" if len(self.errors) == 1 else "errors"
        super().__init__(f"API definition has {len(self.errors)} validation {noun}")


class MergeConflict(SpecforgeError):
    """Raised when an existing file lacks usable region markers.

    The merger never lets this escape: the affected file is skipped with a
    warning and the rest of the run continues.
    """

    def __init__(self, message: str, path: str, region: Optional[str] = None):
        self.path = path
        self.region = region
        super().__init__(message)


class ProjectIOError(SpecforgeError):
    """Raised when a project file cannot be read or written."""

    exit_code = EXIT_IO_ERROR

    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(message)
