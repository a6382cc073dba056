"""Load API definition text from a file, a directory, or stdin.

This module handles all I/O for reading API definitions and decoding the TOML
they are written in. It is the only place that touches the filesystem on
the input side of the pipeline.

The public functions are:

* :func:`load_source` -- Read one or more :class:`SourceText` entries from a
  path (file or directory) or ``-`` for stdin.
* :func:`decode_toml` -- Decode TOML text into a dict, turning syntax errors
  into :class:`~specforge.exceptions.ParseError` with a line and column.

After loading, each :class:`SourceText` is handed to
:func:`~specforge.parser.extractor.parse_api` which builds the typed IR.
"""

from __future__ import annotations

import re
import sys
import tomllib
from pathlib import Path
from typing import Any, NamedTuple

from specforge.exceptions import ParseError

_LOCATION_RE = re.compile(r"\(at line (\d+), column (\d+)\)")
_END_OF_DOCUMENT = "(at end of document)"


class SourceText(NamedTuple):
    """Raw text of one API definition plus the name used in diagnostics."""

    name: str
    text: str


def load_source(source: str | Path) -> list[SourceText]:
    """Load API definitions from a file, a directory of ``*.toml`` files, or stdin.

    Directory entries are returned sorted by file name so that the merged
    declaration order -- and therefore the generated output -- is stable.

    Args:
        source: A file path, a directory path, or ``"-"`` for stdin.

    Returns:
        One :class:`SourceText` per definition file.

    Raises:
        ParseError: If the source does not exist, cannot be read, or a
            directory holds no ``*.toml`` files.
    """
    if str(source) == "-":
        return [_load_from_stdin()]

    path = Path(source)
    if path.is_dir():
        files = sorted(p for p in path.glob("*.toml") if p.is_file())
        if not files:
            raise ParseError("no *.toml API definitions found", source=str(path))
        return [_load_from_file(p) for p in files]
    if path.is_file():
        return [_load_from_file(path)]
    raise ParseError("API definition not found", source=str(path))


def _load_from_stdin() -> SourceText:
    """Read an API definition from stdin."""
    try:
        content = sys.stdin.read()
    except OSError as exc:
        raise ParseError(f"failed to read from stdin: {exc}", source="<stdin>") from exc
    return SourceText("<stdin>", content)


def _load_from_file(path: Path) -> SourceText:
    """Read an API definition file as UTF-8."""
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"failed to read file: {exc}", source=str(path)) from exc
    return SourceText(str(path), content)


def decode_toml(text: str, source: str = "<string>") -> dict[str, Any]:
    """Decode TOML text, converting syntax errors into located parse errors.

    Args:
        text: The TOML document.
        source: Name used in the error location.

    Returns:
        The decoded document.

    Raises:
        ParseError: With the decoder's line and column when the text is not
            valid TOML.
    """
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        line, column, cause = _split_decode_error(exc, text)
        raise ParseError(cause, source=source, line=line, column=column) from exc


def _split_decode_error(
    exc: tomllib.TOMLDecodeError, text: str
) -> tuple[int | None, int | None, str]:
    """Extract ``(line, column, message)`` from a TOML decode error."""
    line = getattr(exc, "lineno", None)
    column = getattr(exc, "colno", None)
    message = getattr(exc, "msg", None) or str(exc)

    match = _LOCATION_RE.search(message)
    if match:
        line, column = int(match.group(1)), int(match.group(2))
        message = message[: match.start()].rstrip()
    elif _END_OF_DOCUMENT in message:
        lines = text.splitlines() or [""]
        line, column = len(lines), len(lines[-1]) + 1
        message = message.replace(_END_OF_DOCUMENT, "").rstrip()

    return line, column, message or "invalid TOML"
