"""Region-based merging of generated content into an existing project tree.

Generated files mark the parts the generator owns with a pair of comment
lines written in the file's own comment syntax::

    # specforge:begin routes
    ...generated...
    # specforge:end routes

On later runs only the text strictly between the two markers is replaced.
Everything outside them -- including the marker lines themselves -- is kept
byte-for-byte, so hand-written code around a region survives regeneration.
A file whose markers are missing or malformed is never touched; it becomes a
``skip`` operation with the reason attached.

The flow is always *snapshot, plan, apply*: :class:`FileSnapshot` reads every
candidate file before anything is written, :func:`plan_operations` compares
rendered output against the snapshot, and :func:`apply_operations` writes the
result file by file.
"""

from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Iterable, NamedTuple, Optional

from specforge.config import atomic_write
from specforge.exceptions import MergeConflict
from specforge.models import FileOperation, GenerationReport, OperationKind

logger = logging.getLogger(__name__)

MARKER_TAG = "specforge"

_HASH = ("# ", "")
_HTML = ("<!-- ", " -->")
_SLASH = ("// ", "")
_BLOCK = ("/* ", " */")

_STYLES_BY_SUFFIX: dict[str, tuple[str, str]] = {
    ".py": _HASH, ".pyi": _HASH, ".toml": _HASH, ".yaml": _HASH, ".yml": _HASH,
    ".sh": _HASH, ".cfg": _HASH, ".ini": _HASH, ".txt": _HASH,
    ".md": _HTML, ".html": _HTML, ".htm": _HTML, ".xml": _HTML,
    ".js": _SLASH, ".jsx": _SLASH, ".ts": _SLASH, ".tsx": _SLASH,
    ".rs": _SLASH, ".go": _SLASH,
    ".css": _BLOCK, ".scss": _BLOCK,
}

_SNAPSHOT_WORKERS = 8

EXISTS_REASON = "file already exists"


class Region(NamedTuple):
    """Character offsets of one region body inside a file's text."""

    name: str
    start: int
    end: int


def comment_style(path: str) -> tuple[str, str]:
    """Return the ``(prefix, suffix)`` comment delimiters for *path*.

    Ignore files, ``Dockerfile``/``Makefile`` and unknown extensions use ``#``.
    """
    return _STYLES_BY_SUFFIX.get(PurePosixPath(path).suffix.lower(), _HASH)


def begin_marker(path: str, region: str) -> str:
    prefix, suffix = comment_style(path)
    return f"{prefix}{MARKER_TAG}:begin {region}{suffix}"


def end_marker(path: str, region: str) -> str:
    prefix, suffix = comment_style(path)
    return f"{prefix}{MARKER_TAG}:end {region}{suffix}"


def _marker_pattern(path: str) -> re.Pattern[str]:
    prefix, suffix = comment_style(path)
    return re.compile(
        rf"^[ \t]*{re.escape(prefix.strip())}[ \t]*{MARKER_TAG}:(begin|end)[ \t]+([\w.-]+)"
        rf"[ \t]*{re.escape(suffix.strip())}[ \t]*$"
    )


def find_regions(text: str, path: str) -> dict[str, Region]:
    """Locate every marked region in *text*.

    Args:
        text: File contents.
        path: File path, used to pick the comment syntax and in messages.

    Returns:
        Regions keyed by name, in file order.

    Raises:
        MergeConflict: If markers are unbalanced, nested, mismatched or a
            region name appears twice.
    """
    pattern = _marker_pattern(path)
    regions: dict[str, Region] = {}
    open_name: Optional[str] = None
    open_start = 0
    offset = 0

    for lineno, line in enumerate(text.splitlines(keepends=True), start=1):
        match = pattern.match(line.rstrip("\r\n"))
        line_start, offset = offset, offset + len(line)
        if match is None:
            continue
        kind, name = match.groups()
        if kind == "begin":
            if open_name is not None:
                raise MergeConflict(
                    f"{path}:{lineno}: region '{name}' starts inside region '{open_name}'",
                    path, name,
                )
            if name in regions:
                raise MergeConflict(f"{path}:{lineno}: region '{name}' appears twice", path, name)
            open_name, open_start = name, offset
        else:
            if open_name != name:
                expected = f"end of '{open_name}'" if open_name else "no open region"
                raise MergeConflict(
                    f"{path}:{lineno}: unexpected end of region '{name}' ({expected})",
                    path, name,
                )
            regions[name] = Region(name, open_start, line_start)
            open_name = None

    if open_name is not None:
        raise MergeConflict(f"{path}: region '{open_name}' is never closed", path, open_name)
    return regions


def newline_style(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def splice_region(text: str, path: str, region: str, content: str) -> str:
    """Replace the body of *region* in *text* with *content*.

    Only the text strictly between the marker lines changes. *content* is
    converted to the newline style already used by *text* and always ends
    with a newline so the end marker stays on its own line.

    Raises:
        MergeConflict: If the markers are malformed or *region* is absent.
    """
    regions = find_regions(text, path)
    if region not in regions:
        raise MergeConflict(f"{path}: region '{region}' not found", path, region)
    span = regions[region]

    body = content.replace("\r\n", "\n")
    if body and not body.endswith("\n"):
        body += "\n"
    newline = newline_style(text)
    if newline != "\n":
        body = body.replace("\n", newline)
    return text[: span.start] + body + text[span.end:]


def region_body(text: str, region: Region) -> str:
    return text[region.start: region.end]


@dataclass
class FileSnapshot:
    """Contents of candidate files, read before any write begins.

    ``contents`` maps a root-relative POSIX path to its text, or ``None``
    when the file does not exist. Files that exist but cannot be read are
    recorded in ``errors`` instead.
    """

    root: Path
    contents: dict[str, Optional[str]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @classmethod
    def capture(cls, root: Path, paths: Iterable[str]) -> FileSnapshot:
        """Read every path under *root* using a small thread pool."""
        snapshot = cls(root=root)
        unique = list(dict.fromkeys(paths))
        if not unique:
            return snapshot

        with ThreadPoolExecutor(max_workers=min(_SNAPSHOT_WORKERS, len(unique))) as pool:
            results = list(pool.map(lambda rel: _read(root / rel), unique))

        for rel, (text, problem) in zip(unique, results):
            if problem is not None:
                snapshot.errors[rel] = problem
            else:
                snapshot.contents[rel] = text
        logger.debug(
            "Snapshot of %d file(s): %d present, %d unreadable",
            len(unique),
            sum(1 for text in snapshot.contents.values() if text is not None),
            len(snapshot.errors),
        )
        return snapshot

    def get(self, path: str) -> Optional[str]:
        return self.contents.get(path)

    def exists(self, path: str) -> bool:
        return self.contents.get(path) is not None


def _read(path: Path) -> tuple[Optional[str], Optional[str]]:
    if not path.exists():
        return None, None
    try:
        with path.open("r", encoding="utf-8", newline="") as fh:
            return fh.read(), None
    except (OSError, UnicodeDecodeError) as exc:
        return None, f"cannot read {path}: {exc}"


def plan_operations(
    rendered: dict[str, str],
    snapshot: FileSnapshot,
    documents: Optional[dict[str, str]] = None,
) -> list[FileOperation]:
    """Decide what to do with every rendered file and generated document.

    * Template output for a missing file is a ``create``.
    * For an existing file, each region in the rendered output becomes a
      ``patch`` (``changed=False`` when the body is already up to date).
      A file with broken markers, or missing one of the regions, yields a
      ``skip`` carrying the reason; the file is never rewritten.
    * Template output without regions never overwrites an existing file.
    * Generated *documents* are ``regenerate`` operations, or a ``create``
      when the file does not exist yet.

    Paths listed in ``snapshot.errors`` get no operation.
    """
    operations: list[FileOperation] = []

    for path, content in rendered.items():
        if path in snapshot.errors:
            continue
        existing = snapshot.get(path)
        if existing is None:
            operations.append(FileOperation(kind=OperationKind.CREATE, path=path, content=content))
            continue

        wanted = find_regions(content, path)
        if not wanted:
            operations.append(
                FileOperation(kind=OperationKind.SKIP, path=path, reason=EXISTS_REASON)
            )
            continue

        try:
            present = find_regions(existing, path)
        except MergeConflict as exc:
            logger.debug("Skipping %s: %s", path, exc)
            operations.append(FileOperation(kind=OperationKind.SKIP, path=path, reason=str(exc)))
            continue

        for name, span in wanted.items():
            body = region_body(content, span)
            if name not in present:
                reason = f"region '{name}' markers not found"
                logger.debug("Skipping %s: %s", path, reason)
                operations.append(
                    FileOperation(kind=OperationKind.SKIP, path=path, region=name, reason=reason)
                )
                continue
            changed = splice_region(existing, path, name, body) != existing
            operations.append(
                FileOperation(
                    kind=OperationKind.PATCH, path=path, region=name, content=body, changed=changed
                )
            )

    for path, content in (documents or {}).items():
        if path in snapshot.errors:
            continue
        existing = snapshot.get(path)
        if existing is None:
            operations.append(FileOperation(kind=OperationKind.CREATE, path=path, content=content))
            continue
        operations.append(
            FileOperation(
                kind=OperationKind.REGENERATE,
                path=path,
                content=content,
                changed=existing != content,
            )
        )
    return operations


def apply_operations(
    root: Path,
    operations: list[FileOperation],
    snapshot: Optional[FileSnapshot] = None,
) -> GenerationReport:
    """Write planned operations under *root*, one file at a time.

    Patches for the same file are combined into a single write. Every write
    is atomic. An ``OSError`` on one file is recorded in the report and the
    remaining files are still written; unreadable snapshot entries are
    reported as failures too.
    """
    report = GenerationReport(operations=list(operations))
    if snapshot is not None:
        report.failures.update(snapshot.errors)

    by_path: dict[str, list[FileOperation]] = {}
    for op in operations:
        by_path.setdefault(op.path, []).append(op)

    for path, ops in by_path.items():
        try:
            text = _merged_text(root, path, ops, snapshot)
            if text is not None:
                atomic_write(root / path, text)
                logger.debug("Wrote %s", path)
        except OSError as exc:
            logger.debug("Failed to write %s: %s", path, exc)
            report.failures[path] = str(exc)
    return report


def _merged_text(
    root: Path, path: str, ops: list[FileOperation], snapshot: Optional[FileSnapshot]
) -> Optional[str]:
    """Final file text for *path*, or ``None`` when nothing needs writing."""
    for op in ops:
        if op.kind == OperationKind.CREATE:
            return op.content
        if op.kind == OperationKind.REGENERATE:
            return op.content if op.changed else None

    patches = [op for op in ops if op.kind == OperationKind.PATCH and op.changed]
    if not patches:
        return None
    text = snapshot.get(path) if snapshot is not None else None
    if text is None:
        with (root / path).open("r", encoding="utf-8", newline="") as fh:
            text = fh.read()
    for op in patches:
        text = splice_region(text, path, op.region or "", op.content)
    return text
