"""Tests for specforge.render.merger -- marked regions and the write plan."""

from __future__ import annotations

from pathlib import Path

import pytest

from specforge.exceptions import MergeConflict
from specforge.models import FileOperation, OperationKind
from specforge.render.merger import (
    EXISTS_REASON,
    FileSnapshot,
    apply_operations,
    begin_marker,
    end_marker,
    find_regions,
    plan_operations,
    region_body,
    splice_region,
)

ROUTES_PY = (
    "import os\n"
    "\n"
    "# specforge:begin routes\n"
    "ROUTES = []\n"
    "# specforge:end routes\n"
    "\n"
    "def extra():\n"
    "    return 1\n"
)


def _region_file(body: str) -> str:
    return f"# header\n# specforge:begin routes\n{body}# specforge:end routes\n"


class TestMarkers:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("src/app/routes.py", "# specforge:begin routes"),
            ("pyproject.toml", "# specforge:begin routes"),
            ("README.md", "<!-- specforge:begin routes -->"),
            ("web/index.ts", "// specforge:begin routes"),
            ("style.css", "/* specforge:begin routes */"),
            (".gitignore", "# specforge:begin routes"),
            ("Makefile", "# specforge:begin routes"),
        ],
    )
    def test_begin_marker_per_file_type(self, path: str, expected: str) -> None:
        assert begin_marker(path, "routes") == expected

    def test_end_marker(self) -> None:
        assert end_marker("README.md", "endpoints") == "<!-- specforge:end endpoints -->"


class TestFindRegions:
    def test_single_region(self) -> None:
        regions = find_regions(ROUTES_PY, "routes.py")
        assert list(regions) == ["routes"]
        assert region_body(ROUTES_PY, regions["routes"]) == "ROUTES = []\n"

    def test_empty_region(self) -> None:
        text = "# specforge:begin a\n# specforge:end a\n"
        assert region_body(text, find_regions(text, "x.py")["a"]) == ""

    def test_indented_markers(self) -> None:
        text = "class A:\n    # specforge:begin body\n    x = 1\n    # specforge:end body\n"
        assert region_body(text, find_regions(text, "a.py")["body"]) == "    x = 1\n"

    def test_html_markers_in_markdown(self) -> None:
        text = "# Title\n<!-- specforge:begin endpoints -->\n| a |\n<!-- specforge:end endpoints -->\n"
        assert "endpoints" in find_regions(text, "README.md")

    def test_foreign_comment_style_ignored(self) -> None:
        text = "<!-- specforge:begin a -->\n<!-- specforge:end a -->\n"
        assert find_regions(text, "a.py") == {}

    def test_multiple_regions_in_order(self) -> None:
        text = "# specforge:begin b\n# specforge:end b\n# specforge:begin a\n# specforge:end a\n"
        assert list(find_regions(text, "x.py")) == ["b", "a"]

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ("# specforge:begin a\n# specforge:begin b\n# specforge:end b\n# specforge:end a\n", "inside"),
            ("# specforge:begin a\n# specforge:end a\n# specforge:begin a\n# specforge:end a\n", "twice"),
            ("# specforge:begin a\n# specforge:end b\n", "unexpected end"),
            ("# specforge:end a\n", "no open region"),
            ("# specforge:begin a\nbody\n", "never closed"),
        ],
    )
    def test_malformed_markers(self, text: str, message: str) -> None:
        with pytest.raises(MergeConflict, match=message) as exc_info:
            find_regions(text, "x.py")
        assert exc_info.value.path == "x.py"


class TestSpliceRegion:
    def test_outside_bytes_preserved(self) -> None:
        result = splice_region(ROUTES_PY, "routes.py", "routes", "ROUTES = [1]\n")
        assert result == ROUTES_PY.replace("ROUTES = []", "ROUTES = [1]")

    def test_trailing_newline_added(self) -> None:
        result = splice_region(ROUTES_PY, "routes.py", "routes", "X = 1")
        assert "X = 1\n# specforge:end routes\n" in result

    def test_crlf_file_keeps_crlf(self) -> None:
        text = ROUTES_PY.replace("\n", "\r\n")
        result = splice_region(text, "routes.py", "routes", "A = 1\nB = 2\n")
        assert "A = 1\r\nB = 2\r\n# specforge:end routes\r\n" in result
        assert result.count("\r\n") == text.count("\r\n") + 1
        assert "\n" not in result.replace("\r\n", "")

    def test_missing_region(self) -> None:
        with pytest.raises(MergeConflict, match="not found"):
            splice_region(ROUTES_PY, "routes.py", "schemas", "x\n")

    def test_idempotent(self) -> None:
        once = splice_region(ROUTES_PY, "routes.py", "routes", "ROUTES = [2]\n")
        assert splice_region(once, "routes.py", "routes", "ROUTES = [2]\n") == once


class TestPlanOperations:
    def _snapshot(self, tmp_path: Path, files: dict[str, str]) -> FileSnapshot:
        for rel, text in files.items():
            target = tmp_path / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(text.encode("utf-8"))
        return FileSnapshot.capture(tmp_path, ["routes.py", "notes.txt", "openapi.json"])

    def test_missing_file_is_created(self, tmp_path: Path) -> None:
        ops = plan_operations({"routes.py": _region_file("A\n")}, self._snapshot(tmp_path, {}))
        assert [(op.kind, op.path) for op in ops] == [(OperationKind.CREATE, "routes.py")]

    def test_existing_region_is_patched(self, tmp_path: Path) -> None:
        snapshot = self._snapshot(tmp_path, {"routes.py": ROUTES_PY})
        ops = plan_operations({"routes.py": _region_file("ROUTES = [1]\n")}, snapshot)
        assert len(ops) == 1
        assert ops[0].kind == OperationKind.PATCH
        assert ops[0].region == "routes"
        assert ops[0].content == "ROUTES = [1]\n"
        assert ops[0].changed is True

    def test_unchanged_region(self, tmp_path: Path) -> None:
        snapshot = self._snapshot(tmp_path, {"routes.py": ROUTES_PY})
        ops = plan_operations({"routes.py": _region_file("ROUTES = []\n")}, snapshot)
        assert ops[0].kind == OperationKind.PATCH
        assert ops[0].changed is False

    def test_removed_markers_skip(self, tmp_path: Path) -> None:
        snapshot = self._snapshot(tmp_path, {"routes.py": "ROUTES = ['mine']\n"})
        ops = plan_operations({"routes.py": _region_file("ROUTES = []\n")}, snapshot)
        assert ops[0].kind == OperationKind.SKIP
        assert ops[0].region == "routes"
        assert "markers not found" in (ops[0].reason or "")

    def test_broken_markers_skip(self, tmp_path: Path) -> None:
        snapshot = self._snapshot(tmp_path, {"routes.py": "# specforge:begin routes\n"})
        ops = plan_operations({"routes.py": _region_file("ROUTES = []\n")}, snapshot)
        assert ops[0].kind == OperationKind.SKIP
        assert "never closed" in (ops[0].reason or "")

    def test_existing_file_without_regions_is_kept(self, tmp_path: Path) -> None:
        snapshot = self._snapshot(tmp_path, {"notes.txt": "mine\n"})
        ops = plan_operations({"notes.txt": "theirs\n"}, snapshot)
        assert ops[0].kind == OperationKind.SKIP
        assert ops[0].reason == EXISTS_REASON

    def test_documents_regenerate(self, tmp_path: Path) -> None:
        snapshot = self._snapshot(tmp_path, {"openapi.json": "{}\n"})
        same = plan_operations({}, snapshot, {"openapi.json": "{}\n"})
        different = plan_operations({}, snapshot, {"openapi.json": "{\"a\": 1}\n"})
        assert same[0].kind == OperationKind.REGENERATE and same[0].changed is False
        assert different[0].changed is True

    def test_missing_document_is_created(self, tmp_path: Path) -> None:
        ops = plan_operations({}, self._snapshot(tmp_path, {}), {"openapi.json": "{}\n"})
        assert [(op.kind, op.path) for op in ops] == [(OperationKind.CREATE, "openapi.json")]
        assert ops[0].content == "{}\n"


class TestApplyOperations:
    def test_patch_preserves_hand_edits(self, tmp_path: Path) -> None:
        (tmp_path / "routes.py").write_text(ROUTES_PY, encoding="utf-8")
        snapshot = FileSnapshot.capture(tmp_path, ["routes.py"])
        ops = plan_operations({"routes.py": _region_file("ROUTES = [1]\n")}, snapshot)

        report = apply_operations(tmp_path, ops, snapshot)

        assert report.failures == {}
        text = (tmp_path / "routes.py").read_text(encoding="utf-8")
        assert "def extra():" in text
        assert "import os" in text
        assert "ROUTES = [1]" in text
        assert "# header" not in text

    def test_patches_for_one_file_combined(self, tmp_path: Path) -> None:
        original = "# specforge:begin a\n1\n# specforge:end a\nkeep\n# specforge:begin b\n2\n# specforge:end b\n"
        (tmp_path / "two.py").write_text(original, encoding="utf-8")
        ops = [
            FileOperation(kind=OperationKind.PATCH, path="two.py", region="a", content="10\n"),
            FileOperation(kind=OperationKind.PATCH, path="two.py", region="b", content="20\n"),
        ]
        apply_operations(tmp_path, ops)
        text = (tmp_path / "two.py").read_text(encoding="utf-8")
        assert text == original.replace("\n1\n", "\n10\n").replace("\n2\n", "\n20\n")

    def test_unchanged_and_skipped_not_written(self, tmp_path: Path) -> None:
        target = tmp_path / "routes.py"
        target.write_text(ROUTES_PY, encoding="utf-8")
        mtime = target.stat().st_mtime_ns
        ops = [
            FileOperation(kind=OperationKind.PATCH, path="routes.py", region="routes",
                          content="ROUTES = []\n", changed=False),
            FileOperation(kind=OperationKind.SKIP, path="notes.txt", reason=EXISTS_REASON),
        ]
        report = apply_operations(tmp_path, ops)
        assert target.stat().st_mtime_ns == mtime
        assert not (tmp_path / "notes.txt").exists()
        assert report.counts()["unchanged"] == 1
        assert report.counts()["skipped"] == 1

    def test_failure_does_not_abort_siblings(self, tmp_path: Path) -> None:
        (tmp_path / "blocked").write_text("a file, not a directory", encoding="utf-8")
        ops = [
            FileOperation(kind=OperationKind.CREATE, path="blocked/inner.py", content="x\n"),
            FileOperation(kind=OperationKind.CREATE, path="ok.py", content="y\n"),
        ]
        report = apply_operations(tmp_path, ops)
        assert list(report.failures) == ["blocked/inner.py"]
        assert (tmp_path / "ok.py").read_text(encoding="utf-8") == "y\n"
        assert report.counts()["created"] == 1
        assert report.counts()["failed"] == 1

    def test_crlf_bytes_survive(self, tmp_path: Path) -> None:
        target = tmp_path / "routes.py"
        target.write_bytes(ROUTES_PY.replace("\n", "\r\n").encode("utf-8"))
        snapshot = FileSnapshot.capture(tmp_path, ["routes.py"])
        ops = plan_operations({"routes.py": _region_file("ROUTES = [1]\n")}, snapshot)
        apply_operations(tmp_path, ops, snapshot)
        data = target.read_bytes()
        assert b"ROUTES = [1]\r\n" in data
        assert b"def extra():\r\n" in data
        assert b"\n" not in data.replace(b"\r\n", b"")

    def test_snapshot_errors_reported(self, tmp_path: Path) -> None:
        (tmp_path / "bad.py").write_bytes(b"\xff\xfe\x00broken")
        snapshot = FileSnapshot.capture(tmp_path, ["bad.py"])
        assert "bad.py" in snapshot.errors
        assert plan_operations({"bad.py": "x\n"}, snapshot) == []
        report = apply_operations(tmp_path, [], snapshot)
        assert "bad.py" in report.failures
