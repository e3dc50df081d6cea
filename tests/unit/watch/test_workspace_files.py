"""Tests for workspace file filtering and listing."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from lumen.errors import ScanError
from lumen.store.models import Workspace
from lumen.store.registry import normalize_path
from lumen.watch.workspace import is_allowed_extension, list_workspace_files, should_ignore


def _touch(root: Path, rel: str, text: str = "x") -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


# ------------------------------------------------------------------
# should_ignore
# ------------------------------------------------------------------


@pytest.mark.parametrize(
    "rel, patterns, expected",
    [
        ("build", ["build"], True),
        ("build/out/a.swift", ["build"], True),
        ("Sources/build", ["build"], True),
        ("Sources/builder.swift", ["build"], False),
        ("a/b/c.log", ["*.log"], True),
        ("a/b/c.swift", ["*.log"], False),
        ("Pods/Lib/x.m", ["Pods/Lib"], True),
        ("node_modules/x/index.js", [".git", "node_modules"], True),
        ("/src/main.py", ["main.py"], True),
    ],
)
def test_should_ignore(rel, patterns, expected):
    assert should_ignore(rel, patterns) is expected


def test_is_allowed_extension_defaults_and_explicit():
    assert is_allowed_extension(Path("a.swift"), [])
    assert is_allowed_extension(Path("a.PY"), [])
    assert not is_allowed_extension(Path("README.md"), [])
    assert is_allowed_extension(Path("README.md"), ["md"])
    assert not is_allowed_extension(Path("a.swift"), [".md"])


# ------------------------------------------------------------------
# list_workspace_files
# ------------------------------------------------------------------


def test_list_workspace_files_filters(tmp_path):
    keep = _touch(tmp_path, "Sources/App/main.swift")
    keep_py = _touch(tmp_path, "tools/gen.py")
    _touch(tmp_path, "README.md")
    _touch(tmp_path, ".hidden/secret.swift")
    _touch(tmp_path, "Sources/.cache.swift")
    _touch(tmp_path, "build/out.swift")
    _touch(tmp_path, "node_modules/lib/index.js")
    _touch(tmp_path, "dist/bundle.js")

    ws = Workspace(name="w", root=str(tmp_path), ignore_patterns=["dist"])
    files = list_workspace_files(ws)

    assert set(files) == {normalize_path(keep), normalize_path(keep_py)}
    assert files[normalize_path(keep)] == pytest.approx(os.stat(keep).st_mtime)


def test_list_workspace_files_language_filter(tmp_path):
    _touch(tmp_path, "a.swift")
    py = _touch(tmp_path, "b.py")
    ws = Workspace(name="w", root=str(tmp_path), languages=["py"])
    assert list(list_workspace_files(ws)) == [normalize_path(py)]


def test_list_workspace_files_missing_root(tmp_path):
    ws = Workspace(name="w", root=str(tmp_path / "gone"))
    with pytest.raises(ScanError) as exc_info:
        list_workspace_files(ws)
    assert exc_info.value.root == str(tmp_path / "gone")
