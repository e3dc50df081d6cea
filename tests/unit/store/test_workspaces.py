"""Tests for WorkspaceStore and the Workspace model."""

from __future__ import annotations

import pytest

from lumen.errors import NotFound
from lumen.store.models import DEFAULT_IGNORE_PATTERNS, Workspace, code_source_id
from lumen.store.workspaces import WorkspaceStore


@pytest.fixture
def store(tmp_path) -> WorkspaceStore:
    s = WorkspaceStore(tmp_path / "workspaces.json")
    s.load()
    return s


def test_add_defaults(tmp_path, store):
    root = tmp_path / "project"
    root.mkdir()
    ws = store.add(root)
    assert ws.name == "project"
    assert ws.root == str(root.resolve())
    assert ws.languages == []
    assert ws.ignore_patterns == [".git", "build", "DerivedData", "node_modules"]
    assert ws.is_watching is False


def test_add_same_root_returns_existing(tmp_path, store):
    ws = store.add(tmp_path, name="one")
    again = store.add(tmp_path / ".", name="two")
    assert again.id == ws.id
    assert len(store.workspaces) == 1


def test_add_normalises_languages(tmp_path, store):
    ws = store.add(tmp_path, languages=[".Swift", "py"])
    assert ws.languages == ["swift", "py"]


def test_get_by_id_prefix_and_name(tmp_path, store):
    a = tmp_path / "a"
    b = tmp_path / "b"
    a.mkdir()
    b.mkdir()
    ws_a = store.add(a)
    ws_b = store.add(b, name="zeta")
    assert store.get(ws_a.id).id == ws_a.id
    assert store.get(ws_a.id[:12]).id == ws_a.id
    assert store.get("zeta").id == ws_b.id
    with pytest.raises(NotFound):
        store.get("zzz-unknown")


def test_toggle_watch_persists(tmp_path, store):
    ws = store.add(tmp_path)
    assert store.toggle_watch(ws.id).is_watching is True

    reopened = WorkspaceStore(store.path)
    reopened.load()
    assert reopened.get(ws.id).is_watching is True


def test_remove(tmp_path, store):
    ws = store.add(tmp_path)
    store.remove(ws.id)
    assert store.workspaces == []
    with pytest.raises(NotFound):
        store.remove(ws.id)


def test_effective_ignore_patterns_merge_defaults():
    ws = Workspace(name="w", root="/w", ignore_patterns=["dist", ".git"])
    patterns = ws.effective_ignore_patterns()
    assert patterns[: len(DEFAULT_IGNORE_PATTERNS)] == list(DEFAULT_IGNORE_PATTERNS)
    assert patterns.count(".git") == 1
    assert "dist" in patterns


def test_code_source_id():
    assert code_source_id("ws-1", "Sources/App/main.swift") == "file://ws-1/Sources/App/main.swift"
    assert code_source_id("ws-1", "/a.py") == "file://ws-1/a.py"
