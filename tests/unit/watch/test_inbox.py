"""Tests for InboxSource driven by the Reconciler."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from conftest import FailingEmbedder
from lumen.config import IndexingCfg
from lumen.errors import ScanError
from lumen.ingest.indexer import DocumentIndexer
from lumen.store.registry import ChangeRegistry, normalize_path
from lumen.watch.inbox import InboxSource, is_supported
from lumen.watch.reconciler import Reconciler

EXTENSIONS = ["txt", "md", "html"]


@pytest.fixture
def inbox(tmp_path) -> Path:
    folder = tmp_path / "inbox"
    folder.mkdir()
    return folder


@pytest.fixture
def reconciler(tmp_path, inbox, library, indexer) -> Reconciler:
    registry = ChangeRegistry(tmp_path / "inbox-registry.json")
    registry.load()
    return Reconciler(InboxSource(inbox, library, indexer, EXTENSIONS), registry)


def _bump_mtime(path: Path, seconds: float = 10.0) -> None:
    stamp = path.stat().st_mtime + seconds
    os.utime(path, (stamp, stamp))


def test_is_supported():
    assert is_supported(Path("a.TXT"), EXTENSIONS)
    assert is_supported(Path("a.md"), [".md"])
    assert not is_supported(Path("a.pdf"), EXTENSIONS)


def test_new_files_imported(inbox, library, reconciler):
    (inbox / "a.txt").write_text("alpha notes", encoding="utf-8")
    (inbox / "sub").mkdir()
    (inbox / "sub" / "b.md").write_text("beta notes", encoding="utf-8")
    (inbox / "c.pdf").write_bytes(b"ignored")
    (inbox / ".hidden.txt").write_text("gamma", encoding="utf-8")

    result = reconciler.reconcile()

    assert result.indexed == 2
    assert sorted(d.title for d in library.documents) == ["a", "b"]
    assert len(library.vectors) == 2
    assert normalize_path(inbox / "a.txt") in reconciler.registry


def test_unchanged_files_not_reimported(inbox, library, reconciler, embedder):
    (inbox / "a.txt").write_text("alpha", encoding="utf-8")
    reconciler.reconcile()
    calls = len(embedder.calls)

    result = reconciler.reconcile()

    assert result.indexed == 0
    assert len(embedder.calls) == calls
    assert len(library.documents) == 1


def test_modified_file_replaces_document(inbox, library, reconciler):
    f = inbox / "a.txt"
    f.write_text("alpha", encoding="utf-8")
    reconciler.reconcile()
    old_id = library.documents[0].id

    f.write_text("beta beta", encoding="utf-8")
    _bump_mtime(f)
    reconciler.reconcile()

    assert len(library.documents) == 1
    doc = library.documents[0]
    assert doc.id != old_id
    assert library.chunks_for(doc.id)[0].text == "beta beta"
    assert {e.document_id for e in library.vectors.entries} == {doc.id}


def test_deleted_file_removes_document(inbox, library, reconciler):
    f = inbox / "a.txt"
    f.write_text("alpha", encoding="utf-8")
    reconciler.reconcile()

    f.unlink()
    result = reconciler.reconcile()

    assert result.removed == 1
    assert library.documents == []
    assert len(library.vectors) == 0


def test_unreadable_file_recorded_without_document(inbox, library, reconciler):
    f = inbox / "bad.txt"
    f.write_bytes(b"\x80\x81\x82")

    result = reconciler.reconcile()

    assert result.skip_reasons == {"read error": 1}
    assert library.documents == []
    assert reconciler.registry.get(f).document_id == ""


def test_empty_file_not_reprocessed_while_unchanged(inbox, library, reconciler, monkeypatch):
    (inbox / "empty.txt").write_text("   \n", encoding="utf-8")
    imports = []
    original = library.import_document_text

    def counting(path, *args, **kwargs):
        imports.append(path)
        return original(path, *args, **kwargs)

    monkeypatch.setattr(library, "import_document_text", counting)

    first = reconciler.reconcile()
    second = reconciler.reconcile()

    assert len(imports) == 1
    assert first.skip_reasons == {"read error": 1}
    assert second.skip_reasons == {}
    assert library.documents == []


def test_unreadable_file_retried_once_edited(inbox, library, reconciler):
    f = inbox / "late.txt"
    f.write_text("   \n", encoding="utf-8")
    reconciler.reconcile()

    f.write_text("alpha notes", encoding="utf-8")
    _bump_mtime(f)
    result = reconciler.reconcile()

    assert result.indexed == 1
    assert [d.title for d in library.documents] == ["late"]
    assert reconciler.registry.get(f).document_id == library.documents[0].id


def test_deleting_unreadable_file_removes_nothing(inbox, library, reconciler):
    f = inbox / "bad.txt"
    f.write_bytes(b"\x80\x81\x82")
    reconciler.reconcile()

    f.unlink()
    result = reconciler.reconcile()

    assert result.removed == 0
    assert reconciler.registry.paths() == []


def test_rejected_content_stays_cataloged(inbox, library, reconciler):
    f = inbox / "ctrl.txt"
    f.write_text("\x01\x02\x03abc", encoding="utf-8")

    result = reconciler.reconcile()

    assert result.skip_reasons == {"binary": 1}
    assert len(library.documents) == 1
    assert library.chunks_for(library.documents[0].id) == []
    assert len(library.vectors) == 0
    assert normalize_path(f) in reconciler.registry


def test_embedding_failure_retried_next_pass(tmp_path, inbox, library):
    registry = ChangeRegistry(tmp_path / "reg.json")
    failing = DocumentIndexer(FailingEmbedder(), library, IndexingCfg(batch_pause=0))
    f = inbox / "a.txt"
    f.write_text("alpha", encoding="utf-8")

    result = Reconciler(InboxSource(inbox, library, failing, EXTENSIONS), registry).reconcile()

    assert result.skip_reasons == {"embedding failed": 1}
    assert library.documents == []
    assert normalize_path(f) not in registry


def test_missing_folder_raises_scan_error(tmp_path, library, indexer):
    source = InboxSource(tmp_path / "nowhere", library, indexer, EXTENSIONS)
    with pytest.raises(ScanError):
        source.list_files()
