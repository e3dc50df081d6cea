"""Tests for the registry-driven Reconciler."""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from lumen.errors import BinaryContent, EmbeddingError, IndexingCancelled, ScanError
from lumen.ingest.batching import CancelToken
from lumen.store.registry import ChangeRegistry, normalize_path
from lumen.watch.reconciler import ProcessOutcome, Reconciler


class FakeSource:
    """In-memory FileSource: files are a path → mtime dict."""

    def __init__(self, files: dict[str, float] | None = None) -> None:
        self.files = dict(files or {})
        self.processed: list[str] = []
        self.removed: list[str] = []
        self.errors: dict[str, Exception] = {}
        self.outcomes: dict[str, ProcessOutcome] = {}
        self.fail_scan = False
        self._lock = threading.Lock()

    def list_files(self) -> dict[str, float]:
        if self.fail_scan:
            raise ScanError("/root", "gone")
        return dict(self.files)

    def process(self, path: Path, previous):
        key = str(path)
        with self._lock:
            self.processed.append(key)
        if key in self.errors:
            raise self.errors[key]
        if key in self.outcomes:
            return self.outcomes[key]
        return ProcessOutcome(f"doc:{Path(key).name}", chunks=2)

    def remove(self, document_id: str) -> None:
        self.removed.append(document_id)


def _p(tmp_path: Path, name: str) -> str:
    return normalize_path(tmp_path / name)


@pytest.fixture
def registry(tmp_path) -> ChangeRegistry:
    reg = ChangeRegistry(tmp_path / "reg.json")
    reg.load()
    return reg


def test_first_pass_processes_everything(tmp_path, registry):
    a, b = _p(tmp_path, "a.md"), _p(tmp_path, "b.md")
    source = FakeSource({a: 10.0, b: 20.0})
    result = Reconciler(source, registry).reconcile()

    assert sorted(source.processed) == [a, b]
    assert result.indexed == 2
    assert result.chunks_created == 4
    assert registry.get(a).document_id == "doc:a.md"
    assert registry.get(b).modified_at == 20.0
    assert registry.path.exists()


def test_second_pass_is_noop(tmp_path, registry):
    source = FakeSource({_p(tmp_path, "a.md"): 10.0})
    reconciler = Reconciler(source, registry)
    reconciler.reconcile()
    source.processed.clear()

    result = reconciler.reconcile()

    assert source.processed == []
    assert result.indexed == 0
    assert result.removed == 0


def test_mtime_within_tolerance_ignored(tmp_path, registry):
    a = _p(tmp_path, "a.md")
    source = FakeSource({a: 10.0})
    reconciler = Reconciler(source, registry, tolerance=0.5)
    reconciler.reconcile()
    source.processed.clear()

    source.files[a] = 10.4
    reconciler.reconcile()
    assert source.processed == []

    source.files[a] = 10.6
    reconciler.reconcile()
    assert source.processed == [a]
    assert registry.get(a).modified_at == 10.6


def test_deleted_file_removes_document(tmp_path, registry):
    a, b = _p(tmp_path, "a.md"), _p(tmp_path, "b.md")
    source = FakeSource({a: 1.0, b: 1.0})
    reconciler = Reconciler(source, registry)
    reconciler.reconcile()

    del source.files[a]
    result = reconciler.reconcile()

    assert source.removed == ["doc:a.md"]
    assert result.removed == 1
    assert a not in registry
    assert b in registry


def test_full_rescan_reprocesses_unchanged(tmp_path, registry):
    a = _p(tmp_path, "a.md")
    source = FakeSource({a: 1.0})
    reconciler = Reconciler(source, registry)
    reconciler.reconcile()
    source.processed.clear()

    reconciler.reconcile(full_rescan=True)
    assert source.processed == [a]


def test_changed_paths_sorted(tmp_path, registry):
    reconciler = Reconciler(FakeSource(), registry)
    present = {_p(tmp_path, "b"): 1.0, _p(tmp_path, "a"): 1.0}
    assert reconciler.changed_paths(present) == sorted(present)


def test_failures_counted_and_not_registered(tmp_path, registry):
    bad, flaky, gone, ok = (_p(tmp_path, n) for n in ("bad.md", "flaky.md", "gone.md", "ok.md"))
    source = FakeSource({bad: 1.0, flaky: 1.0, gone: 1.0, ok: 1.0})
    source.errors = {
        bad: BinaryContent(),
        flaky: EmbeddingError("down"),
        gone: FileNotFoundError(gone),
    }
    result = Reconciler(source, registry).reconcile()

    assert result.indexed == 1
    assert result.skip_reasons == {"binary": 1, "embedding failed": 1, "deleted": 1}
    assert registry.paths() == [ok]


def test_retry_outcome_unregisters(tmp_path, registry):
    a = _p(tmp_path, "a.md")
    registry.set(a, "old-doc", 0.0)
    source = FakeSource({a: 5.0})
    source.outcomes[a] = ProcessOutcome(None, skip_reason="embedding failed", retry=True)

    result = Reconciler(source, registry).reconcile()

    assert a not in registry
    assert result.skip_reasons == {"embedding failed": 1}


def test_outcome_without_document_recorded_until_changed(tmp_path, registry):
    a = _p(tmp_path, "a.md")
    source = FakeSource({a: 5.0})
    source.outcomes[a] = ProcessOutcome(None, skip_reason="read error")
    reconciler = Reconciler(source, registry)

    reconciler.reconcile()
    second = reconciler.reconcile()

    assert source.processed == [a]
    assert registry.get(a).document_id == ""
    assert second.skip_reasons == {}

    del source.files[a]
    third = reconciler.reconcile()

    assert source.removed == []
    assert third.removed == 0
    assert a not in registry


def test_outcome_with_skip_reason_stays_registered(tmp_path, registry):
    a = _p(tmp_path, "a.md")
    source = FakeSource({a: 5.0})
    source.outcomes[a] = ProcessOutcome("doc-a", skip_reason="empty")

    result = Reconciler(source, registry).reconcile()

    assert registry.get(a).document_id == "doc-a"
    assert result.indexed == 0
    assert result.skip_reasons == {"empty": 1}


def test_scan_error_changes_nothing(tmp_path, registry):
    a = _p(tmp_path, "a.md")
    registry.set(a, "doc-a", 1.0)
    source = FakeSource()
    source.fail_scan = True

    with pytest.raises(ScanError):
        Reconciler(source, registry).reconcile()
    assert a in registry
    assert source.removed == []


def test_cancelled_pass_saves_finished_files(tmp_path, registry):
    token = CancelToken()
    token.cancel()
    source = FakeSource({_p(tmp_path, "a.md"): 1.0})

    with pytest.raises(IndexingCancelled):
        Reconciler(source, registry, max_workers=1).reconcile(cancel=token)
    assert source.processed == []
    assert registry.path.exists()


def test_passes_with_real_files(tmp_path, registry):
    folder = tmp_path / "tree"
    folder.mkdir()
    f = folder / "a.md"
    f.write_text("alpha", encoding="utf-8")

    class _DiskSource(FakeSource):
        def list_files(self):
            return {normalize_path(p): p.stat().st_mtime for p in folder.iterdir()}

    source = _DiskSource()
    reconciler = Reconciler(source, registry)
    reconciler.reconcile()
    assert len(source.processed) == 1

    stamp = f.stat().st_mtime + 5
    os.utime(f, (stamp, stamp))
    reconciler.reconcile()
    assert len(source.processed) == 2
