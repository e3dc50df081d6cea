"""Reconcile a watched tree with its change registry.

One pass:
  1. List present, allowed files with their modification times.
  2. Registry paths that vanished: remove the document and the entry.
  3. New files, or files whose mtime moved by more than the tolerance (every
     file on a full rescan): hand to the source for re-import and re-index,
     a bounded number at a time.
  4. Save the registry.

Running the same pass twice without filesystem changes does nothing the
second time.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from lumen.errors import EmbeddingError, IndexingCancelled, IndexingError, LumenError
from lumen.ingest.batching import CancelToken, IndexingResult
from lumen.store.models import RegistryEntry
from lumen.store.registry import ChangeRegistry

logger = logging.getLogger(__name__)


@dataclass
class ProcessOutcome:
    """What happened to one changed file.

    Attributes:
        document_id: Document now standing for the file, or None when the
            file produced no document. Either way the file is recorded with
            its mtime, so an unchanged file is not processed again.
        chunks: Chunks stored for the file.
        skip_reason: Set when the file could not be indexed.
        retry: Leave the file unregistered so the next pass retries it.
    """

    document_id: str | None
    chunks: int = 0
    skip_reason: str | None = None
    retry: bool = False


class FileSource(Protocol):
    """A watched tree: what is on disk and how to (un)index one file."""

    def list_files(self) -> dict[str, float]:
        """Map normalized absolute path → mtime for every eligible file.

        Raises:
            ScanError: The tree could not be listed.
        """
        ...

    def process(self, path: Path, previous: RegistryEntry | None) -> ProcessOutcome:
        ...

    def remove(self, document_id: str) -> None:
        ...


class Reconciler:
    def __init__(
        self,
        source: FileSource,
        registry: ChangeRegistry,
        *,
        tolerance: float = 0.5,
        max_workers: int = 2,
    ) -> None:
        self.source = source
        self.registry = registry
        self.tolerance = tolerance
        self.max_workers = max_workers

    def changed_paths(self, present: dict[str, float], full_rescan: bool = False) -> list[str]:
        changed: list[str] = []
        for path, modified in sorted(present.items()):
            entry = self.registry.get(path)
            if full_rescan or entry is None or abs(entry.modified_at - modified) > self.tolerance:
                changed.append(path)
        return changed

    def reconcile(
        self, full_rescan: bool = False, cancel: CancelToken | None = None
    ) -> IndexingResult:
        """Run one reconciliation pass.

        Raises:
            ScanError: The tree could not be listed; nothing was changed.
            IndexingCancelled: *cancel* was set; finished files stay recorded.
        """
        present = self.source.list_files()
        result = IndexingResult()

        for path in self.registry.paths():
            if path in present:
                continue
            entry = self.registry.pop(path)
            if entry is None:
                continue
            if entry.document_id:
                self.source.remove(entry.document_id)
                result.removed += 1
                logger.info("Removed %s (file deleted)", path)

        changed = self.changed_paths(present, full_rescan)
        try:
            if changed:
                with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                    outcomes = pool.map(
                        lambda p: self._process_one(p, present[p], cancel), changed
                    )
                    for outcome in outcomes:
                        result.merge(outcome)
        finally:
            self.registry.save()

        if changed or result.removed:
            logger.info("Reconciled %d changed files: %s", len(changed), result.summary)
        return result

    def _process_one(
        self, path: str, modified: float, cancel: CancelToken | None
    ) -> IndexingResult:
        result = IndexingResult()
        if cancel is not None:
            cancel.raise_if_cancelled()
        previous = self.registry.get(path)
        try:
            outcome = self.source.process(Path(path), previous)
        except IndexingCancelled:
            raise
        except FileNotFoundError:
            result.skip("deleted")
            return result
        except IndexingError as exc:
            result.skip(exc.reason)
            return result
        except EmbeddingError as exc:
            logger.warning("Embedding failed for %s: %s", path, exc)
            result.skip("embedding failed")
            return result
        except (OSError, LumenError) as exc:
            logger.warning("Could not process %s: %s", path, exc)
            result.skip("read error")
            return result

        if outcome.retry:
            self.registry.pop(path)
        else:
            self.registry.set(path, outcome.document_id or "", modified)
        if outcome.skip_reason:
            result.skip(outcome.skip_reason)
        else:
            result.add_indexed(outcome.chunks)
        return result
