"""Filesystem change notifiers and the debouncer that settles their events.

A notifier only says "something under this root changed". It never reports
which file: the reconciler rediscovers that by diffing the tree against the
registry, so any backend with coarse events is good enough.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class ChangeNotifier(Protocol):
    def start(self, callback: Callable[[], None]) -> None:
        """Begin delivering a call to *callback* for every raw change."""
        ...

    def stop(self) -> None:
        ...


class _SignalHandler(FileSystemEventHandler):
    def __init__(self, callback: Callable[[], None]) -> None:
        super().__init__()
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type in ("opened", "closed_no_write"):
            return
        self._callback()


class WatchdogNotifier:
    """watchdog-backed notifier.

    ``recursive=True`` streams events for the whole tree; ``recursive=False``
    only watches the root directory's own entries.
    """

    def __init__(self, root: Path, recursive: bool = True) -> None:
        self.root = Path(root)
        self.recursive = recursive
        self._observer: Observer | None = None

    def start(self, callback: Callable[[], None]) -> None:
        """Install the watch.

        Raises:
            FileNotFoundError: The root does not exist.
        """
        if not self.root.is_dir():
            raise FileNotFoundError(f"Watch root does not exist: {self.root}")
        observer = Observer()
        observer.daemon = True
        observer.schedule(_SignalHandler(callback), str(self.root), recursive=self.recursive)
        observer.start()
        self._observer = observer
        logger.debug("Watching %s (recursive=%s)", self.root, self.recursive)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None


def make_notifier(root: Path, deep: bool = True) -> ChangeNotifier:
    """Return a notifier for *root*: recursive when *deep*, else shallow."""
    return WatchdogNotifier(root, recursive=deep)


class Debouncer:
    """Collapse bursts of signals into one call after a quiet period.

    Each ``signal()`` pushes the deadline to ``now + delay``. A single
    daemon thread fires *callback* once the deadline passes without a new
    signal.
    """

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self._callback = callback
        self._cond = threading.Condition()
        self._deadline: float | None = None
        self._stopped = False
        self._thread = threading.Thread(target=self._run, name="lumen-debounce", daemon=True)
        self._thread.start()

    @property
    def pending(self) -> bool:
        return self._deadline is not None

    def signal(self) -> None:
        with self._cond:
            self._deadline = time.monotonic() + self.delay
            self._cond.notify()

    def cancel(self) -> None:
        with self._cond:
            self._deadline = None
            self._cond.notify()

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._deadline = None
            self._cond.notify()
        self._thread.join(timeout=5.0)

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._stopped:
                    if self._deadline is None:
                        self._cond.wait()
                        continue
                    remaining = self._deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if self._stopped:
                    return
                self._deadline = None
            try:
                self._callback()
            except Exception:
                logger.exception("Debounced callback failed")
