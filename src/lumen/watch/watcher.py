"""Folder watcher: notifier → debounce → serialized reconciliation.

State per root::

    IDLE → MONITORING → DEBOUNCING → RECONCILING → MONITORING

Raw events only restart the debounce timer. The settled signal queues a
reconciliation on the watcher's single worker thread, so passes never
overlap; a signal arriving mid-pass schedules exactly one more pass.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from lumen.errors import ScanError
from lumen.watch.notifier import ChangeNotifier, Debouncer, make_notifier

logger = logging.getLogger(__name__)


class WatchState(str, Enum):
    IDLE = "idle"
    MONITORING = "monitoring"
    DEBOUNCING = "debouncing"
    RECONCILING = "reconciling"


class FolderWatcher:
    """Watch *root* and call *reconcile* after each quiet period.

    Args:
        root: Directory to watch.
        reconcile: Called on the worker thread; ``ScanError`` is logged and
            the watcher keeps running.
        notifier: Change source. Defaults to ``make_notifier(root, deep)``.
        deep: Watch the whole tree rather than the root's own entries.
        debounce: Quiet period in seconds.
        retry_interval: Seconds between attempts to install the watch while
            the root is missing.
    """

    def __init__(
        self,
        root: Path,
        reconcile: Callable[[], object],
        *,
        notifier: ChangeNotifier | None = None,
        deep: bool = True,
        debounce: float = 1.0,
        retry_interval: float = 5.0,
        name: str | None = None,
    ) -> None:
        self.root = Path(root)
        self.name = name or self.root.name
        self._reconcile = reconcile
        self._notifier = notifier if notifier is not None else make_notifier(self.root, deep)
        self._debounce = debounce
        self._retry_interval = retry_interval

        self._cond = threading.Condition()
        self._state = WatchState.IDLE
        self._pending = False
        self._running = False
        self._stopped = threading.Event()
        self._debouncer: Debouncer | None = None
        self._worker: threading.Thread | None = None
        self._retry: threading.Thread | None = None
        self.passes = 0

    @property
    def state(self) -> WatchState:
        return self._state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, initial_pass: bool = True) -> None:
        if self._worker is not None:
            return
        self._stopped.clear()
        self._debouncer = Debouncer(self._debounce, self.request_pass)
        self._worker = threading.Thread(
            target=self._work, name=f"lumen-reconcile-{self.name}", daemon=True
        )
        self._worker.start()
        with self._cond:
            self._state = WatchState.MONITORING

        if not self._install():
            self._retry = threading.Thread(
                target=self._retry_install, name=f"lumen-retry-{self.name}", daemon=True
            )
            self._retry.start()
        elif initial_pass:
            self.request_pass()

    def stop(self) -> None:
        self._stopped.set()
        self._notifier.stop()
        if self._debouncer is not None:
            self._debouncer.stop()
        with self._cond:
            self._pending = False
            self._cond.notify_all()
        if self._worker is not None:
            self._worker.join(timeout=10.0)
        if self._retry is not None:
            self._retry.join(timeout=10.0)
        self._worker = self._retry = self._debouncer = None
        with self._cond:
            self._state = WatchState.IDLE
            self._cond.notify_all()

    def _install(self) -> bool:
        try:
            self._notifier.start(self._on_raw_event)
        except OSError as exc:
            logger.warning("Cannot watch %s yet: %s", self.root, exc)
            return False
        return True

    def _retry_install(self) -> None:
        while not self._stopped.wait(self._retry_interval):
            if self._install():
                logger.info("Watching %s", self.root)
                self.request_pass()
                return

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def _on_raw_event(self) -> None:
        if self._stopped.is_set() or self._debouncer is None:
            return
        with self._cond:
            if self._state is WatchState.MONITORING:
                self._state = WatchState.DEBOUNCING
        self._debouncer.signal()

    def request_pass(self) -> None:
        """Queue one reconciliation; coalesces with any already queued."""
        with self._cond:
            if self._stopped.is_set():
                return
            self._pending = True
            self._cond.notify_all()

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until nothing is queued or running. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(
                lambda: not self._pending
                and not self._running
                and not (self._debouncer is not None and self._debouncer.pending),
                timeout=timeout,
            )

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _work(self) -> None:
        while True:
            with self._cond:
                while not self._pending and not self._stopped.is_set():
                    self._cond.wait()
                if self._stopped.is_set():
                    return
                self._pending = False
                self._running = True
                self._state = WatchState.RECONCILING
            try:
                self._reconcile()
            except ScanError as exc:
                logger.warning("Scan of %s failed: %s", self.root, exc)
            except Exception:
                logger.exception("Reconciliation of %s failed", self.root)
            finally:
                with self._cond:
                    self.passes += 1
                    self._running = False
                    debouncing = self._debouncer is not None and self._debouncer.pending
                    self._state = WatchState.DEBOUNCING if debouncing else WatchState.MONITORING
                    self._cond.notify_all()
