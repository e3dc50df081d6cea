"""Tests for Debouncer, WatchdogNotifier and FolderWatcher."""

from __future__ import annotations

import threading
import time

import pytest

from lumen.errors import ScanError
from lumen.watch.notifier import Debouncer, WatchdogNotifier, make_notifier
from lumen.watch.watcher import FolderWatcher, WatchState


class FakeNotifier:
    """Notifier whose events are fired by the test."""

    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.starts = 0
        self.callback = None
        self.stopped = False

    def start(self, callback) -> None:
        self.starts += 1
        if self.starts <= self.fail_times:
            raise FileNotFoundError("root missing")
        self.callback = callback

    def stop(self) -> None:
        self.stopped = True

    def fire(self) -> None:
        self.callback()


class Counter:
    def __init__(self) -> None:
        self.calls = 0
        self.lock = threading.Lock()

    def __call__(self) -> None:
        with self.lock:
            self.calls += 1


def _wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


# ------------------------------------------------------------------
# Debouncer
# ------------------------------------------------------------------


def test_debouncer_coalesces_burst():
    counter = Counter()
    debouncer = Debouncer(0.05, counter)
    try:
        for _ in range(5):
            debouncer.signal()
        assert _wait_until(lambda: counter.calls == 1)
        time.sleep(0.15)
        assert counter.calls == 1
        assert debouncer.pending is False
    finally:
        debouncer.stop()


def test_debouncer_cancel():
    counter = Counter()
    debouncer = Debouncer(0.1, counter)
    try:
        debouncer.signal()
        debouncer.cancel()
        time.sleep(0.25)
        assert counter.calls == 0
    finally:
        debouncer.stop()


def test_debouncer_fires_again_after_new_signal():
    counter = Counter()
    debouncer = Debouncer(0.02, counter)
    try:
        debouncer.signal()
        assert _wait_until(lambda: counter.calls == 1)
        debouncer.signal()
        assert _wait_until(lambda: counter.calls == 2)
    finally:
        debouncer.stop()


# ------------------------------------------------------------------
# WatchdogNotifier
# ------------------------------------------------------------------


def test_watchdog_notifier_reports_changes(tmp_path):
    fired = threading.Event()
    notifier = make_notifier(tmp_path, deep=True)
    assert isinstance(notifier, WatchdogNotifier)
    notifier.start(fired.set)
    try:
        (tmp_path / "new.txt").write_text("alpha", encoding="utf-8")
        assert fired.wait(5.0)
    finally:
        notifier.stop()


def test_watchdog_notifier_missing_root(tmp_path):
    notifier = WatchdogNotifier(tmp_path / "missing")
    with pytest.raises(FileNotFoundError):
        notifier.start(lambda: None)
    notifier.stop()


# ------------------------------------------------------------------
# FolderWatcher
# ------------------------------------------------------------------


def test_initial_pass_on_start(tmp_path):
    counter = Counter()
    notifier = FakeNotifier()
    watcher = FolderWatcher(tmp_path, counter, notifier=notifier, debounce=0.02)
    assert watcher.state is WatchState.IDLE
    watcher.start()
    try:
        assert watcher.wait_idle(5.0)
        assert counter.calls == 1
        assert watcher.passes == 1
        assert watcher.state is WatchState.MONITORING
    finally:
        watcher.stop()
    assert watcher.state is WatchState.IDLE
    assert notifier.stopped


def test_burst_of_events_runs_one_pass(tmp_path):
    counter = Counter()
    notifier = FakeNotifier()
    watcher = FolderWatcher(tmp_path, counter, notifier=notifier, debounce=0.05)
    watcher.start(initial_pass=False)
    try:
        for _ in range(10):
            notifier.fire()
        assert watcher.state is WatchState.DEBOUNCING
        assert watcher.wait_idle(5.0)
        assert counter.calls == 1
    finally:
        watcher.stop()


def test_signal_during_pass_schedules_exactly_one_more(tmp_path):
    entered = threading.Event()
    release = threading.Event()
    calls = []

    def reconcile():
        calls.append(1)
        if len(calls) == 1:
            entered.set()
            release.wait(5.0)

    watcher = FolderWatcher(tmp_path, reconcile, notifier=FakeNotifier(), debounce=0.01)
    watcher.start()
    try:
        assert entered.wait(5.0)
        assert watcher.state is WatchState.RECONCILING
        for _ in range(3):
            watcher.request_pass()
        release.set()
        assert watcher.wait_idle(5.0)
        assert len(calls) == 2
    finally:
        watcher.stop()


def test_scan_error_keeps_watcher_running(tmp_path):
    calls = []

    def reconcile():
        calls.append(1)
        if len(calls) == 1:
            raise ScanError(str(tmp_path), "gone")

    watcher = FolderWatcher(tmp_path, reconcile, notifier=FakeNotifier(), debounce=0.01)
    watcher.start()
    try:
        assert watcher.wait_idle(5.0)
        watcher.request_pass()
        assert watcher.wait_idle(5.0)
        assert len(calls) == 2
        assert watcher.passes == 2
    finally:
        watcher.stop()


def test_missing_root_retries_install(tmp_path):
    counter = Counter()
    notifier = FakeNotifier(fail_times=2)
    watcher = FolderWatcher(
        tmp_path, counter, notifier=notifier, debounce=0.01, retry_interval=0.05
    )
    watcher.start()
    try:
        assert _wait_until(lambda: notifier.callback is not None)
        assert _wait_until(lambda: counter.calls == 1)
        assert notifier.starts == 3
    finally:
        watcher.stop()


def test_stop_is_idempotent_and_blocks_new_passes(tmp_path):
    counter = Counter()
    watcher = FolderWatcher(tmp_path, counter, notifier=FakeNotifier(), debounce=0.01)
    watcher.start(initial_pass=False)
    watcher.stop()
    watcher.stop()
    watcher.request_pass()
    time.sleep(0.05)
    assert counter.calls == 0
