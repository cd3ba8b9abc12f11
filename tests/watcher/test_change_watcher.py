"""Tests for the debounced change watcher."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path, PurePath

import pytest
from watchdog.events import FileModifiedEvent, FileMovedEvent, FileOpenedEvent

from gitarbor.watcher.change_watcher import (
    ChangeWatcher,
    _ChangeEventHandler,
    is_ignored_worktree_path,
    is_significant_git_path,
)

DEBOUNCE_MS = 50


class FakeObserver:
    """Records schedules instead of watching the filesystem."""

    def __init__(self) -> None:
        self.scheduled: list[tuple[str, bool]] = []
        self.started = False
        self.stopped = False
        self.joined = False

    def schedule(self, handler: object, path: str, recursive: bool = False) -> None:
        self.scheduled.append((path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self) -> None:
        self.joined = True


class BrokenObserver(FakeObserver):
    def start(self) -> None:
        raise OSError("inotify watch limit reached")


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    (tmp_path / ".git").mkdir()
    return tmp_path


async def settle(delay_ms: int = DEBOUNCE_MS * 4) -> None:
    await asyncio.sleep(delay_ms / 1000)


@pytest.mark.unit
@pytest.mark.watcher
@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("src/app.py", False),
        (".git/index", True),
        ("node_modules/pkg/index.js", True),
        ("pkg/__pycache__/mod.pyc", True),
        (".idea/workspace.xml", True),
        ("docs/.DS_Store", True),
        ("Thumbs.db", True),
    ],
)
def test_is_ignored_worktree_path(path: str, expected: bool) -> None:
    assert is_ignored_worktree_path(PurePath(path)) is expected


@pytest.mark.unit
@pytest.mark.watcher
@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("index", True),
        ("HEAD", True),
        ("MERGE_HEAD", True),
        ("refs/heads/main", True),
        ("refs/stash", True),
        ("objects/ab/cdef", False),
        ("index.lock", False),
        ("logs/HEAD", True),
        ("hooks/pre-commit", False),
    ],
)
def test_is_significant_git_path(path: str, expected: bool) -> None:
    assert is_significant_git_path(PurePath(path)) is expected


@pytest.mark.asyncio
@pytest.mark.asynchronous
@pytest.mark.watcher
class TestChangeWatcher:
    """Tests for the ChangeWatcher class."""

    async def test_start_schedules_both_roots(self, repo: Path) -> None:
        observer = FakeObserver()
        watcher = ChangeWatcher(repo, lambda: None, observer_factory=lambda: observer)

        watcher.start()

        assert watcher.is_running
        assert observer.started
        assert observer.scheduled == [(str(repo.resolve()), True), (str((repo / ".git").resolve()), True)]

        watcher.stop()

        assert not watcher.is_running
        assert observer.stopped
        assert observer.joined

    async def test_burst_fires_once(self, repo: Path) -> None:
        calls: list[int] = []
        watcher = ChangeWatcher(
            repo, lambda: calls.append(1), debounce_ms=DEBOUNCE_MS, observer_factory=FakeObserver
        )
        watcher.start()

        for _ in range(10):
            watcher.notify()
        await settle()

        assert calls == [1]

        watcher.notify()
        await settle()

        assert calls == [1, 1]
        watcher.stop()

    async def test_stop_cancels_pending_notification(self, repo: Path) -> None:
        calls: list[int] = []
        watcher = ChangeWatcher(
            repo, lambda: calls.append(1), debounce_ms=DEBOUNCE_MS, observer_factory=FakeObserver
        )
        watcher.start()

        watcher.notify()
        await asyncio.sleep(0)
        watcher.stop()
        await settle()

        assert calls == []

    async def test_notify_before_start_is_ignored(self, repo: Path) -> None:
        calls: list[int] = []
        watcher = ChangeWatcher(repo, lambda: calls.append(1), debounce_ms=DEBOUNCE_MS)

        watcher.notify()
        await settle()

        assert calls == []

    async def test_set_callback(self, repo: Path) -> None:
        first: list[int] = []
        second: list[int] = []
        watcher = ChangeWatcher(
            repo, lambda: first.append(1), debounce_ms=DEBOUNCE_MS, observer_factory=FakeObserver
        )
        watcher.start()

        watcher.set_callback(lambda: second.append(1))
        watcher.notify()
        await settle()

        assert first == []
        assert second == [1]
        watcher.stop()

    async def test_async_callback(self, repo: Path) -> None:
        done = asyncio.Event()

        async def on_change() -> None:
            done.set()

        watcher = ChangeWatcher(repo, on_change, debounce_ms=DEBOUNCE_MS, observer_factory=FakeObserver)
        watcher.start()

        watcher.notify()
        await asyncio.wait_for(done.wait(), timeout=2)

        watcher.stop()

    async def test_callback_errors_are_logged(self, repo: Path, caplog: pytest.LogCaptureFixture) -> None:
        def on_change() -> None:
            raise RuntimeError("boom")

        watcher = ChangeWatcher(repo, on_change, debounce_ms=DEBOUNCE_MS, observer_factory=FakeObserver)
        watcher.start()

        with caplog.at_level(logging.ERROR):
            watcher.notify()
            await settle()

        assert "Error executing watcher callback" in caplog.text
        watcher.stop()

    async def test_start_failure_is_logged(self, repo: Path, caplog: pytest.LogCaptureFixture) -> None:
        watcher = ChangeWatcher(repo, lambda: None, observer_factory=BrokenObserver)

        with caplog.at_level(logging.ERROR):
            watcher.start()

        assert not watcher.is_running
        assert "Failed to start file watcher" in caplog.text

    async def test_missing_git_dir_watches_worktree_only(self, tmp_path: Path) -> None:
        observer = FakeObserver()
        watcher = ChangeWatcher(tmp_path, lambda: None, observer_factory=lambda: observer)

        watcher.start()

        assert observer.scheduled == [(str(tmp_path.resolve()), True)]
        watcher.stop()

    async def test_worktree_handler_filters_events(self, repo: Path) -> None:
        calls: list[int] = []
        watcher = ChangeWatcher(
            repo, lambda: calls.append(1), debounce_ms=DEBOUNCE_MS, observer_factory=FakeObserver
        )
        watcher.start()
        root = repo.resolve()
        handler = _ChangeEventHandler(watcher, root, metadata=False)

        handler.on_any_event(FileModifiedEvent(str(root / "node_modules" / "x.js")))
        handler.on_any_event(FileOpenedEvent(str(root / "app.py")))
        await settle()

        assert calls == []

        handler.on_any_event(FileMovedEvent(str(root / ".cache" / "tmp"), str(root / "app.py")))
        await settle()

        assert calls == [1]
        watcher.stop()

    async def test_metadata_handler_filters_events(self, repo: Path) -> None:
        calls: list[int] = []
        watcher = ChangeWatcher(
            repo, lambda: calls.append(1), debounce_ms=DEBOUNCE_MS, observer_factory=FakeObserver
        )
        watcher.start()
        git_dir = (repo / ".git").resolve()
        handler = _ChangeEventHandler(watcher, git_dir, metadata=True)

        handler.on_any_event(FileModifiedEvent(str(git_dir / "objects" / "ab" / "cdef")))
        await settle()

        assert calls == []

        handler.on_any_event(FileModifiedEvent(str(git_dir / "index")))
        await settle()

        assert calls == [1]
        watcher.stop()


@pytest.mark.asyncio
@pytest.mark.asynchronous
@pytest.mark.watcher
@pytest.mark.integration
async def test_real_observer_reports_file_write(repo: Path) -> None:
    changed = asyncio.Event()
    watcher = ChangeWatcher(repo, changed.set, debounce_ms=DEBOUNCE_MS)
    watcher.start()
    try:
        await asyncio.sleep(0.2)
        (repo / "hello.txt").write_text("hi\n")
        await asyncio.wait_for(changed.wait(), timeout=5)
    finally:
        watcher.stop()
