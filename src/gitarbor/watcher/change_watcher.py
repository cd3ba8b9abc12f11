"""Debounced notification of working tree and repository metadata changes."""

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
	from collections.abc import Callable

	ChangeCallback = Callable[[], Any]

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 300
GIT_DIR_NAME = ".git"

# Metadata entries whose change means status, branches or history may differ
GIT_SIGNIFICANT_NAMES = frozenset({"index", "HEAD", "ORIG_HEAD", "FETCH_HEAD", "MERGE_HEAD", "COMMIT_EDITMSG"})
GIT_REFS_DIR = "refs"

IGNORED_DIRECTORIES = frozenset({"node_modules", "__pycache__"})
IGNORED_FILES = frozenset({".DS_Store", "Thumbs.db", "desktop.ini"})


def _as_str(path: str | bytes) -> str:
	return path.decode() if isinstance(path, bytes) else str(path)


def is_significant_git_path(relative: PurePath) -> bool:
	"""Whether a path relative to the metadata directory is worth a refresh."""
	parts = relative.parts
	if not parts:
		return False
	return relative.name in GIT_SIGNIFICANT_NAMES or parts[0] == GIT_REFS_DIR


def is_ignored_worktree_path(relative: PurePath) -> bool:
	"""Whether a path relative to the working tree is noise."""
	parts = relative.parts
	if not parts:
		return True
	if parts[0] == GIT_DIR_NAME or relative.name in IGNORED_FILES:
		return True
	return any(part in IGNORED_DIRECTORIES or part.startswith(".") for part in parts)


class _ChangeEventHandler(FileSystemEventHandler):
	"""Forwards filesystem events below one root to the watcher."""

	def __init__(self, watcher: ChangeWatcher, root: Path, *, metadata: bool) -> None:
		super().__init__()
		self.watcher = watcher
		self.root = root
		self.metadata = metadata

	def _relative(self, raw: str | bytes) -> PurePath | None:
		try:
			return Path(_as_str(raw)).relative_to(self.root)
		except ValueError:
			return None

	def on_any_event(self, event: FileSystemEvent) -> None:
		"""Catch all events and hand the qualifying ones to the watcher."""
		if event.event_type in {"opened", "closed_no_write"}:
			return
		paths = [event.src_path]
		dest_path = getattr(event, "dest_path", "")
		if dest_path:
			paths.append(dest_path)
		for raw in paths:
			relative = self._relative(raw)
			if relative is None:
				continue
			if self.metadata:
				qualifies = is_significant_git_path(relative)
			else:
				qualifies = not is_ignored_worktree_path(relative)
			if qualifies:
				logger.debug("Detected %s: %s", event.event_type, _as_str(raw))
				self.watcher.notify()
				return


class ChangeWatcher:
	"""
	Watches a repository and fires one callback per burst of changes.

	Events arrive on the observer thread and are handed to the event loop, where
	a single timer is restarted by each qualifying event. The callback runs once
	the tree has been quiet for ``debounce_ms``; coroutine callbacks are
	scheduled as tasks.

	"""

	def __init__(
		self,
		path: str | Path,
		on_change: ChangeCallback,
		debounce_ms: int = DEFAULT_DEBOUNCE_MS,
		git_dir: str | Path | None = None,
		observer_factory: Callable[[], Any] = Observer,
	) -> None:
		"""
		Initialize the watcher.

		Args:
		    path: Working tree root
		    on_change: Called (or awaited) after each quiet period
		    debounce_ms: Quiet period in milliseconds
		    git_dir: Metadata directory, ``<path>/.git`` by default
		    observer_factory: Builds the watchdog observer

		"""
		self.path = Path(path).resolve()
		self.git_dir = Path(git_dir).resolve() if git_dir else self.path / GIT_DIR_NAME
		self.debounce_delay = debounce_ms / 1000
		self._callback = on_change
		self._observer_factory = observer_factory
		self._observer: Any = None
		self._loop: asyncio.AbstractEventLoop | None = None
		self._timer: asyncio.TimerHandle | None = None
		self._tasks: set[asyncio.Task] = set()

	@property
	def is_running(self) -> bool:
		"""Whether filesystem events are being delivered."""
		return self._observer is not None

	def set_callback(self, on_change: ChangeCallback) -> None:
		"""Replace the notification target without touching the watches."""
		self._callback = on_change

	def start(self) -> None:
		"""
		Start watching the working tree and the metadata directory.

		Must be called from a running event loop. A failure to set up the watches
		is logged and leaves the watcher stopped; callers fall back to manual refresh.

		"""
		if self.is_running:
			return
		self._loop = asyncio.get_running_loop()
		observer = self._observer_factory()
		try:
			observer.schedule(_ChangeEventHandler(self, self.path, metadata=False), str(self.path), recursive=True)
			if self.git_dir.is_dir():
				observer.schedule(
					_ChangeEventHandler(self, self.git_dir, metadata=True), str(self.git_dir), recursive=True
				)
			else:
				logger.warning("Metadata directory %s not found, watching the working tree only", self.git_dir)
			observer.start()
		except (OSError, RuntimeError):
			logger.exception("Failed to start file watcher for %s", self.path)
			self._loop = None
			return
		self._observer = observer
		logger.info("Started watching repository: %s", self.path)

	def stop(self) -> None:
		"""Cancel the watches and any pending notification."""
		if self._timer is not None:
			self._timer.cancel()
			self._timer = None
		observer, self._observer = self._observer, None
		self._loop = None
		if observer is not None:
			observer.stop()
			observer.join()
			logger.info("Stopped watching repository: %s", self.path)

	def notify(self) -> None:
		"""Report a qualifying change; safe to call from any thread."""
		loop = self._loop
		if loop is None or loop.is_closed():
			return
		loop.call_soon_threadsafe(self._restart_timer)

	def _restart_timer(self) -> None:
		if self._loop is None:
			return
		if self._timer is not None:
			self._timer.cancel()
		self._timer = self._loop.call_later(self.debounce_delay, self._fire)

	def _fire(self) -> None:
		self._timer = None
		logger.debug("Debounce delay finished, notifying about repository changes")
		try:
			result = self._callback()
		except Exception:
			logger.exception("Error executing watcher callback")
			return
		if inspect.isawaitable(result):
			task = asyncio.ensure_future(result)
			self._tasks.add(task)
			task.add_done_callback(self._task_done)

	def _task_done(self, task: asyncio.Task) -> None:
		self._tasks.discard(task)
		if not task.cancelled() and task.exception() is not None:
			logger.error("Error executing watcher callback", exc_info=task.exception())
