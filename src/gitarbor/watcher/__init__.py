"""Filesystem watching for repository changes."""

from gitarbor.watcher.change_watcher import ChangeWatcher

__all__ = ["ChangeWatcher"]
