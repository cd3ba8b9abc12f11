"""Git command execution, output parsing and merge reconciliation."""

from gitarbor.git.activity import ActivityLedger
from gitarbor.git.client import RepositoryClient
from gitarbor.git.merge import MergeReconciler, scan_conflict_markers
from gitarbor.git.runner import CommandRunner, GitError, SubprocessRunner
from gitarbor.git.types import (
	Branch,
	CommandRecord,
	CommandResult,
	Commit,
	Conflict,
	ConflictMarker,
	FileEntry,
	GitStatus,
	MergeState,
	Remote,
	RepositorySnapshot,
	Stash,
	Tag,
)

__all__ = [
	"ActivityLedger",
	"Branch",
	"CommandRecord",
	"CommandResult",
	"CommandRunner",
	"Commit",
	"Conflict",
	"ConflictMarker",
	"FileEntry",
	"GitError",
	"GitStatus",
	"MergeReconciler",
	"MergeState",
	"Remote",
	"RepositoryClient",
	"RepositorySnapshot",
	"Stash",
	"SubprocessRunner",
	"Tag",
	"scan_conflict_markers",
]
