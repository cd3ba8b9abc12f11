"""Typed records produced by the repository state engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Literal, TypeVar

T = TypeVar("T")

MergeStrategy = Literal["default", "no-ff", "ff-only"]
ResetMode = Literal["soft", "mixed", "hard"]
ConflictSide = Literal["ours", "theirs"]

UNKNOWN_BRANCH = "unknown"


@dataclass(frozen=True)
class CommandResult:
	"""Captured output of one external invocation."""

	stdout: str
	stderr: str
	returncode: int


@dataclass(frozen=True)
class CommandRecord:
	"""One entry of the activity ledger."""

	command: str
	timestamp: float
	duration_ms: float
	success: bool
	error: str | None = None


@dataclass(frozen=True)
class FileEntry:
	"""A changed path as reported by porcelain status."""

	path: str
	status: str
	staged: bool


@dataclass
class GitStatus:
	"""Working tree status of the checked-out branch."""

	branch: str
	ahead: int = 0
	behind: int = 0
	staged: list[FileEntry] = field(default_factory=list)
	unstaged: list[FileEntry] = field(default_factory=list)
	untracked: list[FileEntry] = field(default_factory=list)

	@property
	def is_clean(self) -> bool:
		"""Whether nothing is staged, modified or untracked."""
		return not (self.staged or self.unstaged or self.untracked)


@dataclass(frozen=True)
class Commit:
	"""A single commit from the log."""

	hash: str
	short_hash: str
	author: str
	date: str
	message: str


@dataclass
class Branch:
	"""A local or remote-tracking branch."""

	name: str
	current: bool = False
	remote: bool = False
	upstream: str | None = None
	last_commit_date: str | None = None
	description: str | None = None
	ahead: int | None = None
	behind: int | None = None


@dataclass(frozen=True)
class Stash:
	"""A stash entry; ``index`` is the identifier used by stash operations."""

	index: int
	name: str
	branch: str
	message: str


@dataclass(frozen=True)
class Tag:
	"""A lightweight or annotated tag."""

	name: str
	commit: str
	date: str
	message: str | None = None
	is_annotated: bool = False


@dataclass(frozen=True)
class Remote:
	"""A configured remote with its fetch and push URLs."""

	name: str
	fetch_url: str
	push_url: str = ""


@dataclass(frozen=True)
class ConflictMarker:
	"""Line numbers (1-based) of one ``<<<<<<< / ======= / >>>>>>>`` region."""

	start_line: int
	ours_start: int
	ours_end: int
	theirs_start: int
	theirs_end: int
	end_line: int


@dataclass(frozen=True)
class Conflict:
	"""Three-way content of a conflicted path."""

	path: str
	ours: str
	theirs: str
	base: str | None = None
	conflict_markers: tuple[ConflictMarker, ...] = ()


@dataclass(frozen=True)
class MergeState:
	"""Snapshot of an in-progress (or absent) merge."""

	in_progress: bool
	current_branch: str
	merging_branch: str | None = None
	conflicts: tuple[Conflict, ...] = ()

	@property
	def ready_to_commit(self) -> bool:
		"""Whether a merge is in progress with every conflict resolved."""
		return self.in_progress and not self.conflicts


class ParseQuality(str, Enum):
	"""How a parsed record was obtained."""

	PARSED = "parsed"
	RECOVERED = "recovered"


@dataclass(frozen=True)
class ParseOutcome(Generic[T]):
	"""A parsed value tagged with whether the fallback path produced it."""

	value: T
	quality: ParseQuality = ParseQuality.PARSED

	@property
	def recovered(self) -> bool:
		"""True when only best-effort extraction succeeded."""
		return self.quality is ParseQuality.RECOVERED


@dataclass
class RepositorySnapshot:
	"""Everything a view needs to render one repository."""

	status: GitStatus
	commits: list[Commit]
	branches: list[Branch]
	stashes: list[Stash]
	tags: list[Tag]
	remotes: list[Remote]
	merge_state: MergeState
