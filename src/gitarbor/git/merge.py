"""Merge state detection and conflict reconciliation."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

from gitarbor.git.parsers import porcelain_path
from gitarbor.git.types import CommandResult, Conflict, ConflictMarker, MergeState

if TYPE_CHECKING:
	from collections.abc import Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

MERGE_HEAD = "MERGE_HEAD"
MERGE_MSG = "MERGE_MSG"

# Unmerged porcelain codes: both deleted/added/modified and the add/delete mixes
CONFLICT_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})

BASE_STAGE = 1
OURS_STAGE = 2
THEIRS_STAGE = 3

START_MARKER = "<<<<<<<"
SEPARATOR_MARKER = "======="
END_MARKER = ">>>>>>>"

_MERGING_BRANCH = re.compile(r"Merge branch '([^']+)'")


def parse_conflicted_paths(porcelain: str) -> list[str]:
	"""Return the paths whose porcelain status code marks them unmerged."""
	paths = []
	for line in porcelain.splitlines():
		if len(line) > 3 and line[:2] in CONFLICT_CODES:  # noqa: PLR2004
			paths.append(porcelain_path(line[3:]))
	return paths


def parse_merging_branch(message: str) -> str | None:
	"""Extract ``<name>`` from a ``Merge branch '<name>'`` message, if present."""
	match = _MERGING_BRANCH.search(message)
	return match.group(1) if match else None


def scan_conflict_markers(content: str) -> list[ConflictMarker]:
	"""
	Find complete conflict regions in ``content``.

	Line numbers are 1-based. The ours range spans the lines between the start
	marker and the separator, the theirs range the lines between the separator
	and the end marker. Regions missing a separator or end marker are dropped.

	Args:
	    content: Text of a conflicted file

	Returns:
	    One ConflictMarker per well-formed region, in file order

	"""
	markers: list[ConflictMarker] = []
	start: int | None = None
	separator: int | None = None
	for number, line in enumerate(content.splitlines(), start=1):
		if line.startswith(START_MARKER):
			# A new start abandons any unterminated region before it
			start, separator = number, None
		elif line.startswith(SEPARATOR_MARKER) and start is not None and separator is None:
			separator = number
		elif line.startswith(END_MARKER) and start is not None and separator is not None:
			markers.append(
				ConflictMarker(
					start_line=start,
					ours_start=start + 1,
					ours_end=separator - 1,
					theirs_start=separator + 1,
					theirs_end=number - 1,
					end_line=number,
				)
			)
			start, separator = None, None
	return markers


class MergeReconciler:
	"""Reads merge progress and the three versions of every conflicted path."""

	def __init__(
		self,
		run: Callable[[Sequence[str]], Awaitable[CommandResult]],
		cwd: Path,
	) -> None:
		"""
		Initialize the reconciler.

		Args:
		    run: Runs a git argument list (without the executable) in ``cwd``
		    cwd: Directory the commands run in; may be below the top-level

		"""
		self._run = run
		self.cwd = cwd
		self._git_dir: Path | None = None
		self._work_tree: Path | None = None

	async def git_dir(self) -> Path:
		"""Locate the repository metadata directory."""
		if self._git_dir is None:
			result = await self._run(["rev-parse", "--git-dir"])
			raw = result.stdout.strip() if result.returncode == 0 else ""
			git_dir = Path(raw) if raw else Path(".git")
			if not git_dir.is_absolute():
				git_dir = self.cwd / git_dir
			self._git_dir = git_dir
		return self._git_dir

	async def work_tree(self) -> Path:
		"""
		Locate the top-level of the working tree.

		Porcelain paths are relative to it, not to ``cwd``.

		"""
		if self._work_tree is None:
			result = await self._run(["rev-parse", "--show-toplevel"])
			raw = result.stdout.strip() if result.returncode == 0 else ""
			self._work_tree = Path(raw) if raw else self.cwd
		return self._work_tree

	async def is_merge_in_progress(self) -> bool:
		"""Whether the merge marker file exists."""
		return (await self.git_dir() / MERGE_HEAD).exists()

	async def merging_branch(self) -> str | None:
		"""Name of the branch being merged, read from the stored merge message."""
		msg_path = await self.git_dir() / MERGE_MSG
		try:
			async with aiofiles.open(msg_path, encoding="utf-8") as f:
				message = await f.read()
		except OSError:
			logger.debug("No merge message at %s", msg_path)
			return None
		return parse_merging_branch(message)

	async def stage_content(self, path: str, stage: int) -> str | None:
		"""Content of ``path`` at an index stage, or None when that stage is absent."""
		result = await self._run(["show", f":{stage}:{path}"])
		if result.returncode != 0:
			return None
		return result.stdout

	async def read_working_copy(self, path: str) -> str:
		"""Content of ``path`` in the working tree, empty if unreadable."""
		target = await self.work_tree() / path
		try:
			async with aiofiles.open(target, encoding="utf-8", errors="replace") as f:
				return await f.read()
		except OSError:
			logger.debug("Could not read conflicted file %s", path)
			return ""

	async def build_conflict(self, path: str) -> Conflict:
		"""Gather base/ours/theirs and the conflict markers of one path."""
		base, ours, theirs, working = await asyncio.gather(
			self.stage_content(path, BASE_STAGE),
			self.stage_content(path, OURS_STAGE),
			self.stage_content(path, THEIRS_STAGE),
			self.read_working_copy(path),
		)
		return Conflict(
			path=path,
			ours=ours or "",
			theirs=theirs or "",
			base=base,
			conflict_markers=tuple(scan_conflict_markers(working)),
		)

	async def merge_state(self, current_branch: str, porcelain: str) -> MergeState:
		"""
		Build a fresh MergeState.

		Args:
		    current_branch: Checked-out branch name
		    porcelain: Output of ``git status --porcelain``

		Returns:
		    MergeState; ``in_progress`` is False when no merge marker exists

		"""
		if not await self.is_merge_in_progress():
			return MergeState(in_progress=False, current_branch=current_branch)

		merging = await self.merging_branch()
		paths = parse_conflicted_paths(porcelain)
		conflicts = await asyncio.gather(*(self.build_conflict(path) for path in paths))
		logger.debug("Merge in progress from %s with %d conflicts", merging, len(conflicts))
		return MergeState(
			in_progress=True,
			current_branch=current_branch,
			merging_branch=merging,
			conflicts=tuple(conflicts),
		)
