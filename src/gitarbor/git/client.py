"""Repository client: one stateful façade over a working directory."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

from gitarbor.git.activity import DEFAULT_CAPACITY, ActivityLedger
from gitarbor.git.merge import MergeReconciler
from gitarbor.git.parsers import (
	BRANCH_FORMAT,
	LOG_FORMAT,
	TAG_FORMAT,
	parse_ahead_behind,
	parse_branches,
	parse_log,
	parse_remotes,
	parse_stashes,
	parse_status,
	parse_tags,
)
from gitarbor.git.runner import CommandRunner, GitError, SubprocessRunner
from gitarbor.git.types import (
	Branch,
	CommandResult,
	Commit,
	ConflictSide,
	GitStatus,
	MergeState,
	MergeStrategy,
	Remote,
	RepositorySnapshot,
	ResetMode,
	Stash,
	Tag,
)

if TYPE_CHECKING:
	from collections.abc import Callable, Sequence

	ProgressCallback = Callable[[str], None]

logger = logging.getLogger(__name__)

DEFAULT_LOG_COUNT = 50
MERGE_CONFLICT_TEXT = "CONFLICT"
_NO_COMMITS_TEXT = "does not have any commits"
_REMOTE_BRANCH_PREFIX = "remotes/"

_MERGE_FLAGS: dict[str, list[str]] = {
	"default": [],
	"no-ff": ["--no-ff"],
	"ff-only": ["--ff-only"],
}
_RESET_MODES = ("soft", "mixed", "hard")


def _merge_conflicted(result: CommandResult) -> bool:
	return MERGE_CONFLICT_TEXT in result.stdout or MERGE_CONFLICT_TEXT in result.stderr


def _top_pathspec(path: str) -> str:
	return f":(top){path}"


class RepositoryClient:
	"""
	Reads and mutates one git repository.

	Every external invocation goes through a :class:`CommandRunner` and is
	recorded in the client's :class:`ActivityLedger`; with ``record_reads`` off,
	only mutating calls are.

	"""

	def __init__(
		self,
		path: Path | str,
		runner: CommandRunner | None = None,
		*,
		executable: str = "git",
		ledger: ActivityLedger | None = None,
		ledger_capacity: int = DEFAULT_CAPACITY,
		record_reads: bool = True,
	) -> None:
		"""
		Initialize the client.

		Args:
		    path: Working directory of the repository
		    runner: Command runner (a subprocess runner by default)
		    executable: Git executable to invoke
		    ledger: Activity ledger to record into (a fresh one by default)
		    ledger_capacity: Capacity of the fresh ledger
		    record_reads: Also record read-only queries in the ledger; when False
		        only mutating calls are recorded

		"""
		self.path = Path(path)
		self.runner: CommandRunner = runner or SubprocessRunner()
		self.executable = executable
		self.ledger = ledger if ledger is not None else ActivityLedger(ledger_capacity)
		self.record_reads = record_reads
		self.reconciler = MergeReconciler(self._query, self.path)

	async def _execute(
		self,
		args: Sequence[str],
		operation: str,
		*,
		record: bool = True,
		check: bool = True,
		on_line: ProgressCallback | None = None,
		accept: Callable[[CommandResult], bool] | None = None,
	) -> CommandResult:
		"""
		Run ``git <args>``, record it and turn failures into :class:`GitError`.

		Args:
		    args: Git arguments, without the executable
		    operation: Short description used in error messages
		    record: Whether to append a record to the ledger
		    check: Raise on a non-zero exit
		    on_line: Progress callback for streamed operations
		    accept: Predicate marking a non-zero exit as an expected outcome

		Returns:
		    The command result

		Raises:
		    GitError: If the process fails to start, or exits non-zero with ``check``

		"""
		command = [self.executable, *args]
		command_text = " ".join(command)
		started = time.perf_counter()
		try:
			result = await self.runner.run(command, self.path, on_line)
		except GitError as e:
			duration_ms = (time.perf_counter() - started) * 1000
			if record:
				self.ledger.record(command_text, duration_ms, success=False, error=str(e))
			msg = f"Failed to {operation}: {e}"
			raise GitError(msg, command=command, stderr=e.stderr) from e

		duration_ms = (time.perf_counter() - started) * 1000
		success = result.returncode == 0 or (accept is not None and accept(result))
		error = None
		if not success:
			error = result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}"
		if record:
			self.ledger.record(command_text, duration_ms, success=success, error=error)
		if check and not success:
			logger.debug("Command failed (%d): %s\n%s", result.returncode, command_text, error)
			msg = f"Failed to {operation}: {error}"
			raise GitError(msg, command=command, returncode=result.returncode, stderr=result.stderr)
		return result

	async def _read(self, args: Sequence[str], operation: str) -> str:
		result = await self._execute(args, operation, record=self.record_reads)
		return result.stdout

	async def _query(self, args: Sequence[str]) -> CommandResult:
		"""Run a best-effort query whose failure is an answer, not an error."""
		return await self._execute(args, "query repository", record=self.record_reads, check=False)

	async def _mutate(self, args: Sequence[str], operation: str, on_progress: ProgressCallback | None = None) -> None:
		await self._execute(args, operation, on_line=on_progress)

	async def repo_root(self) -> Path:
		"""
		Get the root directory of the repository.

		Raises:
		    GitError: If the path is not inside a git repository

		"""
		try:
			output = await self._read(["rev-parse", "--show-toplevel"], "locate repository root")
		except GitError as e:
			msg = f"Not in a Git repository: {self.path}"
			raise GitError(msg, command=e.command, returncode=e.returncode, stderr=e.stderr) from e
		return Path(output.strip())

	async def current_branch(self) -> str:
		"""Name of the checked-out branch; empty when HEAD is detached."""
		return (await self._read(["branch", "--show-current"], "get current branch")).strip()

	async def ahead_behind(self, ref: str = "HEAD", upstream: str = "@{upstream}") -> tuple[int, int]:
		"""
		Count commits ``ref`` is ahead of and behind ``upstream``.

		A missing upstream and any other failure of the query both give (0, 0).

		"""
		result = await self._query(["rev-list", "--left-right", "--count", f"{ref}...{upstream}"])
		if result.returncode != 0:
			return 0, 0
		return parse_ahead_behind(result.stdout)

	async def get_status(self) -> GitStatus:
		"""Branch, ahead/behind counts and the staged, unstaged and untracked files."""
		branch, (ahead, behind), porcelain = await asyncio.gather(
			self.current_branch(),
			self.ahead_behind(),
			self._read(["status", "--porcelain"], "get git status"),
		)
		return parse_status(porcelain, branch=branch, ahead=ahead, behind=behind)

	async def get_log(self, count: int = DEFAULT_LOG_COUNT) -> list[Commit]:
		"""The last ``count`` commits of the current branch."""
		result = await self._execute(
			["log", "-n", str(count), f"--pretty=format:{LOG_FORMAT}"],
			"get git log",
			record=self.record_reads,
			accept=lambda r: _NO_COMMITS_TEXT in r.stderr,
		)
		return parse_log(result.stdout) if result.returncode == 0 else []

	async def get_branch_description(self, name: str) -> str | None:
		"""The stored description of a local branch, if any."""
		result = await self._query(["config", f"branch.{name}.description"])
		description = result.stdout.strip()
		return description if result.returncode == 0 and description else None

	async def _enrich_branch(self, branch: Branch) -> None:
		branch.description = await self.get_branch_description(branch.name)
		if branch.upstream:
			branch.ahead, branch.behind = await self.ahead_behind(branch.name, branch.upstream)

	async def get_branches(self, enrich: bool = True) -> list[Branch]:
		"""
		Local and remote branches.

		Args:
		    enrich: Look up descriptions and ahead/behind counts of local branches

		"""
		output = await self._read(
			["for-each-ref", f"--format={BRANCH_FORMAT}", "refs/heads", "refs/remotes"],
			"get branches",
		)
		branches = parse_branches(output)
		if enrich:
			await asyncio.gather(*(self._enrich_branch(b) for b in branches if not b.remote))
		return branches

	async def get_stashes(self) -> list[Stash]:
		"""All stash entries."""
		return parse_stashes(await self._read(["stash", "list"], "get stashes"))

	async def get_tags(self) -> list[Tag]:
		"""All tags, newest first."""
		output = await self._read(
			["for-each-ref", "refs/tags", "--sort=-creatordate", f"--format={TAG_FORMAT}"],
			"get tags",
		)
		return parse_tags(output)

	async def get_remotes(self) -> list[Remote]:
		"""Configured remotes."""
		return parse_remotes(await self._read(["remote", "-v"], "get remotes"))

	async def get_merge_state(self) -> MergeState:
		"""A fresh snapshot of merge progress and its conflicts."""
		branch, porcelain = await asyncio.gather(
			self.current_branch(),
			self._read(["status", "--porcelain"], "get merge state"),
		)
		return await self.reconciler.merge_state(branch, porcelain)

	async def get_diff(self, path: str | None = None) -> str:
		"""Unstaged diff, optionally limited to ``path``."""
		args = ["diff"] + (["--", path] if path else [])
		return await self._read(args, "get diff")

	async def get_staged_diff(self, path: str | None = None) -> str:
		"""Staged diff, optionally limited to ``path``."""
		args = ["diff", "--staged"] + (["--", path] if path else [])
		return await self._read(args, "get staged diff")

	async def show_commit(self, commit_hash: str) -> str:
		"""Header, stats and patch of one commit."""
		return await self._read(["show", "--stat", "--patch", commit_hash], "show commit")

	async def stash_diff(self, index: int) -> str:
		"""Patch stored in stash ``index``."""
		return await self._read(["stash", "show", "-p", f"stash@{{{index}}}"], "get stash diff")

	async def get_config_value(self, key: str, global_scope: bool = True) -> str:
		"""A git config value, empty when unset."""
		args = ["config"] + (["--global"] if global_scope else []) + [key]
		result = await self._query(args)
		return result.stdout.strip() if result.returncode == 0 else ""

	async def refresh(self, log_count: int = DEFAULT_LOG_COUNT) -> RepositorySnapshot:
		"""Query every read-only view concurrently."""
		status, commits, branches, stashes, tags, remotes, merge_state = await asyncio.gather(
			self.get_status(),
			self.get_log(log_count),
			self.get_branches(),
			self.get_stashes(),
			self.get_tags(),
			self.get_remotes(),
			self.get_merge_state(),
		)
		return RepositorySnapshot(
			status=status,
			commits=commits,
			branches=branches,
			stashes=stashes,
			tags=tags,
			remotes=remotes,
			merge_state=merge_state,
		)

	async def stage_file(self, path: str) -> None:
		"""Stage one path."""
		await self._mutate(["add", "--", path], "stage file")

	async def stage_files(self, paths: Sequence[str]) -> None:
		"""Stage several paths at once."""
		if not paths:
			logger.warning("No files provided to stage_files")
			return
		await self._mutate(["add", "--", *paths], "stage files")

	async def stage_all(self) -> None:
		"""Stage every change, including untracked files."""
		await self._mutate(["add", "--all"], "stage all changes")

	async def unstage_file(self, path: str) -> None:
		"""Remove one path from the index, keeping the working copy."""
		await self._mutate(["reset", "HEAD", "--", path], "unstage file")

	async def unstage_files(self, paths: Sequence[str]) -> None:
		"""Unstage several paths at once."""
		if not paths:
			return
		await self._mutate(["reset", "HEAD", "--", *paths], "unstage files")

	async def unstage_all(self) -> None:
		"""Empty the index back to HEAD."""
		await self._mutate(["reset", "HEAD"], "unstage all changes")

	async def discard_changes(self, path: str) -> None:
		"""Throw away unstaged modifications of a tracked path."""
		await self._mutate(["checkout", "--", path], "discard changes")

	async def commit(self, message: str) -> None:
		"""Commit the index."""
		await self._mutate(["commit", "-m", message], "commit")

	async def amend(self, message: str | None = None) -> None:
		"""Amend the last commit, keeping its message unless one is given."""
		args = ["commit", "--amend"] + (["-m", message] if message else ["--no-edit"])
		await self._mutate(args, "amend commit")

	async def checkout(self, branch: str) -> None:
		"""Check out a branch; ``remotes/<remote>/`` prefixes are stripped."""
		name = branch
		if name.startswith(_REMOTE_BRANCH_PREFIX):
			# remotes/origin/feature -> feature, letting git create the tracking branch
			name = name[len(_REMOTE_BRANCH_PREFIX) :].split("/", 1)[-1]
		await self._mutate(["checkout", name], "checkout branch")

	async def create_branch(self, name: str, start_point: str | None = None, checkout: bool = False) -> None:
		"""Create a branch, optionally switching to it."""
		args = ["checkout", "-b", name] if checkout else ["branch", name]
		if start_point:
			args.append(start_point)
		await self._mutate(args, "create branch")

	async def delete_branch(self, name: str, force: bool = False) -> None:
		"""Delete a local branch."""
		await self._mutate(["branch", "-D" if force else "-d", name], "delete branch")

	async def rename_branch(self, old_name: str, new_name: str) -> None:
		"""Rename a local branch."""
		await self._mutate(["branch", "-m", old_name, new_name], "rename branch")

	async def set_branch_description(self, name: str, description: str) -> None:
		"""Store a free-text description for a local branch."""
		await self._mutate(["config", f"branch.{name}.description", description], "set branch description")

	async def set_upstream(self, branch: str, upstream: str) -> None:
		"""Make ``branch`` track ``upstream``."""
		await self._mutate(["branch", f"--set-upstream-to={upstream}", branch], "set upstream")

	async def publish_branch(self, remote: str, branch: str, on_progress: ProgressCallback | None = None) -> None:
		"""Push a branch for the first time and track it."""
		await self._mutate(["push", "--progress", "--set-upstream", remote, branch], "publish branch", on_progress)

	async def merge(self, branch: str, strategy: MergeStrategy = "default") -> bool:
		"""
		Merge ``branch`` into the current branch.

		A merge that stops on conflicts is a valid outcome, not an error; the
		repository is then left mid-merge for :meth:`get_merge_state`.

		Returns:
		    True when the merge stopped with conflicts

		Raises:
		    GitError: For any other failure

		"""
		if strategy not in _MERGE_FLAGS:
			msg = f"Unknown merge strategy: {strategy}"
			raise ValueError(msg)
		result = await self._execute(
			["merge", *_MERGE_FLAGS[strategy], branch],
			"merge branch",
			accept=_merge_conflicted,
		)
		conflicted = result.returncode != 0
		if conflicted:
			logger.info("Merge of %s stopped with conflicts", branch)
		return conflicted

	async def abort_merge(self) -> None:
		"""Abandon the merge in progress."""
		await self._mutate(["merge", "--abort"], "abort merge")

	async def continue_merge(self, message: str | None = None) -> None:
		"""Conclude a merge whose conflicts are all resolved."""
		args = ["commit"] + (["-m", message] if message else ["--no-edit"])
		await self._mutate(args, "commit merge")

	async def resolve_conflict(self, path: str, side: ConflictSide) -> None:
		"""
		Resolve ``path`` by taking one side wholesale and staging it.

		``path`` is relative to the top-level, as in status output.

		"""
		if side not in {"ours", "theirs"}:
			msg = f"Unknown conflict side: {side}"
			raise ValueError(msg)
		pathspec = _top_pathspec(path)
		await self._mutate(["checkout", f"--{side}", "--", pathspec], f"take {side} version")
		await self._mutate(["add", "--", pathspec], "stage file")

	async def resolve_with_content(self, path: str, content: str) -> None:
		"""Write manually merged content to the working tree and stage it."""
		target = await self.reconciler.work_tree() / path
		try:
			async with aiofiles.open(target, "w", encoding="utf-8") as f:
				await f.write(content)
		except OSError as e:
			msg = f"Failed to write resolved content to {path}: {e}"
			raise GitError(msg) from e
		await self._mutate(["add", "--", _top_pathspec(path)], "stage file")

	async def cherry_pick(self, commit_hash: str) -> None:
		"""Apply the changes of an existing commit."""
		await self._mutate(["cherry-pick", commit_hash], "cherry-pick commit")

	async def revert(self, commit_hash: str) -> None:
		"""Create a commit undoing ``commit_hash``."""
		await self._mutate(["revert", "--no-edit", commit_hash], "revert commit")

	async def reset(self, target: str = "HEAD", mode: ResetMode = "mixed") -> None:
		"""Move the current branch to ``target``."""
		if mode not in _RESET_MODES:
			msg = f"Unknown reset mode: {mode}"
			raise ValueError(msg)
		await self._mutate(["reset", f"--{mode}", target], f"{mode} reset")

	async def push(
		self,
		on_progress: ProgressCallback | None = None,
		remote: str | None = None,
		branch: str | None = None,
	) -> None:
		"""Push the current (or given) branch, streaming progress lines."""
		args = ["push", "--progress"] + [a for a in (remote, branch) if a]
		await self._mutate(args, "push", on_progress)

	async def pull(self, on_progress: ProgressCallback | None = None, remote: str | None = None) -> None:
		"""Pull from the upstream (or given remote), streaming progress lines."""
		args = ["pull", "--progress"] + ([remote] if remote else [])
		await self._mutate(args, "pull", on_progress)

	async def fetch(
		self,
		on_progress: ProgressCallback | None = None,
		remote: str | None = None,
		prune: bool = False,
	) -> None:
		"""Fetch from one remote, or all of them."""
		args = ["fetch", "--progress"] + (["--prune"] if prune else []) + ([remote] if remote else ["--all"])
		await self._mutate(args, "fetch", on_progress)

	async def stash_save(self, message: str | None = None, include_untracked: bool = False) -> None:
		"""Stash local modifications."""
		args = ["stash", "push"]
		if include_untracked:
			args.append("--include-untracked")
		if message:
			args += ["-m", message]
		await self._mutate(args, "stash changes")

	async def stash_apply(self, index: int) -> None:
		"""Apply a stash, keeping it."""
		await self._mutate(["stash", "apply", f"stash@{{{index}}}"], "apply stash")

	async def stash_pop(self, index: int) -> None:
		"""Apply a stash and drop it."""
		await self._mutate(["stash", "pop", f"stash@{{{index}}}"], "pop stash")

	async def stash_drop(self, index: int) -> None:
		"""Delete a stash."""
		await self._mutate(["stash", "drop", f"stash@{{{index}}}"], "drop stash")

	async def create_tag(self, name: str, target: str | None = None, message: str | None = None) -> None:
		"""Create a lightweight tag, or an annotated one when a message is given."""
		args = ["tag"] + (["-a", name, "-m", message] if message else [name])
		if target:
			args.append(target)
		await self._mutate(args, "create tag")

	async def delete_tag(self, name: str) -> None:
		"""Delete a local tag."""
		await self._mutate(["tag", "-d", name], "delete tag")

	async def push_tag(self, name: str, remote: str = "origin", on_progress: ProgressCallback | None = None) -> None:
		"""Publish a tag."""
		await self._mutate(["push", "--progress", remote, f"refs/tags/{name}"], "push tag", on_progress)

	async def add_remote(self, name: str, url: str) -> None:
		"""Register a remote."""
		await self._mutate(["remote", "add", name, url], "add remote")

	async def remove_remote(self, name: str) -> None:
		"""Forget a remote."""
		await self._mutate(["remote", "remove", name], "remove remote")

	async def rename_remote(self, old_name: str, new_name: str) -> None:
		"""Rename a remote."""
		await self._mutate(["remote", "rename", old_name, new_name], "rename remote")

	async def set_remote_url(self, name: str, url: str, push: bool = False) -> None:
		"""Change a remote's fetch URL, or its push URL."""
		args = ["remote", "set-url"] + (["--push"] if push else []) + [name, url]
		await self._mutate(args, "set remote url")

	async def set_config_value(self, key: str, value: str, global_scope: bool = True) -> None:
		"""Write a git config value (e.g. ``user.name``)."""
		args = ["config"] + (["--global"] if global_scope else []) + [key, value]
		await self._mutate(args, f"set {key}")
