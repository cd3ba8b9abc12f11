"""CLI commands that read or update a single repository."""

import asyncio
import contextlib
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Annotated

import asyncer
import typer
from rich.table import Table

from gitarbor.config import ConfigLoader
from gitarbor.git import GitError, GitStatus, RepositoryClient, SubprocessRunner
from gitarbor.utils.clipboard import ClipboardError, copy_to_clipboard
from gitarbor.utils.log_setup import console, display_error_summary
from gitarbor.watcher import ChangeWatcher

logger = logging.getLogger(__name__)

PathOpt = Annotated[
	Path,
	typer.Option(
		"--path",
		"-p",
		help="Path to the repository (defaults to current directory).",
		exists=True,
		file_okay=False,
		dir_okay=True,
		resolve_path=True,
	),
]

RemoteOpt = Annotated[str | None, typer.Option("--remote", "-r", help="Remote to use.")]


def make_client(path: Path) -> RepositoryClient:
	"""Build a client for ``path`` from the loaded configuration."""
	config = ConfigLoader.get_instance().get
	runner = SubprocessRunner(disable_terminal_prompt=config.git.disable_terminal_prompt)
	return RepositoryClient(
		path,
		runner,
		executable=config.git.executable,
		ledger_capacity=config.activity.capacity,
		record_reads=config.git.record_reads,
	)


@contextlib.contextmanager
def exit_on_git_error() -> Iterator[None]:
	"""Turn engine failures into an error summary and a non-zero exit."""
	try:
		yield
	except GitError as e:
		logger.debug("Command failed", exc_info=True)
		display_error_summary(str(e))
		raise typer.Exit(1) from e


def print_status(status: GitStatus) -> None:
	"""Render a status summary."""
	tracking = f" [dim](ahead {status.ahead}, behind {status.behind})[/dim]" if status.ahead or status.behind else ""
	console.print(f"On branch [bold]{status.branch or '(detached)'}[/bold]{tracking}")
	if status.is_clean:
		console.print("[green]Working tree clean[/green]")
		return
	for title, entries, style in (
		("Staged", status.staged, "green"),
		("Unstaged", status.unstaged, "red"),
		("Untracked", status.untracked, "yellow"),
	):
		if not entries:
			continue
		console.print(f"[bold]{title}[/bold]")
		for entry in entries:
			code = "?" if entry.status == "untracked" else entry.status
			console.print(f"  [{style}]{code}[/{style}] {entry.path}")


def _progress_printer(line: str) -> None:
	console.print(f"[dim]{line}[/dim]")


def register_commands(app: typer.Typer) -> None:
	"""Register the repository commands with the CLI app."""

	@app.command(name="status")
	@asyncer.runnify
	async def status_command(path: PathOpt = Path()) -> None:
		"""Show staged, unstaged and untracked changes."""
		with exit_on_git_error():
			print_status(await make_client(path).get_status())

	@app.command(name="log")
	@asyncer.runnify
	async def log_command(
		path: PathOpt = Path(),
		count: Annotated[int | None, typer.Option("--count", "-n", help="Number of commits.")] = None,
	) -> None:
		"""Show recent commits."""
		limit = count or ConfigLoader.get_instance().get.git.log_count
		with exit_on_git_error():
			commits = await make_client(path).get_log(limit)
		table = Table("Hash", "Author", "Date", "Message", box=None)
		for commit in commits:
			table.add_row(f"[yellow]{commit.short_hash}[/yellow]", commit.author, commit.date, commit.message)
		console.print(table)

	@app.command(name="branches")
	@asyncer.runnify
	async def branches_command(path: PathOpt = Path()) -> None:
		"""List local and remote branches."""
		with exit_on_git_error():
			branches = await make_client(path).get_branches()
		table = Table("", "Branch", "Upstream", "Last commit", "Description", box=None)
		for branch in branches:
			marker = "*" if branch.current else ""
			name = f"[red]{branch.name}[/red]" if branch.remote else branch.name
			upstream = branch.upstream or ""
			if branch.ahead or branch.behind:
				upstream += f" (+{branch.ahead}/-{branch.behind})"
			table.add_row(marker, name, upstream, branch.last_commit_date or "", branch.description or "")
		console.print(table)

	@app.command(name="stashes")
	@asyncer.runnify
	async def stashes_command(path: PathOpt = Path()) -> None:
		"""List stashes."""
		with exit_on_git_error():
			stashes = await make_client(path).get_stashes()
		for stash in stashes:
			console.print(f"[yellow]{stash.name}[/yellow] ({stash.branch}) {stash.message}")

	@app.command(name="tags")
	@asyncer.runnify
	async def tags_command(path: PathOpt = Path()) -> None:
		"""List tags."""
		with exit_on_git_error():
			tags = await make_client(path).get_tags()
		table = Table("Tag", "Commit", "Date", "Message", box=None)
		for tag in tags:
			message = tag.message or ("" if tag.is_annotated else "[dim]lightweight[/dim]")
			table.add_row(tag.name, tag.commit, tag.date, message)
		console.print(table)

	@app.command(name="remotes")
	@asyncer.runnify
	async def remotes_command(path: PathOpt = Path()) -> None:
		"""List remotes with their fetch and push URLs."""
		with exit_on_git_error():
			remotes = await make_client(path).get_remotes()
		table = Table("Remote", "Fetch", "Push", box=None)
		for remote in remotes:
			table.add_row(remote.name, remote.fetch_url, remote.push_url)
		console.print(table)

	@app.command(name="merge-state")
	@asyncer.runnify
	async def merge_state_command(path: PathOpt = Path()) -> None:
		"""Show the merge in progress and its conflicts."""
		with exit_on_git_error():
			state = await make_client(path).get_merge_state()
		if not state.in_progress:
			console.print("No merge in progress")
			return
		source = state.merging_branch or "unknown branch"
		console.print(f"Merging [bold]{source}[/bold] into [bold]{state.current_branch}[/bold]")
		if state.ready_to_commit:
			console.print("[green]All conflicts resolved, ready to commit[/green]")
		for conflict in state.conflicts:
			console.print(f"  [red]{conflict.path}[/red] ({len(conflict.conflict_markers)} conflict regions)")

	@app.command(name="fetch")
	@asyncer.runnify
	async def fetch_command(
		path: PathOpt = Path(),
		remote: RemoteOpt = None,
		prune: Annotated[bool, typer.Option("--prune", help="Remove deleted remote branches.")] = False,
	) -> None:
		"""Fetch from remotes, showing progress."""
		with exit_on_git_error():
			await make_client(path).fetch(_progress_printer, remote=remote, prune=prune)

	@app.command(name="pull")
	@asyncer.runnify
	async def pull_command(path: PathOpt = Path(), remote: RemoteOpt = None) -> None:
		"""Pull the current branch, showing progress."""
		with exit_on_git_error():
			await make_client(path).pull(_progress_printer, remote=remote)

	@app.command(name="push")
	@asyncer.runnify
	async def push_command(path: PathOpt = Path(), remote: RemoteOpt = None) -> None:
		"""Push the current branch, showing progress."""
		with exit_on_git_error():
			await make_client(path).push(_progress_printer, remote=remote)

	@app.command(name="copy-hash")
	@asyncer.runnify
	async def copy_hash_command(path: PathOpt = Path()) -> None:
		"""Copy the hash of the latest commit to the clipboard."""
		with exit_on_git_error():
			commits = await make_client(path).get_log(1)
		if not commits:
			console.print("No commits yet")
			return
		try:
			copy_to_clipboard(commits[0].hash)
		except ClipboardError as e:
			console.print(f"[yellow]{e}[/yellow]")
			return
		console.print(f"Copied {commits[0].short_hash}")

	@app.command(name="watch")
	@asyncer.runnify
	async def watch_command(path: PathOpt = Path()) -> None:
		"""Print the status again every time the repository changes."""
		config = ConfigLoader.get_instance().get
		client = make_client(path)
		with exit_on_git_error():
			root = await client.repo_root()
			print_status(await client.get_status())
		if not config.watcher.enabled:
			console.print("Live updates disabled in configuration")
			return

		async def on_change() -> None:
			try:
				print_status(await client.get_status())
			except GitError as e:
				console.print(f"[red]{e}[/red]")

		watcher = ChangeWatcher(root, on_change, debounce_ms=config.watcher.debounce_ms)
		watcher.start()
		if not watcher.is_running:
			console.print("[yellow]Live updates unavailable[/yellow]")
			return
		try:
			await asyncio.Event().wait()
		finally:
			watcher.stop()
