"""CLI commands for recent repositories and sessions."""

import contextlib
import datetime
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Annotated

import asyncer
import typer
from rich.table import Table

from gitarbor.config import ConfigLoader
from gitarbor.utils.log_setup import console, display_error_summary
from gitarbor.workspace import WorkspaceError, WorkspaceStore

repos_app = typer.Typer(help="Recently used repositories.", no_args_is_help=True)
sessions_app = typer.Typer(help="Named groups of repositories.", no_args_is_help=True)


@contextlib.asynccontextmanager
async def open_store() -> AsyncIterator[WorkspaceStore]:
	"""Yield an initialized store, exiting with a summary on persistence errors."""
	config = ConfigLoader.get_instance().get
	store = WorkspaceStore(config.workspace.path, recent_limit=config.workspace.recent_limit)
	try:
		await store.initialize()
		yield store
	except WorkspaceError as e:
		display_error_summary(str(e))
		raise typer.Exit(1) from e


def _format_ms(timestamp: int) -> str:
	moment = datetime.datetime.fromtimestamp(timestamp / 1000, tz=datetime.UTC).astimezone()
	return moment.strftime("%Y-%m-%d %H:%M")


@repos_app.command(name="add")
@asyncer.runnify
async def add_repository_command(
	path: Annotated[Path, typer.Argument(exists=True, file_okay=False, resolve_path=True)],
) -> None:
	"""Remember a repository as recently used."""
	async with open_store() as store:
		repository = await store.add_repository(str(path))
	console.print(f"Added [bold]{repository.name}[/bold] ({repository.path})")


@repos_app.command(name="list")
@asyncer.runnify
async def list_repositories_command() -> None:
	"""List recently used repositories, most recent first."""
	async with open_store() as store:
		repositories = store.recent_repositories
	table = Table("Name", "Path", "Last accessed", box=None)
	for repository in repositories:
		table.add_row(repository.name, repository.path, _format_ms(repository.last_accessed))
	console.print(table)


@sessions_app.command(name="create")
@asyncer.runnify
async def create_session_command(
	name: Annotated[str, typer.Argument(help="Session name.")],
	paths: Annotated[list[Path], typer.Argument(exists=True, file_okay=False, resolve_path=True)],
) -> None:
	"""Create a session from repository paths and make it active."""
	async with open_store() as store:
		repositories = [await store.add_repository(str(p)) for p in paths]
		session = await store.create_session(name, repositories)
		await store.set_active_session(session.id)
	console.print(f"Created session [bold]{session.name}[/bold] with {len(repositories)} repositories")


@sessions_app.command(name="list")
@asyncer.runnify
async def list_sessions_command() -> None:
	"""List sessions."""
	async with open_store() as store:
		sessions = store.sessions
		active_id = store.active_session_id
	table = Table("", "Id", "Name", "Repositories", "Modified", box=None)
	for session in sessions:
		names = ", ".join(r.name for r in session.repositories)
		marker = "*" if session.id == active_id else ""
		table.add_row(marker, session.id[:8], session.name, names, _format_ms(session.last_modified))
	console.print(table)


@sessions_app.command(name="delete")
@asyncer.runnify
async def delete_session_command(session_id: Annotated[str, typer.Argument(help="Session id.")]) -> None:
	"""Delete a session."""
	async with open_store() as store:
		matches = [s.id for s in store.sessions if s.id.startswith(session_id)]
		if len(matches) != 1:
			display_error_summary(f"No unique session matches {session_id}")
			raise typer.Exit(1)
		await store.delete_session(matches[0])
	console.print("Session deleted")


def register_commands(app: typer.Typer) -> None:
	"""Register the workspace command groups with the CLI app."""
	app.add_typer(repos_app, name="repos")
	app.add_typer(sessions_app, name="sessions")
