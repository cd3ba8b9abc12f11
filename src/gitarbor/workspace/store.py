"""
Persistence of known repositories and multi-repository sessions.

The whole :class:`WorkspaceConfig` is kept in memory and written back to a JSON
file after every mutation; there is no incremental persistence.

"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from gitarbor.workspace.models import Repository, WorkspaceConfig, WorkspaceSession, now_ms

logger = logging.getLogger(__name__)

DEFAULT_WORKSPACE_DIR = Path.home() / ".gitarbor"
DEFAULT_WORKSPACE_FILE = DEFAULT_WORKSPACE_DIR / "workspace.json"
DEFAULT_RECENT_LIMIT = 10

# Fields callers may change through update_session
_UPDATABLE_SESSION_FIELDS = frozenset({"name", "repositories", "active_repository_id"})


class WorkspaceError(Exception):
	"""Raised when the workspace file cannot be read or written."""


class SessionNotFoundError(WorkspaceError):
	"""Raised when a session id is unknown."""


class RepositoryNotFoundError(WorkspaceError):
	"""Raised when a repository id is not part of a session."""


class WorkspaceStore:
	"""Owns the workspace file and the configuration loaded from it."""

	def __init__(self, path: Path | str | None = None, recent_limit: int = DEFAULT_RECENT_LIMIT) -> None:
		"""
		Initialize the store.

		Args:
		    path: Location of the workspace file
		    recent_limit: How many recent repositories to remember

		"""
		self.path = Path(path).expanduser() if path else DEFAULT_WORKSPACE_FILE
		self.recent_limit = recent_limit
		self._config = WorkspaceConfig()
		self._lock = asyncio.Lock()

	@property
	def config(self) -> WorkspaceConfig:
		"""A copy of the current configuration."""
		return self._config.model_copy(deep=True)

	async def initialize(self) -> None:
		"""
		Load the workspace file, creating it with defaults when missing.

		Raises:
		    WorkspaceError: If the directory or file cannot be created, read or parsed

		"""
		async with self._lock:
			try:
				await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
				if await aiofiles.os.path.exists(self.path):
					async with aiofiles.open(self.path, encoding="utf-8") as f:
						data = await f.read()
					self._config = WorkspaceConfig.model_validate(json.loads(data))
					logger.debug("Loaded workspace from %s", self.path)
				else:
					self._config = WorkspaceConfig()
					await self._write()
					logger.info("Created workspace file at %s", self.path)
			except (OSError, ValueError, ValidationError) as e:
				msg = f"Failed to initialize workspace: {e}"
				raise WorkspaceError(msg) from e

	async def save(self) -> None:
		"""Write the full configuration back to disk."""
		async with self._lock:
			await self._write()

	async def _write(self) -> None:
		payload = json.dumps(self._config.model_dump(by_alias=True, exclude_none=True), indent=2)
		tmp_path = self.path.with_name(self.path.name + ".tmp")
		try:
			await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
			async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
				await f.write(payload)
			await aiofiles.os.replace(tmp_path, self.path)
		except OSError as e:
			msg = f"Failed to save workspace: {e}"
			raise WorkspaceError(msg) from e

	def _session(self, session_id: str) -> WorkspaceSession:
		session = next((s for s in self._config.sessions if s.id == session_id), None)
		if session is None:
			msg = f"Session not found: {session_id}"
			raise SessionNotFoundError(msg)
		return session

	@property
	def recent_repositories(self) -> list[Repository]:
		"""Recently opened repositories, most recent first."""
		return [r.model_copy() for r in self._config.recent_repositories]

	@property
	def sessions(self) -> list[WorkspaceSession]:
		"""All sessions in creation order."""
		return [s.model_copy(deep=True) for s in self._config.sessions]

	@property
	def active_session_id(self) -> str | None:
		"""Id of the active session, if any."""
		return self._config.active_session_id

	async def add_repository(self, path: str) -> Repository:
		"""
		Remember ``path`` as the most recently used repository.

		An existing entry with the same path is replaced, and the list is capped
		at ``recent_limit`` entries.

		Returns:
		    The new repository record

		"""
		repository = Repository.from_path(path)
		async with self._lock:
			recent = [r for r in self._config.recent_repositories if r.path != path]
			self._config.recent_repositories = [repository, *recent][: self.recent_limit]
			await self._write()
		return repository.model_copy()

	async def create_session(self, name: str, repositories: list[Repository]) -> WorkspaceSession:
		"""Create a session whose first repository is active."""
		session = WorkspaceSession(
			name=name,
			repositories=[r.model_copy() for r in repositories],
			active_repository_id=repositories[0].id if repositories else "",
		)
		async with self._lock:
			self._config.sessions.append(session)
			await self._write()
		logger.debug("Created session %s (%s)", name, session.id)
		return session.model_copy(deep=True)

	def get_session(self, session_id: str) -> WorkspaceSession | None:
		"""A copy of the session with ``session_id``, if any."""
		session = next((s for s in self._config.sessions if s.id == session_id), None)
		return session.model_copy(deep=True) if session else None

	async def update_session(self, session_id: str, **updates: Any) -> WorkspaceSession:
		"""
		Change fields of a session and bump its modification time.

		Args:
		    session_id: Session to update
		    **updates: New values for ``name``, ``repositories`` or ``active_repository_id``

		Raises:
		    SessionNotFoundError: If the session does not exist
		    ValueError: If a field cannot be updated
		    WorkspaceError: If a new value is invalid; the session is left untouched

		"""
		unknown = set(updates) - _UPDATABLE_SESSION_FIELDS
		if unknown:
			msg = f"Cannot update session fields: {', '.join(sorted(unknown))}"
			raise ValueError(msg)
		async with self._lock:
			session = self._session(session_id)
			data = {**session.model_dump(), **updates, "last_modified": now_ms()}
			try:
				updated = WorkspaceSession.model_validate(data).model_copy(deep=True)
			except ValidationError as e:
				msg = f"Invalid session update: {e}"
				raise WorkspaceError(msg) from e
			index = self._config.sessions.index(session)
			self._config.sessions[index] = updated
			await self._write()
			return updated.model_copy(deep=True)

	async def delete_session(self, session_id: str) -> None:
		"""Remove a session, clearing the active pointer if it was active."""
		async with self._lock:
			self._config.sessions = [s for s in self._config.sessions if s.id != session_id]
			if self._config.active_session_id == session_id:
				self._config.active_session_id = None
			await self._write()

	async def set_active_session(self, session_id: str | None) -> None:
		"""Point at a session, or at none."""
		async with self._lock:
			if session_id is not None:
				self._session(session_id)
			self._config.active_session_id = session_id
			await self._write()

	async def add_repository_to_session(self, session_id: str, repository: Repository) -> None:
		"""Append a repository unless the session already holds its path."""
		async with self._lock:
			session = self._session(session_id)
			if any(r.path == repository.path for r in session.repositories):
				return
			session.repositories = [*session.repositories, repository.model_copy()]
			if not session.active_repository_id:
				session.active_repository_id = repository.id
			session.last_modified = now_ms()
			await self._write()

	async def remove_repository_from_session(self, session_id: str, repository_id: str) -> None:
		"""Drop a repository; if it was active, the first remaining one becomes active."""
		async with self._lock:
			session = self._session(session_id)
			session.repositories = [r for r in session.repositories if r.id != repository_id]
			if session.active_repository_id == repository_id:
				session.active_repository_id = session.repositories[0].id if session.repositories else ""
			session.last_modified = now_ms()
			await self._write()

	async def set_active_repository(self, session_id: str, repository_id: str) -> None:
		"""
		Make a session repository active and mark it accessed.

		Raises:
		    SessionNotFoundError: If the session does not exist
		    RepositoryNotFoundError: If the repository is not in the session

		"""
		async with self._lock:
			session = self._session(session_id)
			repository = session.find_repository(repository_id)
			if repository is None:
				msg = f"Repository not found in session: {repository_id}"
				raise RepositoryNotFoundError(msg)
			timestamp = now_ms()
			repository.last_accessed = timestamp
			session.active_repository_id = repository_id
			session.last_modified = timestamp
			await self._write()
