"""Records persisted in the workspace file."""

from __future__ import annotations

import time
import uuid
from pathlib import PurePath

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_ms() -> int:
	"""Current time as integer milliseconds since the epoch."""
	return int(time.time() * 1000)


def generate_id() -> str:
	"""A fresh identifier for repositories and sessions."""
	return uuid.uuid4().hex


class WorkspaceModel(BaseModel):
	"""Base for workspace records, stored with camelCase keys."""

	model_config = ConfigDict(
		alias_generator=to_camel,
		populate_by_name=True,
		validate_assignment=True,
	)


class Repository(WorkspaceModel):
	"""A known repository; identity is ``id``, deduplication is by ``path``."""

	id: str = Field(default_factory=generate_id)
	path: str
	name: str
	last_accessed: int = Field(default_factory=now_ms)

	@classmethod
	def from_path(cls, path: str) -> Repository:
		"""Build a record named after the final segment of ``path``."""
		name = PurePath(path.rstrip("/\\") or path).name or path
		return cls(path=path, name=name)


class WorkspaceSession(WorkspaceModel):
	"""A named, ordered group of repositories opened together."""

	id: str = Field(default_factory=generate_id)
	name: str
	repositories: list[Repository] = Field(default_factory=list)
	active_repository_id: str = ""
	created_at: int = Field(default_factory=now_ms)
	last_modified: int = Field(default_factory=now_ms)

	def find_repository(self, repository_id: str) -> Repository | None:
		"""The session's repository with ``repository_id``, if any."""
		return next((r for r in self.repositories if r.id == repository_id), None)

	@property
	def active_repository(self) -> Repository | None:
		"""The repository the session currently points at."""
		return self.find_repository(self.active_repository_id)


class WorkspaceConfig(WorkspaceModel):
	"""Everything stored in the workspace file."""

	sessions: list[WorkspaceSession] = Field(default_factory=list)
	active_session_id: str | None = None
	recent_repositories: list[Repository] = Field(default_factory=list)
