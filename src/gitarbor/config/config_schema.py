"""Schema for the gitarbor configuration file."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field


class GitSchema(BaseModel):
	"""How git is invoked."""

	executable: str = "git"
	log_count: int = Field(default=50, gt=0)
	disable_terminal_prompt: bool = True
	record_reads: bool = True


class WatcherSchema(BaseModel):
	"""Live refresh settings."""

	enabled: bool = True
	debounce_ms: int = Field(default=300, ge=0)


class ActivitySchema(BaseModel):
	"""Command history settings."""

	capacity: int = Field(default=100, gt=0)


class WorkspaceSchema(BaseModel):
	"""Where sessions and recent repositories are stored."""

	path: Path = Path("~/.gitarbor/workspace.json")
	recent_limit: int = Field(default=10, gt=0)


class AppConfigSchema(BaseModel):
	"""Root of the configuration file."""

	git: GitSchema = Field(default_factory=GitSchema)
	watcher: WatcherSchema = Field(default_factory=WatcherSchema)
	activity: ActivitySchema = Field(default_factory=ActivitySchema)
	workspace: WorkspaceSchema = Field(default_factory=WorkspaceSchema)
