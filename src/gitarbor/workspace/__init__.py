"""Known repositories and multi-repository sessions."""

from gitarbor.workspace.models import Repository, WorkspaceConfig, WorkspaceSession
from gitarbor.workspace.store import (
	RepositoryNotFoundError,
	SessionNotFoundError,
	WorkspaceError,
	WorkspaceStore,
)

__all__ = [
	"Repository",
	"RepositoryNotFoundError",
	"SessionNotFoundError",
	"WorkspaceConfig",
	"WorkspaceError",
	"WorkspaceSession",
	"WorkspaceStore",
]
