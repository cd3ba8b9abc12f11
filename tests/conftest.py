"""Global test fixtures and configuration."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from gitarbor.git import CommandResult, RepositoryClient


class FakeRunner:
    """In-memory stand-in for a command runner.

    Responses are matched on a prefix of the git arguments (the executable is
    ignored); the most recently registered match wins.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self._responses: list[tuple[tuple[str, ...], CommandResult | Exception, tuple[str, ...]]] = []

    def when(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        lines: Sequence[str] = (),
    ) -> None:
        """Register the result for commands starting with ``prefix``."""
        result = CommandResult(stdout=stdout, stderr=stderr, returncode=returncode)
        self._responses.append((prefix, result, tuple(lines)))

    def fail_to_start(self, *prefix: str, error: Exception) -> None:
        """Make commands starting with ``prefix`` raise ``error``."""
        self._responses.append((prefix, error, ()))

    async def run(
        self,
        command: Sequence[str],
        cwd: Path | str,
        on_line: Callable[[str], None] | None = None,
    ) -> CommandResult:
        self.calls.append(list(command))
        args = tuple(command[1:])
        for prefix, response, lines in reversed(self._responses):
            if args[: len(prefix)] != prefix:
                continue
            if on_line is not None:
                for line in lines:
                    on_line(line)
            if isinstance(response, Exception):
                raise response
            return response
        return CommandResult(stdout="", stderr="", returncode=0)

    @property
    def git_calls(self) -> list[list[str]]:
        """Recorded calls without the executable."""
        return [call[1:] for call in self.calls]


@pytest.fixture
def fake_runner() -> FakeRunner:
    """A fresh fake runner."""
    return FakeRunner()


@pytest.fixture
def client(tmp_path: Path, fake_runner: FakeRunner) -> RepositoryClient:
    """A repository client over ``tmp_path`` backed by the fake runner."""
    return RepositoryClient(tmp_path, fake_runner)
