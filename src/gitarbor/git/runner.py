"""Execution of external git commands."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import re
from typing import TYPE_CHECKING, Protocol

from gitarbor.git.types import CommandResult

if TYPE_CHECKING:
	from collections.abc import Callable, Mapping, Sequence
	from pathlib import Path

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_READ_SIZE = 4096


class GitError(Exception):
	"""Custom exception for Git-related errors."""

	def __init__(
		self,
		message: str,
		command: Sequence[str] | None = None,
		returncode: int | None = None,
		stderr: str = "",
	) -> None:
		"""
		Initialize the error.

		Args:
		    message: Human readable description, including the underlying cause
		    command: Argument list that failed, if any
		    returncode: Exit status, or None when the process never started
		    stderr: Error output accumulated from the process

		"""
		super().__init__(message)
		self.command = list(command) if command is not None else []
		self.returncode = returncode
		self.stderr = stderr


class CommandRunner(Protocol):
	"""Anything able to run a command line in a directory."""

	async def run(
		self,
		command: Sequence[str],
		cwd: Path | str,
		on_line: Callable[[str], None] | None = None,
	) -> CommandResult:
		"""
		Run ``command`` in ``cwd``.

		When ``on_line`` is given, every non-blank output line from either pipe
		is passed to it as soon as it arrives.

		Raises:
		    GitError: If the process cannot be started

		"""
		...


class SubprocessRunner:
	"""Runs commands as asyncio child processes."""

	def __init__(self, env: Mapping[str, str] | None = None, disable_terminal_prompt: bool = True) -> None:
		"""
		Initialize the runner.

		Args:
		    env: Extra environment variables for every child process
		    disable_terminal_prompt: Stop git from prompting for credentials so
		        network operations fail instead of hanging

		"""
		self._env = dict(env or {})
		self.disable_terminal_prompt = disable_terminal_prompt

	def _build_env(self) -> dict[str, str]:
		env = {**os.environ, **self._env}
		if self.disable_terminal_prompt:
			env["GIT_TERMINAL_PROMPT"] = "0"
		return env

	async def run(
		self,
		command: Sequence[str],
		cwd: Path | str,
		on_line: Callable[[str], None] | None = None,
	) -> CommandResult:
		"""Run ``command`` in ``cwd`` and capture its output."""
		logger.debug("Running command in %s: %s", cwd, " ".join(command))
		try:
			process = await asyncio.create_subprocess_exec(
				*command,
				cwd=str(cwd),
				stdin=asyncio.subprocess.DEVNULL,
				stdout=asyncio.subprocess.PIPE,
				stderr=asyncio.subprocess.PIPE,
				env=self._build_env(),
			)
		except OSError as e:
			msg = f"Failed to start command: {' '.join(command)}\nError: {e}"
			raise GitError(msg, command=command) from e

		if on_line is None:
			stdout, stderr = await process.communicate()
			return CommandResult(
				stdout=stdout.decode("utf-8", errors="replace"),
				stderr=stderr.decode("utf-8", errors="replace"),
				returncode=process.returncode if process.returncode is not None else -1,
			)

		stdout_lines: list[str] = []
		stderr_lines: list[str] = []
		await asyncio.gather(
			_pump_lines(process.stdout, stdout_lines, on_line),
			_pump_lines(process.stderr, stderr_lines, on_line),
		)
		returncode = await process.wait()
		return CommandResult(
			stdout="\n".join(stdout_lines),
			stderr="\n".join(stderr_lines),
			returncode=returncode,
		)


async def _pump_lines(
	stream: asyncio.StreamReader | None,
	sink: list[str],
	on_line: Callable[[str], None],
) -> None:
	"""
	Forward lines from ``stream`` to ``on_line`` as they arrive.

	Git redraws progress with carriage returns, so ``\\r`` ends a line too.

	"""
	if stream is None:
		return
	decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
	pending = ""
	while True:
		chunk = await stream.read(_READ_SIZE)
		final = not chunk
		pending += decoder.decode(chunk, final=final)
		parts = _LINE_BREAK.split(pending)
		pending = "" if final else parts.pop()
		for part in parts:
			line = part.strip()
			if line:
				sink.append(line)
				on_line(line)
		if final:
			return
