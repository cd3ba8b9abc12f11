"""Best-effort clipboard access through the platform's copy utility."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys

logger = logging.getLogger(__name__)

# Tried in order; the first one found on PATH wins
_LINUX_COMMANDS = (
	["wl-copy"],
	["xclip", "-selection", "clipboard"],
	["xsel", "--clipboard", "--input"],
)


class ClipboardError(Exception):
	"""Raised when text could not be copied to the clipboard."""


def clipboard_command(platform: str | None = None) -> list[str] | None:
	"""
	Find the copy utility for ``platform`` (defaults to ``sys.platform``).

	Returns:
	    The command line to pipe text into, or None if no utility is available

	"""
	platform = platform or sys.platform
	if platform == "darwin":
		candidates: tuple[list[str], ...] = (["pbcopy"],)
	elif platform.startswith(("win", "cygwin")):
		candidates = (["clip"],)
	else:
		candidates = _LINUX_COMMANDS
	return next((list(c) for c in candidates if shutil.which(c[0])), None)


def copy_to_clipboard(text: str) -> None:
	"""
	Copy ``text`` to the system clipboard.

	Raises:
	    ClipboardError: If no utility is available or it fails

	"""
	command = clipboard_command()
	if command is None:
		msg = f"No clipboard utility available on {sys.platform}"
		raise ClipboardError(msg)
	try:
		subprocess.run(  # noqa: S603
			command,
			input=text,
			text=True,
			capture_output=True,
			check=True,
			timeout=5,
		)
	except (OSError, subprocess.SubprocessError) as e:
		msg = f"Failed to copy to clipboard with {command[0]}: {e}"
		raise ClipboardError(msg) from e
	logger.debug("Copied %d characters with %s", len(text), command[0])
