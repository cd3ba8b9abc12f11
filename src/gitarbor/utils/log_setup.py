"""
Logging and error output for the command line.

Log records go to stderr through rich; a log file, when configured, receives
every record at DEBUG level. Command output and error summaries go to the
shared stdout ``console``.

"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

console = Console()
error_console = Console(stderr=True)

# Third-party loggers that flood DEBUG output with per-event records
QUIET_LOGGERS = ("watchdog", "asyncio", "aiofiles")

FILE_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s:%(lineno)d %(message)s"


def _console_handler(is_verbose: bool) -> RichHandler:
	return RichHandler(
		level=logging.DEBUG if is_verbose else logging.WARNING,
		console=error_console,
		rich_tracebacks=True,
		show_path=is_verbose,
	)


def _file_handler(log_file_path: Path | str) -> logging.FileHandler:
	"""Open ``log_file_path`` for appending, creating its directory; raises OSError."""
	path = Path(log_file_path).expanduser()
	path.parent.mkdir(parents=True, exist_ok=True)
	handler = logging.FileHandler(path, mode="a", encoding="utf-8")
	handler.setLevel(logging.DEBUG)
	handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
	return handler


def setup_logging(
	is_verbose: bool = False,
	log_to_console: bool = True,
	log_file_path: Path | str | None = None,
) -> None:
	"""
	Replace the root logger's handlers.

	Calling this again reconfigures logging rather than adding handlers. A log
	file that cannot be opened is reported on stderr and skipped.

	Args:
	    is_verbose: Show DEBUG records on the console
	    log_to_console: Attach the stderr console handler
	    log_file_path: Also append every record to this file

	"""
	root = logging.getLogger()
	for handler in root.handlers[:]:
		root.removeHandler(handler)
	root.setLevel(logging.DEBUG if is_verbose or log_file_path else logging.WARNING)

	for name in QUIET_LOGGERS:
		logging.getLogger(name).setLevel(logging.INFO if is_verbose else logging.WARNING)

	if log_to_console:
		root.addHandler(_console_handler(is_verbose))

	if log_file_path:
		try:
			root.addHandler(_file_handler(log_file_path))
		except OSError as e:
			error_console.print(f"[bold red]Could not log to {escape(str(log_file_path))}:[/bold red] {escape(str(e))}")
		else:
			root.debug("Logging to file: %s", log_file_path)


def display_error_summary(error_message: str) -> None:
	"""Print ``error_message`` in a red panel; the message is not read as markup."""
	console.print(
		Panel(
			Text(error_message),
			title=Text("Error Summary", style="bold red"),
			title_align="left",
			border_style="red",
		)
	)
