"""Command-line interface package for gitarbor."""

import datetime
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from gitarbor import __version__
from gitarbor.config import ConfigLoader, ConfigParsingError
from gitarbor.utils.log_setup import display_error_summary, setup_logging

from .repo_cmd import register_commands as register_repo_commands
from .workspace_cmd import register_commands as register_workspace_commands

logger = logging.getLogger(__name__)

app = typer.Typer(
	help=f"Gitarbor - repository state from the command line\n\nVersion: {__version__}",
	no_args_is_help=True,
	context_settings={"help_option_names": ["-h", "--help"]},
)


def _version_callback(value: bool) -> None:
	"""Callback for --version option."""
	if value:
		typer.echo(f"Gitarbor version: {__version__}")
		raise typer.Exit


@app.callback(invoke_without_command=True)
def global_options(
	is_verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False,
	is_output_log: Annotated[
		bool,
		typer.Option("--save-log", help="Enable logging to a file. Logs to logs/gitarbor_{datetime}.log."),
	] = False,
	config_file: Annotated[
		Path | None,
		typer.Option("--config", "-c", help="Configuration file to use.", dir_okay=False),
	] = None,
	_version: Annotated[
		bool | None,
		typer.Option("--version", help="Show version and exit.", callback=_version_callback, is_eager=True),
	] = None,
) -> None:
	"""Global CLI options, logging and configuration setup."""
	log_file_path_to_use: Path | None = None
	if is_output_log:
		current_time = datetime.datetime.now(tz=datetime.UTC).strftime("%Y-%m-%d_%H-%M-%S")
		log_file_path_to_use = Path("logs") / f"gitarbor_{current_time}.log"

	setup_logging(is_verbose=is_verbose, log_file_path=log_file_path_to_use)

	try:
		ConfigLoader.get_instance(config_file, reload=config_file is not None)
	except ConfigParsingError as e:
		display_error_summary(str(e))
		raise typer.Exit(1) from e


register_repo_commands(app)
register_workspace_commands(app)


def main() -> int:
	"""Run the CLI application."""
	return app()


if __name__ == "__main__":
	sys.exit(main())
