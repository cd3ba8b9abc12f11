"""Tests for logging setup."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
from rich.logging import RichHandler

from gitarbor.utils.log_setup import display_error_summary, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.mark.unit
class TestSetupLogging:
    """Tests for setup_logging."""

    def test_console_only(self) -> None:
        setup_logging(is_verbose=False)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert [type(h) for h in root.handlers] == [RichHandler]

    def test_verbose(self) -> None:
        setup_logging(is_verbose=True)

        assert logging.getLogger().handlers[0].level == logging.DEBUG
        assert logging.getLogger("watchdog").level == logging.INFO

    def test_repeated_calls_do_not_duplicate_handlers(self) -> None:
        setup_logging()
        setup_logging()

        assert len(logging.getLogger().handlers) == 1

    def test_file_logging(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "run.log"

        setup_logging(log_to_console=False, log_file_path=log_file)
        logging.getLogger("gitarbor.test").debug("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logging.getLogger().level == logging.DEBUG
        assert "written to file" in log_file.read_text(encoding="utf-8")

    def test_file_logging_failure_is_not_fatal(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        setup_logging(log_to_console=False, log_file_path=blocker / "run.log")

        assert logging.getLogger().handlers == []
        assert "Could not log to" in capsys.readouterr().err


@pytest.mark.unit
def test_error_summary_prints_message_verbatim(capsys: pytest.CaptureFixture[str]) -> None:
    display_error_summary("Failed to push: [rejected] main -> main")

    out = capsys.readouterr().out
    assert "Error Summary" in out
    assert "[rejected] main -> main" in out
