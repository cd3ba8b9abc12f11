"""Tests for merge state detection and conflict scanning."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import pytest

from gitarbor.git.merge import (
    MergeReconciler,
    parse_conflicted_paths,
    parse_merging_branch,
    scan_conflict_markers,
)
from gitarbor.git.types import CommandResult, ConflictMarker

CONFLICTED = """line one
<<<<<<< HEAD
ours a
ours b
=======
theirs
>>>>>>> feature
tail
"""


@pytest.mark.unit
@pytest.mark.git
class TestScanConflictMarkers:
    """Tests for scan_conflict_markers."""

    def test_single_region(self) -> None:
        assert scan_conflict_markers(CONFLICTED) == [
            ConflictMarker(start_line=2, ours_start=3, ours_end=4, theirs_start=6, theirs_end=6, end_line=7)
        ]

    def test_multiple_regions(self) -> None:
        markers = scan_conflict_markers(CONFLICTED + CONFLICTED)

        assert [(m.start_line, m.end_line) for m in markers] == [(2, 7), (10, 15)]

    def test_unterminated_start(self) -> None:
        assert scan_conflict_markers("a\n<<<<<<< HEAD\nours\n=======\ntheirs\n") == []

    def test_missing_separator(self) -> None:
        assert scan_conflict_markers("<<<<<<< HEAD\nours\n>>>>>>> other\n") == []

    def test_restarted_region_keeps_only_complete_one(self) -> None:
        content = "<<<<<<< HEAD\nstray\n<<<<<<< HEAD\nx\n=======\ny\n>>>>>>> b\n"

        assert scan_conflict_markers(content) == [
            ConflictMarker(start_line=3, ours_start=4, ours_end=4, theirs_start=6, theirs_end=6, end_line=7)
        ]

    def test_no_markers(self) -> None:
        assert scan_conflict_markers("plain\ntext\n") == []


@pytest.mark.unit
@pytest.mark.git
def test_parse_conflicted_paths() -> None:
    porcelain = "UU both.txt\nAA added.txt\nDU deleted-by-us.txt\nM  clean.txt\n?? new.txt\nUD theirs-deleted.txt\n"

    assert parse_conflicted_paths(porcelain) == ["both.txt", "added.txt", "deleted-by-us.txt", "theirs-deleted.txt"]


@pytest.mark.unit
@pytest.mark.git
@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Merge branch 'feature/login' into main\n\n# Conflicts:\n", "feature/login"),
        ("Merge branch 'dev'\n", "dev"),
        ("Merge remote-tracking branch 'origin/main'\n", None),
        ("", None),
    ],
)
def test_parse_merging_branch(message: str, expected: str | None) -> None:
    assert parse_merging_branch(message) == expected


class StageRunner:
    """Answers ``git show :N:path`` from a table, failing for missing stages."""

    def __init__(self, stages: dict[str, str], toplevel: Path | None = None) -> None:
        self.stages = stages
        self.toplevel = toplevel
        self.calls: list[list[str]] = []

    async def __call__(self, args: Sequence[str]) -> CommandResult:
        self.calls.append(list(args))
        if args[:2] == ["rev-parse", "--git-dir"]:
            git_dir = self.toplevel / ".git" if self.toplevel else ".git"
            return CommandResult(stdout=f"{git_dir}\n", stderr="", returncode=0)
        if args[:2] == ["rev-parse", "--show-toplevel"] and self.toplevel:
            return CommandResult(stdout=f"{self.toplevel}\n", stderr="", returncode=0)
        if args[0] == "show" and args[1] in self.stages:
            return CommandResult(stdout=self.stages[args[1]], stderr="", returncode=0)
        return CommandResult(stdout="", stderr="fatal: path is not in the index", returncode=128)


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    (tmp_path / ".git").mkdir()
    return tmp_path


@pytest.mark.asyncio
@pytest.mark.asynchronous
@pytest.mark.git
class TestMergeReconciler:
    """Tests for the MergeReconciler class."""

    async def test_not_merging(self, repo: Path) -> None:
        reconciler = MergeReconciler(StageRunner({}), repo)

        state = await reconciler.merge_state("main", "UU a.txt\n")

        assert state.in_progress is False
        assert state.current_branch == "main"
        assert state.conflicts == ()

    async def test_conflicts_with_three_way_content(self, repo: Path) -> None:
        (repo / ".git" / "MERGE_HEAD").write_text("abc\n")
        (repo / ".git" / "MERGE_MSG").write_text("Merge branch 'feature' into main\n")
        (repo / "a.txt").write_text(CONFLICTED)
        runner = StageRunner({":1:a.txt": "base\n", ":2:a.txt": "ours\n", ":3:a.txt": "theirs\n"})
        reconciler = MergeReconciler(runner, repo)

        state = await reconciler.merge_state("main", "UU a.txt\n M other.txt\n")

        assert state.in_progress is True
        assert state.merging_branch == "feature"
        assert len(state.conflicts) == 1
        conflict = state.conflicts[0]
        assert conflict.path == "a.txt"
        assert (conflict.base, conflict.ours, conflict.theirs) == ("base\n", "ours\n", "theirs\n")
        assert [m.start_line for m in conflict.conflict_markers] == [2]

    async def test_missing_stage_gives_empty_side(self, repo: Path) -> None:
        (repo / ".git" / "MERGE_HEAD").write_text("abc\n")
        runner = StageRunner({":2:gone.txt": "ours\n"})
        reconciler = MergeReconciler(runner, repo)

        state = await reconciler.merge_state("main", "UD gone.txt\n")

        conflict = state.conflicts[0]
        assert conflict.ours == "ours\n"
        assert conflict.theirs == ""
        assert conflict.base is None
        assert conflict.conflict_markers == ()
        assert state.merging_branch is None

    async def test_ready_to_commit(self, repo: Path) -> None:
        (repo / ".git" / "MERGE_HEAD").write_text("abc\n")
        reconciler = MergeReconciler(StageRunner({}), repo)

        state = await reconciler.merge_state("main", "M  a.txt\n")

        assert state.in_progress is True
        assert state.ready_to_commit is True

    async def test_git_dir_is_resolved_once(self, repo: Path) -> None:
        runner = StageRunner({})
        reconciler = MergeReconciler(runner, repo)

        await reconciler.is_merge_in_progress()
        await reconciler.is_merge_in_progress()

        assert runner.calls.count(["rev-parse", "--git-dir"]) == 1
        assert await reconciler.git_dir() == repo / ".git"

    async def test_markers_read_from_top_level_when_run_in_subdirectory(self, repo: Path) -> None:
        (repo / ".git" / "MERGE_HEAD").write_text("abc\n")
        (repo / "sub").mkdir()
        (repo / "sub" / "a.txt").write_text(CONFLICTED)
        runner = StageRunner({":2:sub/a.txt": "ours\n"}, toplevel=repo)
        reconciler = MergeReconciler(runner, repo / "sub")

        state = await reconciler.merge_state("main", "UU sub/a.txt\n")

        assert state.in_progress is True
        assert [m.start_line for m in state.conflicts[0].conflict_markers] == [2]
        assert await reconciler.work_tree() == repo

    async def test_work_tree_falls_back_to_cwd(self, repo: Path) -> None:
        runner = StageRunner({})
        reconciler = MergeReconciler(runner, repo)

        assert await reconciler.work_tree() == repo
        await reconciler.work_tree()
        assert runner.calls.count(["rev-parse", "--show-toplevel"]) == 1
