"""Tests for the activity ledger."""

from __future__ import annotations

import pytest

from gitarbor.git.activity import ActivityLedger


@pytest.mark.unit
@pytest.mark.git
class TestActivityLedger:
    """Tests for the ActivityLedger class."""

    def test_most_recent_first(self) -> None:
        ledger = ActivityLedger()

        ledger.record("git status", 1.0, success=True)
        ledger.record("git push", 20.0, success=False, error="rejected")

        records = ledger.list()
        assert [r.command for r in records] == ["git push", "git status"]
        assert records[0].success is False
        assert records[0].error == "rejected"
        assert records[1].error is None

    def test_capacity_drops_oldest(self) -> None:
        ledger = ActivityLedger()

        for i in range(101):
            ledger.record(f"git cmd {i}", 0.5, success=True)

        records = ledger.list()
        assert len(records) == 100
        assert records[0].command == "git cmd 100"
        assert records[-1].command == "git cmd 1"

    def test_list_is_a_copy(self) -> None:
        ledger = ActivityLedger(capacity=3)
        ledger.record("git add a", 1.0, success=True)

        snapshot = ledger.list()
        snapshot.clear()

        assert len(ledger.list()) == 1

    def test_clear(self) -> None:
        ledger = ActivityLedger(capacity=3)
        ledger.record("git add a", 1.0, success=True)

        ledger.clear()

        assert len(ledger) == 0

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError, match="capacity"):
            ActivityLedger(capacity=0)
