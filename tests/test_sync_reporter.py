"""Tests for report formatting and progress reporters."""

from __future__ import annotations

import logging

from tavern_sync.sync.models import (
    DiffResult,
    LineChange,
    ModifiedEntry,
    ProjectKind,
    PullResult,
    PushResult,
)
from tavern_sync.sync.progress import (
    LoggingReporter,
    NullReporter,
    ProgressReporter,
)
from tavern_sync.sync.reporter import (
    diff_to_json,
    format_diff,
    format_pull_result,
    format_push_result,
    format_status,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _result() -> DiffResult:
    return DiffResult(
        book_name="World",
        added_locally=["new_rule"],
        added_remotely=["old_rule"],
        modified=[
            ModifiedEntry(
                id="rule_a",
                changes=[
                    LineChange(op="equal", lines=['  "comment": "rule_a",']),
                    LineChange(op="removed", lines=['  "content": "cold",']),
                    LineChange(op="added", lines=['  "content": "hot",']),
                ],
            )
        ],
    )


# ---------------------------------------------------------------------------
# Compare output
# ---------------------------------------------------------------------------


class TestFormatStatus:
    def test_all_markers(self):
        assert format_status(_result()) == (
            "Lore Book 'World'\n"
            "  [+] new_rule\n"
            "  [~] rule_a\n"
            "  [-] old_rule"
        )

    def test_no_changes(self):
        text = format_status(DiffResult(book_name="World"))
        assert text == "Lore Book 'World'\n  (No changes)"


class TestFormatDiff:
    def test_prefixes(self):
        assert format_diff(_result()) == (
            "=== rule_a ===\n"
            '    "comment": "rule_a",\n'
            '-   "content": "cold",\n'
            '+   "content": "hot",'
        )

    def test_entry_filter(self):
        assert format_diff(_result(), entry="other") == "(No changes)"
        assert format_diff(_result(), entry="rule_a").startswith("=== rule_a")

    def test_no_modified(self):
        assert format_diff(DiffResult(book_name="World")) == "(No changes)"


class TestDiffToJson:
    def test_structure(self):
        data = diff_to_json(_result())
        assert data["book_name"] == "World"
        assert data["has_changes"] is True
        assert data["counts"] == {
            "added_locally": 1,
            "added_remotely": 1,
            "modified": 1,
        }
        assert data["modified"][0]["changes"][1] == {
            "op": "removed",
            "lines": ['  "content": "cold",'],
        }


# ---------------------------------------------------------------------------
# Pull / push summaries
# ---------------------------------------------------------------------------


class TestPullPushSummaries:
    def test_lorebook_pull(self):
        text = format_pull_result(
            PullResult(
                kind=ProjectKind.LOREBOOK,
                name="World",
                target_dir="/books/World",
                entry_count=3,
                removed_files=["stale.yaml"],
                dropped_entries=["entry 4 (broken)"],
            )
        )
        assert text.splitlines() == [
            "Pulled 3 entries of 'World' to /books/World",
            "  Removed 1 orphaned files:",
            "    stale.yaml",
            "  Dropped 1 invalid remote entries:",
            "    entry 4 (broken)",
        ]

    def test_character_pull(self):
        text = format_pull_result(
            PullResult(
                kind=ProjectKind.CHARACTER,
                name="Alice",
                target_dir="/chars/Alice",
                entry_count=2,
                linked_books=["Alice Lore"],
                avatar_saved=True,
            )
        )
        assert "Pulled Character 'Alice' to /chars/Alice" in text
        assert "Saved card.png" in text
        assert "Linked Lore Book 'Alice Lore' (2 entries)" in text

    def test_lorebook_push(self):
        result = PushResult(kind=ProjectKind.LOREBOOK, name="World", entry_count=3)
        assert format_push_result(result) == "Pushed 3 entries to 'World'"

    def test_character_push(self):
        result = PushResult(
            kind=ProjectKind.CHARACTER, name="Alice", linked_books=["Alice Lore"]
        )
        assert format_push_result(result) == (
            "Pushed Character 'Alice'\n  Linked Lore Book 'Alice Lore'"
        )


# ---------------------------------------------------------------------------
# Progress reporters
# ---------------------------------------------------------------------------


class TestProgressReporters:
    def test_protocol_conformance(self):
        assert isinstance(NullReporter(), ProgressReporter)
        assert isinstance(LoggingReporter(), ProgressReporter)

    def test_logging_reporter(self, caplog):
        reporter = LoggingReporter()
        with caplog.at_level(logging.DEBUG, logger="tavern_sync.sync.progress"):
            reporter.start("Writing entries", total=2)
            reporter.advance()
            reporter.advance()
            reporter.finish()
        messages = [r.getMessage() for r in caplog.records]
        assert messages == [
            "Writing entries...",
            "Writing entries: 1/2",
            "Writing entries: 2/2",
            "Writing entries: done",
        ]
