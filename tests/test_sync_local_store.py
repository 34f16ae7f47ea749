"""Tests for LocalStore: the index.yaml + entries/ layout."""

from __future__ import annotations

import logging
import unicodedata
from pathlib import Path

import pytest

from tavern_sync.errors import ValidationError
from tavern_sync.sync.codec import load_index_file, load_yaml
from tavern_sync.sync.local_store import (
    ContentFileIndex,
    LocalStore,
    safe_entry_id,
)
from tavern_sync.sync.models import Entry, LoreBook

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _book(*entries: Entry, name: str = "World") -> LoreBook:
    return LoreBook(name=name, entries=list(entries))


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _index(root: Path, body: str) -> None:
    _write(root / "index.yaml", body)


class RecordingReporter:
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def start(self, message, total=None):
        self.events.append(("start", total))

    def advance(self, step=1):
        self.events.append(("advance", step))

    def finish(self, message=None):
        self.events.append(("finish",))


# ---------------------------------------------------------------------------
# safe_entry_id
# ---------------------------------------------------------------------------


class TestSafeEntryId:
    def test_plain_name_unchanged(self):
        assert safe_entry_id("rule_a", 0) == "rule_a"

    def test_unsafe_characters_replaced(self):
        assert safe_entry_id("Rule A!", 0) == "Rule_A_"

    def test_underscores_collapsed(self):
        assert safe_entry_id("a / b", 0) == "a_b"

    def test_cjk_ideographs_kept(self):
        assert safe_entry_id("龍の国", 0) == "龍_国"

    def test_missing_name_uses_uid(self):
        assert safe_entry_id(None, 5) == "entry_5"
        assert safe_entry_id("", 5) == "entry_5"

    def test_nothing_usable_uses_uid(self):
        assert safe_entry_id("!!!", 7) == "entry_7"
        assert safe_entry_id("..", 7) == "entry_7"


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------


class TestFindEntryContentFile:
    """Content file lookup under entries/."""

    def test_direct_yaml(self, tmp_path):
        target = _write(tmp_path / "rule_a.yaml", "")
        assert LocalStore().find_entry_content_file(tmp_path, "rule_a") == target

    def test_direct_yml(self, tmp_path):
        target = _write(tmp_path / "rule_a.yml", "")
        assert LocalStore().find_entry_content_file(tmp_path, "rule_a") == target

    def test_nested_file_found(self, tmp_path):
        target = _write(tmp_path / "weather" / "hot" / "rule_a.yaml", "")
        assert LocalStore().find_entry_content_file(tmp_path, "rule_a") == target

    def test_missing_returns_none(self, tmp_path):
        assert LocalStore().find_entry_content_file(tmp_path, "nope") is None

    def test_missing_root_returns_none(self, tmp_path):
        store = LocalStore()
        assert store.find_entry_content_file(tmp_path / "absent", "x") is None

    def test_nfd_file_found_by_nfc_id(self, tmp_path):
        """Names written in decomposed form (macOS) are still found."""
        nfd = unicodedata.normalize("NFD", "café")
        target = _write(tmp_path / "sub" / f"{nfd}.yaml", "")
        nfc = unicodedata.normalize("NFC", "café")
        assert LocalStore().find_entry_content_file(tmp_path, nfc) == target

    def test_duplicate_stems_first_in_sorted_order_wins(self, tmp_path, caplog):
        first = _write(tmp_path / "a" / "x.yaml", "")
        _write(tmp_path / "b" / "x.yaml", "")
        index = ContentFileIndex.build(tmp_path)
        with caplog.at_level(logging.WARNING):
            assert index.lookup("x") == first
        assert "Several content files" in caplog.text

    def test_depth_first_order(self, tmp_path):
        """A deep file in the first folder beats a shallow one in a later folder."""
        deep = _write(tmp_path / "a" / "deep" / "x.yaml", "")
        _write(tmp_path / "b" / "x.yaml", "")
        assert ContentFileIndex.build(tmp_path).lookup("x") == deep

    def test_non_content_files_ignored(self, tmp_path):
        _write(tmp_path / "sub" / "x.txt", "")
        assert ContentFileIndex.build(tmp_path).lookup("x") is None


# ---------------------------------------------------------------------------
# Write
# ---------------------------------------------------------------------------


class TestWriteLorebook:
    """Materialising a book on disk."""

    def test_writes_index_and_content_files(self, tmp_path):
        book = _book(
            Entry(uid=0, comment="rule_a", key=["sun"], content="hot"),
            Entry(uid=1, comment="Rule B", content="cold", order=5),
        )
        index_entries, removed = LocalStore().write_lorebook(book, tmp_path)

        assert [e.id for e in index_entries] == ["rule_a", "Rule_B"]
        assert removed == []
        content = load_yaml((tmp_path / "entries" / "rule_a.yaml").read_text())
        assert content == {"key": ["sun"], "content": "hot"}

        name, _, raw = load_index_file((tmp_path / "index.yaml").read_text())
        assert name == "World"
        assert raw == [
            {"id": "rule_a"},
            {"id": "Rule_B", "comment": "Rule B", "order": 5},
        ]

    def test_colliding_ids_get_suffix(self, tmp_path):
        book = _book(
            Entry(uid=0, comment="dup", content="one"),
            Entry(uid=1, comment="dup", content="two"),
            Entry(uid=2, comment="dup", content="three"),
        )
        index_entries, _ = LocalStore().write_lorebook(book, tmp_path)
        assert [e.id for e in index_entries] == ["dup", "dup_1", "dup_2"]
        assert (tmp_path / "entries" / "dup_2.yaml").is_file()

    def test_existing_nested_location_reused(self, tmp_path):
        nested = _write(
            tmp_path / "entries" / "weather" / "rule_a.yaml", "content: old\n"
        )
        LocalStore().write_lorebook(
            _book(Entry(uid=0, comment="rule_a", content="new")), tmp_path
        )
        assert load_yaml(nested.read_text())["content"] == "new"
        assert not (tmp_path / "entries" / "rule_a.yaml").exists()

    def test_orphans_removed_at_top_level_only(self, tmp_path):
        _write(tmp_path / "entries" / "stale.yaml", "content: x\n")
        nested = _write(tmp_path / "entries" / "sub" / "stale2.yaml", "")
        _, removed = LocalStore().write_lorebook(
            _book(Entry(uid=0, comment="rule_a")), tmp_path
        )
        assert removed == ["stale.yaml"]
        assert not (tmp_path / "entries" / "stale.yaml").exists()
        assert nested.exists()

    def test_non_content_files_not_removed(self, tmp_path):
        notes = _write(tmp_path / "entries" / "notes.txt", "keep me")
        LocalStore().write_lorebook(_book(), tmp_path)
        assert notes.exists()

    def test_reporter_receives_progress(self, tmp_path):
        reporter = RecordingReporter()
        book = _book(Entry(uid=0, comment="a"), Entry(uid=1, comment="b"))
        LocalStore(reporter).write_lorebook(book, tmp_path)
        assert reporter.events == [
            ("start", 2),
            ("advance", 1),
            ("advance", 1),
            ("finish",),
        ]


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


class TestReadLorebook:
    """Rebuilding full entries from disk."""

    def test_round_trip_through_disk(self, tmp_path):
        book = _book(
            Entry(uid=0, comment="rule_a", key=["sun"], content="hot", depth=2),
            Entry(uid=1, comment="Rule B", content="a\nb\n", disable=True),
        )
        store = LocalStore()
        store.write_lorebook(book, tmp_path)
        loaded = store.read_lorebook(tmp_path)

        assert loaded.name == "World"
        assert [e.model_dump() for e in loaded.entries] == [
            e.model_dump() for e in book.entries
        ]
        assert loaded.entry_keys == ["0", "1"]

    def test_no_index_gives_empty_book(self, tmp_path):
        book = LocalStore().read_lorebook(tmp_path)
        assert book.name is None
        assert book.entries == []

    def test_missing_content_file_is_deletion(self, tmp_path):
        _index(tmp_path, "entries:\n- id: a\n- id: gone\n- id: c\n")
        _write(tmp_path / "entries" / "a.yaml", "content: A\n")
        _write(tmp_path / "entries" / "c.yaml", "content: C\n")

        book = LocalStore().read_lorebook(tmp_path)
        assert [e.comment for e in book.entries] == ["a", "c"]
        assert [e.uid for e in book.entries] == [0, 2]

    def test_item_without_id_skipped(self, tmp_path, caplog):
        _index(tmp_path, "entries:\n- comment: nameless\n- id: a\n")
        _write(tmp_path / "entries" / "a.yaml", "content: A\n")
        with caplog.at_level(logging.WARNING):
            book = LocalStore().read_lorebook(tmp_path)
        assert [e.comment for e in book.entries] == ["a"]
        assert "missing 'id'" in caplog.text

    def test_unparseable_content_file_is_an_error(self, tmp_path):
        """A present but broken file is not a deletion."""
        _index(tmp_path, "entries:\n- id: a\n- id: b\n")
        _write(tmp_path / "entries" / "a.yaml", "key: [broken\n")
        _write(tmp_path / "entries" / "b.yaml", "content: B\n")
        with pytest.raises(ValidationError) as exc_info:
            LocalStore().read_lorebook(tmp_path)
        assert len(exc_info.value.errors) == 1
        assert exc_info.value.errors[0].startswith("a: a.yaml: invalid YAML")

    def test_content_file_with_bad_field_type(self, tmp_path):
        _index(tmp_path, "entries:\n- id: a\n")
        _write(tmp_path / "entries" / "a.yaml", "content: {nested: map}\n")
        with pytest.raises(ValidationError) as exc_info:
            LocalStore().read_lorebook(tmp_path)
        assert exc_info.value.errors[0].startswith("a.content")

    def test_integer_id_is_kept(self, tmp_path):
        _index(tmp_path, "entries:\n- id: 0\n- id: 7\n")
        _write(tmp_path / "entries" / "0.yaml", "content: zero\n")
        _write(tmp_path / "entries" / "7.yaml", "content: seven\n")
        book = LocalStore().read_lorebook(tmp_path)
        assert [e.content for e in book.entries] == ["zero", "seven"]

    def test_all_invalid_entries_reported_together(self, tmp_path):
        _index(
            tmp_path,
            "entries:\n"
            "- id: a\n  probability: 500\n"
            "- id: b\n  position: sideways\n"
            "- id: c\n",
        )
        for name in "abc":
            _write(tmp_path / "entries" / f"{name}.yaml", "content: x\n")

        with pytest.raises(ValidationError) as exc_info:
            LocalStore().read_lorebook(tmp_path)
        errors = exc_info.value.errors
        assert len(errors) == 2
        assert errors[0].startswith("a.")
        assert errors[1].startswith("b.")

    def test_invalid_index_type_reported(self, tmp_path):
        _index(tmp_path, "entries:\n- id: a\n  order: lots\n")
        _write(tmp_path / "entries" / "a.yaml", "content: x\n")
        with pytest.raises(ValidationError, match="order"):
            LocalStore().read_lorebook(tmp_path)

    def test_malformed_index_raises(self, tmp_path):
        _index(tmp_path, "entries: [unclosed\n")
        with pytest.raises(ValidationError):
            LocalStore().read_lorebook(tmp_path)

    def test_nested_content_file_read(self, tmp_path):
        _index(tmp_path, "entries:\n- id: rule_a\n")
        _write(
            tmp_path / "entries" / "weather" / "rule_a.yaml",
            "key:\n- sun\ncontent: hot\n",
        )
        book = LocalStore().read_lorebook(tmp_path)
        assert book.entries[0].key == ["sun"]
        assert book.entries[0].content == "hot"
