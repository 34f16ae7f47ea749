"""On-disk Lore Book layout: ``index.yaml`` plus ``entries/**/<id>.yaml``.

``LocalStore`` owns every read and write of a Lore Book root:

* **Lookup** -- ``find_entry_content_file()`` tries ``<id>.yaml`` /
  ``<id>.yml`` directly under ``entries/`` and otherwise consults a
  one-pass index of the whole subtree.  Names are indexed under both NFC
  and NFD so files written on macOS (NFD) are found elsewhere.
* **Write** -- ``write_lorebook()`` derives a safe id per entry, reuses an
  existing file location when the user has moved the file into a
  sub-folder, writes ``index.yaml`` and removes orphans.
* **Read** -- ``read_lorebook()`` rebuilds full entries through the codec.
  A missing content file means the user deleted the entry on purpose.

Known limitations:

* When several files in different sub-folders share a stem, the first one
  met in sorted depth-first order wins (a warning is logged).
* Orphan cleanup only looks at files directly under ``entries/``;
  unmatched files in sub-folders are left alone.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..file_handler import read_file_with_encoding, write_file
from .codec import (
    dump_content_file,
    dump_index_file,
    entry_to_index_and_content,
    format_validation_errors,
    index_and_content_to_entry,
    load_content_file,
    load_index_file,
)
from .models import ContentFile, IndexEntry, LoreBook
from .progress import NullReporter, ProgressReporter

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.yaml"
ENTRIES_DIRNAME = "entries"
CONTENT_EXTENSIONS: tuple[str, ...] = (".yaml", ".yml")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9一-龥_\-.]")
_REPEATED_UNDERSCORE = re.compile(r"_{2,}")


def safe_entry_id(comment: str | None, uid: int) -> str:
    """Derive a filesystem-safe id from an entry name.

    Keeps ASCII letters, digits, ``_``, ``-``, ``.`` and CJK ideographs;
    everything else becomes ``_`` and runs of ``_`` collapse to one.
    Falls back to ``entry_<uid>`` when nothing usable remains.
    """
    base = comment or f"entry_{uid}"
    safe = _REPEATED_UNDERSCORE.sub("_", _UNSAFE_CHARS.sub("_", base))
    if not safe.strip("_."):
        return f"entry_{uid}"
    return safe


def _name_variants(name: str) -> set[str]:
    return {
        unicodedata.normalize("NFC", name),
        unicodedata.normalize("NFD", name),
    }


@dataclass
class ContentFileIndex:
    """Stem -> path lookup for every content file under one ``entries/`` root.

    Built once per operation so repeated lookups do not re-walk the tree.
    """

    root: Path
    paths: dict[str, Path] = field(default_factory=dict)
    duplicates: dict[str, list[Path]] = field(default_factory=dict)

    @classmethod
    def build(cls, root: Path) -> ContentFileIndex:
        """Walk *root* depth-first in sorted order and index content files."""
        index = cls(root=root)
        if not root.is_dir():
            return index

        stack: list[Path] = [root]
        while stack:
            current = stack.pop()
            try:
                children = sorted(current.iterdir(), key=lambda p: p.name)
            except OSError as exc:
                logger.warning("Cannot list %s: %s", current, exc)
                continue
            subdirs: list[Path] = []
            for child in children:
                if child.is_dir():
                    subdirs.append(child)
                elif child.is_file() and child.suffix in CONTENT_EXTENSIONS:
                    index._add(child)
            # Reverse so the alphabetically first sub-folder is popped first.
            stack.extend(reversed(subdirs))
        return index

    def _add(self, path: Path) -> None:
        for key in _name_variants(path.stem):
            if key in self.paths:
                if self.paths[key] != path:
                    self.duplicates.setdefault(key, [self.paths[key]])
                    if path not in self.duplicates[key]:
                        self.duplicates[key].append(path)
                continue
            self.paths[key] = path

    def lookup(self, entry_id: str) -> Path | None:
        """Return the first indexed path whose stem matches *entry_id*."""
        for key in _name_variants(entry_id):
            if key in self.paths:
                if key in self.duplicates:
                    logger.warning(
                        "Several content files match '%s'; using %s",
                        entry_id,
                        self.paths[key],
                    )
                return self.paths[key]
        return None


class LocalStore:
    """Read and write Lore Book roots on the local filesystem.

    Args:
        reporter: Progress sink; defaults to a no-op reporter.
    """

    def __init__(self, reporter: ProgressReporter | None = None) -> None:
        self.reporter = reporter or NullReporter()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_entry_content_file(
        self,
        entries_root: Path,
        entry_id: str,
        file_index: ContentFileIndex | None = None,
    ) -> Path | None:
        """Locate the content file for *entry_id* under *entries_root*.

        Args:
            entries_root: The ``entries/`` directory of a book.
            entry_id: Filename stem to find.
            file_index: Pre-built subtree index to reuse across lookups.

        Returns:
            Path of the matching file, or ``None``.
        """
        if not entries_root.is_dir():
            return None
        for ext in CONTENT_EXTENSIONS:
            direct = entries_root / f"{entry_id}{ext}"
            if direct.is_file():
                return direct
        if file_index is None:
            file_index = ContentFileIndex.build(entries_root)
        return file_index.lookup(entry_id)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write_lorebook(
        self, book: LoreBook, target_dir: Path
    ) -> tuple[list[IndexEntry], list[str]]:
        """Materialise *book* under *target_dir*, overwriting previous files.

        Entries are written in the order given; callers sort beforehand.

        Returns:
            ``(index_entries, removed_files)`` where *removed_files* are the
            orphan file names deleted from ``entries/``.
        """
        entries_dir = target_dir / ENTRIES_DIRNAME
        entries_dir.mkdir(parents=True, exist_ok=True)
        file_index = ContentFileIndex.build(entries_dir)

        index_entries: list[IndexEntry] = []
        used_ids: set[str] = set()

        self.reporter.start(
            f"Writing {len(book.entries)} entries", total=len(book.entries)
        )
        for entry in book.entries:
            base_id = safe_entry_id(entry.comment, entry.uid)
            entry_id = base_id
            counter = 1
            while entry_id in used_ids:
                entry_id = f"{base_id}_{counter}"
                counter += 1
            used_ids.add(entry_id)

            index_entry, content = entry_to_index_and_content(
                entry, entry_id
            )
            existing = self.find_entry_content_file(
                entries_dir, entry_id, file_index
            )
            target = existing or entries_dir / f"{entry_id}.yaml"
            write_file(target, dump_content_file(content))
            index_entries.append(index_entry)
            self.reporter.advance()
        self.reporter.finish(f"Wrote {len(index_entries)} entries")

        removed = self.cleanup_orphans(entries_dir, used_ids)

        write_file(
            target_dir / INDEX_FILENAME,
            dump_index_file(book.name, book.global_settings, index_entries),
        )
        return index_entries, removed

    def cleanup_orphans(
        self, entries_dir: Path, keep_ids: set[str]
    ) -> list[str]:
        """Delete content files directly under *entries_dir* not in *keep_ids*.

        Sub-folders are not scanned.  Failures are logged, never raised.

        Returns:
            Names of the deleted files.
        """
        keep: set[str] = set()
        for entry_id in keep_ids:
            keep |= _name_variants(entry_id)

        removed: list[str] = []
        try:
            children = sorted(entries_dir.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            logger.warning("Failed to clean up orphaned files: %s", exc)
            return removed

        for child in children:
            if not child.is_file() or child.suffix not in CONTENT_EXTENSIONS:
                continue
            if _name_variants(child.stem) & keep:
                continue
            try:
                child.unlink()
            except OSError as exc:
                logger.warning("Failed to delete %s: %s", child, exc)
                continue
            logger.info("Deleted orphaned file: %s", child.name)
            removed.append(child.name)
        return removed

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read_lorebook(self, local_dir: Path) -> LoreBook:
        """Load a local book into fully populated entries.

        Index items without an ``id`` are skipped with a warning.  Items
        whose content file is missing are skipped as intentional deletions;
        a content file that exists but cannot be parsed is an error.
        ``uid`` is each item's position in the index list.

        Raises:
            ValidationError: If any index item or entry is invalid.  All
                problems are collected before raising.
        """
        index_path = local_dir / INDEX_FILENAME
        if not index_path.is_file():
            return LoreBook(name=None)

        text, _ = read_file_with_encoding(index_path)
        try:
            book_name, settings, raw_entries = load_index_file(text)
        except (ValueError, PydanticValidationError) as exc:
            raise ValidationError(
                f"Index {index_path}", format_validation_errors(exc)
            ) from exc

        entries_dir = local_dir / ENTRIES_DIRNAME
        file_index = ContentFileIndex.build(entries_dir)
        book = LoreBook(name=book_name, global_settings=settings)
        errors: list[str] = []

        for ordinal, raw in enumerate(raw_entries):
            if not isinstance(raw, dict) or raw.get("id") in (None, ""):
                logger.warning(
                    "Skipping index item %d in %s: missing 'id'",
                    ordinal,
                    index_path,
                )
                continue
            try:
                index_entry = IndexEntry(**raw)
            except PydanticValidationError as exc:
                errors.extend(
                    f"{raw['id']}.{msg}"
                    for msg in format_validation_errors(exc)
                )
                continue

            path = self.find_entry_content_file(
                entries_dir, index_entry.id, file_index
            )
            if path is None:
                logger.info(
                    "Entry file missing for '%s'; treating as deleted",
                    index_entry.id,
                )
                continue

            try:
                content_text, _ = read_file_with_encoding(path)
                content = load_content_file(content_text)
            except PydanticValidationError as exc:
                errors.extend(
                    f"{index_entry.id}.{msg}"
                    for msg in format_validation_errors(exc)
                )
                continue
            except ValueError as exc:
                errors.append(f"{index_entry.id}: {path.name}: {exc}")
                continue

            try:
                entry = index_and_content_to_entry(
                    index_entry, content, ordinal
                )
            except ValidationError as exc:
                errors.extend(f"{index_entry.id}.{e}" for e in exc.errors)
                continue

            book.entries.append(entry)
            book.entry_keys.append(str(ordinal))

        if errors:
            raise ValidationError(f"Lore Book {local_dir.name}", errors)
        return book

