"""Sync orchestrator: pull and push of Lore Books and Characters.

Pull is "remote wins": the local root is overwritten with the remote copy
and orphaned content files are removed.  Push is "local wins": the remote
collection is replaced wholesale with the local one.

Every push validates the complete local state before the first remote
write, so a bad entry aborts the operation instead of leaving the remote
half-updated.  Pull is lenient per entry: invalid remote entries are
dropped with a warning and reported in the result.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..errors import (
    MalformedLocalStateError,
    NotFoundError,
    RemoteError,
    ValidationError,
)
from ..file_handler import read_file_with_encoding, resolve_safe_path, write_bytes
from .character_files import (
    CARD_FILENAME,
    CHARACTER_FILENAME,
    LINKED_BOOKS_DIRNAME,
    linked_book_dirs,
    read_character_files,
    write_character_files,
)
from .codec import format_validation_errors, load_index_file
from .diff import DiffEngine, DuplicatePolicy
from .local_store import INDEX_FILENAME, LocalStore, safe_entry_id
from .models import (
    Character,
    DiffResult,
    GlobalSettings,
    LoreBook,
    ProjectKind,
    PullResult,
    PushResult,
)
from .normalizer import DEFAULT_POLICY, NormalizationPolicy
from .progress import LoggingReporter, ProgressReporter
from .remote import RemoteStore, ingest_lorebook

logger = logging.getLogger(__name__)

# Remote-only character fields the edit endpoint must receive unchanged.
PRESERVED_CHARACTER_FIELDS: tuple[str, ...] = ("avatar", "chat", "create_date")


def detect_project_kind(project_dir: Path) -> ProjectKind | None:
    """``character.yaml`` marks a character root, ``index.yaml`` a book."""
    if (project_dir / CHARACTER_FILENAME).is_file():
        return ProjectKind.CHARACTER
    if (project_dir / INDEX_FILENAME).is_file():
        return ProjectKind.LOREBOOK
    return None


def _default_name(project_dir: Path) -> str:
    return project_dir.resolve().name


def linked_book_name(book_dir: Path) -> str:
    """Remote name of a linked book: its ``book_name``, else the directory name.

    Directory names are sanitised on pull, so the index keeps the real one.
    """
    index_path = book_dir / INDEX_FILENAME
    if index_path.is_file():
        try:
            text, _ = read_file_with_encoding(index_path)
            book_name = load_index_file(text)[0]
        except (ValueError, PydanticValidationError):
            book_name = None
        if isinstance(book_name, str) and book_name:
            return book_name
    return book_dir.name


class SyncEngine:
    """Orchestrate pull, push and compare for one remote store.

    Args:
        client: Remote store (``TavernClient`` or a test double).
        reporter: Progress sink; defaults to ``LoggingReporter``.
        policy: Canonicalisation options for comparisons.
        duplicates: Duplicate-identity policy for comparisons.
    """

    def __init__(
        self,
        client: RemoteStore,
        reporter: ProgressReporter | None = None,
        policy: NormalizationPolicy = DEFAULT_POLICY,
        duplicates: DuplicatePolicy = "last-wins",
    ) -> None:
        self.client = client
        self.reporter = reporter or LoggingReporter()
        self.local_store = LocalStore(self.reporter)
        self.differ = DiffEngine(
            client, self.local_store, policy=policy, duplicates=duplicates
        )

    # ------------------------------------------------------------------
    # Dispatch by project kind
    # ------------------------------------------------------------------

    def pull(
        self,
        name: str | None,
        target_dir: Path,
        kind: ProjectKind | None = None,
    ) -> PullResult:
        """Pull *name* into *target_dir*.

        Without an explicit *kind*, an existing ``character.yaml`` selects a
        character pull; otherwise a Lore Book is pulled.  *name* defaults to
        the directory name.
        """
        final_name = name or _default_name(target_dir)
        if kind is None:
            kind = detect_project_kind(target_dir) or ProjectKind.LOREBOOK

        match kind:
            case ProjectKind.CHARACTER:
                return self.pull_character(final_name, target_dir)
            case _:
                return self.pull_lorebook(final_name, target_dir)

    def push(self, project_dir: Path, name: str | None = None) -> PushResult:
        """Push the project at *project_dir* under *name* (default: dir name).

        Raises:
            MalformedLocalStateError: If the directory is neither a
                character nor a Lore Book root.
        """
        final_name = name or _default_name(project_dir)
        match detect_project_kind(project_dir):
            case ProjectKind.CHARACTER:
                return self.push_character(final_name, project_dir)
            case ProjectKind.LOREBOOK:
                return self.push_lorebook(project_dir, final_name)
            case _:
                raise MalformedLocalStateError(
                    f"No {CHARACTER_FILENAME} or {INDEX_FILENAME} in {project_dir}"
                )

    # ------------------------------------------------------------------
    # Lore Books
    # ------------------------------------------------------------------

    def pull_lorebook(self, name: str, target_dir: Path) -> PullResult:
        """Overwrite *target_dir* with remote Lore Book *name*.

        Raises:
            NotFoundError: If the book is absent or carries no entries field.
            RemoteError: If the fetch fails.
        """
        self.reporter.start(f"Pulling Lore Book '{name}'")
        payload = self.client.fetch_lorebook(name)
        if payload is None or payload.get("entries") is None:
            raise NotFoundError(f"Lore Book '{name}' not found or empty")

        result = self._write_book(payload, name, target_dir)
        self.reporter.finish(
            f"Pulled {result.entry_count} entries to {target_dir}"
        )
        return result

    def _write_book(
        self, payload: dict[str, Any], name: str, target_dir: Path
    ) -> PullResult:
        ingested = ingest_lorebook(payload, name)
        book = ingested.book

        ordered = sorted(
            book.keyed_entries(), key=lambda pair: (pair[1].order, pair[1].uid)
        )
        book.entry_keys = [key for key, _ in ordered]
        book.entries = [entry for _, entry in ordered]
        book.global_settings = self._existing_settings(target_dir)

        index_entries, removed = self.local_store.write_lorebook(
            book, target_dir
        )
        return PullResult(
            kind=ProjectKind.LOREBOOK,
            name=name,
            target_dir=str(target_dir),
            entry_count=len(index_entries),
            removed_files=removed,
            dropped_entries=ingested.dropped,
        )

    def _existing_settings(self, target_dir: Path) -> GlobalSettings:
        """Keep local book settings across pulls; the remote has none."""
        index_path = target_dir / INDEX_FILENAME
        if not index_path.is_file():
            return GlobalSettings()
        try:
            text, _ = read_file_with_encoding(index_path)
            return load_index_file(text)[1]
        except (ValueError, PydanticValidationError) as exc:
            logger.warning(
                "Ignoring unreadable settings in %s: %s", index_path, exc
            )
            return GlobalSettings()

    def read_lorebook_for_push(self, project_dir: Path, name: str) -> LoreBook:
        """Load and fully validate a local book ready to replace the remote.

        Raises:
            MalformedLocalStateError: If ``index.yaml`` is missing.
            ValidationError: If any entry or the collection is invalid.
        """
        if not (project_dir / INDEX_FILENAME).is_file():
            raise MalformedLocalStateError(
                f"Missing {INDEX_FILENAME} in {project_dir}"
            )
        book = self.local_store.read_lorebook(project_dir)
        book.name = name
        return book

    def push_lorebook(
        self, project_dir: Path, name: str | None = None
    ) -> PushResult:
        """Replace remote Lore Book *name* with the local one.

        Nothing is sent unless every entry validates.
        """
        final_name = name or _default_name(project_dir)
        self.reporter.start(f"Pushing Lore Book '{final_name}'")
        book = self.read_lorebook_for_push(project_dir, final_name)
        self.client.replace_lorebook(final_name, book)
        self.reporter.finish(
            f"Pushed {len(book.entries)} entries to '{final_name}'"
        )
        return PushResult(
            kind=ProjectKind.LOREBOOK,
            name=final_name,
            entry_count=len(book.entries),
        )

    # ------------------------------------------------------------------
    # Characters
    # ------------------------------------------------------------------

    def pull_character(self, name: str, target_dir: Path) -> PullResult:
        """Write remote character *name* into *target_dir*.

        The avatar download is best effort.  An embedded Lore Book is
        written to ``linked_worldbooks/<safe book name>``.

        Raises:
            NotFoundError: If the character does not exist.
            ValidationError: If the remote record is invalid.
        """
        self.reporter.start(f"Pulling Character '{name}'")
        raw = self.client.fetch_character(name)
        if not raw or not raw.get("name"):
            raise NotFoundError(f"Character '{name}' not found")

        try:
            character = Character(**raw)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Remote Character {name}", format_validation_errors(exc)
            ) from exc

        write_character_files(character, target_dir)
        avatar_saved = self._download_avatar(character, target_dir)

        linked: list[str] = []
        dropped: list[str] = []
        entry_count = 0
        embedded = character.data.character_book if character.data else None
        if embedded and embedded.get("entries") is not None:
            book_name = embedded.get("name") or f"{name}_Lore"
            book_dir = resolve_safe_path(
                target_dir / LINKED_BOOKS_DIRNAME, safe_entry_id(book_name, 0)
            )
            logger.info("Extracting embedded Lore Book to %s", book_dir)
            book_result = self._write_book(embedded, book_name, book_dir)
            linked.append(book_name)
            dropped.extend(book_result.dropped_entries)
            entry_count = book_result.entry_count

        self.reporter.finish(f"Pulled Character '{character.name}'")
        return PullResult(
            kind=ProjectKind.CHARACTER,
            name=character.name,
            target_dir=str(target_dir),
            entry_count=entry_count,
            dropped_entries=dropped,
            linked_books=linked,
            avatar_saved=avatar_saved,
        )

    def _download_avatar(self, character: Character, target_dir: Path) -> bool:
        avatar = character.avatar
        if not avatar or avatar == "none":
            return False
        asset_id = avatar if avatar.endswith(".png") else f"{avatar}.png"
        try:
            image = self.client.fetch_asset(asset_id)
            if not image:
                return False
            write_bytes(target_dir / CARD_FILENAME, image)
        except (RemoteError, OSError) as exc:
            logger.warning("Failed to download character image: %s", exc)
            return False
        return True

    def push_character(self, name: str, project_dir: Path) -> PushResult:
        """Replace remote character *name* with the local project.

        Linked books are read and validated together with the character
        before anything is sent; they are then pushed first, in name
        order, and the first one becomes the character's world.

        Raises:
            NotFoundError: If the remote character does not exist.
            MalformedLocalStateError: If ``character.yaml`` is missing.
            ValidationError: If the character or any linked book is invalid.
        """
        self.reporter.start(f"Pushing Character '{name}'")
        remote = self.client.fetch_character(name)
        if not remote:
            raise NotFoundError(f"Character '{name}' not found")

        metadata = read_character_files(project_dir)

        books = [
            self.read_lorebook_for_push(book_dir, linked_book_name(book_dir))
            for book_dir in linked_book_dirs(project_dir)
        ]
        if books:
            data = metadata.get("data")
            if not isinstance(data, dict):
                data = {}
                metadata["data"] = data
            extensions = data.get("extensions")
            if not isinstance(extensions, dict):
                extensions = {}
                data["extensions"] = extensions
            extensions["world"] = books[0].name
            data.pop("character_book", None)

        try:
            character = Character(**metadata)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Character {name}", format_validation_errors(exc)
            ) from exc

        for book in books:
            logger.info("Pushing linked Lore Book '%s'", book.name)
            self.client.replace_lorebook(book.name, book)

        payload = character.model_dump(mode="json", exclude_none=True)
        for field in PRESERVED_CHARACTER_FIELDS:
            if remote.get(field) is not None:
                payload[field] = remote[field]

        self.client.replace_character(name, payload)
        self.reporter.finish(f"Pushed Character '{name}'")
        return PushResult(
            kind=ProjectKind.CHARACTER,
            name=name,
            entry_count=sum(len(book.entries) for book in books),
            linked_books=[book.name for book in books],
        )

    # ------------------------------------------------------------------
    # Compare
    # ------------------------------------------------------------------

    def compare(self, project_dir: Path, name: str | None = None) -> DiffResult:
        """Diff one Lore Book root against remote book *name*."""
        return self.differ.compare(
            project_dir, name or _default_name(project_dir)
        )

    def status(self, project_dir: Path) -> list[DiffResult]:
        """Diff every book of a project.

        A Lore Book root yields one result; a character root yields one per
        linked book.

        Raises:
            MalformedLocalStateError: If the directory is not a project.
        """
        match detect_project_kind(project_dir):
            case ProjectKind.CHARACTER:
                return [
                    self.differ.compare(book_dir, linked_book_name(book_dir))
                    for book_dir in linked_book_dirs(project_dir)
                ]
            case ProjectKind.LOREBOOK:
                return [self.compare(project_dir)]
            case _:
                raise MalformedLocalStateError(
                    f"No {CHARACTER_FILENAME} or {INDEX_FILENAME} in {project_dir}"
                )
