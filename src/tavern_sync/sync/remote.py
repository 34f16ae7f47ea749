"""Remote store contract and the ingestion boundary for remote payloads.

``RemoteStore`` is the whole-resource interface the engine talks to;
``TavernClient`` implements it over HTTP and the test suite provides an
in-memory fake.

Remote Lore Book payloads carry their entries either as a map keyed by
uid or as a plain array (embedded character books).  ``ingest_lorebook``
resolves that shape exactly once into a ``LoreBook`` so nothing past this
module branches on it again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, Union

from pydantic import ValidationError as PydanticValidationError

from .codec import format_validation_errors
from .models import Entry, GlobalSettings, LoreBook

logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """Whole-resource operations against the live store."""

    def fetch_lorebook(self, name: str) -> dict[str, Any] | None: ...

    def replace_lorebook(self, name: str, book: LoreBook) -> None: ...

    def fetch_character(self, name: str) -> dict[str, Any] | None: ...

    def replace_character(
        self, name: str, payload: dict[str, Any]
    ) -> None: ...

    def fetch_asset(self, asset_id: str) -> bytes: ...

    def list_lorebooks(self) -> list[str]: ...

    def list_characters(self) -> list[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Entry container variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ByMap:
    """Entries keyed by uid string (the Lore Book endpoint shape)."""

    entries: dict[str, Any]


@dataclass(frozen=True)
class ByList:
    """Entries as an ordered array (embedded character books)."""

    entries: list[Any]


EntryContainer = Union[ByMap, ByList]


def entry_container(payload: dict[str, Any]) -> EntryContainer:
    """Classify the ``entries`` field of *payload*.

    Anything that is neither a map nor an array is treated as empty.
    """
    raw = payload.get("entries")
    if isinstance(raw, list):
        return ByList(raw)
    if isinstance(raw, dict):
        return ByMap(raw)
    return ByMap({})


def keyed_raw_entries(container: EntryContainer) -> list[tuple[str, Any]]:
    """Return ``(positional_key, raw_entry)`` pairs for either variant."""
    match container:
        case ByList(entries=items):
            return [(str(i), item) for i, item in enumerate(items)]
        case ByMap(entries=items):
            return [(str(k), v) for k, v in items.items()]


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


def repair_legacy_aliases(raw: dict[str, Any]) -> dict[str, Any]:
    """Copy legacy ``keys`` / ``secondary_keys`` into the canonical fields.

    Only fills ``key`` / ``keysecondary`` when they are missing or empty.
    Returns a new dict; *raw* is not modified.
    """
    repaired = dict(raw)
    if not repaired.get("key") and repaired.get("keys"):
        repaired["key"] = repaired["keys"]
    if not repaired.get("keysecondary") and repaired.get("secondary_keys"):
        repaired["keysecondary"] = repaired["secondary_keys"]
    return repaired


@dataclass
class IngestResult:
    """A validated book plus the labels of entries that were rejected."""

    book: LoreBook
    dropped: list[str]


def ingest_lorebook(
    payload: dict[str, Any], name: str | None = None
) -> IngestResult:
    """Validate a remote payload into a ``LoreBook``.

    Each entry has its aliases repaired and is validated on its own; an
    invalid entry is dropped with a warning and the rest survive.  A
    missing ``uid`` is taken from a numeric positional key.

    Args:
        payload: Remote book payload (``{"entries": ...}``).
        name: Book name to record; defaults to ``payload["name"]``.
    """
    book = LoreBook(
        name=name if name is not None else payload.get("name"),
        global_settings=GlobalSettings(),
    )
    dropped: list[str] = []

    for key, raw in keyed_raw_entries(entry_container(payload)):
        label = f"entry {key}"
        if not isinstance(raw, dict):
            logger.warning("Dropping %s: not an object", label)
            dropped.append(label)
            continue

        values = repair_legacy_aliases(raw)
        if values.get("comment"):
            label = f"entry {key} ({values['comment']})"
        if values.get("uid") is None and key.isdigit():
            values["uid"] = int(key)

        try:
            entry = Entry(**values)
        except PydanticValidationError as exc:
            logger.warning(
                "Dropping invalid %s: %s",
                label,
                "; ".join(format_validation_errors(exc)),
            )
            dropped.append(label)
            continue

        book.entries.append(entry)
        book.entry_keys.append(key)

    return IngestResult(book=book, dropped=dropped)
