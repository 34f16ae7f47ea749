"""Entry codec: ``Entry`` <-> ``(IndexEntry, ContentFile)`` and YAML text.

An entry is split in two on disk:

* the **content file** (``entries/**/<id>.yaml``) holds ``key``,
  ``keysecondary`` and ``content``;
* the **index entry** (one item of ``index.yaml``) holds the identity and
  only those behavioral fields that differ from their ``Entry`` default.

Decoding is total: every field absent from the index is filled from
``ENTRY_DEFAULTS``, so a decoded entry is always complete and re-encoding
it gives back the same terse index item.
"""

from __future__ import annotations

from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from .models import (
    BEHAVIOR_FIELDS,
    ENTRY_DEFAULTS,
    ContentFile,
    Entry,
    GlobalSettings,
    IndexEntry,
    position_to_int,
    position_to_name,
)

# ---------------------------------------------------------------------------
# Entry <-> (IndexEntry, ContentFile)
# ---------------------------------------------------------------------------


def entry_to_index_and_content(
    entry: Entry, entry_id: str
) -> tuple[IndexEntry, ContentFile]:
    """Split *entry* into its index and content projections.

    Args:
        entry: The full entry.
        entry_id: Filesystem-safe id already chosen for this entry.

    Returns:
        ``(index_entry, content_file)``.  The index entry carries
        ``comment`` only when it differs from *entry_id* (an explicitly
        empty comment is kept as ``""``) and only non-default behavior.
    """
    content = ContentFile(
        key=list(entry.key),
        keysecondary=list(entry.keysecondary),
        content=entry.content,
    )

    fields: dict[str, Any] = {"id": entry_id}
    if entry.comment is not None and entry.comment != entry_id:
        fields["comment"] = entry.comment
    if entry.disable:
        fields["enabled"] = False

    for name in BEHAVIOR_FIELDS:
        value = getattr(entry, name)
        if value == ENTRY_DEFAULTS[name] and type(value) is type(
            ENTRY_DEFAULTS[name]
        ):
            continue
        if name == "position":
            value = position_to_name(value)
        fields[name] = value

    return IndexEntry(**fields), content


def index_and_content_to_entry(
    index: IndexEntry, content: ContentFile, ordinal: int
) -> Entry:
    """Rebuild a complete ``Entry`` from its two projections.

    Args:
        index: The index item (``id`` required).
        content: The parsed content file.
        ordinal: Position of *index* in the index list; becomes ``uid``.

    Raises:
        ValidationError: If the combined record violates the Entry schema
            (bad position name, probability out of range, ...).
    """
    values: dict[str, Any] = {
        "uid": ordinal,
        "key": list(content.key),
        "keysecondary": list(content.keysecondary),
        "content": content.content,
        "comment": index.comment if index.comment is not None else index.id,
        "disable": index.enabled is False,
    }
    for name in BEHAVIOR_FIELDS:
        value = getattr(index, name)
        values[name] = ENTRY_DEFAULTS[name] if value is None else value

    try:
        if isinstance(values["position"], str):
            values["position"] = position_to_int(values["position"])
        return Entry(**values)
    except (PydanticValidationError, ValueError) as exc:
        raise ValidationError(
            f"Entry {index.id}", format_validation_errors(exc)
        ) from exc


def format_validation_errors(exc: Exception) -> list[str]:
    """Flatten a pydantic error into ``"field.path: message"`` strings."""
    if isinstance(exc, PydanticValidationError):
        messages = []
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ()))
            messages.append(f"{loc}: {err.get('msg')}" if loc else err["msg"])
        return messages
    return [str(exc)]


# ---------------------------------------------------------------------------
# YAML text
# ---------------------------------------------------------------------------


class _BlockDumper(yaml.SafeDumper):
    """SafeDumper that writes multi-line strings as literal blocks."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.Node:
    if "\n" in data:
        return dumper.represent_scalar(
            "tag:yaml.org,2002:str", data, style="|"
        )
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_BlockDumper.add_representer(str, _represent_str)


def dump_yaml(data: Any) -> str:
    """Serialise *data* as block-style YAML, keys kept in insertion order."""
    return yaml.dump(
        data,
        Dumper=_BlockDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=float("inf"),
    )


def load_yaml(text: str) -> Any:
    """Parse YAML text with the safe loader.

    Raises:
        ValueError: If *text* is not valid YAML.
    """
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid YAML: {exc}") from exc


def dump_content_file(content: ContentFile) -> str:
    """Render a content file.  ``key`` is always present."""
    data: dict[str, Any] = {"key": list(content.key)}
    if content.keysecondary:
        data["keysecondary"] = list(content.keysecondary)
    data["content"] = content.content
    return dump_yaml(data)


def load_content_file(text: str) -> ContentFile:
    """Parse a content file; an empty document is an empty entry."""
    parsed = load_yaml(text) or {}
    if not isinstance(parsed, dict):
        raise ValueError("content file must be a mapping")
    return ContentFile(**parsed)


def dump_index_file(
    book_name: str | None,
    global_settings: GlobalSettings,
    entries: list[IndexEntry | dict[str, Any]],
) -> str:
    """Render ``index.yaml`` with a blank line between entry items.

    Plain dicts are written as given, so hand-added keys survive.
    """
    data: dict[str, Any] = {}
    if book_name is not None:
        data["book_name"] = book_name
    data["global_settings"] = global_settings.model_dump()
    data["entries"] = [
        e.model_dump(exclude_none=True) if isinstance(e, IndexEntry) else e
        for e in entries
    ]
    text = dump_yaml(data)
    return text.replace("\n- ", "\n\n- ")


def load_index_file(
    text: str,
) -> tuple[str | None, GlobalSettings, list[dict[str, Any]]]:
    """Parse ``index.yaml`` into ``(book_name, settings, raw_entries)``.

    Entries are returned raw so the caller can skip malformed items one at
    a time instead of failing the whole file.
    """
    parsed = load_yaml(text) or {}
    if not isinstance(parsed, dict):
        raise ValueError("index.yaml must be a mapping")
    settings = GlobalSettings(**(parsed.get("global_settings") or {}))
    raw_entries = parsed.get("entries")
    if not isinstance(raw_entries, list):
        raw_entries = []
    return parsed.get("book_name"), settings, raw_entries
