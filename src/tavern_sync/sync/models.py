"""Pydantic models for the Lore Book / Character sync engine.

Defines the data contracts used across all sync modules:

- ``Entry``: one Lore Book item in its full (remote) shape.
- ``IndexEntry``: control-plane projection stored in ``index.yaml``.
- ``ContentFile``: data-plane projection stored under ``entries/``.
- ``LoreBook``: name, global settings and the ordered entry list.
- ``Character``: character card fields plus an optional embedded book.
- ``DiffResult`` / ``ModifiedEntry`` / ``LineChange``: compare output.
- ``PullResult`` / ``PushResult``: orchestrator outcomes.

The field defaults declared on ``Entry`` are the only place default values
live.  The codec reads them through ``ENTRY_DEFAULTS`` when it decides
which fields to leave out of ``index.yaml``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

Number = Union[int, float]

POSITION_NAMES: dict[int, str] = {
    0: "before_character_definition",
    1: "after_character_definition",
    2: "before_example_messages",
    3: "after_example_messages",
    4: "before_author_note",
    5: "after_author_note",
    6: "at_depth",
}

POSITION_VALUES: dict[str, int] = {v: k for k, v in POSITION_NAMES.items()}

# Short names used by embedded character books.
POSITION_ALIASES: dict[str, int] = {"before_char": 0, "after_char": 1}


def position_to_int(value: Any) -> Any:
    """Resolve a position name (or numeric string) to its integer value.

    Integers pass through untouched, including unrecognised ones.

    Raises:
        ValueError: If *value* is a string that names no known position.
    """
    if isinstance(value, str):
        name = value.strip()
        if name in POSITION_VALUES:
            return POSITION_VALUES[name]
        if name in POSITION_ALIASES:
            return POSITION_ALIASES[name]
        if name.lstrip("-").isdigit():
            return int(name)
        raise ValueError(
            f"unknown position '{value}'; expected one of {sorted(POSITION_VALUES)}"
        )
    return value


def position_to_name(value: int) -> int | str:
    """Render a position as its name when known, else keep the raw int."""
    return POSITION_NAMES.get(value, value)


class ProjectKind(str, Enum):
    """Kinds of local project roots."""

    LOREBOOK = "lorebook"
    CHARACTER = "character"


# ---------------------------------------------------------------------------
# Lore Book records
# ---------------------------------------------------------------------------


class Entry(BaseModel):
    """A single Lore Book entry in its full, remote-compatible shape.

    Unknown remote fields (``displayIndex``, ``extensions``, ...) are kept
    as extras so they survive a fetch and can be ignored by the normalizer.
    """

    model_config = ConfigDict(extra="allow")

    uid: int = 0
    key: list[str] = Field(default_factory=list)
    keysecondary: list[str] = Field(default_factory=list)
    comment: str | None = None
    content: str = ""

    constant: bool = False
    selective: bool = True
    selectiveLogic: int = 0
    order: int = 100
    position: int = 0
    disable: bool = False
    excludeRecursion: bool = False
    preventRecursion: bool = False
    delayUntilRecursion: bool = False
    probability: Number = 100
    useProbability: bool = True
    depth: int = 4
    group: str = ""
    groupOverride: bool = False
    groupWeight: Number = 100
    automationId: str = ""

    scanDepth: Number | None = None
    caseSensitive: bool | None = None
    matchWholeWords: bool | None = None
    useGroupScoring: bool | None = None
    role: int | None = None
    sticky: Number | None = None
    cooldown: Number | None = None
    delay: Number | None = None

    @field_validator("key", "keysecondary", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("group", "automationId", mode="before")
    @classmethod
    def _null_str(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("position", mode="before")
    @classmethod
    def _named_position(cls, value: Any) -> Any:
        if value is None:
            return 0
        return position_to_int(value)

    @field_validator("probability")
    @classmethod
    def _probability_range(cls, value: Number) -> Number:
        if not 0 <= value <= 100:
            raise ValueError("probability must be between 0 and 100")
        return value


# Behavioral fields carried by index.yaml, in the order they are written.
BEHAVIOR_FIELDS: tuple[str, ...] = (
    "constant",
    "selective",
    "selectiveLogic",
    "position",
    "order",
    "depth",
    "probability",
    "useProbability",
    "group",
    "groupOverride",
    "groupWeight",
    "role",
    "sticky",
    "cooldown",
    "delay",
    "excludeRecursion",
    "preventRecursion",
    "delayUntilRecursion",
    "scanDepth",
    "caseSensitive",
    "matchWholeWords",
    "useGroupScoring",
    "automationId",
)

ENTRY_DEFAULTS: dict[str, Any] = {
    name: field.get_default(call_default_factory=True)
    for name, field in Entry.model_fields.items()
}


class IndexEntry(BaseModel):
    """One ``index.yaml`` item: identity plus non-default behavior.

    Every behavioral field is optional; ``None`` means "inherit the
    ``Entry`` default".  ``enabled`` is the inverse of ``Entry.disable``.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    comment: str | None = None
    enabled: bool | None = None

    constant: bool | None = None
    selective: bool | None = None
    selectiveLogic: int | None = None
    position: int | str | None = None
    order: int | None = None
    depth: int | None = None
    probability: Number | None = None
    useProbability: bool | None = None
    group: str | None = None
    groupOverride: bool | None = None
    groupWeight: Number | None = None
    role: int | None = None
    sticky: Number | None = None
    cooldown: Number | None = None
    delay: Number | None = None
    excludeRecursion: bool | None = None
    preventRecursion: bool | None = None
    delayUntilRecursion: bool | None = None
    scanDepth: Number | None = None
    caseSensitive: bool | None = None
    matchWholeWords: bool | None = None
    useGroupScoring: bool | None = None
    automationId: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ContentFile(BaseModel):
    """One ``entries/**/<id>.yaml`` file: match keys and body only."""

    model_config = ConfigDict(extra="ignore")

    key: list[str] = Field(default_factory=list)
    keysecondary: list[str] = Field(default_factory=list)
    content: str = ""

    @field_validator("key", "keysecondary", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("content", mode="before")
    @classmethod
    def _null_content(cls, value: Any) -> Any:
        return "" if value is None else value


class GlobalSettings(BaseModel):
    """Book-wide settings kept in ``index.yaml``."""

    model_config = ConfigDict(extra="allow")

    recursive: bool = True


class LoreBook(BaseModel):
    """A Lore Book in its canonical in-memory shape.

    ``entries`` is ordered.  ``entry_keys`` holds the positional key of each
    entry (the remote map key or array index, or the local ordinal) and is
    what the diff engine uses for unnamed entries.
    """

    name: str | None = None
    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)
    entries: list[Entry] = Field(default_factory=list)
    entry_keys: list[str] = Field(default_factory=list)

    def keyed_entries(self) -> list[tuple[str, Entry]]:
        """Return ``(positional_key, entry)`` pairs in book order."""
        if len(self.entry_keys) == len(self.entries):
            return list(zip(self.entry_keys, self.entries))
        return [(str(i), e) for i, e in enumerate(self.entries)]

    def to_payload(self) -> dict[str, Any]:
        """Serialise for a whole-collection replace (entries keyed by uid)."""
        return {
            "name": self.name,
            "entries": {
                str(entry.uid): entry.model_dump(mode="json")
                for entry in self.entries
            },
        }


# ---------------------------------------------------------------------------
# Character records
# ---------------------------------------------------------------------------


class CharacterData(BaseModel):
    """The V2 ``data`` block: embedded book and extension settings."""

    model_config = ConfigDict(extra="allow")

    character_book: dict[str, Any] | None = None
    extensions: dict[str, Any] = Field(default_factory=dict)

    @field_validator("extensions", mode="before")
    @classmethod
    def _null_dict(cls, value: Any) -> Any:
        return {} if value is None else value


class Character(BaseModel):
    """A character card.

    Remote-only bookkeeping (``chat``, ``create_date``, ...) is preserved
    as extras.
    """

    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    description: str | None = None
    personality: str | None = None
    scenario: str | None = None
    first_mes: str | None = None
    mes_example: str | None = None
    avatar: str | None = None
    creator_notes: str | None = None
    system_prompt: str | None = None
    post_history_instructions: str | None = None
    alternate_greetings: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    creator: str | None = None
    character_version: str | None = None
    data: CharacterData | None = None

    @field_validator("alternate_greetings", "tags", mode="before")
    @classmethod
    def _null_list(cls, value: Any) -> Any:
        return [] if value is None else value


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


class LineChange(BaseModel):
    """A run of lines that are equal, added (local) or removed (remote)."""

    op: Literal["equal", "added", "removed"]
    lines: list[str]

    model_config = {"frozen": True}


class ModifiedEntry(BaseModel):
    """An entry present on both sides whose canonical forms differ."""

    id: str
    changes: list[LineChange]

    model_config = {"frozen": True}


class DiffResult(BaseModel):
    """Outcome of comparing a local book against a remote one.

    Attributes:
        book_name: Remote book name that was compared.
        added_locally: Identities only present locally.
        added_remotely: Identities only present remotely.
        modified: Identities present on both sides with differing content.
    """

    book_name: str
    added_locally: list[str] = []
    added_remotely: list[str] = []
    modified: list[ModifiedEntry] = []

    model_config = {"frozen": True}

    @property
    def has_changes(self) -> bool:
        """``True`` when any side differs."""
        return bool(
            self.added_locally or self.added_remotely or self.modified
        )


class PullResult(BaseModel):
    """Outcome of a pull into one local root."""

    kind: ProjectKind
    name: str
    target_dir: str
    entry_count: int = 0
    removed_files: list[str] = []
    dropped_entries: list[str] = []
    linked_books: list[str] = []
    avatar_saved: bool = False

    model_config = {"frozen": True}


class PushResult(BaseModel):
    """Outcome of a push from one local root."""

    kind: ProjectKind
    name: str
    entry_count: int = 0
    linked_books: list[str] = []

    model_config = {"frozen": True}
