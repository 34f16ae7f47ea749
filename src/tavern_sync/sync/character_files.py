"""On-disk character layout.

A character root holds the long text fields as Markdown so they can be
edited comfortably, and everything else in ``character.yaml``::

    character.yaml          metadata (name, personality, tags, data, ...)
    description.md          description
    scenario.md             scenario
    first_message.md        first_mes
    first_message_02.md     alternate_greetings[0]
    first_message_03.md     alternate_greetings[1]
    card.png                avatar image (pull only)
    linked_worldbooks/<book>/   Lore Book roots
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

from ..errors import MalformedLocalStateError
from ..file_handler import read_file_with_encoding, write_file
from .codec import dump_yaml, load_yaml
from .models import Character

logger = logging.getLogger(__name__)

CHARACTER_FILENAME = "character.yaml"
CARD_FILENAME = "card.png"
LINKED_BOOKS_DIRNAME = "linked_worldbooks"
FIRST_MESSAGE_FILENAME = "first_message.md"

# Markdown file -> character field
TEXT_FILES: dict[str, str] = {
    "description.md": "description",
    "scenario.md": "scenario",
    FIRST_MESSAGE_FILENAME: "first_mes",
}

_GREETING_FILE = re.compile(r"^first_message_(\d+)\.md$")

# Kept out of character.yaml: stored in their own files, or redundant.
_EXCLUDED_FROM_METADATA = frozenset(
    {"description", "scenario", "first_mes", "alternate_greetings", "json_data"}
)


def greeting_filename(index: int) -> str:
    """File name for ``alternate_greetings[index]`` (numbering starts at 02)."""
    return f"first_message_{index + 2:02d}.md"


def greeting_files(project_dir: Path) -> list[Path]:
    """Alternate greeting files in greeting order."""
    found: list[tuple[int, Path]] = []
    if not project_dir.is_dir():
        return []
    for child in project_dir.iterdir():
        match = _GREETING_FILE.match(child.name)
        if match and child.is_file():
            found.append((int(match.group(1)), child))
    return [path for _, path in sorted(found)]


def linked_book_dirs(project_dir: Path) -> list[Path]:
    """Lore Book roots under ``linked_worldbooks/``, sorted by name."""
    root = project_dir / LINKED_BOOKS_DIRNAME
    if not root.is_dir():
        return []
    return sorted(
        (
            child
            for child in root.iterdir()
            if child.is_dir() and not child.name.startswith(".")
        ),
        key=lambda p: p.name,
    )


def character_metadata(character: Character) -> dict[str, Any]:
    """The ``character.yaml`` projection of *character*.

    The embedded ``character_book`` is dropped here; it is written as a
    linked Lore Book instead.
    """
    data = character.model_dump(mode="json", exclude_none=True)
    metadata = {
        k: v for k, v in data.items() if k not in _EXCLUDED_FROM_METADATA
    }
    block = metadata.get("data")
    if isinstance(block, dict):
        block.pop("character_book", None)
    return metadata


def write_character_files(character: Character, target_dir: Path) -> list[str]:
    """Write the text files and ``character.yaml`` for *character*.

    Files for fields that are now empty, and greeting files beyond the
    current count, are removed so a later push does not resurrect them.

    Returns:
        Names of the files written.
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    written: list[str] = []

    for filename, field in TEXT_FILES.items():
        value = getattr(character, field)
        path = target_dir / filename
        if value:
            write_file(path, value)
            written.append(filename)
        elif path.exists():
            path.unlink()
            logger.info("Removed %s (field is empty remotely)", filename)

    keep: set[str] = set()
    for index, greeting in enumerate(character.alternate_greetings):
        filename = greeting_filename(index)
        write_file(target_dir / filename, greeting)
        written.append(filename)
        keep.add(filename)
    for stale in greeting_files(target_dir):
        if stale.name not in keep:
            stale.unlink()
            logger.info("Removed stale greeting file %s", stale.name)

    write_file(
        target_dir / CHARACTER_FILENAME,
        dump_yaml(character_metadata(character)),
    )
    written.append(CHARACTER_FILENAME)
    return written


def read_character_files(project_dir: Path) -> dict[str, Any]:
    """Merge ``character.yaml`` with the Markdown files into one record.

    Raises:
        MalformedLocalStateError: If ``character.yaml`` is missing or is
            not a mapping.
    """
    yaml_path = project_dir / CHARACTER_FILENAME
    if not yaml_path.is_file():
        raise MalformedLocalStateError(
            f"Missing {CHARACTER_FILENAME} in {project_dir}"
        )

    text, _ = read_file_with_encoding(yaml_path)
    try:
        metadata = load_yaml(text)
    except ValueError as exc:
        raise MalformedLocalStateError(f"{yaml_path}: {exc}") from exc
    if not isinstance(metadata, dict):
        raise MalformedLocalStateError(
            f"{yaml_path} must contain a mapping"
        )

    for filename, field in TEXT_FILES.items():
        path = project_dir / filename
        if path.is_file():
            metadata[field], _ = read_file_with_encoding(path)

    greetings = greeting_files(project_dir)
    if greetings:
        metadata["alternate_greetings"] = [
            read_file_with_encoding(path)[0] for path in greetings
        ]
        logger.debug("Loaded %d alternate greetings", len(greetings))

    return metadata
