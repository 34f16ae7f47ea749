"""Scaffold placeholder entries in a Lore Book root."""

from __future__ import annotations

import logging
from pathlib import Path

from ..file_handler import read_file_with_encoding, write_file
from .codec import dump_content_file, dump_index_file, load_index_file
from .local_store import ENTRIES_DIRNAME, INDEX_FILENAME, ContentFileIndex
from .models import ContentFile, GlobalSettings

logger = logging.getLogger(__name__)


def generate_entries(prefix: str, count: int, target_dir: Path) -> list[str]:
    """Create *count* placeholder entries ``<prefix>_1`` .. ``<prefix>_<count>``.

    Each gets ``entries/<id>.yaml`` with empty keys and a placeholder body,
    plus an ``index.yaml`` item (``comment: Generated entry <id>``,
    ``enabled: true``, ``order: 100``).  Ids that already exist in the index or anywhere
    under ``entries/`` are skipped with a warning; nothing is overwritten.
    Existing index items are written back unchanged.

    Args:
        prefix: Id prefix.
        count: Number of entries to create (at least 1).
        target_dir: Lore Book root; created if missing.

    Returns:
        Ids of the entries actually created.

    Raises:
        ValueError: If *count* is below 1 or *prefix* is blank.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    if not prefix or not prefix.strip():
        raise ValueError("prefix cannot be empty")

    entries_dir = target_dir / ENTRIES_DIRNAME
    entries_dir.mkdir(parents=True, exist_ok=True)
    file_index = ContentFileIndex.build(entries_dir)

    index_path = target_dir / INDEX_FILENAME
    book_name: str | None = None
    settings = GlobalSettings()
    items: list[dict] = []
    if index_path.is_file():
        text, _ = read_file_with_encoding(index_path)
        book_name, settings, items = load_index_file(text)
    known = {str(item.get("id")) for item in items if isinstance(item, dict)}

    created: list[str] = []
    for n in range(1, count + 1):
        entry_id = f"{prefix}_{n}"
        if (
            entry_id in known
            or (entries_dir / f"{entry_id}.yaml").exists()
            or (entries_dir / f"{entry_id}.yml").exists()
            or file_index.lookup(entry_id) is not None
        ):
            logger.warning("Skipping existing entry: %s", entry_id)
            continue

        write_file(
            entries_dir / f"{entry_id}.yaml",
            dump_content_file(
                ContentFile(content=f"{prefix} content placeholder\n")
            ),
        )
        items.append(
            {
                "id": entry_id,
                "comment": f"Generated entry {entry_id}",
                "enabled": True,
                "order": 100,
            }
        )
        created.append(entry_id)
        logger.info("Created entries/%s.yaml", entry_id)

    if created:
        write_file(
            index_path,
            dump_index_file(book_name, settings, items),
        )
    return created
