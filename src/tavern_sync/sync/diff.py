"""Identity-based comparison of a local Lore Book against the remote one.

Local and remote entries share no stable key: remote uids are
reassigned on every push and local ids are filenames.  Entries are
therefore aligned by *identity*, the stripped ``comment``, with
``__index_<positional key>`` as the fallback for unnamed entries.

Consequences worth knowing:

* Renaming an entry shows up as one removal plus one addition.
* Unnamed entries only line up when they sit at the same position.
* With the default ``last-wins`` policy two entries sharing a name
  collapse to the later one; ``disambiguate`` keeps both as
  ``name``, ``name#2``, ...
"""

from __future__ import annotations

import difflib
import logging
from pathlib import Path
from typing import Literal

from ..errors import NotFoundError
from .local_store import LocalStore
from .models import DiffResult, Entry, LineChange, LoreBook, ModifiedEntry
from .normalizer import DEFAULT_POLICY, NormalizationPolicy, canonical_string
from .remote import RemoteStore, ingest_lorebook

logger = logging.getLogger(__name__)

DuplicatePolicy = Literal["last-wins", "disambiguate"]


def entry_identity(entry: Entry, positional_key: str) -> str:
    """Return the alignment key for *entry*."""
    if entry.comment and entry.comment.strip():
        return entry.comment.strip()
    return f"__index_{positional_key}"


def identity_map(
    book: LoreBook, duplicates: DuplicatePolicy = "last-wins"
) -> dict[str, Entry]:
    """Map identity -> entry for every entry of *book*, in book order."""
    mapped: dict[str, Entry] = {}
    seen: dict[str, int] = {}
    for key, entry in book.keyed_entries():
        identity = entry_identity(entry, key)
        count = seen.get(identity, 0) + 1
        seen[identity] = count
        if count > 1:
            if duplicates == "disambiguate":
                identity = f"{identity}#{count}"
            else:
                logger.debug(
                    "Duplicate identity '%s'; later entry wins", identity
                )
        mapped[identity] = entry
    return mapped


def line_changes(base: str, revision: str) -> list[LineChange]:
    """Line diff of *base* -> *revision* as equal/removed/added runs."""
    a = base.splitlines()
    b = revision.splitlines()
    changes: list[LineChange] = []
    matcher = difflib.SequenceMatcher(a=a, b=b, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            changes.append(LineChange(op="equal", lines=a[i1:i2]))
            continue
        if tag in ("replace", "delete"):
            changes.append(LineChange(op="removed", lines=a[i1:i2]))
        if tag in ("replace", "insert"):
            changes.append(LineChange(op="added", lines=b[j1:j2]))
    return changes


def compare_books(
    local: LoreBook,
    remote: LoreBook,
    book_name: str,
    policy: NormalizationPolicy = DEFAULT_POLICY,
    duplicates: DuplicatePolicy = "last-wins",
) -> DiffResult:
    """Compare two in-memory books.  The remote side is the diff base."""
    local_map = identity_map(local, duplicates)
    remote_map = identity_map(remote, duplicates)

    added_locally = [i for i in local_map if i not in remote_map]
    added_remotely = [i for i in remote_map if i not in local_map]

    modified: list[ModifiedEntry] = []
    for identity, local_entry in local_map.items():
        remote_entry = remote_map.get(identity)
        if remote_entry is None:
            continue
        local_text = canonical_string(local_entry, policy)
        remote_text = canonical_string(remote_entry, policy)
        if local_text != remote_text:
            modified.append(
                ModifiedEntry(
                    id=identity,
                    changes=line_changes(remote_text, local_text),
                )
            )

    return DiffResult(
        book_name=book_name,
        added_locally=added_locally,
        added_remotely=added_remotely,
        modified=modified,
    )


class DiffEngine:
    """Read-only comparison of local book directories against the remote.

    Args:
        remote: Remote store to fetch from.
        local_store: Reader for the local tree.
        policy: Canonicalisation options.
        duplicates: Duplicate-identity policy.
    """

    def __init__(
        self,
        remote: RemoteStore,
        local_store: LocalStore | None = None,
        policy: NormalizationPolicy = DEFAULT_POLICY,
        duplicates: DuplicatePolicy = "last-wins",
    ) -> None:
        self.remote = remote
        self.local_store = local_store or LocalStore()
        self.policy = policy
        self.duplicates = duplicates

    def compare(self, local_dir: Path, remote_name: str) -> DiffResult:
        """Diff the book at *local_dir* against remote book *remote_name*.

        Raises:
            NotFoundError: If the remote book does not exist.
            RemoteError: If the fetch fails.
            ValidationError: If the local book is invalid.
        """
        local_book = self.local_store.read_lorebook(local_dir)

        payload = self.remote.fetch_lorebook(remote_name)
        if payload is None:
            raise NotFoundError(f"Remote Lore Book '{remote_name}' not found")
        remote_book = ingest_lorebook(payload, remote_name).book

        result = compare_books(
            local_book,
            remote_book,
            remote_name,
            policy=self.policy,
            duplicates=self.duplicates,
        )
        logger.info(
            "Compared '%s': %d local-only, %d remote-only, %d modified",
            remote_name,
            len(result.added_locally),
            len(result.added_remotely),
            len(result.modified),
        )
        return result
