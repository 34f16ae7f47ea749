"""Lore Book and Character sync engine.

Public API for keeping a local file tree and a SillyTavern server in
step.  There is no history and no merge: pull overwrites the local tree
("remote wins") and push replaces the remote collection ("local wins").

Modules:

- ``models``          -- ``Entry``, ``IndexEntry``, ``ContentFile``,
  ``LoreBook``, ``Character`` and the result types.
- ``codec``           -- ``Entry`` <-> index item + content file, YAML text.
- ``local_store``     -- ``LocalStore``: the ``index.yaml`` + ``entries/``
  layout, file lookup and orphan cleanup.
- ``character_files`` -- the character project layout.
- ``remote``          -- ``RemoteStore`` protocol and payload ingestion.
- ``normalizer``      -- canonical form used for equality.
- ``diff``            -- ``DiffEngine``: identity alignment and line diffs.
- ``engine``          -- ``SyncEngine``: pull / push / compare.
- ``watcher``         -- ``ChangeWatcher`` / ``PushGate``: auto-push.
- ``generator``       -- placeholder entry scaffolding.
- ``reporter``        -- human-readable and JSON output.
- ``progress``        -- progress reporter hooks.

Usage example
-------------
::

    from pathlib import Path
    from tavern_sync.config import load_config
    from tavern_sync.core.client import TavernClient
    from tavern_sync.sync import SyncEngine, format_status

    engine = SyncEngine(TavernClient(load_config()))
    engine.pull("World", Path("books/World"))
    # ... edit entries/*.yaml ...
    print(format_status(engine.compare(Path("books/World"), "World")))
    engine.push(Path("books/World"), "World")
"""

from .diff import DiffEngine, compare_books
from .engine import SyncEngine, detect_project_kind
from .generator import generate_entries
from .local_store import LocalStore
from .models import (
    Character,
    DiffResult,
    Entry,
    IndexEntry,
    LoreBook,
    ProjectKind,
    PullResult,
    PushResult,
)
from .normalizer import NormalizationPolicy, canonical_string
from .progress import LoggingReporter, NullReporter, ProgressReporter
from .remote import RemoteStore, ingest_lorebook
from .reporter import (
    diff_to_json,
    format_diff,
    format_pull_result,
    format_push_result,
    format_status,
)
from .watcher import ChangeWatcher, PushGate, watch

__all__ = [
    "ChangeWatcher",
    "Character",
    "DiffEngine",
    "DiffResult",
    "Entry",
    "IndexEntry",
    "LocalStore",
    "LoggingReporter",
    "LoreBook",
    "NormalizationPolicy",
    "NullReporter",
    "ProgressReporter",
    "ProjectKind",
    "PullResult",
    "PushGate",
    "PushResult",
    "RemoteStore",
    "SyncEngine",
    "canonical_string",
    "compare_books",
    "detect_project_kind",
    "diff_to_json",
    "format_diff",
    "format_pull_result",
    "format_push_result",
    "format_status",
    "generate_entries",
    "ingest_lorebook",
    "watch",
]
