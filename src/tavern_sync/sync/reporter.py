"""Report formatting for compare, pull and push results.

- ``format_status`` -- one line per differing entry.
- ``format_diff`` -- line-level changes of modified entries.
- ``diff_to_json`` -- structured dict for tool output.
- ``format_pull_result`` / ``format_push_result`` -- one-paragraph summaries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import DiffResult, PullResult, PushResult

from .models import ProjectKind

_OP_PREFIX = {"added": "+ ", "removed": "- ", "equal": "  "}

# ------------------------------------------------------------------
# Compare output
# ------------------------------------------------------------------


def format_status(result: DiffResult) -> str:
    """Summarise a comparison as ``[+]`` / ``[-]`` / ``[~]`` lines.

    ``[+]`` exists only locally (a push would create it), ``[-]`` only
    remotely (a push would delete it), ``[~]`` differs.

    Args:
        result: Outcome of ``DiffEngine.compare``.

    Returns:
        Multi-line formatted string.
    """
    lines = [f"Lore Book '{result.book_name}'"]
    if not result.has_changes:
        lines.append("  (No changes)")
        return "\n".join(lines)

    for identity in result.added_locally:
        lines.append(f"  [+] {identity}")
    for modified in result.modified:
        lines.append(f"  [~] {modified.id}")
    for identity in result.added_remotely:
        lines.append(f"  [-] {identity}")
    return "\n".join(lines)


def format_diff(result: DiffResult, entry: str | None = None) -> str:
    """Render line changes of modified entries.

    Lines are prefixed ``+ `` (local), ``- `` (remote) or two spaces.

    Args:
        result: Outcome of ``DiffEngine.compare``.
        entry: Only show this identity when given.
    """
    modified = [
        m for m in result.modified if entry is None or m.id == entry
    ]
    if not modified:
        return "(No changes)"

    lines: list[str] = []
    for item in modified:
        lines.append(f"=== {item.id} ===")
        for change in item.changes:
            prefix = _OP_PREFIX[change.op]
            lines.extend(f"{prefix}{line}" for line in change.lines)
        lines.append("")
    return "\n".join(lines).rstrip()


def diff_to_json(result: DiffResult) -> dict:
    """Convert a comparison to a structured dict for JSON serialisation."""
    return {
        "book_name": result.book_name,
        "has_changes": result.has_changes,
        "counts": {
            "added_locally": len(result.added_locally),
            "added_remotely": len(result.added_remotely),
            "modified": len(result.modified),
        },
        "added_locally": list(result.added_locally),
        "added_remotely": list(result.added_remotely),
        "modified": [
            {
                "id": m.id,
                "changes": [
                    {"op": c.op, "lines": list(c.lines)} for c in m.changes
                ],
            }
            for m in result.modified
        ],
    }


# ------------------------------------------------------------------
# Pull / push summaries
# ------------------------------------------------------------------


def format_pull_result(result: PullResult) -> str:
    if result.kind == ProjectKind.CHARACTER:
        lines = [f"Pulled Character '{result.name}' to {result.target_dir}"]
        if result.avatar_saved:
            lines.append("  Saved card.png")
        for book in result.linked_books:
            lines.append(
                f"  Linked Lore Book '{book}' ({result.entry_count} entries)"
            )
    else:
        lines = [
            f"Pulled {result.entry_count} entries of '{result.name}' "
            f"to {result.target_dir}"
        ]
    if result.removed_files:
        lines.append(f"  Removed {len(result.removed_files)} orphaned files:")
        lines.extend(f"    {name}" for name in result.removed_files)
    if result.dropped_entries:
        lines.append(
            f"  Dropped {len(result.dropped_entries)} invalid remote entries:"
        )
        lines.extend(f"    {label}" for label in result.dropped_entries)
    return "\n".join(lines)


def format_push_result(result: PushResult) -> str:
    if result.kind == ProjectKind.CHARACTER:
        lines = [f"Pushed Character '{result.name}'"]
        for book in result.linked_books:
            lines.append(f"  Linked Lore Book '{book}'")
        return "\n".join(lines)
    return f"Pushed {result.entry_count} entries to '{result.name}'"
