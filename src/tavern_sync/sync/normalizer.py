"""Canonical text form of an entry, used to decide equality in diffs.

Two entries are equal exactly when their canonical strings are equal.
Remote bookkeeping fields that the local tree never stores are dropped
first so they do not show up as changes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from .models import Entry

IGNORED_FIELDS: frozenset[str] = frozenset(
    {
        "uid",
        "displayIndex",
        "extensions",
        "addMemo",
        "characterFilter",
        "triggers",
        "rescan",
        "ignoreBudget",
        "matchCharacterDepthPrompt",
        "matchCharacterDescription",
        "matchCharacterPersonality",
        "matchCreatorNotes",
        "matchPersonaDescription",
        "matchScenario",
        "useGroupScoring",
        "vectorized",
        # Legacy aliases, already folded into key/keysecondary
        "keys",
        "secondary_keys",
    }
)

ZERO_AS_UNSET_FIELDS: frozenset[str] = frozenset(
    {"sticky", "cooldown", "delay", "role"}
)


@dataclass(frozen=True)
class NormalizationPolicy:
    """Knobs for canonicalisation.

    Attributes:
        zero_means_unset: Drop ``sticky``/``cooldown``/``delay``/``role``
            when they are 0, so 0 and absent compare equal.
        ignored_fields: Field names removed before comparison.
    """

    zero_means_unset: bool = True
    ignored_fields: frozenset[str] = IGNORED_FIELDS


DEFAULT_POLICY = NormalizationPolicy()


def canonical_dict(
    entry: Entry | dict[str, Any],
    policy: NormalizationPolicy = DEFAULT_POLICY,
) -> dict[str, Any]:
    """Return the comparable fields of *entry*, keys sorted."""
    data = (
        entry.model_dump(mode="json") if isinstance(entry, Entry) else entry
    )
    clean: dict[str, Any] = {}
    for name in sorted(data):
        value = data[name]
        if value is None or name in policy.ignored_fields:
            continue
        if (
            policy.zero_means_unset
            and name in ZERO_AS_UNSET_FIELDS
            and value == 0
            and not isinstance(value, bool)
        ):
            continue
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        clean[name] = value
    return clean


def canonical_string(
    entry: Entry | dict[str, Any],
    policy: NormalizationPolicy = DEFAULT_POLICY,
) -> str:
    """Render *entry* as deterministic, indented JSON."""
    return json.dumps(
        canonical_dict(entry, policy),
        indent=2,
        ensure_ascii=False,
        sort_keys=True,
    )
