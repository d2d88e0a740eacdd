"""Candidate ranking for broken script references.

Every catalog class is scored by how many of the orphaned component's
field names it declares. Components serialized by Odin carry no ordinary
fields to compare, so Odin-based classes are offered for them regardless.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from unityrelink.catalog import CatalogEntry, ClassCatalog
from unityrelink.reflection import ScriptAsset
from unityrelink.scanner import BrokenReference

# Candidates shown per reference; ranking itself always uses the whole catalog
MAX_DISPLAYED_CANDIDATES = 20


@dataclass(eq=False)
class ScriptCandidate:
    """One catalog class scored against one broken reference."""

    script: ScriptAsset
    matched_fields: list[str] = field(default_factory=list)
    unmatched_fields: list[str] = field(default_factory=list)
    is_addon: bool = False

    @property
    def match_count(self) -> int:
        return len(self.matched_fields)

    @property
    def name(self) -> str:
        return self.script.display_name

    def to_dict(self) -> dict[str, Any]:
        return {
            "script": self.name,
            "path": str(self.script.path) if self.script.path else None,
            "guid": self.script.guid,
            "fileID": self.script.file_id,
            "matched": list(self.matched_fields),
            "unmatched": list(self.unmatched_fields),
            "odin": self.is_addon,
        }


def partition_fields(field_names: Iterable[str], entry: CatalogEntry) -> tuple[list[str], list[str]]:
    """Split field names into those the entry declares and those it does not."""
    matched: list[str] = []
    unmatched: list[str] = []
    for name in field_names:
        (matched if entry.has_field(name) else unmatched).append(name)
    return matched, unmatched


def rank_candidates(
    reference: BrokenReference,
    catalog: ClassCatalog,
    addon_aware: bool = True,
) -> list[ScriptCandidate]:
    """Score every catalog entry against a reference, best first.

    Args:
        reference: The broken reference to find a class for
        catalog: Classes to consider
        addon_aware: Offer Odin-based classes for Odin-serialized references
            even when no plain field matches

    Returns:
        Candidates sorted by (Odin-based, matched count) for Odin-serialized
        references and by matched count otherwise; ties keep catalog order
    """
    if not reference.field_names and not reference.addon_serialized:
        return []

    candidates: list[ScriptCandidate] = []
    for entry in catalog:
        matched, unmatched = partition_fields(reference.field_names, entry)
        addon_match = addon_aware and reference.addon_serialized and entry.is_addon
        if not matched and not addon_match:
            continue
        candidates.append(
            ScriptCandidate(
                script=entry.script,
                matched_fields=matched,
                unmatched_fields=unmatched,
                is_addon=entry.is_addon,
            )
        )

    if reference.addon_serialized:
        candidates.sort(key=lambda c: (c.is_addon, c.match_count), reverse=True)
    else:
        candidates.sort(key=lambda c: c.match_count, reverse=True)
    return candidates


def rank_all(
    references: Iterable[BrokenReference],
    catalog: ClassCatalog,
    addon_aware: bool = True,
) -> None:
    """Fill in the candidates of every reference."""
    for reference in references:
        reference.candidates = rank_candidates(reference, catalog, addon_aware)
