"""Reputation matrix helpers."""

from __future__ import annotations

from typing import Iterable, List, Set, Tuple


def _unique(names: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    ordered: List[str] = []
    for name in names:
        cleaned = (name or "").strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            ordered.append(cleaned)
    return ordered


def missing_pairs(
    heroes: Iterable[str],
    factions: Iterable[str],
    existing: Set[Tuple[str, str]],
) -> List[Tuple[str, str]]:
    """Return (hero, faction) pairs absent from ``existing``, hero-major order."""

    faction_names = _unique(factions)
    missing: List[Tuple[str, str]] = []
    for hero in _unique(heroes):
        for faction in faction_names:
            if (hero, faction) not in existing:
                missing.append((hero, faction))
    return missing


__all__ = ["missing_pairs"]
