"""
Resolves the free-text car names used by P1Doks to iRacing setup folder names.

Matching runs in strict tier order and the first tier that matches wins:

1. exact name, ignoring case
2. one name contains the other, ignoring case
3. at least two overlapping words
4. a sanitized form of the name itself (never fails, flagged as unmatched)

Within a tier, ties go to the entry that comes first in the mapping.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

MIN_WORD_OVERLAP = 2
FALLBACK_FOLDER = "unknown"

_NON_FOLDER_CHARS = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


class MatchTier(Enum):
    """The strategy that produced a resolution."""

    EXACT = "exact"
    CONTAINMENT = "containment"
    TOKEN_OVERLAP = "token_overlap"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ResolutionResult:
    """The folder chosen for a car name, and how it was chosen."""

    folder_id: str
    matched: bool
    matched_name: Optional[str] = None
    tier: MatchTier = MatchTier.FALLBACK


def sanitize_folder_id(name: str) -> str:
    """
    Derives a folder name from a car name: lower-cased, with everything but
    letters, digits and whitespace removed, then all whitespace removed.
    """
    folder = _NON_FOLDER_CHARS.sub("", name.lower())
    return _WHITESPACE.sub("", folder) or FALLBACK_FOLDER


def merge_mappings(
    base: Mapping[str, str], override: Optional[Mapping[str, str]] = None
) -> dict[str, str]:
    """Merges two mappings; override entries win on key collision."""
    return {**base, **(override or {})}


def _match_exact(candidate: str, mapping: Mapping[str, str]) -> Optional[str]:
    upper = candidate.upper()
    for name in mapping:
        if name.upper() == upper:
            return name
    return None


def _match_containment(candidate: str, mapping: Mapping[str, str]) -> Optional[str]:
    upper = candidate.upper()
    if not upper:
        return None
    for name in mapping:
        name_upper = name.upper()
        if name_upper and (name_upper in upper or upper in name_upper):
            return name
    return None


def _overlap_score(candidate_words: list[str], name_words: list[str]) -> int:
    """Counts candidate words that contain, or are contained in, a name word."""
    return sum(
        1
        for word in candidate_words
        if any(name_word in word or word in name_word for name_word in name_words)
    )


def _match_token_overlap(
    candidate: str, mapping: Mapping[str, str]
) -> Optional[str]:
    candidate_words = candidate.upper().split()
    best_name = None
    best_score = 0

    for name in mapping:
        score = _overlap_score(candidate_words, name.upper().split())
        if score > best_score and score >= MIN_WORD_OVERLAP:
            best_name = name
            best_score = score

    return best_name


_TIERS = (
    (MatchTier.EXACT, _match_exact),
    (MatchTier.CONTAINMENT, _match_containment),
    (MatchTier.TOKEN_OVERLAP, _match_token_overlap),
)


def resolve(candidate: str, mapping: Mapping[str, str]) -> ResolutionResult:
    """
    Maps a car name to a folder using the reference mapping.

    Args:
        candidate: The car name as published by P1Doks.
        mapping: Canonical car name -> iRacing folder name.

    Returns:
        The resolution. When no tier matches, the folder is derived from the
        name itself and `matched` is False so it can be reviewed by hand.
    """
    for tier, matcher in _TIERS:
        if (name := matcher(candidate, mapping)) is not None:
            return ResolutionResult(
                folder_id=mapping[name], matched=True, matched_name=name, tier=tier
            )

    return ResolutionResult(folder_id=sanitize_folder_id(candidate), matched=False)
