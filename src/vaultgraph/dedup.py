"""Entity deduplication: find likely duplicate entities and track dismissals."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

from rapidfuzz.distance import Levenshtein

from .config import (
    EDIT_DISTANCE_BASE_CONFIDENCE,
    EDIT_DISTANCE_MAX_RATIO,
    EDIT_DISTANCE_MIN_LENGTH,
    EDIT_DISTANCE_RATIO_WEIGHT,
    EXACT_MATCH_CONFIDENCE,
    NORMALIZED_MATCH_CONFIDENCE,
    NORMALIZED_MIN_LENGTH,
    SUBSTRING_BASE_CONFIDENCE,
    SUBSTRING_MIN_LENGTH,
    SUBSTRING_MIN_RATIO,
    SUBSTRING_RATIO_WEIGHT,
)
from .models import EntityRecord, MatchType, MergeCandidate, MergeSuggestions
from .store import StateStore, dismissal_key

log = logging.getLogger(__name__)

_PUNCTUATION = re.compile(r"[^\w\s]|_")


def normalize_name(name: str) -> str:
    """Lowercase, drop punctuation and a trailing js/ts suffix.

    React, ReactJS and React.js all normalize to "react".
    """
    normalized = _PUNCTUATION.sub("", name.lower()).strip()
    normalized = re.sub(r"js$", "", normalized)
    normalized = re.sub(r"ts$", "", normalized)
    return normalized


def match_names(name_a: str, name_b: str) -> tuple[MatchType, float, str] | None:
    """Classify how similar two entity names are.

    Checks run in priority order and the first hit wins:
    exact (case-insensitive), normalized, substring, edit distance.

    Returns:
        (match type, confidence, reason) or None when the names look unrelated.
    """
    a_lower = name_a.lower()
    b_lower = name_b.lower()

    if a_lower == b_lower:
        return MatchType.EXACT, EXACT_MATCH_CONFIDENCE, "exact name match (case-insensitive)"

    a_norm = normalize_name(name_a)
    b_norm = normalize_name(name_b)
    if a_norm == b_norm and len(a_norm) >= NORMALIZED_MIN_LENGTH:
        return MatchType.NORMALIZED, NORMALIZED_MATCH_CONFIDENCE, "normalized name match"

    if len(a_lower) >= SUBSTRING_MIN_LENGTH and len(b_lower) >= SUBSTRING_MIN_LENGTH:
        if a_lower in b_lower or b_lower in a_lower:
            ratio = min(len(a_lower), len(b_lower)) / max(len(a_lower), len(b_lower))
            if ratio > SUBSTRING_MIN_RATIO:
                confidence = SUBSTRING_BASE_CONFIDENCE + ratio * SUBSTRING_RATIO_WEIGHT
                return MatchType.SUBSTRING, confidence, "substring match"

    if len(a_lower) >= EDIT_DISTANCE_MIN_LENGTH and len(b_lower) >= EDIT_DISTANCE_MIN_LENGTH:
        distance = Levenshtein.distance(a_lower, b_lower)
        ratio = distance / max(len(a_lower), len(b_lower))
        if ratio < EDIT_DISTANCE_MAX_RATIO:
            confidence = EDIT_DISTANCE_BASE_CONFIDENCE + (1 - ratio) * EDIT_DISTANCE_RATIO_WEIGHT
            return MatchType.EDIT_DISTANCE, confidence, f"similar name (edit distance {distance})"

    return None


def _order_pair(a: EntityRecord, b: EntityRecord) -> tuple[EntityRecord, EntityRecord]:
    """Return (source, target): merge into the higher hub score, then the longer name."""
    if a.hub_score > b.hub_score or (a.hub_score == b.hub_score and len(a.name) > len(b.name)):
        return b, a
    return a, b


def suggest_entity_merges(
    entities: Sequence[EntityRecord],
    dismissed: Iterable[str] = (),
    limit: int = 50,
) -> MergeSuggestions:
    """Compare every entity pair and report likely duplicates.

    Pairs sharing a path and previously dismissed pairs are skipped.

    Args:
        entities: Entity records (typically VaultIndex.entity_records).
        dismissed: Pair keys from StateStore.dismissed_pairs().
        limit: Maximum suggestions returned.

    Returns:
        Suggestions sorted by confidence (highest first) plus the total count.
    """
    dismissed_keys = set(dismissed)
    seen: set[str] = set()
    candidates: list[MergeCandidate] = []

    for i, a in enumerate(entities):
        for b in entities[i + 1 :]:
            if a.path == b.path:
                continue
            key = dismissal_key(a.path, b.path)
            if key in seen or key in dismissed_keys:
                continue

            match = match_names(a.name, b.name)
            if match is None:
                continue
            seen.add(key)

            match_type, confidence, reason = match
            source, target = _order_pair(a, b)
            candidates.append(
                MergeCandidate(
                    source_name=source.name,
                    source_path=source.path,
                    target_name=target.name,
                    target_path=target.path,
                    match_type=match_type,
                    confidence=round(confidence, 4),
                    reason=reason,
                    source_hub_score=source.hub_score,
                    target_hub_score=target.hub_score,
                )
            )

    # Stable sort keeps discovery order among equal confidences
    candidates.sort(key=lambda c: -c.confidence)
    log.debug("Found %d merge candidates among %d entities", len(candidates), len(entities))
    return MergeSuggestions(suggestions=candidates[:limit], total_candidates=len(candidates))


def dismiss_merge(store: StateStore, candidate: MergeCandidate) -> str:
    """Permanently dismiss a merge suggestion and return its pair key."""
    return store.record_dismissal(
        source_path=candidate.source_path,
        target_path=candidate.target_path,
        source_name=candidate.source_name,
        target_name=candidate.target_name,
        reason=candidate.reason,
    )
