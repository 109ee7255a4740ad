"""Shared scoring signals for recall and detailed link suggestions.

Each function computes one named contribution so callers can report a
decomposed score (see ScoreBreakdown and SuggestionScore).
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from whoosh.analysis import STOP_WORDS
from whoosh.lang.porter import stem

from .config import (
    CROSS_FOLDER_BOOST,
    EDGE_BASELINE_WEIGHT,
    EDGE_WEIGHT_BOOST_CAP,
    EDGE_WEIGHT_BOOST_MULTIPLIER,
    EXACT_TOKEN_SCORE,
    FULL_ALIAS_MATCH_BONUS,
    HUB_BOOST_TIERS,
    LONG_CONTENT_CHARS,
    LONG_CONTENT_FACTOR,
    PHRASE_MATCH_BONUS,
    RECENCY_TIERS,
    SEMANTIC_BOOST_MULTIPLIER,
    SEMANTIC_MIN_SIMILARITY,
    SHORT_CONTENT_CHARS,
    SHORT_CONTENT_FACTOR,
    SHORT_CONTENT_MIN_SCORE,
    STEM_TOKEN_SCORE,
    STRICTNESS_CONFIGS,
    TYPE_BOOSTS,
)
from .models import Strictness, SuggestionScore

if TYPE_CHECKING:
    from .signals import EntityBoosts

# Whoosh's English list plus common filler words that are 4+ characters
STOPWORDS = frozenset(STOP_WORDS) | frozenset(
    {
        "about", "also", "been", "does", "each", "from", "have", "into", "just",
        "like", "more", "much", "only", "other", "over", "some", "such", "than",
        "that", "them", "then", "there", "these", "they", "this", "very", "were",
        "what", "when", "where", "which", "while", "with", "would", "your",
    }
)

_WIKILINK_TEXT = re.compile(r"\[\[([^\]|]+)(?:\|[^\]]+)?\]\]")
_MARKDOWN_CHARS = re.compile(r"[*_`#\[\]()]")
_WORD = re.compile(r"\b[a-z]{4,}\b")


def tokenize(text: str) -> list[str]:
    """Lowercase words of 4+ letters, markdown and link syntax removed, stopwords dropped."""
    clean = _WIKILINK_TEXT.sub(r"\1", text)
    clean = _MARKDOWN_CHARS.sub(" ", clean).lower()
    return [word for word in _WORD.findall(clean) if word not in STOPWORDS]


def token_sets(text: str) -> tuple[set[str], set[str]]:
    """(tokens, stems) for matching against content."""
    tokens = set(tokenize(text))
    return tokens, {stem(t) for t in tokens}


# ─────────────────────────────────────────────────────────────────────────────
# Recall signals
# ─────────────────────────────────────────────────────────────────────────────


def score_text_relevance(query: str, content: str) -> float:
    """+10 per exact query token in content, +5 per stem-only match, +15 for the whole phrase."""
    content_tokens, content_stems = token_sets(content)
    score = 0.0
    for token in tokenize(query):
        if token in content_tokens:
            score += EXACT_TOKEN_SCORE
        elif stem(token) in content_stems:
            score += STEM_TOKEN_SCORE

    phrase = query.strip().lower()
    if phrase and phrase in content.lower():
        score += PHRASE_MATCH_BONUS
    return score


def recency_boost(last_mention: datetime | None, now: datetime | None = None) -> float:
    """Step-decayed boost: recent mentions count more, nothing after a week."""
    if last_mention is None:
        return 0.0
    now = now or datetime.now(UTC)
    if last_mention.tzinfo is None:
        last_mention = last_mention.replace(tzinfo=UTC)
    hours = max(0.0, (now - last_mention).total_seconds() / 3600)
    for max_hours, boost in RECENCY_TIERS:
        if hours < max_hours:
            return float(boost)
    return 0.0


def edge_weight_boost(average_weight: float | None) -> float:
    """min((avg - 1) * 3, 6) for entities whose edges beat the baseline."""
    if average_weight is None or average_weight <= EDGE_BASELINE_WEIGHT:
        return 0.0
    return min((average_weight - EDGE_BASELINE_WEIGHT) * EDGE_WEIGHT_BOOST_MULTIPLIER, EDGE_WEIGHT_BOOST_CAP)


def semantic_boost(similarity: float) -> float:
    """similarity * 15 above the similarity floor, else 0."""
    if similarity < SEMANTIC_MIN_SIMILARITY:
        return 0.0
    return similarity * SEMANTIC_BOOST_MULTIPLIER


# ─────────────────────────────────────────────────────────────────────────────
# Suggestion signals
# ─────────────────────────────────────────────────────────────────────────────


def hub_boost(hub_score: int) -> float:
    for min_backlinks, boost in HUB_BOOST_TIERS:
        if hub_score >= min_backlinks:
            return float(boost)
    return 0.0


def type_boost(category: str) -> float:
    return float(TYPE_BOOSTS.get(category, 0))


def cross_folder_boost(entity_path: str, note_path: str | None) -> float:
    """Boost links that cross top-level folders; root notes never count."""
    if not note_path or "/" not in entity_path or "/" not in note_path:
        return 0.0
    if entity_path.split("/", 1)[0] != note_path.split("/", 1)[0]:
        return float(CROSS_FOLDER_BOOST)
    return 0.0


def adaptive_min_score(content_length: int, base_score: float) -> float:
    """Lower the bar for short notes, raise it for long ones."""
    if content_length < SHORT_CONTENT_CHARS:
        return max(SHORT_CONTENT_MIN_SCORE, math.floor(base_score * SHORT_CONTENT_FACTOR))
    if content_length > LONG_CONTENT_CHARS:
        return math.floor(base_score * LONG_CONTENT_FACTOR)
    return base_score


def _score_name(
    name: str,
    content_tokens: set[str],
    content_stems: set[str],
    config: dict,
) -> tuple[float, int, int, int, list[str]]:
    """(score, matched, exact, total tokens, matched words) for one name."""
    name_tokens = tokenize(name)
    score = 0.0
    matched = 0
    exact = 0
    matched_words: list[str] = []
    for token in name_tokens:
        if token in content_tokens:
            score += config["exact_match_bonus"]
            matched += 1
            exact += 1
            matched_words.append(token)
        elif stem(token) in content_stems:
            score += config["stem_match_bonus"]
            matched += 1
            matched_words.append(token)
    return score, matched, exact, len(name_tokens), matched_words


def score_suggestion(
    name: str,
    aliases: Sequence[str],
    hub_score: int,
    content: str,
    strictness: Strictness = "balanced",
    content_sets: tuple[set[str], set[str]] | None = None,
    category: str = "other",
    entity_path: str = "",
    note_path: str | None = None,
    boosts: EntityBoosts | None = None,
    similarity: float = 0.0,
) -> SuggestionScore:
    """Multi-signal score explaining why an entity fits a piece of content.

    The best of the name and its aliases is kept. Multi-word names must
    match at least the mode's ratio of their words, and conservative mode
    requires an exact word for single-word names. The result reports the
    adaptive minimum score and whether it was cleared.

    Args:
        category: Entity category, for the type boost.
        entity_path: Backing note of the entity, for the cross-folder boost.
        note_path: Note the content belongs to, if any.
        boosts: Recency, co-occurrence, feedback and edge-weight boosts
            (see signals.entity_boosts).
        similarity: Cosine similarity between the content and the entity note.
    """
    config = STRICTNESS_CONFIGS[strictness]
    content_tokens, content_stems = content_sets or token_sets(content)

    best = _score_name(name, content_tokens, content_stems, config)
    for alias in aliases:
        candidate = _score_name(alias, content_tokens, content_stems, config)
        if candidate[0] > best[0]:
            best = candidate
    word_score, matched, exact, total_tokens, matched_words = best

    alias_bonus = 0.0
    for alias in aliases:
        alias_lower = alias.lower()
        if len(alias_lower) >= 4 and " " not in alias_lower and alias_lower in content_tokens:
            alias_bonus = float(FULL_ALIAS_MATCH_BONUS)
            break

    min_score = adaptive_min_score(len(content), config["min_suggestion_score"])
    passed = total_tokens > 0
    if passed and total_tokens > 1 and matched / total_tokens < config["min_match_ratio"]:
        passed = False
    if passed and config["require_multiple_matches"] and total_tokens == 1 and exact == 0:
        passed = False

    result = SuggestionScore(
        exact_matches=exact,
        stem_matches=matched - exact,
        word_score=word_score,
        alias_bonus=alias_bonus,
        type_boost=type_boost(category),
        cross_folder_boost=cross_folder_boost(entity_path, note_path),
        hub_boost=hub_boost(hub_score),
        recency_boost=boosts.recency if boosts else 0.0,
        cooccurrence_boost=boosts.cooccurrence if boosts else 0.0,
        feedback_boost=boosts.feedback if boosts else 0.0,
        edge_weight_boost=boosts.edge_weight if boosts else 0.0,
        semantic_boost=semantic_boost(similarity),
        matched_words=matched_words,
        min_score=min_score,
    )
    result.passed = passed and result.total >= min_score
    return result
