"""Wikilink suggestions, link validation and stub discovery.

suggest_wikilinks scans prose for two kinds of candidates:

- mentions of existing entities (titles and aliases) that are not linked yet
- prospects: names that look like entities but have no backing note, found
  through dead link targets and proper-noun/CamelCase detection

Matches never overlap front matter, existing [[links]], code, URLs,
headings, footnote definitions or HTML.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from datetime import UTC, datetime

from .config import (
    DEFAULT_STRICTNESS,
    MIN_ENTITY_NAME_LENGTH,
    PROSPECT_HIGH_BACKLINKS,
    PROSPECT_MIN_BACKLINKS,
    SEMANTIC_MIN_QUERY_LENGTH,
    SEMANTIC_SCORING_LIMIT,
    STUB_DEFAULT_LIMIT,
    STUB_MIN_FREQUENCY,
    STUB_SAMPLE_NOTES,
)
from .edge_weights import entity_edge_weight_map
from .errors import VaultGraphError
from .indexer.base import SemanticChannel
from .models import (
    BrokenLink,
    Confidence,
    LinkSuggestion,
    Prospect,
    ProspectSource,
    StubCandidate,
    Strictness,
    SuggestionResult,
)
from .parser import normalize_link_target
from .scoring import STOPWORDS, score_suggestion, token_sets
from .signals import StoreSignals, entity_boosts, load_store_signals
from .store import StateStore
from .vault_index import VaultIndex

log = logging.getLogger(__name__)

EXCLUSION_PATTERNS = (
    re.compile(r"\A---\r?\n[\s\S]*?\r?\n---"),  # front matter
    re.compile(r"\[\[[^\]]+\]\]"),  # existing wikilinks
    re.compile(r"```[\s\S]*?```|`[^`\n]+`"),  # fenced and inline code
    re.compile(r"https?://[^\s)>\]]+"),  # URLs
    re.compile(r"^#{1,6}\s.*$", re.MULTILINE),  # headings
    re.compile(r"^\[\^[^\]]+\]:.*(?:\r?\n(?![\r\n]).*)*$", re.MULTILINE),  # footnote definitions
    re.compile(r"<!--[\s\S]*?-->"),  # HTML comments
    re.compile(r"<[a-zA-Z][^>]*>[\s\S]*?</[a-zA-Z][^>]*>|<[a-zA-Z][^>]*/>"),  # HTML tags
)

_BOUNDARY = r"""\s.,;:!?()\[\]{}'"<>\-"""

# Two to four capitalized words, e.g. "Acme Corp" or "Jane Q Public"
_PROPER_NOUN = re.compile(r"\b[A-Z][a-z]+(?:[ \t]+[A-Z][a-z]*){1,3}\b")
# CamelCase identifiers, e.g. "PostgreSQL" or "TypeScript"
_CAMEL_CASE = re.compile(r"\b[A-Z][a-z]+[A-Z][A-Za-z]+\b")

# Capitalized words that usually open a sentence rather than name something
_SENTENCE_STARTERS = frozenset(
    {
        "a", "an", "and", "as", "at", "but", "by", "for", "if", "in", "it",
        "meet", "met", "on", "or", "our", "see", "so", "the", "to", "we",
        "yesterday", "today", "tomorrow",
    }
)


def _mention_pattern(name: str) -> re.Pattern[str]:
    """Case-insensitive match for name with a word boundary on both sides."""
    return re.compile(
        rf"(?<![^{_BOUNDARY}]){re.escape(name)}(?![^{_BOUNDARY}])",
        re.IGNORECASE,
    )


class _SpanMask:
    """Character mask of excluded regions plus spans already claimed."""

    def __init__(self, text: str) -> None:
        self._excluded = bytearray(len(text))
        self._claimed = bytearray(len(text))
        for pattern in EXCLUSION_PATTERNS:
            for match in pattern.finditer(text):
                self._excluded[match.start() : match.end()] = b"\x01" * (match.end() - match.start())

    def is_free(self, start: int, end: int) -> bool:
        return not any(self._excluded[start:end]) and not any(self._claimed[start:end])

    def claim(self, start: int, end: int) -> None:
        self._claimed[start:end] = b"\x01" * (end - start)


def _first_free_match(pattern: re.Pattern[str], text: str, mask: _SpanMask) -> re.Match[str] | None:
    pos = 0
    while (match := pattern.search(text, pos)) is not None:
        if mask.is_free(match.start(), match.end()):
            return match
        pos = match.start() + 1
    return None


def _compile_filter(pattern: str | None) -> re.Pattern[str] | None:
    if pattern is None:
        return None
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise VaultGraphError.invalid_pattern(pattern, str(e)) from e


def find_entity_mentions(
    text: str,
    index: VaultIndex,
    mask: _SpanMask | None = None,
    name_filter: re.Pattern[str] | None = None,
) -> list[LinkSuggestion]:
    """Unlinked mentions of known entities, in text order.

    Longer names are scanned first so "Claude Code" claims its span before
    "Claude" can. Every free occurrence is reported.
    """
    mask = mask or _SpanMask(text)
    names = sorted(
        (key for key in index.entities if len(key) >= MIN_ENTITY_NAME_LENGTH),
        key=lambda key: (-len(key), key),
    )

    matches: list[LinkSuggestion] = []
    for key in names:
        display = index.display_name(key)
        if name_filter is not None and not name_filter.search(display):
            continue
        pattern = _mention_pattern(display)
        pos = 0
        while (match := pattern.search(text, pos)) is not None:
            start, end = match.span()
            if mask.is_free(start, end):
                matches.append(
                    LinkSuggestion(
                        entity=display,
                        path=index.entities[key],
                        start=start,
                        end=end,
                        matched_text=match.group(0),
                    )
                )
                mask.claim(start, end)
            pos = start + 1

    matches.sort(key=lambda m: (m.start, m.end))
    return matches


def _implicit_candidates(text: str) -> list[tuple[str, int, int]]:
    """Proper-noun sequences and CamelCase words as (text, start, end)."""
    found: list[tuple[str, int, int]] = []
    for match in _PROPER_NOUN.finditer(text):
        words = [(word.group(0), match.start() + word.start()) for word in re.finditer(r"\S+", match.group(0))]
        # Drop leading sentence starters ("Yesterday Acme Corp" -> "Acme Corp")
        while words and (words[0][0].lower() in _SENTENCE_STARTERS or words[0][0].lower() in STOPWORDS):
            words.pop(0)
        if len(words) < 2:
            continue
        start = words[0][1]
        found.append((text[start : match.end()], start, match.end()))
    for match in _CAMEL_CASE.finditer(text):
        found.append((match.group(0), match.start(), match.end()))
    found.sort(key=lambda item: (item[1], -item[2]))
    return found


def find_prospects(
    text: str,
    index: VaultIndex,
    mask: _SpanMask,
    linked: set[str],
) -> list[Prospect]:
    """Names with no backing note: popular dead link targets and implicit entities.

    A name found both ways is reported once with source BOTH and high confidence.
    """
    prospects: dict[str, Prospect] = {}

    for target, links in sorted(index.dead_link_targets(), key=lambda item: item[0]):
        if len(links) < PROSPECT_MIN_BACKLINKS or target in linked:
            continue
        match = _first_free_match(_mention_pattern(target), text, mask)
        if match is None:
            continue
        prospects[target] = Prospect(
            name=match.group(0),
            start=match.start(),
            end=match.end(),
            matched_text=match.group(0),
            source=ProspectSource.DEAD_LINK,
            confidence=Confidence.HIGH if len(links) >= PROSPECT_HIGH_BACKLINKS else Confidence.MEDIUM,
            backlink_count=len(links),
        )
        mask.claim(match.start(), match.end())

    for name, start, end in _implicit_candidates(text):
        key = normalize_link_target(name)
        if key in linked or key in index.entities:
            continue
        existing = prospects.get(key)
        if existing is not None:
            if existing.source == ProspectSource.DEAD_LINK:
                prospects[key] = existing.model_copy(
                    update={"source": ProspectSource.BOTH, "confidence": Confidence.HIGH}
                )
            continue
        if not mask.is_free(start, end):
            continue
        prospects[key] = Prospect(
            name=name,
            start=start,
            end=end,
            matched_text=name,
            source=ProspectSource.IMPLICIT,
            confidence=Confidence.LOW,
        )
        mask.claim(start, end)

    return sorted(prospects.values(), key=lambda p: (p.start, p.name))


def _store_signals(store: StateStore | None) -> StoreSignals:
    if store is None:
        return StoreSignals()
    try:
        return load_store_signals(store)
    except VaultGraphError as e:
        if not e.is_recoverable:
            raise
        log.warning("Scoring suggestions without store signals: %s", e)
        return StoreSignals()


def _semantic_similarities(semantic: SemanticChannel | None, text: str, limit: int) -> dict[str, float]:
    """Similarity of the text to each entity note, for texts long enough to embed."""
    if semantic is None or len(text.strip()) < SEMANTIC_MIN_QUERY_LENGTH:
        return {}
    try:
        if not semantic.has_index():
            return {}
        hits = semantic.search(semantic.embed(text), limit=limit)
    except VaultGraphError as e:
        if not e.is_recoverable:
            raise
        log.debug("Semantic scoring unavailable: %s", e)
        return {}
    except Exception as e:
        log.warning("Semantic scoring skipped: %s", e)
        return {}
    return {hit.path: hit.score for hit in hits}


def suggest_wikilinks(
    text: str,
    index: VaultIndex,
    detailed: bool = False,
    strictness: Strictness = DEFAULT_STRICTNESS,
    entity_filter: str | None = None,
    include_prospects: bool = True,
    store: StateStore | None = None,
    semantic: SemanticChannel | None = None,
    note_path: str | None = None,
    now: datetime | None = None,
) -> SuggestionResult:
    """Find places in text where wikilinks could be added.

    Args:
        text: Prose to scan.
        index: Snapshot supplying the entity table and dead links.
        detailed: Attach a SuggestionScore to each suggestion and drop the
            ones that fail the strictness threshold.
        strictness: Scoring preset for detailed mode.
        entity_filter: Regex; only entities whose name matches are suggested.
        include_prospects: Also report prospects.
        store: State store supplying feedback, co-occurrence and edge-weight
            boosts in detailed mode.
        semantic: Semantic channel for the similarity boost in detailed mode.
        note_path: Vault path of the note the text belongs to, for the
            cross-folder boost.
        now: Reference time for recency and edge decay (defaults to now).

    Raises:
        VaultGraphError: INVALID_PATTERN for a bad entity_filter, INVALID_ARGUMENT
            for an unknown strictness, STORE_CORRUPTED when the state store is
            unreadable.
    """
    name_filter = _compile_filter(entity_filter)
    if strictness not in ("conservative", "balanced", "aggressive"):
        raise VaultGraphError.invalid_argument(f"Unknown strictness: {strictness}", strictness=strictness)

    mask = _SpanMask(text)
    suggestions = find_entity_mentions(text, index, mask, name_filter)

    if detailed and suggestions:
        now = now or datetime.now(UTC)
        records = {record.path: record for record in index.entity_records}
        content_sets = token_sets(text)
        signals = _store_signals(store)
        edge_map = entity_edge_weight_map(signals.edges, now)
        similarities = _semantic_similarities(semantic, text, max(len(suggestions), SEMANTIC_SCORING_LIMIT))
        scored = []
        for suggestion in suggestions:
            record = records[suggestion.path]
            score = score_suggestion(
                record.name,
                record.aliases,
                record.hub_score,
                text,
                strictness=strictness,
                content_sets=content_sets,
                category=record.category,
                entity_path=record.path,
                note_path=note_path,
                boosts=entity_boosts(index, record, signals, edge_map, now),
                similarity=similarities.get(record.path, 0.0),
            )
            if score.passed:
                scored.append(suggestion.model_copy(update={"score": score}))
        log.debug("Detailed mode kept %d of %d suggestions", len(scored), len(suggestions))
        suggestions = scored

    prospects: list[Prospect] = []
    if include_prospects:
        linked = {normalize_link_target(s.entity) for s in suggestions}
        linked |= {normalize_link_target(s.matched_text) for s in suggestions}
        prospects = find_prospects(text, index, mask, linked)

    return SuggestionResult(suggestions=suggestions, prospects=prospects)


# ─────────────────────────────────────────────────────────────────────────────
# Link validation and stub discovery
# ─────────────────────────────────────────────────────────────────────────────


def validate_links(
    index: VaultIndex,
    path: str | None = None,
    typos_only: bool = False,
) -> list[BrokenLink]:
    """Report wikilinks that do not resolve, with a near-miss suggestion when one exists.

    Args:
        index: Snapshot to check.
        path: Restrict to one note (path or title). Unknown notes yield no results.
        typos_only: Only report broken links that have a suggestion.
    """
    if path is not None:
        resolved = index.resolve_note(path)
        sources: Sequence[str] = [resolved] if resolved else []
    else:
        sources = sorted(index.notes)

    broken: list[BrokenLink] = []
    for source in sources:
        for link in index.outgoing(source):
            if link.path is not None:
                continue
            similar = index.find_similar_entity(link.target)
            if typos_only and similar is None:
                continue
            broken.append(
                BrokenLink(
                    source=source,
                    line=link.line,
                    target=link.target,
                    suggestion=similar.entity if similar else None,
                )
            )
    return broken


def discover_stub_candidates(
    index: VaultIndex,
    min_frequency: int = STUB_MIN_FREQUENCY,
    limit: int = STUB_DEFAULT_LIMIT,
) -> list[StubCandidate]:
    """Dead link targets referenced at least min_frequency times, most referenced first."""
    counts: dict[str, int] = {}
    names: dict[str, str] = {}
    sources: dict[str, list[str]] = {}

    for source in sorted(index.notes):
        for link in index.outgoing(source):
            if link.path is not None:
                continue
            key = normalize_link_target(link.target)
            if not key:
                continue
            counts[key] = counts.get(key, 0) + 1
            names.setdefault(key, link.target.strip())
            note_sources = sources.setdefault(key, [])
            if source not in note_sources:
                note_sources.append(source)

    candidates = [
        StubCandidate(
            name=names[key],
            wikilink_references=count,
            source_notes=len(sources[key]),
            sample_notes=sources[key][:STUB_SAMPLE_NOTES],
        )
        for key, count in counts.items()
        if count >= min_frequency
    ]
    candidates.sort(key=lambda c: (-c.wikilink_references, c.name.lower()))
    return candidates[:limit]
