"""Recall: one query across entities, notes and remembered facts.

Every candidate carries a ScoreBreakdown so callers can see why it ranked
where it did. Channels run concurrently; a channel that fails on a
recoverable error is skipped and reported, not fatal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import tiktoken

from .config import (
    DEFAULT_RECALL_LIMIT,
    MEMORY_CONFIDENCE_WEIGHT,
    NOTE_MIN_TEXT_SCORE,
    SEMANTIC_MIN_QUERY_LENGTH,
    TOKEN_ENCODING,
)
from .edge_weights import entity_edge_weight_map
from .errors import ErrorCode, VaultGraphError
from .indexer.whoosh_index import make_snippet
from .models import (
    ChannelHit,
    Memory,
    RecallFocus,
    RecallResponse,
    RecallResult,
    ScoreBreakdown,
)
from .scoring import score_text_relevance, semantic_boost
from .signals import StoreSignals, entity_boosts, load_store_signals
from .vault_index import VaultIndex

if TYPE_CHECKING:
    from .engine import QueryContext

log = logging.getLogger(__name__)

FOCUS_VALUES = ("entities", "notes", "memories", "all")

# Cached encoder for token budgets
_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding(TOKEN_ENCODING)
    return _encoder


def count_tokens(text: str) -> int:
    return len(_get_encoder().encode(text))


def score_entities(
    index: VaultIndex,
    query: str,
    signals: StoreSignals,
    now: datetime,
) -> list[RecallResult]:
    """Entities whose name, aliases or summary match the query, with all boosts applied."""
    edge_map = entity_edge_weight_map(signals.edges, now)
    results = []
    for record in index.entity_records:
        summary = make_snippet(index.bodies.get(record.path, ""))
        text = score_text_relevance(query, " ".join([record.name, *record.aliases, summary]))
        if text <= 0:
            continue

        boosts = entity_boosts(index, record, signals, edge_map, now)
        results.append(
            RecallResult(
                type="entity",
                id=record.path,
                title=record.name,
                content=summary,
                breakdown=ScoreBreakdown(
                    text_relevance=text,
                    recency_boost=boosts.recency,
                    cooccurrence_boost=boosts.cooccurrence,
                    feedback_boost=boosts.feedback,
                    edge_weight_boost=boosts.edge_weight,
                ),
            )
        )
    return results


def score_notes(query: str, hits: Sequence[ChannelHit]) -> list[RecallResult]:
    """Lexical hits scored on title and snippet. A lexical hit never scores below the floor."""
    return [
        RecallResult(
            type="note",
            id=hit.path,
            title=hit.title,
            content=hit.snippet,
            breakdown=ScoreBreakdown(
                text_relevance=max(float(NOTE_MIN_TEXT_SCORE), score_text_relevance(query, f"{hit.title} {hit.snippet}")),
            ),
        )
        for hit in hits
    ]


def score_memories(query: str, memories: Sequence[Memory]) -> list[RecallResult]:
    """Memories scored on key and value; confidence acts as feedback."""
    return [
        RecallResult(
            type="memory",
            id=memory.key,
            title=memory.key,
            content=memory.value,
            breakdown=ScoreBreakdown(
                text_relevance=score_text_relevance(query, f"{memory.key} {memory.value}"),
                feedback_boost=memory.confidence * MEMORY_CONFIDENCE_WEIGHT,
            ),
        )
        for memory in memories
    ]


def apply_semantic_boosts(
    results: list[RecallResult],
    index: VaultIndex,
    hits: Sequence[ChannelHit],
) -> list[RecallResult]:
    """Add semantic boosts to matching entities; strong hits with no text match become entities."""
    by_id = {result.id: i for i, result in enumerate(results) if result.type == "entity"}
    boosted = list(results)
    for hit in hits:
        boost = semantic_boost(hit.score)
        note = index.notes.get(hit.path)
        if boost <= 0 or note is None:
            continue
        position = by_id.get(hit.path)
        if position is not None:
            current = boosted[position]
            breakdown = current.breakdown.model_copy(
                update={"semantic_boost": current.breakdown.semantic_boost + boost}
            )
            boosted[position] = current.model_copy(update={"breakdown": breakdown})
        else:
            by_id[hit.path] = len(boosted)
            boosted.append(
                RecallResult(
                    type="entity",
                    id=hit.path,
                    title=note.title,
                    content=hit.snippet or make_snippet(index.bodies.get(hit.path, "")),
                    breakdown=ScoreBreakdown(semantic_boost=boost),
                )
            )
    return boosted


def rank_results(results: Sequence[RecallResult]) -> list[RecallResult]:
    """Highest score first, one result per (type, id)."""
    ordered = sorted(results, key=lambda r: (-r.score, r.type, r.id))
    seen: set[str] = set()
    unique = []
    for result in ordered:
        key = f"{result.type}:{result.id}"
        if key in seen:
            continue
        seen.add(key)
        unique.append(result)
    return unique


def apply_token_budget(results: Sequence[RecallResult], max_tokens: int) -> tuple[list[RecallResult], int]:
    """Keep results in order until the budget runs out, always keeping the first."""
    kept: list[RecallResult] = []
    used = 0
    for result in results:
        tokens = count_tokens(f"{result.title}\n{result.content}")
        if kept and used + tokens > max_tokens:
            break
        kept.append(result)
        used += tokens
    return kept, used


async def recall(
    ctx: QueryContext,
    query: str,
    max_results: int = DEFAULT_RECALL_LIMIT,
    focus: RecallFocus = "all",
    entity: str | None = None,
    max_tokens: int | None = None,
    now: datetime | None = None,
) -> RecallResponse:
    """Search entities, notes and memories in one pass.

    Args:
        ctx: Snapshot, store and channels for this request.
        query: Free-text query.
        max_results: Maximum results after deduplication.
        focus: Restrict to one source type, or "all".
        entity: Only recall memories attached to this entity.
        max_tokens: Token budget for titles plus content; lowest-scored
            results are dropped first.
        now: Reference time for recency (defaults to now).

    Raises:
        VaultGraphError: INVALID_ARGUMENT for bad parameters, STORE_CORRUPTED
            when the state store is unreadable.
    """
    if not query.strip():
        raise VaultGraphError.invalid_argument("Recall query must not be empty")
    if focus not in FOCUS_VALUES:
        raise VaultGraphError.invalid_argument(f"Unknown focus: {focus}", focus=focus)
    if max_results < 1:
        raise VaultGraphError.invalid_argument("max_results must be positive", max_results=max_results)
    if max_tokens is not None and max_tokens < 1:
        raise VaultGraphError.invalid_argument("max_tokens must be positive", max_tokens=max_tokens)

    now = now or datetime.now(UTC)
    index = ctx.index
    want_entities = focus in ("entities", "all")
    want_notes = focus in ("notes", "all")
    want_memories = focus in ("memories", "all")

    tasks: dict[str, Any] = {}
    if want_entities:
        tasks["store"] = asyncio.to_thread(load_store_signals, ctx.store)
        if ctx.semantic is not None and len(query.strip()) >= SEMANTIC_MIN_QUERY_LENGTH:
            semantic = ctx.semantic
            tasks["semantic"] = asyncio.to_thread(
                lambda: semantic.search(semantic.embed(query), limit=max_results)
                if semantic.has_index()
                else []
            )
    if want_notes and ctx.lexical is not None:
        lexical = ctx.lexical
        tasks["lexical"] = asyncio.to_thread(lexical.search, query, max_results)
    if want_memories:
        tasks["memories"] = asyncio.to_thread(ctx.store.search_memories, query, entity, max_results * 2)

    names = list(tasks)
    outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)

    skipped: list[str] = []
    gathered: dict[str, Any] = {}
    for name, outcome in zip(names, outcomes, strict=True):
        if isinstance(outcome, VaultGraphError) and outcome.code == ErrorCode.STORE_CORRUPTED:
            raise outcome
        if isinstance(outcome, BaseException):
            log.warning("Recall channel %s skipped: %s", name, outcome)
            skipped.append(name)
            continue
        gathered[name] = outcome

    candidates: list[RecallResult] = []
    if want_entities:
        signals = gathered.get("store", StoreSignals())
        candidates.extend(score_entities(index, query, signals, now))
        if "semantic" in gathered:
            candidates = apply_semantic_boosts(candidates, index, gathered["semantic"])
    if "lexical" in gathered:
        candidates.extend(score_notes(query, gathered["lexical"]))
    if "memories" in gathered:
        candidates.extend(score_memories(query, gathered["memories"]))

    ranked = rank_results(candidates)
    total = len(ranked)
    results = ranked[:max_results]

    token_count = None
    truncated = len(results) < total
    if max_tokens is not None:
        budgeted, token_count = apply_token_budget(results, max_tokens)
        truncated = truncated or len(budgeted) < len(results)
        results = budgeted

    return RecallResponse(
        query=query,
        results=results,
        total_candidates=total,
        token_count=token_count,
        truncated=truncated,
        skipped_channels=skipped,
    )
