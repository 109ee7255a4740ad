"""Multi-channel search merged with Reciprocal Rank Fusion.

Lexical, semantic, entity-name and (with a context note) graph-edge
channels each produce their own ranked list. RRF scores every path as

    score(p) = sum(1 / (k + rank)) over the lists containing p

so channels never need their native scores calibrated against each other.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ..config import CHANNEL_FETCH_MULTIPLIER, DEFAULT_SEARCH_LIMIT, MAX_SEARCH_LIMIT, RRF_K
from ..edge_weights import ranked_neighbors
from ..errors import ErrorCode, VaultGraphError
from ..models import ChannelHit, EntityRecord, FusedResult, SearchResponse

if TYPE_CHECKING:
    from ..engine import QueryContext

log = logging.getLogger(__name__)

CHANNEL_ORDER = ("lexical", "semantic", "entity", "graph")

_TOKEN = re.compile(r"\w+")


def reciprocal_rank_fusion(
    ranked_lists: Mapping[str, Sequence[ChannelHit]],
    k: int = RRF_K,
) -> list[FusedResult]:
    """Merge ranked lists by reciprocal rank.

    Args:
        ranked_lists: Channel name to hits, best first. Ranks are 1-based;
            a path repeated within one list counts only at its first rank.
        k: RRF constant. Larger values flatten the advantage of top ranks.

    Returns:
        The union of all lists, highest fused score first. Ties go to the
        item with the better single best rank, then to path order.
    """
    scores: dict[str, float] = defaultdict(float)
    ranks: dict[str, dict[str, int]] = defaultdict(dict)
    first_seen: dict[str, ChannelHit] = {}

    for channel, hits in ranked_lists.items():
        for rank, hit in enumerate(hits, start=1):
            if channel in ranks[hit.path]:
                continue
            ranks[hit.path][channel] = rank
            scores[hit.path] += 1.0 / (k + rank)
            seen = first_seen.get(hit.path)
            if seen is None or (not seen.snippet and hit.snippet):
                first_seen[hit.path] = hit

    ordered = sorted(scores, key=lambda p: (-scores[p], min(ranks[p].values()), p))
    results = []
    for path in ordered:
        hit = first_seen[path]
        results.append(
            FusedResult(
                path=path,
                title=hit.title,
                snippet=hit.snippet,
                score=scores[path],
                channels=list(ranks[path]),
                ranks=dict(ranks[path]),
            )
        )
    return results


def search_entities(
    records: Sequence[EntityRecord],
    query: str,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[ChannelHit]:
    """Rank entities by how well their name or aliases match the query.

    Exact name 3, prefix 2, substring 1.5, plus 0.5 per shared word.
    Ties go to the better-connected entity.
    """
    needle = query.strip().lower()
    if not needle:
        return []
    query_tokens = set(_TOKEN.findall(needle))

    scored: list[tuple[float, EntityRecord]] = []
    for record in records:
        best = 0.0
        for name in (record.name, *record.aliases):
            lowered = name.lower()
            if lowered == needle:
                score = 3.0
            elif lowered.startswith(needle):
                score = 2.0
            elif needle in lowered:
                score = 1.5
            else:
                score = 0.0
            score += 0.5 * len(query_tokens & set(_TOKEN.findall(lowered)))
            best = max(best, score)
        if best > 0:
            scored.append((best, record))

    scored.sort(key=lambda item: (-item[0], -item[1].hub_score, item[1].name.lower()))
    return [
        ChannelHit(path=record.path, title=record.name, score=score)
        for score, record in scored[:limit]
    ]


async def hybrid_search(
    ctx: QueryContext,
    query: str,
    limit: int = DEFAULT_SEARCH_LIMIT,
    context_note: str | None = None,
    now: datetime | None = None,
) -> SearchResponse:
    """Query every available channel concurrently and fuse the results.

    A failing channel contributes nothing and is reported in
    skipped_channels. Store corruption is the exception: it propagates.
    """
    if not query.strip():
        raise VaultGraphError.invalid_argument("Search query must not be empty")
    if not 1 <= limit <= MAX_SEARCH_LIMIT:
        raise VaultGraphError.invalid_argument(
            f"limit must be between 1 and {MAX_SEARCH_LIMIT}", limit=limit
        )

    fetch_limit = limit * CHANNEL_FETCH_MULTIPLIER
    index = ctx.index
    warnings: list[str] = []
    skipped: list[str] = []

    runners: dict[str, Callable[[], list[ChannelHit]]] = {}
    lexical = ctx.lexical
    if lexical is not None:
        runners["lexical"] = lambda: lexical.search(query, limit=fetch_limit)
    else:
        skipped.append("lexical")

    semantic = ctx.semantic
    if semantic is not None:
        runners["semantic"] = lambda: _semantic_hits(semantic, query, fetch_limit)
    else:
        skipped.append("semantic")

    runners["entity"] = lambda: search_entities(index.entity_records, query, fetch_limit)

    if context_note is not None:
        if index.resolve_note(context_note) is None:
            warnings.append(f"Context note not found: {context_note}")
        else:
            moment = now or datetime.now(UTC)
            runners["graph"] = lambda: ranked_neighbors(
                index, ctx.store.edge_weights(), context_note, now=moment
            )[:fetch_limit]

    names = list(runners)
    outcomes = await asyncio.gather(
        *(asyncio.to_thread(runners[name]) for name in names),
        return_exceptions=True,
    )

    ranked_lists: dict[str, list[ChannelHit]] = {}
    for name, outcome in zip(names, outcomes, strict=True):
        if isinstance(outcome, VaultGraphError) and outcome.code == ErrorCode.STORE_CORRUPTED:
            raise outcome
        if isinstance(outcome, BaseException):
            if isinstance(outcome, VaultGraphError) and outcome.is_recoverable:
                log.debug("Channel %s unavailable: %s", name, outcome)
            else:
                log.warning("Channel %s failed: %s", name, outcome)
            skipped.append(name)
            warnings.append(f"{name} channel skipped: {outcome}")
            continue
        ranked_lists[name] = outcome

    fused = reciprocal_rank_fusion(ranked_lists)
    skipped.sort(key=CHANNEL_ORDER.index)
    return SearchResponse(results=fused[:limit], skipped_channels=skipped, warnings=warnings)


def _semantic_hits(semantic, query: str, limit: int) -> list[ChannelHit]:
    if not semantic.has_index():
        raise VaultGraphError.semantic_search_unavailable(
            "Semantic index has not been built", suggestion="Run 'vg reindex' to embed the vault"
        )
    return semantic.search(semantic.embed(query), limit=limit)
