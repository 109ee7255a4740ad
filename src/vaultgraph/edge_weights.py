"""Time-decayed edge weights.

Stored weights only change through explicit feedback events (see
StateStore.bump_edge_weight). Decay is applied at read time:

    effective = stored * max(0.1, 1 - days_since_update / 180)

so an edge loses weight linearly over about six months and then stays at
10% of its stored value.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import UTC, datetime

from .config import (
    EDGE_BASELINE_WEIGHT,
    EDGE_DECAY_DAYS,
    EDGE_DECAY_FLOOR,
    EDGE_SURFACE_THRESHOLD,
)
from .models import ChannelHit, EdgeWeightRow, SurfacedEdge
from .parser import normalize_link_target
from .vault_index import VaultIndex

SECONDS_PER_DAY = 86400.0


def decay_factor(updated_at: datetime, now: datetime | None = None) -> float:
    """Multiplier in [EDGE_DECAY_FLOOR, 1.0] for an edge last updated at updated_at.

    Timestamps in the future count as zero elapsed days.
    """
    now = now or datetime.now(UTC)
    if updated_at.tzinfo is None:
        updated_at = updated_at.replace(tzinfo=UTC)
    days = max(0.0, (now - updated_at).total_seconds() / SECONDS_PER_DAY)
    return max(EDGE_DECAY_FLOOR, 1.0 - days / EDGE_DECAY_DAYS)


def effective_weight(row: EdgeWeightRow, now: datetime | None = None) -> float:
    return row.weight * decay_factor(row.updated_at, now)


def surface_edges(
    rows: Iterable[EdgeWeightRow],
    threshold: float = EDGE_SURFACE_THRESHOLD,
    now: datetime | None = None,
    source: str | None = None,
) -> list[SurfacedEdge]:
    """Edges whose effective weight exceeds threshold, strongest first."""
    now = now or datetime.now(UTC)
    surfaced = []
    for row in rows:
        if source is not None and row.source != source:
            continue
        weight = effective_weight(row, now)
        if weight > threshold:
            surfaced.append(
                SurfacedEdge(
                    source=row.source,
                    target=row.target,
                    stored_weight=row.weight,
                    effective_weight=weight,
                    updated_at=row.updated_at,
                )
            )
    surfaced.sort(key=lambda e: (-e.effective_weight, e.source, e.target))
    return surfaced


def entity_edge_weight_map(
    rows: Iterable[EdgeWeightRow],
    now: datetime | None = None,
) -> dict[str, float]:
    """Average effective weight of above-baseline edges, per normalized target name."""
    now = now or datetime.now(UTC)
    totals: dict[str, list[float]] = defaultdict(list)
    for row in rows:
        weight = effective_weight(row, now)
        if weight > EDGE_BASELINE_WEIGHT:
            totals[normalize_link_target(row.target)].append(weight)
    return {target: sum(weights) / len(weights) for target, weights in totals.items()}


def ranked_neighbors(
    index: VaultIndex,
    rows: Iterable[EdgeWeightRow],
    context_path: str,
    now: datetime | None = None,
    threshold: float = EDGE_SURFACE_THRESHOLD,
) -> list[ChannelHit]:
    """Notes connected to the context note by weighted edges, strongest first.

    Edges count in either direction. When several edges join the same pair,
    the strongest one wins. Endpoints that no longer resolve are ignored.
    """
    context = index.resolve_note(context_path)
    if not context:
        return []

    strongest: dict[str, float] = {}
    for edge in surface_edges(rows, threshold=threshold, now=now):
        source = index.resolve_note(edge.source)
        target = index.resolve_note(edge.target)
        if not source or not target or source == target:
            continue
        if source == context:
            other = target
        elif target == context:
            other = source
        else:
            continue
        strongest[other] = max(strongest.get(other, 0.0), edge.effective_weight)

    ranked = sorted(strongest.items(), key=lambda item: (-item[1], item[0]))
    return [
        ChannelHit(path=path, title=index.notes[path].title, score=weight)
        for path, weight in ranked
    ]
