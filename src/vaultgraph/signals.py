"""Per-entity usage signals shared by recall and detailed link suggestions."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import NamedTuple

from .models import EdgeWeightRow, EntityRecord
from .parser import normalize_link_target
from .scoring import edge_weight_boost, recency_boost
from .store import StateStore
from .vault_index import VaultIndex


class StoreSignals:
    """Usage signals read from the state store for one request."""

    def __init__(
        self,
        feedback: Mapping[str, float] | None = None,
        cooccurrence: Mapping[str, float] | None = None,
        edges: Sequence[EdgeWeightRow] = (),
    ) -> None:
        self.feedback = feedback or {}
        self.cooccurrence = cooccurrence or {}
        self.edges = edges


class EntityBoosts(NamedTuple):
    recency: float = 0.0
    cooccurrence: float = 0.0
    feedback: float = 0.0
    edge_weight: float = 0.0


def load_store_signals(store: StateStore) -> StoreSignals:
    return StoreSignals(
        feedback=store.entity_boosts("feedback"),
        cooccurrence=store.entity_boosts("cooccurrence"),
        edges=store.edge_weights(),
    )


def last_mention(index: VaultIndex, path: str) -> datetime | None:
    """Most recent modification of the note or any note linking to it."""
    note = index.notes.get(path)
    if note is None:
        return None
    latest = note.modified
    for backlink in index.backlinks_to(path):
        source = index.notes.get(backlink.source)
        if source is not None and source.modified > latest:
            latest = source.modified
    return latest


def entity_boosts(
    index: VaultIndex,
    record: EntityRecord,
    signals: StoreSignals,
    edge_map: Mapping[str, float],
    now: datetime,
) -> EntityBoosts:
    """Recency, co-occurrence, feedback and edge-weight boosts for one entity.

    Store boosts are keyed by lowercase name; the strongest of the title and
    aliases wins. edge_map comes from edge_weights.entity_edge_weight_map.
    """
    names = [record.name.lower(), *(alias.lower() for alias in record.aliases)]
    keys = {normalize_link_target(name) for name in names}
    keys.add(normalize_link_target(record.path))
    averages = [edge_map[key] for key in keys if key in edge_map]

    return EntityBoosts(
        recency=recency_boost(last_mention(index, record.path), now),
        cooccurrence=max((signals.cooccurrence.get(n, 0.0) for n in names), default=0.0),
        feedback=max((signals.feedback.get(n, 0.0) for n in names), default=0.0),
        edge_weight=edge_weight_boost(max(averages) if averages else None),
    )
