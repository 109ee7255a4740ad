"""Link graph traversal and relationship scoring.

All functions are pure reads over one VaultIndex snapshot. Unknown notes
never raise: they yield "not found" shaped results (no path, empty lists,
zero scores).
"""

from __future__ import annotations

import heapq
import logging
import math
from collections import deque
from datetime import UTC, datetime, timedelta

from .config import (
    DEFAULT_HUB_MIN_LINKS,
    DEFAULT_MAX_DEPTH,
    HUB_DEGREE_PIVOT,
    HUB_PENALTY_WEIGHT,
    MUTUAL_LINK_SCORE,
    ONE_WAY_LINK_SCORE,
    SAME_FOLDER_SCORE,
    SHARED_NEIGHBOR_SCORE,
    SHARED_TAG_SCORE,
)
from .models import (
    BidirectionalLink,
    ConnectionFactors,
    ConnectionStrength,
    DeadEndNote,
    HubNote,
    LinkReference,
    Note,
    PathResult,
    SharedNeighbor,
    SourceNote,
    StaleNote,
)
from .vault_index import VaultIndex

log = logging.getLogger(__name__)


def _not_found() -> PathResult:
    return PathResult(exists=False, path=[], length=-1)


def shortest_path(
    index: VaultIndex,
    source: str,
    target: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> PathResult:
    """Unweighted shortest path over resolved outlinks (BFS).

    Neighbors are expanded in link-declaration order, so ties resolve the
    same way on every run. Each note is enqueued at most once.

    Args:
        index: Vault snapshot.
        source: Note path, path without extension, or title.
        target: Note path, path without extension, or title.
        max_depth: Maximum number of hops.

    Returns:
        PathResult with exists/path/length; length is -1 when unreachable.
    """
    start = index.resolve_note(source)
    goal = index.resolve_note(target)
    if not start or not goal:
        return _not_found()

    if start == goal:
        return PathResult(exists=True, path=[start], length=0)

    visited = {start}
    queue: deque[list[str]] = deque([[start]])

    while queue:
        current_path = queue.popleft()
        if len(current_path) - 1 >= max_depth:
            continue

        for neighbor in index.neighbors(current_path[-1]):
            if neighbor == goal:
                full_path = [*current_path, neighbor]
                return PathResult(exists=True, path=full_path, length=len(full_path) - 1)
            if neighbor not in visited:
                visited.add(neighbor)
                queue.append([*current_path, neighbor])

    return _not_found()


def hub_penalty(
    out_degree: int,
    weight: float = HUB_PENALTY_WEIGHT,
    pivot: float = HUB_DEGREE_PIVOT,
) -> float:
    """Extra traversal cost for entering a note with many outlinks.

    penalty = weight * ln(1 + out_degree / pivot). Zero for leaf notes,
    strictly increasing in out_degree, and sublinear so huge index notes
    are discouraged without becoming unreachable.
    """
    if out_degree <= 0:
        return 0.0
    return weight * math.log1p(out_degree / pivot)


def weighted_shortest_path(
    index: VaultIndex,
    source: str,
    target: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
    penalty_weight: float = HUB_PENALTY_WEIGHT,
) -> PathResult:
    """Cheapest path where entering a hub note costs more (Dijkstra).

    Edge cost is 1 + hub_penalty(out_degree(target note)). Among equal-cost
    paths, fewer hops win, then discovery order.

    Returns:
        PathResult with cost set; length is -1 when unreachable.
    """
    start = index.resolve_note(source)
    goal = index.resolve_note(target)
    if not start or not goal:
        return _not_found()

    if start == goal:
        return PathResult(exists=True, path=[start], length=0, cost=0.0)

    penalties: dict[str, float] = {}

    def edge_cost(node: str) -> float:
        if node not in penalties:
            penalties[node] = hub_penalty(index.out_degree(node), weight=penalty_weight)
        return 1.0 + penalties[node]

    counter = 0
    heap: list[tuple[float, int, int, str, tuple[str, ...]]] = [(0.0, 0, counter, start, (start,))]
    # Settled per (node, hops) so a cheap-but-long path cannot hide a valid short one
    settled: set[tuple[str, int]] = set()

    while heap:
        cost, hops, _, node, path = heapq.heappop(heap)
        if node == goal:
            return PathResult(exists=True, path=list(path), length=hops, cost=round(cost, 6))
        if (node, hops) in settled or hops >= max_depth:
            continue
        settled.add((node, hops))

        for neighbor in index.neighbors(node):
            if neighbor in path:
                continue
            counter += 1
            heapq.heappush(
                heap,
                (cost + edge_cost(neighbor), hops + 1, counter, neighbor, (*path, neighbor)),
            )

    return _not_found()


def _first_link_lines(index: VaultIndex, path: str) -> dict[str, int]:
    lines: dict[str, int] = {}
    for link in index.outgoing(path):
        if link.path and link.path not in lines:
            lines[link.path] = link.line
    return lines


def common_neighbors(index: VaultIndex, note_a: str, note_b: str) -> list[SharedNeighbor]:
    """Notes that both A and B link to, with the linking line on each side."""
    a = index.resolve_note(note_a)
    b = index.resolve_note(note_b)
    if not a or not b:
        return []

    a_lines = _first_link_lines(index, a)
    shared: list[SharedNeighbor] = []
    for target, b_line in _first_link_lines(index, b).items():
        if target in a_lines:
            shared.append(
                SharedNeighbor(
                    path=target,
                    title=index.notes[target].title,
                    linked_from_a_line=a_lines[target],
                    linked_from_b_line=b_line,
                )
            )
    return shared


def bidirectional_links(index: VaultIndex, note: str | None = None) -> list[BidirectionalLink]:
    """Pairs of notes that link to each other.

    Args:
        index: Vault snapshot.
        note: Restrict to pairs involving this note. All pairs when omitted.

    Returns:
        One entry per unordered pair.
    """
    if note is not None:
        start = index.resolve_note(note)
        if not start:
            return []
        candidates = [start]
    else:
        candidates = list(index.notes)

    seen: set[tuple[str, str]] = set()
    results: list[BidirectionalLink] = []
    for a in candidates:
        for b, a_to_b_line in _first_link_lines(index, a).items():
            if b == a:
                continue
            b_to_a_line = _first_link_lines(index, b).get(a)
            if b_to_a_line is None:
                continue
            pair_key = (min(a, b), max(a, b))
            if pair_key in seen:
                continue
            seen.add(pair_key)
            results.append(
                BidirectionalLink(note_a=a, note_b=b, a_to_b_line=a_to_b_line, b_to_a_line=b_to_a_line)
            )
    return results


def connection_strength(index: VaultIndex, note_a: str, note_b: str) -> ConnectionStrength:
    """Additive relationship score between two notes with itemized factors.

    mutual link +3 (one-way +1), +1 per shared tag, +0.5 per shared outlink,
    +1 when both live in the same non-root folder.
    """
    a = index.resolve_note(note_a)
    b = index.resolve_note(note_b)
    if not a or not b:
        return ConnectionStrength(note_a=note_a, note_b=note_b)

    factors = ConnectionFactors()
    score = 0.0

    a_links_b = b in index.neighbors(a)
    b_links_a = a in index.neighbors(b)
    if a_links_b and b_links_a:
        factors.mutual_link = True
        score += MUTUAL_LINK_SCORE
    elif a_links_b or b_links_a:
        factors.one_way_link = True
        score += ONE_WAY_LINK_SCORE

    tags_a = set(index.notes[a].tags)
    for tag in index.notes[b].tags:
        if tag in tags_a and tag not in factors.shared_tags:
            factors.shared_tags.append(tag)
            score += SHARED_TAG_SCORE

    factors.shared_outlinks = len(common_neighbors(index, a, b))
    score += factors.shared_outlinks * SHARED_NEIGHBOR_SCORE

    folder_a = index.folder(a)
    if folder_a and folder_a == index.folder(b):
        factors.same_folder = True
        score += SAME_FOLDER_SCORE

    return ConnectionStrength(note_a=a, note_b=b, score=score, factors=factors)


# ─────────────────────────────────────────────────────────────────────────────
# Link listings
# ─────────────────────────────────────────────────────────────────────────────


def backlinks_for_note(index: VaultIndex, note: str) -> list[LinkReference]:
    path = index.resolve_note(note)
    if not path:
        return []
    return [LinkReference(path=b.source, line=b.line) for b in index.backlinks_to(path)]


def forward_links_for_note(index: VaultIndex, note: str) -> list[LinkReference]:
    """Outlinks of a note with resolution status; dead links report exists=False."""
    path = index.resolve_note(note)
    if not path:
        return []
    return [
        LinkReference(
            path=link.path or link.target,
            line=link.line,
            exists=link.path is not None,
            target=link.target,
        )
        for link in index.outgoing(path)
    ]


def find_hub_notes(index: VaultIndex, min_links: int = DEFAULT_HUB_MIN_LINKS) -> list[HubNote]:
    """Notes whose backlinks plus outlinks reach min_links, most connected first."""
    hubs = []
    for note in index.notes.values():
        backlink_count = len(index.backlinks_to(note.path))
        forward_count = len(note.outlinks)
        if backlink_count + forward_count >= min_links:
            hubs.append(
                HubNote(
                    path=note.path,
                    title=note.title,
                    backlink_count=backlink_count,
                    forward_link_count=forward_count,
                )
            )
    hubs.sort(key=lambda h: (-(h.backlink_count + h.forward_link_count), h.path))
    return hubs


def find_orphan_notes(index: VaultIndex, folder: str | None = None) -> list[Note]:
    """Notes nobody links to, most recently modified first."""
    orphans = [
        note
        for note in index.notes.values()
        if (not folder or note.path.startswith(folder)) and not index.backlinks_to(note.path)
    ]
    orphans.sort(key=lambda n: (n.modified, n.path), reverse=True)
    return orphans


def find_dead_ends(index: VaultIndex, folder: str | None = None, min_backlinks: int = 1) -> list[DeadEndNote]:
    """Notes with at least min_backlinks backlinks and no outlinks, most linked first."""
    dead_ends = []
    for note in index.notes.values():
        if folder and not note.path.startswith(folder):
            continue
        if note.outlinks:
            continue
        backlink_count = len(index.backlinks_to(note.path))
        if backlink_count >= min_backlinks:
            dead_ends.append(DeadEndNote(path=note.path, title=note.title, backlink_count=backlink_count))
    dead_ends.sort(key=lambda d: (-d.backlink_count, d.path))
    return dead_ends


def find_sources(index: VaultIndex, folder: str | None = None, min_outlinks: int = 1) -> list[SourceNote]:
    """Notes with at least min_outlinks outlinks that nothing links to, most outlinks first.

    Dead outlinks count: a note full of links to notes not written yet is
    still a source.
    """
    sources = []
    for note in index.notes.values():
        if folder and not note.path.startswith(folder):
            continue
        if len(note.outlinks) >= min_outlinks and not index.backlinks_to(note.path):
            sources.append(SourceNote(path=note.path, title=note.title, outlink_count=len(note.outlinks)))
    sources.sort(key=lambda s: (-s.outlink_count, s.path))
    return sources


def find_stale_notes(
    index: VaultIndex,
    days: int,
    min_backlinks: int = 0,
    now: datetime | None = None,
) -> list[StaleNote]:
    """Notes untouched for more than `days` days.

    Ordered by backlink count so the stale notes others depend on come first,
    then by how long they have gone without an edit.
    """
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=days)
    stale = []
    for note in index.notes.values():
        if note.modified >= cutoff:
            continue
        backlink_count = len(index.backlinks_to(note.path))
        if backlink_count < min_backlinks:
            continue
        stale.append(
            StaleNote(
                path=note.path,
                title=note.title,
                backlink_count=backlink_count,
                days_since_modified=(now - note.modified).days,
                modified=note.modified,
            )
        )
    stale.sort(key=lambda s: (-s.backlink_count, -s.days_since_modified, s.path))
    return stale
