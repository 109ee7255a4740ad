"""Immutable in-memory snapshot of a vault's notes and link tables.

A VaultIndex is built wholesale from the vault's files and never mutated
afterwards; the engine publishes a fresh one on every rebuild.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from functools import cached_property
from pathlib import Path
from types import MappingProxyType
from typing import NamedTuple

from rapidfuzz.distance import Levenshtein

from .config import SKIP_DIRS
from .models import Backlink, EntityRecord, Note
from .parser import ParseError, normalize_link_target, parse_note, path_key

log = logging.getLogger(__name__)


class ResolvedLink(NamedTuple):
    """An outlink paired with the note it resolves to (None for dead links)."""

    target: str
    line: int
    path: str | None


class SimilarEntity(NamedTuple):
    """Near-miss match for an unresolved link target."""

    path: str
    entity: str
    distance: int


class VaultIndex:
    """Read-only snapshot: notes, entities, backlinks and tags."""

    def __init__(
        self,
        notes: Mapping[str, Note],
        bodies: Mapping[str, str],
        built_at: datetime | None = None,
    ) -> None:
        self.notes: Mapping[str, Note] = MappingProxyType(dict(notes))
        self.bodies: Mapping[str, str] = MappingProxyType(dict(bodies))
        self.built_at = built_at or datetime.now(UTC)

        entities: dict[str, str] = {}
        display: dict[str, str] = {}
        path_keys: dict[str, str] = {}
        for note in self.notes.values():
            path_keys[path_key(note.path)] = note.path
            for name in (note.title, *note.aliases):
                key = normalize_link_target(name)
                # First writer wins for titles and aliases
                if key and key not in entities:
                    entities[key] = note.path
                    display[key] = name

        self.entities: Mapping[str, str] = MappingProxyType(entities)
        self.path_keys: Mapping[str, str] = MappingProxyType(path_keys)
        self._display_names = display

        backlinks: dict[str, list[Backlink]] = {}
        outgoing: dict[str, tuple[ResolvedLink, ...]] = {}
        tags: dict[str, set[str]] = {}
        for note in self.notes.values():
            resolved_links = []
            for link in note.outlinks:
                target_path = self.resolve(link.target)
                key = path_key(target_path) if target_path else normalize_link_target(link.target)
                backlinks.setdefault(key, []).append(Backlink(source=note.path, line=link.line))
                resolved_links.append(ResolvedLink(link.target, link.line, target_path))
            outgoing[note.path] = tuple(resolved_links)
            for tag in note.tags:
                tags.setdefault(tag, set()).add(note.path)

        self.backlinks: Mapping[str, tuple[Backlink, ...]] = MappingProxyType(
            {key: tuple(value) for key, value in backlinks.items()}
        )
        self.tags: Mapping[str, frozenset[str]] = MappingProxyType(
            {tag: frozenset(paths) for tag, paths in tags.items()}
        )
        self._outgoing: Mapping[str, tuple[ResolvedLink, ...]] = MappingProxyType(outgoing)

    def __len__(self) -> int:
        return len(self.notes)

    def __contains__(self, path: object) -> bool:
        return path in self.notes

    # ─────────────────────────────────────────────────────────────────────
    # Resolution
    # ─────────────────────────────────────────────────────────────────────

    def resolve(self, target: str) -> str | None:
        """Resolve wikilink target text to a note path.

        Tries title/alias (case-insensitive), then vault-relative path.
        """
        key = normalize_link_target(target)
        if not key:
            return None
        return self.entities.get(key) or self.path_keys.get(key)

    def resolve_note(self, ref: str) -> str | None:
        """Resolve a caller-supplied note reference (exact path, path or title)."""
        if ref in self.notes:
            return ref
        return self.resolve(ref)

    def display_name(self, key: str) -> str:
        """Original-case name for a lowercase entity key."""
        return self._display_names.get(key, key)

    def find_similar_entity(self, target: str) -> SimilarEntity | None:
        """Find a near-miss entity name for an unresolved target.

        Strict thresholds keep false positives down: targets of 3 chars or
        fewer are skipped, up to 10 chars allow distance 1, longer allow 2.
        """
        normalized = normalize_link_target(target)
        length = len(normalized)
        if length <= 3:
            return None

        max_dist = 1 if length <= 10 else 2
        best: SimilarEntity | None = None
        for entity, path in self.entities.items():
            if abs(len(entity) - length) > max_dist:
                continue
            dist = Levenshtein.distance(normalized, entity, score_cutoff=max_dist)
            if 0 < dist <= max_dist and (best is None or dist < best.distance):
                best = SimilarEntity(path, self.display_name(entity), dist)
                if dist == 1:
                    break
        return best

    # ─────────────────────────────────────────────────────────────────────
    # Link tables
    # ─────────────────────────────────────────────────────────────────────

    def outgoing(self, path: str) -> tuple[ResolvedLink, ...]:
        """All outlinks of a note in declaration order, with resolution."""
        return self._outgoing.get(path, ())

    def neighbors(self, path: str) -> list[str]:
        """Distinct resolved outlink targets in declaration order (no self-loops)."""
        seen: set[str] = set()
        result: list[str] = []
        for link in self.outgoing(path):
            if link.path and link.path != path and link.path not in seen:
                seen.add(link.path)
                result.append(link.path)
        return result

    def out_degree(self, path: str) -> int:
        return len(self.neighbors(path))

    def backlinks_to(self, path: str) -> tuple[Backlink, ...]:
        return self.backlinks.get(path_key(path), ())

    def dead_link_targets(self) -> Iterator[tuple[str, tuple[Backlink, ...]]]:
        """Backlink groups whose key does not resolve to any note."""
        for key, links in self.backlinks.items():
            if key not in self.path_keys and key not in self.entities:
                yield key, links

    # ─────────────────────────────────────────────────────────────────────
    # Entities
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def folder(path: str) -> str:
        return path.rsplit("/", 1)[0] if "/" in path else ""

    def category(self, note: Note) -> str:
        for field in ("type", "category"):
            value = note.frontmatter.get(field)
            if isinstance(value, str) and value.strip():
                return value.strip().lower()
        folder = self.folder(note.path)
        return folder.split("/", 1)[0].lower() if folder else "other"

    @cached_property
    def entity_records(self) -> tuple[EntityRecord, ...]:
        """One record per note, hub score recomputed from this snapshot."""
        return tuple(
            EntityRecord(
                name=note.title,
                path=note.path,
                category=self.category(note),
                aliases=list(note.aliases),
                hub_score=len(self.backlinks_to(note.path)),
            )
            for note in self.notes.values()
        )


def iter_markdown_files(vault_root: Path) -> list[Path]:
    """List markdown files under the vault, sorted, skipping tool directories."""
    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(vault_root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for name in filenames:
            if name.endswith(".md"):
                files.append(Path(dirpath) / name)
    return sorted(files, key=lambda p: p.relative_to(vault_root).as_posix())


def build_vault_index(vault_root: Path) -> VaultIndex:
    """Parse every note in the vault into a fresh VaultIndex.

    Unparsable files are skipped with a warning rather than failing the build.
    """
    notes: dict[str, Note] = {}
    bodies: dict[str, str] = {}
    skipped = 0

    for md_file in iter_markdown_files(vault_root):
        try:
            parsed = parse_note(md_file, vault_root)
        except ParseError as e:
            log.warning("Skipping %s: %s", e.path, e.message)
            skipped += 1
            continue
        notes[parsed.note.path] = parsed.note
        bodies[parsed.note.path] = parsed.body

    index = VaultIndex(notes, bodies)
    log.info("Indexed %d notes from %s (%d skipped)", len(notes), vault_root, skipped)
    return index
