"""Snapshot lifecycle: build, publish and hand out consistent query contexts."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .config import get_index_root, get_vault_root
from .errors import ErrorCode, VaultGraphError
from .indexer import semantic_deps_available
from .indexer.base import LexicalChannel, SemanticChannel
from .store import StateStore
from .vault_index import VaultIndex, build_vault_index

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryContext:
    """Everything one request reads, captured once so it never sees a later rebuild."""

    index: VaultIndex
    store: StateStore
    lexical: LexicalChannel | None = None
    semantic: SemanticChannel | None = None


class VaultEngine:
    """Owns the current VaultIndex and swaps in a new one on every rebuild.

    Rebuilds run to completion before the new snapshot is published with a
    single reference assignment, so readers see either the old snapshot or
    the new one. A second rebuild started while one is running is rejected
    with REBUILD_IN_PROGRESS rather than queued.
    """

    def __init__(
        self,
        vault_root: Path,
        store: StateStore,
        lexical: LexicalChannel | None = None,
        semantic: SemanticChannel | None = None,
    ) -> None:
        self.vault_root = vault_root
        self.store = store
        self.lexical = lexical
        self.semantic = semantic
        self._index: VaultIndex | None = None
        self._rebuild_lock = threading.Lock()

    @classmethod
    def from_config(cls, vault_root: Path | None = None) -> VaultEngine:
        """Engine with the default on-disk channels for a vault."""
        from .indexer.whoosh_index import WhooshIndex

        vault_root = vault_root or get_vault_root()
        index_root = get_index_root(vault_root)
        semantic = None
        if semantic_deps_available():
            from .indexer.chroma_index import ChromaIndex

            semantic = ChromaIndex(index_root / "chroma")
        return cls(
            vault_root,
            StateStore(index_root),
            lexical=WhooshIndex(index_root / "whoosh"),
            semantic=semantic,
        )

    @property
    def rebuilding(self) -> bool:
        return self._rebuild_lock.locked()

    def rebuild(self, now: datetime | None = None, clean: bool = False) -> VaultIndex:
        """Rebuild the snapshot and channel indices, then publish.

        With clean, the lexical index is dropped first instead of updated in place.

        Raises:
            VaultGraphError: REBUILD_IN_PROGRESS when another rebuild holds the lock.
        """
        if not self._rebuild_lock.acquire(blocking=False):
            raise VaultGraphError.rebuild_in_progress()
        try:
            index = build_vault_index(self.vault_root)
            if self.lexical is not None:
                if clean:
                    log.info("Clearing lexical index before rebuild")
                    self.lexical.clear()
                self.lexical.index_vault(index)
            if self.semantic is not None:
                try:
                    self.semantic.index_vault(index)
                except Exception as e:
                    # Semantic search is optional; keep the rebuild going without it.
                    log.warning("Semantic indexing failed: %s", e)
            self._record_edges(index, now)
            self._index = index
            log.info("Published vault snapshot with %d notes", len(index))
            return index
        finally:
            self._rebuild_lock.release()

    def load(self) -> VaultIndex:
        """Build and publish a snapshot, reusing the channel indices already on disk."""
        if not self._rebuild_lock.acquire(blocking=False):
            raise VaultGraphError.rebuild_in_progress()
        try:
            index = build_vault_index(self.vault_root)
            self._index = index
            return index
        finally:
            self._rebuild_lock.release()

    async def arebuild(self, now: datetime | None = None) -> VaultIndex:
        """Run rebuild() off the event loop."""
        return await asyncio.to_thread(self.rebuild, now)

    def _record_edges(self, index: VaultIndex, now: datetime | None) -> None:
        """Give every resolved link a baseline weight. Existing weights are kept."""
        pairs = sorted({(path, target) for path in index.notes for target in index.neighbors(path)})
        try:
            added = self.store.record_edges(pairs, now or datetime.now(UTC))
        except VaultGraphError as e:
            if e.code == ErrorCode.STORE_CORRUPTED:
                raise
            log.warning("Edge weights not recorded: %s", e.message)
            return
        log.debug("Recorded %d new edges (%d total links)", added, len(pairs))

    def snapshot(self) -> VaultIndex:
        """The published snapshot.

        Raises:
            VaultGraphError: INDEX_UNAVAILABLE before the first successful rebuild.
        """
        index = self._index
        if index is None:
            if self.rebuilding:
                raise VaultGraphError.index_unavailable("Vault index is being built")
            raise VaultGraphError.index_unavailable()
        return index

    def context(self) -> QueryContext:
        return QueryContext(
            index=self.snapshot(),
            store=self.store,
            lexical=self.lexical,
            semantic=self.semantic,
        )
