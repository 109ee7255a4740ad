"""ChromaDB-based semantic channel with sentence-transformers embeddings."""

from __future__ import annotations

import logging
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

from ..config import EMBEDDING_MODEL, SEMANTIC_MIN_SIMILARITY, get_index_root
from ..models import ChannelHit
from .whoosh_index import make_snippet

log = logging.getLogger(__name__)

if TYPE_CHECKING:
    import chromadb
    from chromadb.api import ClientAPI
    from sentence_transformers import SentenceTransformer

    from ..vault_index import VaultIndex


class ChromaIndex:
    """Semantic search over whole notes using cosine similarity."""

    COLLECTION_NAME = "vault_notes"

    def __init__(self, index_dir: Path | None = None):
        """Initialize the Chroma index.

        Args:
            index_dir: Directory for index storage. Defaults to INDEX_ROOT/chroma/.
        """
        self._index_dir = index_dir or get_index_root() / "chroma"
        self._client: ClientAPI | None = None
        self._collection: chromadb.Collection | None = None
        self._model: SentenceTransformer | None = None

    def _get_model(self) -> SentenceTransformer:
        """Lazy-load the embedding model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            self._model = SentenceTransformer(EMBEDDING_MODEL)
        return self._model

    def _get_collection(self) -> chromadb.Collection:
        """Get or create the Chroma collection."""
        if self._collection is not None:
            return self._collection

        import chromadb

        self._index_dir.mkdir(parents=True, exist_ok=True)
        self._client = chromadb.PersistentClient(path=str(self._index_dir))
        try:
            self._collection = self._client.get_or_create_collection(
                name=self.COLLECTION_NAME,
                metadata={"hnsw:space": "cosine"},
            )
        except KeyError:
            # Schema incompatibility from a chromadb version change - reset the index
            del self._client
            shutil.rmtree(self._index_dir, ignore_errors=True)
            self._index_dir.mkdir(parents=True, exist_ok=True)
            self._client = chromadb.PersistentClient(path=str(self._index_dir))
            self._collection = self._client.get_or_create_collection(
                name=self.COLLECTION_NAME,
                metadata={"hnsw:space": "cosine"},
            )
        return self._collection

    def _embed(self, texts: list[str]) -> list[list[float]]:
        model = self._get_model()
        embeddings = model.encode(texts, convert_to_numpy=True)
        return embeddings.tolist()

    def has_index(self) -> bool:
        """True once at least one note has been embedded."""
        if not self._index_dir.exists():
            return False
        return self._get_collection().count() > 0

    def embed(self, text: str) -> list[float]:
        return self._embed([text])[0]

    @staticmethod
    def _embedding_text(title: str, body: str, tags: Sequence[str]) -> str:
        """Title, body and tags concatenated so tag-heavy notes still embed well."""
        parts = [title, "\n\n", body]
        if tags:
            parts.append(f"\nTags: {', '.join(tags)}")
        return "".join(parts)

    def index_vault(self, vault: VaultIndex) -> None:
        """Embed every note and drop entries for notes that no longer exist."""
        collection = self._get_collection()

        ids = list(vault.notes)
        if ids:
            texts = [
                self._embedding_text(note.title, vault.bodies.get(path, ""), note.tags)
                for path, note in vault.notes.items()
            ]
            metadatas = [
                {"path": path, "title": note.title, "tags": ",".join(note.tags)}
                for path, note in vault.notes.items()
            ]
            collection.upsert(
                ids=ids,
                embeddings=cast(Any, self._embed(texts)),
                documents=[vault.bodies.get(path, "") for path in ids],
                metadatas=cast(Any, metadatas),
            )

        existing = set(collection.get(include=[])["ids"])
        stale = sorted(existing - set(ids))
        if stale:
            collection.delete(ids=stale)
        log.info("Semantic index rebuilt with %d notes (%d removed)", len(ids), len(stale))

    def search(
        self,
        vector: Sequence[float],
        limit: int = 10,
        min_similarity: float = SEMANTIC_MIN_SIMILARITY,
    ) -> list[ChannelHit]:
        """Nearest notes to an embedding.

        Returns:
            Hits with raw cosine similarity scores, most similar first.
            Results below min_similarity are dropped.
        """
        collection = self._get_collection()
        count = collection.count()
        if count == 0:
            return []

        results = collection.query(
            query_embeddings=[list(vector)],
            n_results=min(limit * 2, count),
            include=cast(Any, ["documents", "metadatas", "distances"]),
        )
        if not results["ids"] or not results["ids"][0]:
            return []

        documents = results["documents"][0] if results["documents"] else []
        metadatas = results["metadatas"][0] if results["metadatas"] else []
        distances = results["distances"][0] if results["distances"] else []

        hits = []
        for i, note_id in enumerate(results["ids"][0]):
            distance = distances[i] if i < len(distances) else 1.0
            # Cosine distance is 1 - similarity
            score = max(0.0, min(1.0, 1.0 - distance))
            if score < min_similarity:
                continue
            meta = metadatas[i] if i < len(metadatas) else {}
            hits.append(
                ChannelHit(
                    path=str(meta.get("path") or note_id),
                    title=str(meta.get("title") or ""),
                    snippet=make_snippet(documents[i] if i < len(documents) else ""),
                    score=score,
                )
            )
        return hits[:limit]
