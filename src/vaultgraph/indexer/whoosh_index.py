"""Whoosh-based BM25 lexical channel over whole notes."""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from whoosh import index, writing
from whoosh.analysis import StemmingAnalyzer
from whoosh.fields import ID, KEYWORD, TEXT, Schema
from whoosh.qparser import MultifieldParser, OrGroup
from whoosh.query import Term

from ..config import get_index_root
from ..models import ChannelHit

if TYPE_CHECKING:
    from ..vault_index import VaultIndex

log = logging.getLogger(__name__)

# Added to the normalized BM25 score when the whole query appears as a phrase
PHRASE_MATCH_BONUS = 1.0

SNIPPET_LENGTH = 200


def make_snippet(text: str, max_length: int = SNIPPET_LENGTH) -> str:
    """Collapse whitespace and markdown heading marks into a short preview."""
    flat = re.sub(r"\s+", " ", re.sub(r"^#{1,6}\s+", "", text, flags=re.MULTILINE)).strip()
    return flat[:max_length] + "..." if len(flat) > max_length else flat


class WhooshIndex:
    """Keyword search with stemming and a phrase-match bonus."""

    def __init__(self, index_dir: Path | None = None):
        """Initialize the Whoosh index.

        Args:
            index_dir: Directory for index storage. Defaults to INDEX_ROOT/whoosh/.
        """
        self._index_dir = index_dir or get_index_root() / "whoosh"
        self._index: index.Index | None = None
        self._schema = Schema(
            path=ID(stored=True, unique=True),
            title=TEXT(stored=True, analyzer=StemmingAnalyzer(), field_boost=2.0),
            content=TEXT(stored=True, analyzer=StemmingAnalyzer()),
            tags=KEYWORD(stored=True, commas=True, lowercase=True),
        )

    def _ensure_index(self) -> index.Index:
        """Ensure index exists and return it."""
        if self._index is not None:
            return self._index

        self._index_dir.mkdir(parents=True, exist_ok=True)

        if index.exists_in(str(self._index_dir)):
            self._index = index.open_dir(str(self._index_dir))
        else:
            self._index = index.create_in(str(self._index_dir), self._schema)

        return self._index

    def index_vault(self, vault: VaultIndex) -> None:
        """Replace the index contents with every note in the snapshot.

        The CLEAR merge swaps segments on commit, so open searchers keep
        seeing the previous generation until they finish.
        """
        ix = self._ensure_index()
        writer = ix.writer()
        for path, note in vault.notes.items():
            writer.add_document(
                path=path,
                title=note.title,
                content=vault.bodies.get(path, ""),
                tags=",".join(note.tags),
            )
        writer.commit(mergetype=writing.CLEAR)
        log.info("Lexical index rebuilt with %d notes", len(vault.notes))

    def search(self, query: str, limit: int = 10) -> list[ChannelHit]:
        """Search the index.

        Args:
            query: Search query string.
            limit: Maximum number of results.

        Returns:
            Hits ordered by normalized BM25 score plus phrase bonus.
        """
        ix = self._ensure_index()

        with ix.searcher() as searcher:
            parser = MultifieldParser(
                ["title", "content", "tags"],
                schema=self._schema,
                group=OrGroup,
            )

            try:
                parsed_query = parser.parse(query)
            except Exception:
                # If parsing fails, fall back to a single term
                parsed_query = Term("content", query.lower())

            results = searcher.search(parsed_query, limit=limit * 2)
            if not results:
                return []

            phrase_paths: set[str] = set()
            words = re.findall(r"\w+", query)
            if len(words) > 1:
                # Keyword fields store no positions, so phrases only search text fields
                phrase_parser = MultifieldParser(["title", "content"], schema=self._schema)
                phrase_query = phrase_parser.parse('"' + " ".join(words) + '"')
                phrase_paths = {hit["path"] for hit in searcher.search(phrase_query, limit=None)}

            max_score = max(r.score for r in results) or 1.0

            hits = []
            for hit in results:
                score = hit.score / max_score
                if hit["path"] in phrase_paths:
                    score += PHRASE_MATCH_BONUS
                hits.append(
                    ChannelHit(
                        path=hit["path"],
                        title=hit.get("title", ""),
                        snippet=make_snippet(hit.get("content", "")),
                        score=score,
                    )
                )

        hits.sort(key=lambda h: (-h.score, h.path))
        return hits[:limit]

    def doc_count(self) -> int:
        """Return the number of documents in the index."""
        return self._ensure_index().doc_count()

    def clear(self) -> None:
        """Remove all documents from the index."""
        if self._index is not None:
            self._index.close()
            self._index = None

        if self._index_dir.exists():
            shutil.rmtree(self._index_dir)

        self._index_dir.mkdir(parents=True, exist_ok=True)
        self._index = index.create_in(str(self._index_dir), self._schema)
