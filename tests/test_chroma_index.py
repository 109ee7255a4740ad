"""Tests for the ChromaDB semantic channel.

The embedding model is replaced by a keyword projection so these tests only
need chromadb, not a model download.
"""

import pytest

from vaultgraph.indexer.chroma_index import ChromaIndex

pytestmark = pytest.mark.semantic

AXES = ("kubernetes", "lunch", "deploy")


class KeywordModel:
    """Embeds text as keyword counts over a fixed set of axes."""

    def encode(self, texts, convert_to_numpy=True):
        import numpy as np

        rows = [[text.lower().count(axis) + 0.01 for axis in AXES] for text in texts]
        return np.array(rows, dtype=float)


@pytest.fixture
def chroma(tmp_path) -> ChromaIndex:
    index = ChromaIndex(tmp_path / "chroma")
    index._model = KeywordModel()
    return index


@pytest.fixture
def notes(write_note):
    write_note("Kubernetes.md", "Kubernetes clusters and kubernetes upgrades.")
    write_note("Lunch.md", "Team lunch on Friday, lunch is catered.")


class TestChromaIndex:
    def test_no_index_before_build(self, chroma):
        assert not chroma.has_index()

    def test_index_and_search(self, chroma, notes, build):
        chroma.index_vault(build())
        assert chroma.has_index()

        hits = chroma.search(chroma.embed("kubernetes"), limit=5)
        assert hits[0].path == "Kubernetes.md"
        assert hits[0].title == "Kubernetes"
        assert hits[0].score > 0.9
        assert all(hit.path != "Lunch.md" for hit in hits)

    def test_min_similarity_filters(self, chroma, notes, build):
        chroma.index_vault(build())
        assert chroma.search(chroma.embed("kubernetes"), min_similarity=1.01) == []

    def test_removed_notes_are_dropped(self, chroma, notes, build, vault):
        chroma.index_vault(build())
        (vault / "Lunch.md").unlink()
        chroma.index_vault(build())

        hits = chroma.search(chroma.embed("lunch"), min_similarity=0.0)
        assert [hit.path for hit in hits] == ["Kubernetes.md"]
