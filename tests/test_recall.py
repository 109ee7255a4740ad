"""Tests for recall scoring and the recall pipeline."""

from datetime import UTC, datetime, timedelta

import pytest

from conftest import FakeLexical, FakeSemantic
from vaultgraph import recall as recall_module
from vaultgraph.engine import QueryContext
from vaultgraph.errors import ErrorCode, VaultGraphError
from vaultgraph.models import ChannelHit, EdgeWeightRow, Memory, RecallResult, ScoreBreakdown
from vaultgraph.recall import (
    StoreSignals,
    apply_semantic_boosts,
    apply_token_budget,
    rank_results,
    recall,
    score_entities,
    score_memories,
    score_notes,
)

# Far enough after the test files are written that recency boosts are zero
LATER = datetime.now(UTC) + timedelta(days=30)


@pytest.fixture
def kube_vault(write_note):
    write_note("Kubernetes.md", "Container orchestration platform.", frontmatter={"aliases": ["k8s"]})
    write_note("Lunch.md", "Team lunch on Friday.")
    write_note("Ops.md", "Cluster upgrades happen quarterly.")


def result(id: str, score: float, type: str = "entity") -> RecallResult:
    return RecallResult(type=type, id=id, title=id, breakdown=ScoreBreakdown(text_relevance=score))


class TestScoreEntities:
    """Entity scoring with store signals."""

    def test_breakdown_sums_all_boosts(self, kube_vault, build):
        signals = StoreSignals(
            feedback={"kubernetes": 2.0},
            cooccurrence={"k8s": 1.0},
            edges=[EdgeWeightRow(source="Ops.md", target="Kubernetes.md", weight=3.0, updated_at=LATER)],
        )
        [entity] = score_entities(build(), "kubernetes", signals, LATER)

        assert entity.id == "Kubernetes.md"
        assert entity.breakdown.text_relevance == 25  # exact token + phrase
        assert entity.breakdown.recency_boost == 0
        assert entity.breakdown.cooccurrence_boost == 1.0
        assert entity.breakdown.feedback_boost == 2.0
        assert entity.breakdown.edge_weight_boost == 6.0
        assert entity.score == pytest.approx(34.0)

    def test_recent_mention_boosts(self, kube_vault, build):
        [entity] = score_entities(build(), "kubernetes", StoreSignals(), datetime.now(UTC))
        assert entity.breakdown.recency_boost == 8

    def test_no_text_match_is_skipped(self, kube_vault, build):
        assert score_entities(build(), "zeppelin", StoreSignals(), LATER) == []


class TestScoreNotesAndMemories:
    def test_lexical_hits_have_a_floor(self):
        [note] = score_notes("kubernetes", [ChannelHit(path="Random.md", title="Random")])
        assert note.breakdown.text_relevance == 10

    def test_memory_confidence_is_feedback(self):
        memory = Memory(key="deploys", value="Deploys happen on Thursday", confidence=0.5, updated_at=LATER)
        [scored] = score_memories("deploys thursday", [memory])
        assert scored.type == "memory"
        assert scored.breakdown.feedback_boost == pytest.approx(2.5)
        assert scored.breakdown.text_relevance == 20


class TestSemanticBoosts:
    def test_boosts_existing_and_adds_new(self, kube_vault, build):
        index = build()
        existing = [result("Kubernetes.md", 10)]
        hits = [
            ChannelHit(path="Kubernetes.md", score=0.5),
            ChannelHit(path="Ops.md", score=0.8, snippet="Cluster upgrades"),
            ChannelHit(path="Lunch.md", score=0.1),
            ChannelHit(path="Gone.md", score=0.9),
        ]
        boosted = {r.id: r for r in apply_semantic_boosts(existing, index, hits)}

        assert set(boosted) == {"Kubernetes.md", "Ops.md"}
        assert boosted["Kubernetes.md"].breakdown.semantic_boost == pytest.approx(7.5)
        assert boosted["Kubernetes.md"].score == pytest.approx(17.5)
        assert boosted["Ops.md"].breakdown.semantic_boost == pytest.approx(12.0)
        assert boosted["Ops.md"].content == "Cluster upgrades"


class TestRanking:
    def test_rank_and_dedupe(self):
        ranked = rank_results(
            [result("a", 5), result("b", 9), result("a", 3), result("a", 4, type="note")]
        )
        assert [(r.type, r.id) for r in ranked] == [("entity", "b"), ("entity", "a"), ("note", "a")]

    def test_token_budget_keeps_first(self, monkeypatch):
        monkeypatch.setattr(recall_module, "count_tokens", lambda text: 10)
        results = [result("a", 3), result("b", 2), result("c", 1)]

        kept, used = apply_token_budget(results, 25)
        assert [r.id for r in kept] == ["a", "b"]
        assert used == 20

        kept, used = apply_token_budget(results, 5)
        assert [r.id for r in kept] == ["a"]
        assert used == 10


def make_ctx(build, store, lexical=None, semantic=None) -> QueryContext:
    return QueryContext(index=build(), store=store, lexical=lexical, semantic=semantic)


class TestRecall:
    @pytest.fixture
    def lexical(self) -> FakeLexical:
        return FakeLexical([ChannelHit(path="Ops.md", title="Ops", snippet="kubernetes upgrade notes")])

    @pytest.mark.asyncio
    async def test_all_sources(self, kube_vault, build, store, lexical):
        store.remember("k8s-version", "kubernetes runs 1.29", now=LATER)
        response = await recall(make_ctx(build, store, lexical), "kubernetes", now=LATER)

        kinds = {(r.type, r.id) for r in response.results}
        assert kinds == {("entity", "Kubernetes.md"), ("note", "Ops.md"), ("memory", "k8s-version")}
        assert response.skipped_channels == []
        assert response.total_candidates == 3
        assert not response.truncated
        assert response.token_count is None
        scores = [r.score for r in response.results]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_focus_notes(self, kube_vault, build, store, lexical):
        store.remember("k8s-version", "kubernetes runs 1.29", now=LATER)
        response = await recall(make_ctx(build, store, lexical), "kubernetes", focus="notes", now=LATER)
        assert [r.type for r in response.results] == ["note"]

    @pytest.mark.asyncio
    async def test_memories_by_entity(self, kube_vault, build, store):
        store.remember("k8s-version", "kubernetes runs 1.29", entity="Kubernetes", now=LATER)
        store.remember("k8s-owner", "kubernetes is owned by ops", entity="Ops", now=LATER)
        response = await recall(
            make_ctx(build, store), "kubernetes", focus="memories", entity="ops", now=LATER
        )
        assert [r.id for r in response.results] == ["k8s-owner"]

    @pytest.mark.asyncio
    async def test_failing_channel_is_skipped(self, kube_vault, build, store):
        ctx = make_ctx(build, store, FakeLexical(error=RuntimeError("locked")))
        response = await recall(ctx, "kubernetes", now=LATER)
        assert response.skipped_channels == ["lexical"]
        assert [r.id for r in response.results] == ["Kubernetes.md"]

    @pytest.mark.asyncio
    async def test_store_corruption_propagates(self, kube_vault, build, store):
        corrupted = VaultGraphError(ErrorCode.STORE_CORRUPTED, "State store is corrupted")
        ctx = make_ctx(build, store, FakeLexical(error=corrupted))
        with pytest.raises(VaultGraphError) as exc_info:
            await recall(ctx, "kubernetes", now=LATER)
        assert exc_info.value.code == ErrorCode.STORE_CORRUPTED

    @pytest.mark.asyncio
    async def test_max_results_truncates(self, kube_vault, build, store, lexical):
        response = await recall(make_ctx(build, store, lexical), "kubernetes", max_results=1, now=LATER)
        assert len(response.results) == 1
        assert response.total_candidates == 2
        assert response.truncated

    @pytest.mark.asyncio
    async def test_token_budget(self, kube_vault, build, store, lexical, monkeypatch):
        monkeypatch.setattr(recall_module, "count_tokens", lambda text: 10)
        response = await recall(make_ctx(build, store, lexical), "kubernetes", max_tokens=15, now=LATER)
        assert len(response.results) == 1
        assert response.token_count == 10
        assert response.truncated

    @pytest.mark.asyncio
    async def test_semantic_hit_for_long_queries(self, kube_vault, build, store):
        semantic = FakeSemantic([ChannelHit(path="Lunch.md", score=0.6)])
        query = "where does everyone eat together"
        response = await recall(make_ctx(build, store, semantic=semantic), query, now=LATER)

        assert semantic.embedded == [query]
        [lunch] = response.results
        assert lunch.id == "Lunch.md"
        assert lunch.breakdown.semantic_boost == pytest.approx(9.0)

    @pytest.mark.asyncio
    async def test_short_queries_skip_semantic(self, kube_vault, build, store):
        semantic = FakeSemantic([ChannelHit(path="Lunch.md", score=0.6)])
        await recall(make_ctx(build, store, semantic=semantic), "kubernetes", now=LATER)
        assert semantic.embedded == []

    @pytest.mark.asyncio
    async def test_unbuilt_semantic_index_contributes_nothing(self, kube_vault, build, store):
        semantic = FakeSemantic([ChannelHit(path="Lunch.md", score=0.6)], has_index=False)
        response = await recall(
            make_ctx(build, store, semantic=semantic), "where does everyone eat together", now=LATER
        )
        assert response.results == []
        assert response.skipped_channels == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"query": " "},
            {"query": "kubernetes", "focus": "everything"},
            {"query": "kubernetes", "max_results": 0},
            {"query": "kubernetes", "max_tokens": 0},
        ],
    )
    async def test_invalid_arguments(self, kube_vault, build, store, kwargs):
        with pytest.raises(VaultGraphError) as exc_info:
            await recall(make_ctx(build, store), **kwargs)
        assert exc_info.value.code == ErrorCode.INVALID_ARGUMENT
