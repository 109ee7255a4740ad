"""Tests for Reciprocal Rank Fusion and the multi-channel search."""

from datetime import UTC, datetime

import pytest

from conftest import FakeLexical, FakeSemantic
from vaultgraph.engine import QueryContext
from vaultgraph.errors import ErrorCode, VaultGraphError
from vaultgraph.indexer.hybrid import hybrid_search, reciprocal_rank_fusion, search_entities
from vaultgraph.models import ChannelHit, EntityRecord

NOW = datetime(2024, 6, 1, tzinfo=UTC)


def hits(*paths: str) -> list[ChannelHit]:
    return [ChannelHit(path=p, title=p.removesuffix(".md")) for p in paths]


class TestReciprocalRankFusion:
    """RRF with k=60 and 1-based ranks."""

    def test_top_of_every_list_wins(self):
        fused = reciprocal_rank_fusion(
            {"lexical": hits("X", "Y", "Z"), "semantic": hits("X", "Z"), "entity": hits("X")}
        )
        assert [r.path for r in fused] == ["X", "Z", "Y"]
        assert fused[0].score == pytest.approx(3 / 61)
        assert fused[0].channels == ["lexical", "semantic", "entity"]
        assert fused[1].ranks == {"lexical": 3, "semantic": 2}

    def test_union_of_all_lists(self):
        fused = reciprocal_rank_fusion({"a": hits("P"), "b": hits("Q"), "c": []})
        assert {r.path for r in fused} == {"P", "Q"}

    def test_ties_break_on_best_rank_then_path(self):
        fused = reciprocal_rank_fusion({"a": hits("Q", "P"), "b": hits("P", "Q")})
        assert [r.path for r in fused] == ["P", "Q"]
        assert fused[0].score == pytest.approx(fused[1].score)

    def test_duplicate_in_one_list_counts_once(self):
        fused = reciprocal_rank_fusion({"a": hits("P", "P", "Q")})
        assert fused[0].score == pytest.approx(1 / 61)
        assert fused[1].ranks == {"a": 3}

    def test_custom_k(self):
        fused = reciprocal_rank_fusion({"a": hits("P")}, k=1)
        assert fused[0].score == pytest.approx(0.5)

    def test_keeps_first_snippet(self):
        fused = reciprocal_rank_fusion(
            {
                "entity": [ChannelHit(path="P", title="P")],
                "lexical": [ChannelHit(path="P", title="P", snippet="from lexical")],
            }
        )
        assert fused[0].snippet == "from lexical"

    def test_empty(self):
        assert reciprocal_rank_fusion({}) == []


class TestSearchEntities:
    def test_exact_prefix_and_alias(self):
        records = [
            EntityRecord(name="Kubernetes", path="Kubernetes.md", hub_score=10),
            EntityRecord(name="Kube Proxy", path="Kube Proxy.md"),
            EntityRecord(name="Kube", path="Kube.md"),
            EntityRecord(name="Orchestrator", path="Orchestrator.md", aliases=["kube"], hub_score=4),
            EntityRecord(name="Alice", path="Alice.md"),
        ]
        ranked = search_entities(records, "kube")
        assert [h.path for h in ranked] == [
            "Orchestrator.md",
            "Kube.md",
            "Kube Proxy.md",
            "Kubernetes.md",
        ]
        assert ranked[1].score == pytest.approx(3.5)

    def test_blank_query(self):
        assert search_entities([EntityRecord(name="A", path="A.md")], "  ") == []


@pytest.fixture
def search_vault(write_note):
    write_note("Alpha.md", "Alpha project overview")
    write_note("Beta.md", "Beta rollout plan")
    write_note("Gamma.md", "Unrelated")


def make_ctx(build, store, lexical=None, semantic=None) -> QueryContext:
    return QueryContext(index=build(), store=store, lexical=lexical, semantic=semantic)


class TestHybridSearch:
    @pytest.mark.asyncio
    async def test_fuses_all_channels(self, search_vault, build, store):
        ctx = make_ctx(
            build,
            store,
            lexical=FakeLexical(hits("Alpha.md", "Beta.md")),
            semantic=FakeSemantic(hits("Beta.md")),
        )
        response = await hybrid_search(ctx, "alpha")

        assert [r.path for r in response.results] == ["Alpha.md", "Beta.md"]
        assert response.results[0].channels == ["lexical", "entity"]
        assert response.results[1].channels == ["lexical", "semantic"]
        assert response.skipped_channels == []
        assert response.warnings == []

    @pytest.mark.asyncio
    async def test_channels_receive_fetch_limit(self, search_vault, build, store):
        lexical = FakeLexical(hits("Alpha.md"))
        semantic = FakeSemantic(hits("Alpha.md"))
        await hybrid_search(make_ctx(build, store, lexical, semantic), "alpha", limit=2)
        assert lexical.queries == ["alpha"]
        assert semantic.embedded == ["alpha"]

    @pytest.mark.asyncio
    async def test_missing_semantic_channel_is_skipped(self, search_vault, build, store):
        response = await hybrid_search(make_ctx(build, store, FakeLexical(hits("Beta.md"))), "alpha")
        assert response.skipped_channels == ["semantic"]
        assert {r.path for r in response.results} == {"Alpha.md", "Beta.md"}

    @pytest.mark.asyncio
    async def test_unbuilt_semantic_index_is_skipped(self, search_vault, build, store):
        ctx = make_ctx(build, store, FakeLexical(), FakeSemantic(has_index=False))
        response = await hybrid_search(ctx, "alpha")
        assert response.skipped_channels == ["semantic"]
        assert any(w.startswith("semantic channel skipped") for w in response.warnings)
        assert [r.path for r in response.results] == ["Alpha.md"]

    @pytest.mark.asyncio
    async def test_failing_channel_does_not_fail_search(self, search_vault, build, store):
        ctx = make_ctx(
            build,
            store,
            lexical=FakeLexical(error=RuntimeError("index locked")),
            semantic=FakeSemantic(hits("Beta.md")),
        )
        response = await hybrid_search(ctx, "alpha")
        assert response.skipped_channels == ["lexical"]
        assert "lexical channel skipped: index locked" in response.warnings
        assert [r.path for r in response.results] == ["Alpha.md", "Beta.md"]

    @pytest.mark.asyncio
    async def test_store_corruption_propagates(self, search_vault, build, store):
        corrupted = VaultGraphError(ErrorCode.STORE_CORRUPTED, "State store is corrupted")
        ctx = make_ctx(build, store, lexical=FakeLexical(error=corrupted))
        with pytest.raises(VaultGraphError) as exc_info:
            await hybrid_search(ctx, "alpha")
        assert exc_info.value.code == ErrorCode.STORE_CORRUPTED

    @pytest.mark.asyncio
    async def test_graph_channel_uses_context_note(self, search_vault, build, store):
        store.set_edge_weight("Alpha.md", "Gamma.md", 3.0, now=NOW)
        ctx = make_ctx(build, store, FakeLexical(), FakeSemantic())
        response = await hybrid_search(ctx, "alpha", context_note="Alpha", now=NOW)

        gamma = next(r for r in response.results if r.path == "Gamma.md")
        assert gamma.channels == ["graph"]

    @pytest.mark.asyncio
    async def test_unknown_context_note_warns(self, search_vault, build, store):
        ctx = make_ctx(build, store, FakeLexical(), FakeSemantic())
        response = await hybrid_search(ctx, "alpha", context_note="Ghost")
        assert response.warnings == ["Context note not found: Ghost"]
        assert response.skipped_channels == []

    @pytest.mark.asyncio
    async def test_results_truncated_to_limit(self, search_vault, build, store):
        ctx = make_ctx(build, store, FakeLexical(hits("Alpha.md", "Beta.md", "Gamma.md")))
        response = await hybrid_search(ctx, "alpha", limit=2)
        assert len(response.results) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query,limit", [("", 10), ("   ", 10), ("alpha", 0), ("alpha", 51)])
    async def test_invalid_arguments(self, search_vault, build, store, query, limit):
        with pytest.raises(VaultGraphError) as exc_info:
            await hybrid_search(make_ctx(build, store), query, limit=limit)
        assert exc_info.value.code == ErrorCode.INVALID_ARGUMENT
