"""Tests for snapshot publishing and rebuild coordination."""

from datetime import UTC, datetime

import pytest

from conftest import FakeLexical, FakeSemantic
from vaultgraph import engine as engine_module
from vaultgraph.engine import VaultEngine
from vaultgraph.errors import ErrorCode, VaultGraphError
from vaultgraph.indexer.whoosh_index import WhooshIndex
from vaultgraph.store import StateStore

NOW = datetime(2024, 6, 1, tzinfo=UTC)


@pytest.fixture
def engine(vault, store) -> VaultEngine:
    return VaultEngine(vault, store, lexical=FakeLexical(), semantic=FakeSemantic())


class TestSnapshot:
    def test_unavailable_before_first_build(self, engine):
        with pytest.raises(VaultGraphError) as exc_info:
            engine.snapshot()
        assert exc_info.value.code == ErrorCode.INDEX_UNAVAILABLE
        assert exc_info.value.is_recoverable

    def test_rebuild_publishes_and_indexes_channels(self, chain_vault, engine):
        index = engine.rebuild(now=NOW)
        assert engine.snapshot() is index
        assert len(index) == 4
        assert engine.lexical.indexed is index

    def test_contexts_keep_their_snapshot(self, chain_vault, engine, write_note):
        engine.rebuild(now=NOW)
        before = engine.context()

        write_note("D.md", "[[A]]")
        engine.rebuild(now=NOW)
        after = engine.context()

        assert "D.md" not in before.index
        assert "D.md" in after.index
        assert before.store is after.store

    def test_clean_rebuild_clears_lexical_first(self, chain_vault, engine):
        engine.rebuild(now=NOW)
        assert not engine.lexical.cleared

        index = engine.rebuild(now=NOW, clean=True)
        assert engine.lexical.cleared
        assert engine.lexical.indexed is index

    def test_load_skips_channels(self, chain_vault, engine):
        index = engine.load()
        assert engine.snapshot() is index
        assert engine.lexical.indexed is None
        assert engine.store.edge_weights() == []


class TestRebuild:
    def test_records_baseline_edges(self, chain_vault, engine):
        engine.rebuild(now=NOW)
        pairs = {(row.source, row.target) for row in engine.store.edge_weights()}
        assert ("A.md", "B.md") in pairs
        assert ("Index.md", "C.md") in pairs
        assert all(row.weight == 1.0 for row in engine.store.edge_weights())

    def test_existing_weights_survive_rebuild(self, chain_vault, engine):
        engine.store.set_edge_weight("A.md", "B.md", 4.0, now=NOW)
        engine.rebuild(now=NOW)
        [row] = engine.store.edge_weights(source="A.md")
        assert row.weight == 4.0

    def test_semantic_failure_is_not_fatal(self, chain_vault, vault, store):
        semantic = FakeSemantic(error=RuntimeError("no model"))
        engine = VaultEngine(vault, store, lexical=FakeLexical(), semantic=semantic)
        assert len(engine.rebuild(now=NOW)) == 4

    def test_concurrent_rebuild_is_rejected(self, chain_vault, engine):
        engine._rebuild_lock.acquire()
        try:
            assert engine.rebuilding
            with pytest.raises(VaultGraphError) as exc_info:
                engine.rebuild()
            assert exc_info.value.code == ErrorCode.REBUILD_IN_PROGRESS

            with pytest.raises(VaultGraphError) as exc_info:
                engine.snapshot()
            assert exc_info.value.message == "Vault index is being built"
        finally:
            engine._rebuild_lock.release()
        assert not engine.rebuilding

    def test_store_corruption_aborts_rebuild(self, chain_vault, tmp_path, vault):
        state = tmp_path / "broken-state"
        state.mkdir()
        (state / "vaultgraph_state.sqlite").write_bytes(b"garbage" * 200)

        engine = VaultEngine(vault, StateStore(state), lexical=FakeLexical())
        with pytest.raises(VaultGraphError) as exc_info:
            engine.rebuild()
        assert exc_info.value.code == ErrorCode.STORE_CORRUPTED
        with pytest.raises(VaultGraphError):
            engine.snapshot()

    @pytest.mark.asyncio
    async def test_arebuild(self, chain_vault, engine):
        index = await engine.arebuild(now=NOW)
        assert engine.snapshot() is index


class TestFromConfig:
    def test_default_channels(self, vault, tmp_path, monkeypatch):
        monkeypatch.setattr(engine_module, "semantic_deps_available", lambda: False)
        engine = VaultEngine.from_config()
        assert engine.vault_root == vault
        assert isinstance(engine.lexical, WhooshIndex)
        assert engine.semantic is None
        assert engine.store.path == tmp_path / "state" / "vaultgraph_state.sqlite"
