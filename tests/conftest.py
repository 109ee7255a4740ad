"""Shared test fixtures for the vaultgraph test suite.

Design:
- vault: isolated vault directory (with .obsidian/) and env pointing at it
- write_note: helper to create notes with optional frontmatter
- store: StateStore in a temp index root
- FakeLexical / FakeSemantic: in-memory channels with canned results
"""

import importlib.util
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest
import yaml
from click.testing import CliRunner

from vaultgraph.models import ChannelHit
from vaultgraph.store import StateStore
from vaultgraph.vault_index import VaultIndex, build_vault_index

# ─────────────────────────────────────────────────────────────────────────────
# Markers
# ─────────────────────────────────────────────────────────────────────────────


def _semantic_deps_available() -> bool:
    return (
        importlib.util.find_spec("chromadb") is not None
        and importlib.util.find_spec("sentence_transformers") is not None
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "semantic: requires chromadb and sentence-transformers extras",
    )
    config.addinivalue_line(
        "markers",
        "slow: marks tests as slow (deselect with '-m \"not slow\"')",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if _semantic_deps_available():
        return

    skip_semantic = pytest.mark.skip(
        reason=(
            "semantic extras not installed; install with "
            "`pip install -e '.[semantic]'` to run these tests"
        )
    )

    for item in items:
        if "semantic" in item.keywords:
            item.add_marker(skip_semantic)


# ─────────────────────────────────────────────────────────────────────────────
# Vault Fixtures
# ─────────────────────────────────────────────────────────────────────────────


NoteWriter = Callable[..., Path]


def write_note_file(
    vault_root: Path,
    path: str,
    body: str = "",
    frontmatter: dict[str, Any] | None = None,
) -> Path:
    """Write a note at a vault-relative path, creating folders as needed."""
    note_path = vault_root / path
    note_path.parent.mkdir(parents=True, exist_ok=True)
    text = body
    if frontmatter:
        text = f"---\n{yaml.safe_dump(frontmatter, sort_keys=False)}---\n{body}"
    note_path.write_text(text, encoding="utf-8")
    return note_path


@pytest.fixture
def runner() -> CliRunner:
    """CLI runner with isolated environment."""
    return CliRunner()


@pytest.fixture
def vault(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Empty vault directory, discoverable through the environment.

    Usage:
        def test_something(vault, write_note):
            write_note("people/Alice.md", "Works on [[Acme Corp]].")
    """
    root = tmp_path / "vault"
    (root / ".obsidian").mkdir(parents=True)
    monkeypatch.setenv("VAULTGRAPH_VAULT_ROOT", str(root))
    monkeypatch.setenv("VAULTGRAPH_INDEX_ROOT", str(tmp_path / "state"))
    return root


@pytest.fixture
def write_note(vault: Path) -> NoteWriter:
    def _write(path: str, body: str = "", frontmatter: dict[str, Any] | None = None) -> Path:
        return write_note_file(vault, path, body, frontmatter)

    return _write


@pytest.fixture
def build(vault: Path) -> Callable[[], VaultIndex]:
    """Build a fresh snapshot of the test vault."""
    return lambda: build_vault_index(vault)


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state")


@pytest.fixture
def chain_vault(write_note: NoteWriter) -> None:
    """A -> B -> C, plus a hub note linking to everything."""
    write_note("A.md", "Start here: [[B]].")
    write_note("B.md", "Next: [[C]].")
    write_note("C.md", "The end.")
    write_note("Index.md", "[[A]] [[B]] [[C]]")


# ─────────────────────────────────────────────────────────────────────────────
# Fake Channels
# ─────────────────────────────────────────────────────────────────────────────


class FakeLexical:
    """Lexical channel returning canned hits."""

    def __init__(self, hits: Sequence[ChannelHit] = (), error: Exception | None = None):
        self.hits = list(hits)
        self.error = error
        self.indexed: VaultIndex | None = None
        self.queries: list[str] = []
        self.cleared = False

    def search(self, query: str, limit: int = 10) -> list[ChannelHit]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.hits[:limit]

    def index_vault(self, index: VaultIndex) -> None:
        self.indexed = index

    def clear(self) -> None:
        self.cleared = True
        self.indexed = None


class FakeSemantic:
    """Semantic channel returning canned hits regardless of the vector."""

    def __init__(
        self,
        hits: Sequence[ChannelHit] = (),
        has_index: bool = True,
        error: Exception | None = None,
    ):
        self.hits = list(hits)
        self._has_index = has_index
        self.error = error
        self.embedded: list[str] = []

    def has_index(self) -> bool:
        return self._has_index

    def embed(self, text: str) -> list[float]:
        self.embedded.append(text)
        return [0.0, 1.0]

    def search(self, vector: Sequence[float], limit: int = 10) -> list[ChannelHit]:
        if self.error is not None:
            raise self.error
        return self.hits[:limit]

    def index_vault(self, index: VaultIndex) -> None:
        if self.error is not None:
            raise self.error
