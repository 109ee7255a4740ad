"""Interfaces the retrieval engine expects from its search channels."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from ..models import ChannelHit

if TYPE_CHECKING:
    from ..vault_index import VaultIndex


class LexicalChannel(Protocol):
    def search(self, query: str, limit: int = 10) -> list[ChannelHit]: ...

    def index_vault(self, index: VaultIndex) -> None: ...

    def clear(self) -> None: ...


class SemanticChannel(Protocol):
    def has_index(self) -> bool: ...

    def embed(self, text: str) -> list[float]: ...

    def search(self, vector: Sequence[float], limit: int = 10) -> list[ChannelHit]: ...

    def index_vault(self, index: VaultIndex) -> None: ...
