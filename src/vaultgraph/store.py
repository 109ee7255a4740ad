"""Persistent state that survives index rebuilds.

Edge weights, merge dismissals, usage boosts and remembered facts live in
{index_root}/vaultgraph_state.sqlite, keyed by stable identifiers (note
paths, lowercase entity names). Every write is an idempotent upsert.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from .config import EDGE_BASELINE_WEIGHT, get_index_root
from .errors import ErrorCode, VaultGraphError
from .models import EdgeWeightRow, Memory

log = logging.getLogger(__name__)

STORE_FILENAME = "vaultgraph_state.sqlite"
SCHEMA_VERSION = 1

BoostKind = Literal["feedback", "cooccurrence"]


def dismissal_key(path_a: str, path_b: str) -> str:
    """Order-independent key for a pair of entity paths."""
    first, second = sorted((path_a, path_b))
    return f"{first}::{second}"


def _now_iso(now: datetime | None) -> str:
    return (now or datetime.now(tz=UTC)).isoformat()


def _parse_ts(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class StateStore:
    """SQLite-backed store for edge weights, dismissals, boosts and memories."""

    def __init__(self, index_root: Path | None = None) -> None:
        self._index_root = index_root or get_index_root()
        self._path = self._index_root / STORE_FILENAME
        self._schema_ready = False

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, and translate sqlite failures."""
        conn: sqlite3.Connection | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self._path))
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            if not self._schema_ready:
                self._ensure_schema(conn)
                self._schema_ready = True
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            raise VaultGraphError.from_sqlite(e, str(self._path)) from e
        except OSError as e:
            raise VaultGraphError(
                ErrorCode.STORE_UNAVAILABLE,
                f"State store unavailable: {e}",
                {"path": str(self._path)},
            ) from e
        finally:
            if conn is not None:
                conn.close()

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS edge_weights (
                source TEXT NOT NULL,
                target TEXT NOT NULL,
                weight REAL NOT NULL CHECK (weight >= 0),
                updated_at TEXT NOT NULL,
                PRIMARY KEY (source, target)
            );
            CREATE TABLE IF NOT EXISTS merge_dismissals (
                pair_key TEXT PRIMARY KEY,
                source_path TEXT NOT NULL,
                target_path TEXT NOT NULL,
                source_name TEXT,
                target_name TEXT,
                reason TEXT,
                dismissed_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS entity_boosts (
                entity TEXT NOT NULL,
                kind TEXT NOT NULL CHECK (kind IN ('feedback', 'cooccurrence')),
                boost REAL NOT NULL,
                PRIMARY KEY (entity, kind)
            );
            CREATE TABLE IF NOT EXISTS memories (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                entity TEXT,
                confidence REAL NOT NULL DEFAULT 1.0,
                updated_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS store_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        row = conn.execute("SELECT value FROM store_meta WHERE key = 'schema_version'").fetchone()
        if row is None:
            conn.execute(
                "INSERT INTO store_meta (key, value) VALUES ('schema_version', ?)",
                (str(SCHEMA_VERSION),),
            )

    # ─────────────────────────────────────────────────────────────────────
    # Edge weights
    # ─────────────────────────────────────────────────────────────────────

    def record_edge(self, source: str, target: str, now: datetime | None = None) -> None:
        """Register an edge at baseline weight. Existing weights are untouched."""
        with self._connect() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO edge_weights (source, target, weight, updated_at) VALUES (?, ?, ?, ?)",
                (source, target, EDGE_BASELINE_WEIGHT, _now_iso(now)),
            )

    def record_edges(self, pairs: Iterable[tuple[str, str]], now: datetime | None = None) -> int:
        """Register many edges at baseline weight. Returns how many were new."""
        ts = _now_iso(now)
        rows = [(source, target, EDGE_BASELINE_WEIGHT, ts) for source, target in pairs]
        with self._connect() as conn:
            before = conn.total_changes
            conn.executemany(
                "INSERT OR IGNORE INTO edge_weights (source, target, weight, updated_at) VALUES (?, ?, ?, ?)",
                rows,
            )
            return conn.total_changes - before

    def bump_edge_weight(
        self,
        source: str,
        target: str,
        amount: float,
        now: datetime | None = None,
    ) -> float:
        """Add a survival/co-access increment to an edge and return the new weight."""
        if amount < 0:
            raise VaultGraphError.invalid_argument("Edge weight increments must be non-negative", amount=amount)
        ts = _now_iso(now)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO edge_weights (source, target, weight, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (source, target)
                DO UPDATE SET weight = weight + ?, updated_at = excluded.updated_at
                """,
                (source, target, EDGE_BASELINE_WEIGHT + amount, ts, amount),
            )
            row = conn.execute(
                "SELECT weight FROM edge_weights WHERE source = ? AND target = ?",
                (source, target),
            ).fetchone()
        return float(row[0])

    def set_edge_weight(
        self,
        source: str,
        target: str,
        weight: float,
        now: datetime | None = None,
    ) -> None:
        """Overwrite an edge weight (e.g. after a full recompute)."""
        if weight < 0:
            raise VaultGraphError.invalid_argument("Edge weights must be non-negative", weight=weight)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO edge_weights (source, target, weight, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (source, target)
                DO UPDATE SET weight = excluded.weight, updated_at = excluded.updated_at
                """,
                (source, target, weight, _now_iso(now)),
            )

    def edge_weights(self, source: str | None = None) -> list[EdgeWeightRow]:
        query = "SELECT source, target, weight, updated_at FROM edge_weights"
        params: tuple[str, ...] = ()
        if source is not None:
            query += " WHERE source = ?"
            params = (source,)
        query += " ORDER BY source, target"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [
            EdgeWeightRow(source=s, target=t, weight=w, updated_at=_parse_ts(u))
            for s, t, w, u in rows
        ]

    # ─────────────────────────────────────────────────────────────────────
    # Merge dismissals
    # ─────────────────────────────────────────────────────────────────────

    def record_dismissal(
        self,
        source_path: str,
        target_path: str,
        source_name: str | None = None,
        target_name: str | None = None,
        reason: str | None = None,
        now: datetime | None = None,
    ) -> str:
        """Permanently dismiss a merge pair. Re-dismissing keeps the first record."""
        key = dismissal_key(source_path, target_path)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO merge_dismissals
                    (pair_key, source_path, target_path, source_name, target_name, reason, dismissed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (key, source_path, target_path, source_name, target_name, reason, _now_iso(now)),
            )
        log.info("Dismissed merge pair %s", key)
        return key

    def dismissed_pairs(self) -> set[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT pair_key FROM merge_dismissals").fetchall()
        return {row[0] for row in rows}

    # ─────────────────────────────────────────────────────────────────────
    # Usage boosts
    # ─────────────────────────────────────────────────────────────────────

    def set_entity_boost(self, entity: str, kind: BoostKind, boost: float) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO entity_boosts (entity, kind, boost) VALUES (?, ?, ?)
                ON CONFLICT (entity, kind) DO UPDATE SET boost = excluded.boost
                """,
                (entity.lower(), kind, boost),
            )

    def entity_boosts(self, kind: BoostKind) -> dict[str, float]:
        """Map of lowercase entity name to accumulated boost."""
        with self._connect() as conn:
            rows = conn.execute("SELECT entity, boost FROM entity_boosts WHERE kind = ?", (kind,)).fetchall()
        return {entity: float(boost) for entity, boost in rows}

    # ─────────────────────────────────────────────────────────────────────
    # Memories
    # ─────────────────────────────────────────────────────────────────────

    def remember(
        self,
        key: str,
        value: str,
        entity: str | None = None,
        confidence: float = 1.0,
        now: datetime | None = None,
    ) -> Memory:
        memory = Memory(
            key=key,
            value=value,
            entity=entity,
            confidence=confidence,
            updated_at=now or datetime.now(tz=UTC),
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO memories (key, value, entity, confidence, updated_at) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (key) DO UPDATE SET
                    value = excluded.value,
                    entity = excluded.entity,
                    confidence = excluded.confidence,
                    updated_at = excluded.updated_at
                """,
                (memory.key, memory.value, memory.entity, memory.confidence, memory.updated_at.isoformat()),
            )
        return memory

    def search_memories(
        self,
        query: str | None = None,
        entity: str | None = None,
        limit: int = 50,
    ) -> list[Memory]:
        """Memories whose key or value mentions any query word, newest first."""
        clauses: list[str] = []
        params: list[object] = []
        if entity:
            clauses.append("LOWER(entity) = ?")
            params.append(entity.lower())
        words = [w for w in (query or "").lower().split() if len(w) >= 3]
        if words:
            word_clauses = []
            for word in words:
                word_clauses.append("(LOWER(key) LIKE ? OR LOWER(value) LIKE ?)")
                params.extend([f"%{word}%", f"%{word}%"])
            clauses.append("(" + " OR ".join(word_clauses) + ")")

        sql = "SELECT key, value, entity, confidence, updated_at FROM memories"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY updated_at DESC LIMIT ?"
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [
            Memory(key=k, value=v, entity=e, confidence=c, updated_at=_parse_ts(u))
            for k, v, e, c, u in rows
        ]
