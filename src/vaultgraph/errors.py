"""Structured errors for vaultgraph.

Every failure that crosses the engine boundary is a VaultGraphError with a
stable ErrorCode, so the CLI (and any other caller) can emit machine-readable
errors with --json-errors.
"""

from __future__ import annotations

import json
import sqlite3
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes for programmatic handling."""

    NOTE_NOT_FOUND = "NOTE_NOT_FOUND"
    INDEX_UNAVAILABLE = "INDEX_UNAVAILABLE"
    REBUILD_IN_PROGRESS = "REBUILD_IN_PROGRESS"
    SEMANTIC_SEARCH_UNAVAILABLE = "SEMANTIC_SEARCH_UNAVAILABLE"
    INVALID_PATTERN = "INVALID_PATTERN"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    STORE_CORRUPTED = "STORE_CORRUPTED"
    PARSE_ERROR = "PARSE_ERROR"


# Callers may retry after these clear (rebuild finishes, store comes back)
RECOVERABLE_CODES = frozenset(
    {
        ErrorCode.INDEX_UNAVAILABLE,
        ErrorCode.REBUILD_IN_PROGRESS,
        ErrorCode.SEMANTIC_SEARCH_UNAVAILABLE,
        ErrorCode.STORE_UNAVAILABLE,
    }
)


def format_error_json(
    code: ErrorCode | str,
    message: str,
    details: dict[str, Any] | None = None,
) -> str:
    """Format an error as JSON for --json-errors output."""
    code_value = code.value if isinstance(code, ErrorCode) else str(code)
    error: dict[str, dict[str, Any]] = {"error": {"code": code_value, "message": message}}
    if details:
        error["error"]["details"] = details
    return json.dumps(error, default=str)


class VaultGraphError(Exception):
    """Base error carrying an ErrorCode, a message and optional details."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def is_recoverable(self) -> bool:
        """True when retrying later can succeed."""
        return self.code in RECOVERABLE_CODES

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"error": error}

    def to_json(self) -> str:
        return format_error_json(self.code, self.message, self.details)

    # ─────────────────────────────────────────────────────────────────────
    # Constructors
    # ─────────────────────────────────────────────────────────────────────

    @classmethod
    def note_not_found(cls, path: str, suggestion: str | None = None) -> VaultGraphError:
        details: dict[str, Any] = {"path": path}
        if suggestion:
            details["suggestion"] = f"Did you mean '{suggestion}'?"
        return cls(ErrorCode.NOTE_NOT_FOUND, f"Note not found: {path}", details)

    @classmethod
    def index_unavailable(cls, reason: str = "Vault index has not been built yet") -> VaultGraphError:
        return cls(
            ErrorCode.INDEX_UNAVAILABLE,
            reason,
            {"suggestion": "Run 'vg reindex' and retry"},
        )

    @classmethod
    def rebuild_in_progress(cls) -> VaultGraphError:
        return cls(
            ErrorCode.REBUILD_IN_PROGRESS,
            "A vault rebuild is already running",
            {"suggestion": "Retry once the current rebuild completes"},
        )

    @classmethod
    def semantic_search_unavailable(
        cls,
        reason: str = "Semantic search is not available",
        suggestion: str = "Install the semantic extra: pip install 'vaultgraph[semantic]'",
    ) -> VaultGraphError:
        return cls(ErrorCode.SEMANTIC_SEARCH_UNAVAILABLE, reason, {"suggestion": suggestion})

    @classmethod
    def invalid_pattern(cls, pattern: str, reason: str) -> VaultGraphError:
        return cls(
            ErrorCode.INVALID_PATTERN,
            f"Invalid pattern {pattern!r}: {reason}",
            {"pattern": pattern},
        )

    @classmethod
    def invalid_argument(cls, message: str, **details: Any) -> VaultGraphError:
        return cls(ErrorCode.INVALID_ARGUMENT, message, details or None)

    @classmethod
    def parse_error(cls, path: str, reason: str) -> VaultGraphError:
        return cls(ErrorCode.PARSE_ERROR, f"{path}: {reason}", {"path": path})

    @classmethod
    def from_sqlite(cls, error: sqlite3.Error, db_path: str) -> VaultGraphError:
        """Classify a sqlite failure as unavailable (retryable) or corrupted (fatal)."""
        text = str(error).lower()
        if "not a database" in text or "malformed" in text:
            return cls(
                ErrorCode.STORE_CORRUPTED,
                f"State store is corrupted: {error}",
                {"path": db_path},
            )
        return cls(
            ErrorCode.STORE_UNAVAILABLE,
            f"State store unavailable: {error}",
            {"path": db_path},
        )
