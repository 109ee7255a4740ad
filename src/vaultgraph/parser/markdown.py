"""Markdown note parsing with YAML frontmatter support."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any, NamedTuple

import frontmatter

from ..config import MAX_NOTE_BYTES
from ..models import Note
from .links import extract_inline_tags, extract_wikilinks

log = logging.getLogger(__name__)


class ParseError(Exception):
    """Raised when a note cannot be parsed."""

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class ParsedNote(NamedTuple):
    """A note plus its body text (frontmatter removed)."""

    note: Note
    body: str


def _is_binary(raw: bytes) -> bool:
    if b"\x00" in raw:
        return True
    sample = raw[:1000].decode("utf-8", errors="replace")
    if not sample:
        return False
    non_printable = sum(1 for ch in sample if not (ch.isprintable() or ch in "\t\n\r"))
    return non_printable / len(sample) > 0.1


def _as_datetime(value: Any) -> datetime | None:
    """Coerce a frontmatter date value into an aware datetime."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if isinstance(value, str) and value.strip():
        try:
            return _as_datetime(datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    return None


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
    return []


def _frontmatter_tags(metadata: dict[str, Any]) -> list[str]:
    raw = metadata.get("tags")
    if isinstance(raw, str):
        candidates = [t for t in raw.replace(",", " ").split() if t]
    else:
        candidates = _string_list(raw)
    return [t.strip().lstrip("#") for t in candidates if t.strip().lstrip("#")]


def _title_for(relative: str) -> str:
    name = relative.rsplit("/", 1)[-1]
    return name[:-3] if name.endswith(".md") else name


def parse_note(path: Path, vault_root: Path) -> ParsedNote:
    """Parse a vault markdown file into a Note.

    Empty files produce a note without links or tags. Malformed frontmatter
    is logged and the whole file is treated as body text.

    Args:
        path: Absolute path to the markdown file.
        vault_root: Vault root used to compute the note's relative path.

    Returns:
        ParsedNote with the immutable Note and its body text.

    Raises:
        ParseError: If the file is missing, binary, oversized or unreadable.
    """
    if not path.is_file():
        raise ParseError(path, "Path is not a file")

    try:
        stat = path.stat()
    except OSError as e:
        raise ParseError(path, f"Could not stat file: {e}") from e

    if stat.st_size > MAX_NOTE_BYTES:
        size_mb = stat.st_size / 1024 / 1024
        raise ParseError(path, f"File too large ({size_mb:.1f}MB > {MAX_NOTE_BYTES // 1024 // 1024}MB limit)")

    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ParseError(path, f"Could not read file: {e}") from e

    relative = path.relative_to(vault_root).as_posix()
    modified = datetime.fromtimestamp(stat.st_mtime, tz=UTC)
    fallback_created = datetime.fromtimestamp(stat.st_ctime, tz=UTC)
    title = _title_for(relative)

    if not raw.strip():
        note = Note(path=relative, title=title, modified=modified, created=fallback_created)
        return ParsedNote(note, "")

    if _is_binary(raw):
        raise ParseError(path, "Binary content detected")

    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(path, f"File is not valid UTF-8: {e}") from e

    metadata: dict[str, Any] = {}
    body = text
    try:
        post = frontmatter.loads(text)
        metadata = dict(post.metadata)
        body = post.content
    except Exception as e:
        log.warning("Malformed frontmatter in %s: %s", relative, e)

    tags: list[str] = []
    for tag in _frontmatter_tags(metadata) + extract_inline_tags(text):
        if tag not in tags:
            tags.append(tag)

    aliases = _string_list(metadata.get("aliases", metadata.get("alias")))

    note = Note(
        path=relative,
        title=title,
        aliases=tuple(a.strip() for a in aliases),
        tags=tuple(tags),
        frontmatter=metadata,
        # Line numbers are file lines; the frontmatter block is blanked, not removed
        outlinks=tuple(extract_wikilinks(text)),
        modified=modified,
        created=_as_datetime(metadata.get("created")) or fallback_created,
    )
    return ParsedNote(note, body)
