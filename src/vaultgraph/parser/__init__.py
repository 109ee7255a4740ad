"""Note parsing: frontmatter, wikilinks and tags."""

from .links import (
    WIKILINK_PATTERN,
    extract_inline_tags,
    extract_wikilinks,
    normalize_link_target,
    path_key,
)
from .markdown import ParsedNote, ParseError, parse_note

__all__ = [
    "WIKILINK_PATTERN",
    "ParseError",
    "ParsedNote",
    "extract_inline_tags",
    "extract_wikilinks",
    "normalize_link_target",
    "parse_note",
    "path_key",
]
