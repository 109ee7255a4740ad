"""Wikilink and tag extraction."""

import re

from ..models import OutLink

# [[target]], [[target|alias]], [[target#heading]], [[target#heading|alias]]
WIKILINK_PATTERN = re.compile(r"\[\[([^\]|#]+)(?:#[^\]|]*)?(?:\|([^\]]+))?\]\]")

# Inline #tag (not URLs fragments or hex colors, which lack leading whitespace)
TAG_PATTERN = re.compile(r"(?:^|\s)#([a-zA-Z][a-zA-Z0-9_/-]*)")

# Fenced blocks and inline code spans
CODE_PATTERN = re.compile(r"```[\s\S]*?```|`[^`\n]+`")

# YAML frontmatter block at document start
FRONTMATTER_PATTERN = re.compile(r"\A---\r?\n[\s\S]*?\r?\n---")


def blank_matches(pattern: re.Pattern[str], text: str) -> str:
    """Replace every match with spaces, keeping newlines so offsets and lines survive."""
    return pattern.sub(lambda m: re.sub(r"[^\n]", " ", m.group(0)), text)


def extract_wikilinks(content: str) -> list[OutLink]:
    """Extract wikilinks with 1-based line numbers.

    Links inside code blocks, inline code and the frontmatter block are
    ignored. Line numbers refer to the text passed in.
    """
    cleaned = blank_matches(CODE_PATTERN, blank_matches(FRONTMATTER_PATTERN, content))

    links: list[OutLink] = []
    for line_no, line in enumerate(cleaned.split("\n"), start=1):
        for match in WIKILINK_PATTERN.finditer(line):
            target = match.group(1).strip()
            if not target:
                continue
            alias = match.group(2).strip() if match.group(2) else None
            links.append(OutLink(target=target, line=line_no, alias=alias))
    return links


def extract_inline_tags(content: str) -> list[str]:
    """Extract inline #tags outside code, in order of first appearance."""
    cleaned = CODE_PATTERN.sub("", blank_matches(FRONTMATTER_PATTERN, content))
    seen: set[str] = set()
    tags: list[str] = []
    for match in TAG_PATTERN.finditer(cleaned):
        tag = match.group(1)
        if tag not in seen:
            seen.add(tag)
            tags.append(tag)
    return tags


def normalize_link_target(target: str) -> str:
    """Normalize a link target into a lookup key.

    - Strips whitespace
    - Removes .md extension
    - Normalizes path separators and trims slashes
    - Lowercases for case-insensitive lookup
    """
    normalized = target.strip()
    if normalized.lower().endswith(".md"):
        normalized = normalized[:-3]
    normalized = normalized.replace("\\", "/").strip("/")
    return normalized.lower()


def path_key(path: str) -> str:
    """Lookup key for a note path (lowercase, without .md)."""
    return normalize_link_target(path)
