"""Configuration management for vaultgraph.

This module contains all configurable constants for the retrieval engine.
Magic numbers are documented here rather than scattered throughout the codebase.
"""

import os
from pathlib import Path


class ConfigurationError(Exception):
    """Raised when required configuration is missing."""

    pass


# Directory markers that identify a vault root when walking up from cwd
VAULT_MARKERS = (".obsidian", ".vaultgraph")

# Directory holding derived state (indices, sqlite store) inside the vault
STATE_DIR_NAME = ".vaultgraph"


def _discover_vault_root(start_dir: Path | None = None, max_depth: int = 50) -> Path | None:
    """Walk up from start_dir looking for a vault marker directory.

    Args:
        start_dir: Directory to start from (defaults to cwd).
        max_depth: Maximum directories to traverse up.

    Returns:
        The vault root if found, None otherwise.
    """
    current = Path(start_dir or os.getcwd()).resolve()

    for _ in range(max_depth):
        for marker in VAULT_MARKERS:
            if (current / marker).is_dir():
                return current

        parent = current.parent
        if parent == current:  # Reached filesystem root
            break
        current = parent

    return None


def get_vault_root() -> Path:
    """Get the vault root directory.

    Discovery order:
    1. VAULTGRAPH_VAULT_ROOT environment variable (explicit override)
    2. Walk up from cwd looking for .obsidian/ or .vaultgraph/
    3. Error with helpful message

    Raises:
        ConfigurationError: If no vault can be found.
    """
    root = os.environ.get("VAULTGRAPH_VAULT_ROOT")
    if root:
        return Path(root)

    discovered = _discover_vault_root()
    if discovered:
        return discovered

    raise ConfigurationError(
        "No vault found. Options:\n"
        "  1. Run vg from inside a vault (a directory containing .obsidian/)\n"
        "  2. Pass --vault /path/to/vault\n"
        "  3. Set VAULTGRAPH_VAULT_ROOT to an existing vault directory"
    )


def get_index_root(vault_root: Path | None = None) -> Path:
    """Get the directory where indices and the state store live.

    Discovery order:
    1. VAULTGRAPH_INDEX_ROOT environment variable (explicit override)
    2. {vault_root}/.vaultgraph/

    Raises:
        ConfigurationError: If no index root can be determined.
    """
    root = os.environ.get("VAULTGRAPH_INDEX_ROOT")
    if root:
        return Path(root)

    try:
        base = vault_root or get_vault_root()
    except ConfigurationError:
        raise ConfigurationError(
            "VAULTGRAPH_INDEX_ROOT is not set and no vault was found. "
            "Set it to the path where indices should be stored."
        )
    return base / STATE_DIR_NAME


# =============================================================================
# Vault Scanning
# =============================================================================

# Directories never scanned for notes
SKIP_DIRS = frozenset({".obsidian", ".git", ".vaultgraph", "node_modules", ".trash"})

# Files larger than this are rejected by the parser (10 MB)
MAX_NOTE_BYTES = 10 * 1024 * 1024


# =============================================================================
# Embedding Model
# =============================================================================

# Sentence-transformers model for semantic embeddings.
# MiniLM is a good balance of speed and quality for personal vaults.
EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


# =============================================================================
# Graph Traversal
# =============================================================================

# Default hop limit for path finding. Bounds BFS/Dijkstra on large vaults.
DEFAULT_MAX_DEPTH = 10

# Hub penalty for weighted path finding:
#   penalty(outdeg) = HUB_PENALTY_WEIGHT * ln(1 + outdeg / HUB_DEGREE_PIVOT)
# Monotonic increasing in out-degree. A note with 10 outlinks costs ~0.69 extra,
# an index note with 100 outlinks costs ~2.4 extra.
HUB_PENALTY_WEIGHT = 1.0
HUB_DEGREE_PIVOT = 10

# Connection strength factors
MUTUAL_LINK_SCORE = 3.0
ONE_WAY_LINK_SCORE = 1.0
SHARED_TAG_SCORE = 1.0
SHARED_NEIGHBOR_SCORE = 0.5
SAME_FOLDER_SCORE = 1.0

# Default minimum inbound links for a note to count as a hub
DEFAULT_HUB_MIN_LINKS = 5


# =============================================================================
# Edge Weights
# =============================================================================

# Weight assigned to a newly recorded edge
EDGE_BASELINE_WEIGHT = 1.0

# Linear decay: effective = stored * max(FLOOR, 1 - days / DECAY_DAYS)
EDGE_DECAY_DAYS = 180
EDGE_DECAY_FLOOR = 0.1

# Default threshold for surfacing edges in graph-derived rankings
EDGE_SURFACE_THRESHOLD = 0.0


# =============================================================================
# Hybrid Search (Reciprocal Rank Fusion)
# =============================================================================

# RRF constant for combining channel rankings.
# Formula: score(d) = sum(1 / (k + rank)) across ranking lists, rank is 1-based.
# k=60 is the standard value from the RRF paper (Cormack et al., 2009).
RRF_K = 60

DEFAULT_SEARCH_LIMIT = 10
MAX_SEARCH_LIMIT = 50

# Each channel is asked for this multiple of the requested limit
CHANNEL_FETCH_MULTIPLIER = 3


# =============================================================================
# Entity Deduplication
# =============================================================================

EXACT_MATCH_CONFIDENCE = 0.95
NORMALIZED_MATCH_CONFIDENCE = 0.85

# Shorter name must be more than half the longer one
SUBSTRING_MIN_RATIO = 0.5
SUBSTRING_BASE_CONFIDENCE = 0.6
SUBSTRING_RATIO_WEIGHT = 0.2

# Edit distance / longest length must stay below this
EDIT_DISTANCE_MAX_RATIO = 0.35
EDIT_DISTANCE_BASE_CONFIDENCE = 0.5
EDIT_DISTANCE_RATIO_WEIGHT = 0.4

NORMALIZED_MIN_LENGTH = 3
SUBSTRING_MIN_LENGTH = 3
EDIT_DISTANCE_MIN_LENGTH = 4


# =============================================================================
# Recall Scoring
# =============================================================================

EXACT_TOKEN_SCORE = 10
STEM_TOKEN_SCORE = 5
PHRASE_MATCH_BONUS = 15

# Notes that matched the lexical channel never score below this
NOTE_MIN_TEXT_SCORE = 10

# Memories: feedback boost = confidence * MEMORY_CONFIDENCE_WEIGHT
MEMORY_CONFIDENCE_WEIGHT = 5

# Recency tiers: (max hours since last mention, boost). First match wins.
RECENCY_TIERS = (
    (1, 8),
    (24, 5),
    (72, 3),
    (168, 1),
)

# edgeWeightBoost = min((avg - baseline) * MULTIPLIER, CAP) when avg > baseline
EDGE_WEIGHT_BOOST_MULTIPLIER = 3
EDGE_WEIGHT_BOOST_CAP = 6

DEFAULT_RECALL_LIMIT = 20


# =============================================================================
# Semantic Search Thresholds
# =============================================================================

# Minimum raw cosine similarity for a semantic hit to count.
SEMANTIC_MIN_SIMILARITY = 0.3

# semanticBoost = similarity * SEMANTIC_BOOST_MULTIPLIER
SEMANTIC_BOOST_MULTIPLIER = 15

# Queries shorter than this are not embedded for recall or suggestion scoring
SEMANTIC_MIN_QUERY_LENGTH = 20

# Nearest notes fetched when scoring suggestions semantically
SEMANTIC_SCORING_LIMIT = 50


# =============================================================================
# Wikilink Suggestions
# =============================================================================

# Entity names shorter than this are never matched in prose
MIN_ENTITY_NAME_LENGTH = 2

# Dead link targets need this many backlinks to become prospects
PROSPECT_MIN_BACKLINKS = 2
PROSPECT_HIGH_BACKLINKS = 3

# Hub boost tiers: (min backlinks, boost). First match wins.
HUB_BOOST_TIERS = (
    (100, 8),
    (50, 5),
    (20, 3),
    (5, 1),
)

# Entity category boosts. Categories come from frontmatter type/category or
# the top-level folder; people and projects make the most useful links.
TYPE_BOOSTS = {
    "people": 5,
    "person": 5,
    "projects": 3,
    "project": 3,
    "organizations": 2,
    "organization": 2,
    "companies": 2,
    "company": 2,
    "locations": 1,
    "location": 1,
    "concepts": 1,
    "concept": 1,
}

# Linking an entity from a different top-level folder than the note
CROSS_FOLDER_BOOST = 3

# Bonus when every word of a multi-word alias appears in the content
FULL_ALIAS_MATCH_BONUS = 8

# Content-length adaptation of the minimum suggestion score
SHORT_CONTENT_CHARS = 50
LONG_CONTENT_CHARS = 200
SHORT_CONTENT_FACTOR = 0.6
LONG_CONTENT_FACTOR = 1.2
SHORT_CONTENT_MIN_SCORE = 5

# Strictness presets for detailed suggestion scoring
STRICTNESS_CONFIGS = {
    "conservative": {
        "min_suggestion_score": 15,
        "min_match_ratio": 0.6,
        "require_multiple_matches": True,
        "stem_match_bonus": 3,
        "exact_match_bonus": 10,
    },
    "balanced": {
        "min_suggestion_score": 8,
        "min_match_ratio": 0.4,
        "require_multiple_matches": False,
        "stem_match_bonus": 5,
        "exact_match_bonus": 10,
    },
    "aggressive": {
        "min_suggestion_score": 5,
        "min_match_ratio": 0.3,
        "require_multiple_matches": False,
        "stem_match_bonus": 6,
        "exact_match_bonus": 10,
    },
}

DEFAULT_STRICTNESS = "balanced"


# =============================================================================
# Stub Discovery
# =============================================================================

STUB_MIN_FREQUENCY = 2
STUB_DEFAULT_LIMIT = 20
STUB_SAMPLE_NOTES = 3


# =============================================================================
# Token Budgets
# =============================================================================

# tiktoken encoding for token counting
TOKEN_ENCODING = "cl100k_base"
