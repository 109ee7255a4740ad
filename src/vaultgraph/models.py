"""Pydantic models for vaultgraph."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field


# ─────────────────────────────────────────────────────────────────────────────
# Notes and links
# ─────────────────────────────────────────────────────────────────────────────


class OutLink(BaseModel):
    """A wikilink as written in a note (target is raw, resolved lazily)."""

    model_config = ConfigDict(frozen=True)

    target: str  # Raw target text, heading and display alias stripped
    line: int  # 1-based line number in the file
    alias: str | None = None  # Display text after |


class Note(BaseModel):
    """A parsed vault note. The path is its sole identity."""

    model_config = ConfigDict(frozen=True)

    path: str  # Vault-relative POSIX path including .md
    title: str  # Filename stem
    aliases: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    frontmatter: dict[str, Any] = Field(default_factory=dict)
    outlinks: tuple[OutLink, ...] = ()
    modified: datetime
    created: datetime | None = None


class Backlink(BaseModel):
    """A link into a note (or dead link target) from a source note."""

    model_config = ConfigDict(frozen=True)

    source: str
    line: int


class EntityRecord(BaseModel):
    """A note-backed entity with its hub score (backlink count)."""

    name: str
    path: str
    category: str = "other"
    aliases: list[str] = Field(default_factory=list)
    hub_score: int = 0


# ─────────────────────────────────────────────────────────────────────────────
# Graph results
# ─────────────────────────────────────────────────────────────────────────────


class PathResult(BaseModel):
    """Result of a path search. length is -1 when no path exists."""

    exists: bool
    path: list[str] = Field(default_factory=list)
    length: int = -1
    cost: float | None = None  # Total weighted cost (weighted search only)


class SharedNeighbor(BaseModel):
    """A note both endpoints link to."""

    path: str
    title: str
    linked_from_a_line: int
    linked_from_b_line: int


class BidirectionalLink(BaseModel):
    """A pair of notes linking to each other."""

    note_a: str
    note_b: str
    a_to_b_line: int
    b_to_a_line: int


class ConnectionFactors(BaseModel):
    """Itemized contributions to a connection strength score."""

    mutual_link: bool = False
    one_way_link: bool = False
    shared_tags: list[str] = Field(default_factory=list)
    shared_outlinks: int = 0
    same_folder: bool = False


class ConnectionStrength(BaseModel):
    note_a: str
    note_b: str
    score: float = 0.0
    factors: ConnectionFactors = Field(default_factory=ConnectionFactors)


class LinkReference(BaseModel):
    """A backlink or forward link as reported to callers."""

    path: str  # Other end of the link (raw target for unresolved forward links)
    line: int
    exists: bool = True
    target: str | None = None  # Raw target text for forward links


class HubNote(BaseModel):
    path: str
    title: str
    backlink_count: int
    forward_link_count: int


class DeadEndNote(BaseModel):
    """A note other notes link to that links nowhere itself."""

    path: str
    title: str
    backlink_count: int


class SourceNote(BaseModel):
    """A note with outlinks that nothing links back to."""

    path: str
    title: str
    outlink_count: int


class StaleNote(BaseModel):
    path: str
    title: str
    backlink_count: int
    days_since_modified: int
    modified: datetime


class BrokenLink(BaseModel):
    """A wikilink whose target does not resolve."""

    source: str
    line: int
    target: str
    suggestion: str | None = None  # Near-miss entity name, if any


class StubCandidate(BaseModel):
    """A dead link target referenced often enough to deserve a note."""

    name: str
    wikilink_references: int
    source_notes: int
    sample_notes: list[str] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Edge weights
# ─────────────────────────────────────────────────────────────────────────────


class EdgeWeightRow(BaseModel):
    """A persisted edge weight as stored."""

    source: str
    target: str
    weight: float = Field(ge=0)
    updated_at: datetime


class SurfacedEdge(BaseModel):
    """An edge whose decayed weight cleared the caller's threshold."""

    source: str
    target: str
    stored_weight: float
    effective_weight: float
    updated_at: datetime


# ─────────────────────────────────────────────────────────────────────────────
# Entity deduplication
# ─────────────────────────────────────────────────────────────────────────────


class MatchType(str, Enum):
    """How two entity names were judged to be duplicates."""

    EXACT = "exact"
    NORMALIZED = "normalized"
    SUBSTRING = "substring"
    EDIT_DISTANCE = "edit_distance"


class MergeCandidate(BaseModel):
    """A suggested merge of source entity into target entity."""

    source_name: str
    source_path: str
    target_name: str
    target_path: str
    match_type: MatchType
    confidence: float
    reason: str
    source_hub_score: int = 0
    target_hub_score: int = 0


class MergeSuggestions(BaseModel):
    suggestions: list[MergeCandidate]
    total_candidates: int


# ─────────────────────────────────────────────────────────────────────────────
# Retrieval and fusion
# ─────────────────────────────────────────────────────────────────────────────

ChannelName = Literal["lexical", "semantic", "entity", "graph"]


class ChannelHit(BaseModel):
    """One item in a channel's ranked list."""

    path: str
    title: str = ""
    snippet: str = ""
    score: float = 0.0  # Channel-native score, informational only


class FusedResult(BaseModel):
    """A fused search result annotated with contributing channels."""

    path: str
    title: str = ""
    snippet: str = ""
    score: float
    channels: list[str] = Field(default_factory=list)
    ranks: dict[str, int] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    """Response wrapper for fused results with degradation notes."""

    results: list[FusedResult]
    skipped_channels: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Wikilink suggestions
# ─────────────────────────────────────────────────────────────────────────────


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ProspectSource(str, Enum):
    DEAD_LINK = "dead_link"
    IMPLICIT = "implicit"
    BOTH = "both"


Strictness = Literal["conservative", "balanced", "aggressive"]


class SuggestionScore(BaseModel):
    """Explainable score for a suggested entity (detailed mode)."""

    exact_matches: int = 0
    stem_matches: int = 0
    word_score: float = 0.0
    alias_bonus: float = 0.0
    type_boost: float = 0.0
    cross_folder_boost: float = 0.0
    hub_boost: float = 0.0
    recency_boost: float = 0.0
    cooccurrence_boost: float = 0.0
    feedback_boost: float = 0.0
    edge_weight_boost: float = 0.0
    semantic_boost: float = 0.0
    matched_words: list[str] = Field(default_factory=list)
    min_score: float = 0.0
    passed: bool = True

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        return (
            self.word_score
            + self.alias_bonus
            + self.type_boost
            + self.cross_folder_boost
            + self.hub_boost
            + self.recency_boost
            + self.cooccurrence_boost
            + self.feedback_boost
            + self.edge_weight_boost
            + self.semantic_boost
        )


class LinkSuggestion(BaseModel):
    """An unlinked mention of an existing entity."""

    entity: str  # Entity name that matched (title or alias)
    path: str  # Backing note
    start: int
    end: int
    matched_text: str
    score: SuggestionScore | None = None  # Present in detailed mode


class Prospect(BaseModel):
    """A mention of something with no backing note yet."""

    name: str
    start: int
    end: int
    matched_text: str
    source: ProspectSource
    confidence: Confidence
    backlink_count: int = 0


class SuggestionResult(BaseModel):
    suggestions: list[LinkSuggestion] = Field(default_factory=list)
    prospects: list[Prospect] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Recall
# ─────────────────────────────────────────────────────────────────────────────

RecallType = Literal["entity", "note", "memory"]
RecallFocus = Literal["entities", "notes", "memories", "all"]


class ScoreBreakdown(BaseModel):
    """Decomposed recall score. total is always the sum of the components."""

    text_relevance: float = 0.0
    recency_boost: float = 0.0
    cooccurrence_boost: float = 0.0
    feedback_boost: float = 0.0
    edge_weight_boost: float = 0.0
    semantic_boost: float = 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        return (
            self.text_relevance
            + self.recency_boost
            + self.cooccurrence_boost
            + self.feedback_boost
            + self.edge_weight_boost
            + self.semantic_boost
        )


class RecallResult(BaseModel):
    type: RecallType
    id: str  # Note path for entities/notes, memory key for memories
    title: str
    content: str = ""
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def score(self) -> float:
        return self.breakdown.total


class RecallResponse(BaseModel):
    query: str
    results: list[RecallResult]
    total_candidates: int = 0
    token_count: int | None = None
    truncated: bool = False
    skipped_channels: list[str] = Field(default_factory=list)


class Memory(BaseModel):
    """A free-form remembered fact."""

    key: str
    value: str
    entity: str | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    updated_at: datetime
