from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator


def as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC so every comparison is tz-aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Inputs ───────────────────────────────────────────────────────────────


class RankedItem(BaseModel):
    """A rankable dish or restaurant. The engine only reads it."""

    id: str = Field(..., min_length=1)
    name: str | None = None
    locality: str | None = Field(default=None, description="Grouping for local favorites")
    category: str | None = Field(default=None, description="Dish type, e.g. nasi lemak")


class UserRanking(BaseModel):
    """One user's placement of one item in their personal top-10 list.

    ``position`` is not range-checked here. The score calculator rejects
    out-of-range values and the aggregator skips and reports the item.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    item_id: str = Field(..., min_length=1)
    position: int
    updated_at: datetime

    normalize_updated_at = field_validator("updated_at")(as_utc)


class VisitEvent(BaseModel):
    """An append-only record of a user visiting or ordering from an item."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    item_id: str = Field(..., min_length=1)
    visited_at: datetime

    normalize_visited_at = field_validator("visited_at")(as_utc)


# ── Outputs ──────────────────────────────────────────────────────────────


class ItemScoreSnapshot(BaseModel):
    item_id: str
    name: str | None = None
    locality: str | None = None
    category: str | None = None
    ranking_score: float = Field(default=0.0, ge=0.0, le=10.0)
    frequency_score: float = Field(default=0.0, ge=0.0, le=10.0)
    combined_score: float = Field(default=0.0, ge=0.0, le=10.0)
    voter_count: int = 0
    visit_count: int = Field(default=0, description="Visits inside the recency window")
    unique_visitors: int = Field(default=0, description="Distinct visitors inside the window")
    average_position: float | None = None
    position_counts: dict[int, int] = Field(default_factory=dict)
    computed_at: datetime


class ViewEntry(BaseModel):
    """One row of a classified view, carrying the fields it was ranked by."""

    item_id: str
    name: str | None = None
    locality: str | None = None
    ranking_score: float
    frequency_score: float
    combined_score: float
    voter_count: int
    unique_visitors: int

    @classmethod
    def from_snapshot(cls, snapshot: ItemScoreSnapshot) -> "ViewEntry":
        return cls(
            item_id=snapshot.item_id,
            name=snapshot.name,
            locality=snapshot.locality,
            ranking_score=snapshot.ranking_score,
            frequency_score=snapshot.frequency_score,
            combined_score=snapshot.combined_score,
            voter_count=snapshot.voter_count,
            unique_visitors=snapshot.unique_visitors,
        )


class ClassifiedView(BaseModel):
    name: str
    entries: list[ViewEntry] = Field(default_factory=list)
    computed_at: datetime

    @property
    def item_ids(self) -> list[str]:
        return [e.item_id for e in self.entries]


class SkippedItem(BaseModel):
    item_id: str
    reason: str


class RecomputeSummary(BaseModel):
    items_processed: int
    items_skipped: list[SkippedItem] = Field(default_factory=list)
    views_written: int = 0
    started_at: datetime
    finished_at: datetime
    duration_ms: float

    @computed_field
    @property
    def clean(self) -> bool:
        return not self.items_skipped


# ── API requests ─────────────────────────────────────────────────────────


class RecomputeRequest(BaseModel):
    """Per-run overrides for a triggered recompute. Omitted fields keep their defaults."""

    now: datetime | None = Field(default=None, description="Reference time, defaults to wall clock")
    window_days: float | None = None
    saturation: float | None = None
    hidden_gem_freq_threshold: float | None = None
    hidden_gem_rank_ceiling: float | None = None
    local_favorites_top_n: int | None = None
    hidden_gems_top_n: int | None = None
    max_workers: int | None = None
