from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone

from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .errors import InputValidationError, RecomputeCancelled
from .models import (
    ItemScoreSnapshot,
    RankedItem,
    SkippedItem,
    UserRanking,
    VisitEvent,
    as_utc,
)
from .scoring import (
    combined_score,
    frequency_score,
    latest_per_user,
    position_distribution,
    ranking_score,
    validate_rankings,
    validate_visits,
    well_formed_voter_count,
)

logger = logging.getLogger(__name__)

SCORE_FIELDS: dict[str, str] = {
    "combined": "combined_score",
    "ranking": "ranking_score",
    "frequency": "frequency_score",
}


@dataclass(frozen=True)
class CorpusSnapshot:
    """Read-only input for one run: every item plus its rankings and visits."""

    items: list[RankedItem]
    rankings: dict[str, list[UserRanking]] = field(default_factory=dict)
    visits: dict[str, list[VisitEvent]] = field(default_factory=dict)

    def rankings_for(self, item_id: str) -> list[UserRanking]:
        return self.rankings.get(item_id, [])

    def visits_for(self, item_id: str) -> list[VisitEvent]:
        return self.visits.get(item_id, [])


@dataclass
class AggregateResult:
    snapshots: list[ItemScoreSnapshot]
    skipped: list[SkippedItem]


def score_item(
    item: RankedItem,
    rankings: list[UserRanking],
    visits: list[VisitEvent],
    config: EngineConfig,
    now: datetime,
    reference_voters: int | None = None,
) -> ItemScoreSnapshot:
    """Build one item's snapshot. Raises ``InputValidationError`` on a malformed record."""
    active = latest_per_user(rankings)
    validate_rankings(active, item.id)
    validate_visits(visits, item.id)

    positions = [r.position for r in active]
    rank = ranking_score(positions, reference_voters)
    freq = frequency_score(visits, now, config.window, config.saturation)
    average_position, position_counts = position_distribution(positions)

    return ItemScoreSnapshot(
        item_id=item.id,
        name=item.name,
        locality=item.locality,
        category=item.category,
        ranking_score=rank,
        frequency_score=freq.score,
        combined_score=combined_score(rank, freq.score),
        voter_count=len(active),
        visit_count=freq.visit_count,
        unique_visitors=freq.unique_visitors,
        average_position=average_position,
        position_counts=position_counts,
        computed_at=now,
    )


def _reference_voters(corpus: CorpusSnapshot, config: EngineConfig) -> int | None:
    if config.popularity_voters is not None:
        return config.popularity_voters
    # Counted over well-formed rankings only, so one corrupt record cannot
    # move the scale for the rest of the corpus.
    counts = [well_formed_voter_count(corpus.rankings_for(item.id)) for item in corpus.items]
    largest = max(counts, default=0)
    return largest or None


def _chunked(items: list[RankedItem], n_chunks: int) -> list[list[RankedItem]]:
    size = math.ceil(len(items) / n_chunks)
    return [items[i:i + size] for i in range(0, len(items), size)]


def _score_chunk(
    chunk: list[RankedItem],
    corpus: CorpusSnapshot,
    config: EngineConfig,
    now: datetime,
    reference_voters: int | None,
    cancel_event: threading.Event | None,
) -> tuple[list[ItemScoreSnapshot], list[SkippedItem]]:
    # Worker-local buffers, merged by the caller once every chunk is done
    snapshots: list[ItemScoreSnapshot] = []
    skipped: list[SkippedItem] = []
    for item in chunk:
        if cancel_event is not None and cancel_event.is_set():
            raise RecomputeCancelled(f"cancelled before item {item.id}")
        try:
            snapshots.append(
                score_item(
                    item,
                    corpus.rankings_for(item.id),
                    corpus.visits_for(item.id),
                    config,
                    now,
                    reference_voters,
                )
            )
        except InputValidationError as exc:
            logger.warning("Skipping item %s: %s", item.id, exc.reason)
            skipped.append(SkippedItem(item_id=item.id, reason=exc.reason))
    return snapshots, skipped


def aggregate(
    corpus: CorpusSnapshot,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    now: datetime | None = None,
    cancel_event: threading.Event | None = None,
) -> AggregateResult:
    """
    Score every item in the corpus.

    Items with no rankings and no visits are kept with zero scores. Items with
    a malformed record are left out and reported in ``skipped``. The result is
    only returned once every item is done; a cancelled run raises
    ``RecomputeCancelled`` and yields nothing.
    """
    config.validate()
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return score_corpus(corpus, config, now, cancel_event)


def score_corpus(
    corpus: CorpusSnapshot,
    config: EngineConfig,
    now: datetime,
    cancel_event: threading.Event | None = None,
) -> AggregateResult:
    """Same as ``aggregate`` for a config the caller has already validated."""
    reference = _reference_voters(corpus, config)

    items = corpus.items
    if not items:
        return AggregateResult(snapshots=[], skipped=[])

    if config.max_workers == 1 or len(items) == 1:
        results = [_score_chunk(items, corpus, config, now, reference, cancel_event)]
    else:
        chunks = _chunked(items, config.max_workers)
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            futures = [
                executor.submit(_score_chunk, chunk, corpus, config, now, reference, cancel_event)
                for chunk in chunks
            ]
            results = [f.result() for f in futures]

    snapshots: list[ItemScoreSnapshot] = []
    skipped: list[SkippedItem] = []
    for chunk_snapshots, chunk_skipped in results:
        snapshots.extend(chunk_snapshots)
        skipped.extend(chunk_skipped)
    return AggregateResult(snapshots=snapshots, skipped=skipped)


def sort_snapshots(snapshots: list[ItemScoreSnapshot], score_field: str) -> list[ItemScoreSnapshot]:
    """Score descending, then voter count descending, then item id ascending."""
    return sorted(
        snapshots,
        key=lambda s: (-getattr(s, score_field), -s.voter_count, s.item_id),
    )


def leaderboard(
    snapshots: list[ItemScoreSnapshot],
    by: str = "combined",
    category: str | None = None,
    locality: str | None = None,
    limit: int | None = None,
) -> list[ItemScoreSnapshot]:
    if by not in SCORE_FIELDS:
        raise ValueError(f"unknown leaderboard {by!r}, expected one of {sorted(SCORE_FIELDS)}")

    rows = [
        s
        for s in snapshots
        if (category is None or s.category == category)
        and (locality is None or s.locality == locality)
    ]
    ordered = sort_snapshots(rows, SCORE_FIELDS[by])
    return ordered[:limit] if limit is not None else ordered
