"""
Per-item score calculation.

Everything here is a pure function of its arguments: no I/O, no clock reads,
no shared state. The aggregator may call these from several worker threads.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Sequence

import numpy as np

from .errors import InputValidationError
from .models import UserRanking, VisitEvent, as_utc

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
MIN_POSITION = 1
MAX_POSITION = 10
MAX_POINTS = 10.0
MAX_SCORE = 10.0


@dataclass(frozen=True)
class FrequencyStats:
    score: float
    visit_count: int
    unique_visitors: int


def points(position: int) -> int:
    """Points for one placement: #1 earns 10, #10 earns 1, anything else 0."""
    if position < MIN_POSITION or position > MAX_POSITION:
        return 0
    return 11 - position


def validate_rankings(rankings: Iterable[UserRanking], item_id: str | None = None) -> None:
    """Raise ``InputValidationError`` on the first malformed ranking."""
    for r in rankings:
        if isinstance(r.position, bool) or not isinstance(r.position, int):
            raise InputValidationError(
                f"position {r.position!r} from user {r.user_id} is not an integer", item_id
            )
        if not MIN_POSITION <= r.position <= MAX_POSITION:
            raise InputValidationError(
                f"position {r.position} from user {r.user_id} outside "
                f"{MIN_POSITION}..{MAX_POSITION}",
                item_id,
            )
        if r.updated_at < EPOCH:
            raise InputValidationError(
                f"ranking from user {r.user_id} has pre-epoch timestamp {r.updated_at.isoformat()}",
                item_id,
            )


def validate_visits(visits: Iterable[VisitEvent], item_id: str | None = None) -> None:
    for v in visits:
        if v.visited_at < EPOCH:
            raise InputValidationError(
                f"visit from user {v.user_id} has pre-epoch timestamp {v.visited_at.isoformat()}",
                item_id,
            )


def latest_per_user(rankings: Iterable[UserRanking]) -> list[UserRanking]:
    """Keep only each user's most recent ranking (an update replaces, never appends)."""
    latest: dict[str, UserRanking] = {}
    for r in rankings:
        current = latest.get(r.user_id)
        if current is None or r.updated_at >= current.updated_at:
            latest[r.user_id] = r
    return list(latest.values())


def well_formed_voter_count(rankings: Iterable[UserRanking]) -> int:
    """Distinct users whose ranking would pass validation."""
    users = {
        r.user_id
        for r in rankings
        if MIN_POSITION <= r.position <= MAX_POSITION and r.updated_at >= EPOCH
    }
    return len(users)


def ranking_score(positions: Sequence[int], reference_voters: int | None = None) -> float:
    """
    Popularity-weighted position score on a 0-10 scale.

    raw = sum(points) * ln(1 + voters)
    max = 10 * voters * ln(1 + max(voters, reference_voters))

    Without a reference the weight cancels and the score is the mean points.
    With a corpus-wide reference, a unanimous #1 backed by more voters scores
    higher than one backed by few.
    """
    voters = len(positions)
    if voters == 0:
        return 0.0

    pts = np.array([points(p) for p in positions], dtype=float)
    user_weight = np.log1p(voters)
    reference = max(voters, reference_voters or voters)
    theoretical_max = MAX_POINTS * voters * np.log1p(reference)

    score = pts.sum() * user_weight / theoretical_max * MAX_SCORE
    return float(min(score, MAX_SCORE))


def frequency_score(
    visits: Sequence[VisitEvent],
    now: datetime,
    window: timedelta,
    saturation: float,
) -> FrequencyStats:
    """
    Recency-windowed visit intensity on a 0-10 scale.

    raw = (visits / unique visitors) * (unique visitors / saturation)

    The first factor rewards repeat visits, the second audience breadth.
    A score of exactly 10 means saturation.
    """
    now = as_utc(now)
    start = now - window
    in_window = [v for v in visits if start <= v.visited_at <= now]

    total_visits = len(in_window)
    unique_visitors = len({v.user_id for v in in_window})
    if unique_visitors == 0:
        return FrequencyStats(score=0.0, visit_count=0, unique_visitors=0)

    raw = (total_visits / unique_visitors) * (unique_visitors / saturation)
    score = min(raw * MAX_SCORE, MAX_SCORE)
    return FrequencyStats(score=float(score), visit_count=total_visits, unique_visitors=unique_visitors)


def position_distribution(positions: Sequence[int]) -> tuple[float | None, dict[int, int]]:
    """Average position and the number of voters at each position."""
    if not positions:
        return None, {}
    counts = Counter(positions)
    average = float(np.mean(positions))
    return round(average, 2), {p: counts[p] for p in sorted(counts)}


def combined_score(rank_score: float, freq_score: float) -> float:
    """Equal-weighted average of the two 0-10 scores."""
    return (rank_score + freq_score) / 2
