from __future__ import annotations

import logging
from pathlib import Path
from typing import List

import pandas as pd

from ..engine.models import (
    ClassifiedView,
    ItemScoreSnapshot,
    RankedItem,
    UserRanking,
    ViewEntry,
    VisitEvent,
)
from .config import DEFAULT_STORE_CONFIG, StoreConfig
from .memory import InMemoryStore

logger = logging.getLogger(__name__)


ITEM_COLUMNS: List[str] = ["id", "name", "locality", "category"]
RANKING_COLUMNS: List[str] = ["user_id", "item_id", "position", "updated_at"]
VISIT_COLUMNS: List[str] = ["user_id", "item_id", "visited_at"]

SNAPSHOT_COLUMNS: List[str] = [
    "item_id",
    "name",
    "locality",
    "category",
    "ranking_score",
    "frequency_score",
    "combined_score",
    "voter_count",
    "visit_count",
    "unique_visitors",
    "average_position",
    "computed_at",
]

VIEW_COLUMNS: List[str] = list(ViewEntry.model_fields)


def _read_csv(path: Path, columns: List[str]) -> pd.DataFrame:
    if not path.is_file():
        logger.info("No %s found, treating it as empty", path)
        return pd.DataFrame(columns=columns)

    df = pd.read_csv(path, dtype=str)
    # Optional columns may be absent from older exports
    for col in columns:
        if col not in df.columns:
            df[col] = pd.NA
    return df[columns].copy()


def _clean_text(value: object) -> str | None:
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def _drop_invalid(df: pd.DataFrame, valid: pd.Series, path: Path) -> pd.DataFrame:
    dropped = int((~valid).sum())
    if dropped:
        logger.warning("Dropped %d unparseable rows from %s", dropped, path)
    return df.loc[valid]


def _normalize_ids(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    for col in columns:
        df[col] = df[col].astype(object).map(_clean_text)
    return df


def _load_items(path: Path) -> list[RankedItem]:
    df = _normalize_ids(_read_csv(path, ITEM_COLUMNS), ["id"])
    df = _drop_invalid(df, df["id"].notna(), path)
    return [
        RankedItem(
            id=row.id,
            name=_clean_text(row.name),
            locality=_clean_text(row.locality),
            category=_clean_text(row.category),
        )
        for row in df.itertuples(index=False)
    ]


def _load_rankings(path: Path) -> list[UserRanking]:
    df = _normalize_ids(_read_csv(path, RANKING_COLUMNS), ["user_id", "item_id"])
    df["position"] = pd.to_numeric(df["position"], errors="coerce")
    df["updated_at"] = pd.to_datetime(df["updated_at"], utc=True, errors="coerce", format="ISO8601")

    # Out-of-range positions are kept: the engine reports them per item
    valid = (
        df["user_id"].notna()
        & df["item_id"].notna()
        & df["position"].notna()
        & (df["position"] % 1 == 0)
        & df["updated_at"].notna()
    )
    df = _drop_invalid(df, valid, path).sort_values("updated_at", kind="stable")
    return [
        UserRanking(
            user_id=row.user_id,
            item_id=row.item_id,
            position=int(row.position),
            updated_at=row.updated_at.to_pydatetime(),
        )
        for row in df.itertuples(index=False)
    ]


def _load_visits(path: Path) -> list[VisitEvent]:
    df = _normalize_ids(_read_csv(path, VISIT_COLUMNS), ["user_id", "item_id"])
    df["visited_at"] = pd.to_datetime(df["visited_at"], utc=True, errors="coerce", format="ISO8601")

    valid = df["user_id"].notna() & df["item_id"].notna() & df["visited_at"].notna()
    df = _drop_invalid(df, valid, path)
    return [
        VisitEvent(user_id=row.user_id, item_id=row.item_id, visited_at=row.visited_at.to_pydatetime())
        for row in df.itertuples(index=False)
    ]


def load_csv_snapshot(config: StoreConfig = DEFAULT_STORE_CONFIG) -> InMemoryStore:
    """
    Build an ``InMemoryStore`` from ``items.csv``, ``rankings.csv`` and ``visits.csv``.

    Rankings are applied oldest first, so a user's latest submission for an
    item is the one that stays active. Missing files count as empty.
    """
    store = InMemoryStore()

    items = _load_items(config.items_path)
    rankings = _load_rankings(config.rankings_path)
    visits = _load_visits(config.visits_path)

    for item in items:
        store.add_item(item)
    for ranking in rankings:
        store.upsert_ranking(ranking)
    for visit in visits:
        store.record_visit(visit)

    logger.info(
        "Loaded %d items, %d rankings, %d visits from %s",
        len(items), len(rankings), len(visits), config.data_dir,
    )
    return store


def export_results(
    snapshots: list[ItemScoreSnapshot],
    views: list[ClassifiedView],
    output_dir: Path,
) -> Path:
    """Write ``scores.csv`` plus one CSV per classified view into ``output_dir``."""
    output_dir.mkdir(parents=True, exist_ok=True)

    scores = pd.DataFrame([s.model_dump() for s in snapshots], columns=SNAPSHOT_COLUMNS)
    scores_path = output_dir / "scores.csv"
    scores.to_csv(scores_path, index=False)

    for view in views:
        rows = pd.DataFrame([e.model_dump() for e in view.entries], columns=VIEW_COLUMNS)
        rows.insert(0, "rank", range(1, len(rows) + 1))
        safe_name = view.name.replace(":", "__").replace("/", "_").replace(" ", "_")
        rows.to_csv(output_dir / f"view_{safe_name}.csv", index=False)

    return scores_path
