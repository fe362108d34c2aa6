from __future__ import annotations

import threading
from datetime import datetime

from ..engine.models import (
    ClassifiedView,
    ItemScoreSnapshot,
    RankedItem,
    UserRanking,
    VisitEvent,
)


class InMemoryStore:
    """
    Process-local store implementing both ``RankingSource`` and ``ScoreSink``.

    Computed output is double-buffered: ``write_snapshot``/``write_view`` upsert
    into a pending buffer and ``commit`` swaps it in whole under a lock, so
    readers see either the previous complete result set or the new one, never
    a mix of runs.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, RankedItem] = {}
        self._rankings: dict[tuple[str, str], UserRanking] = {}  # (user_id, item_id)
        self._visits: dict[str, list[VisitEvent]] = {}

        self._snapshots: dict[str, ItemScoreSnapshot] = {}
        self._views: dict[str, ClassifiedView] = {}
        self._staged_snapshots: dict[str, ItemScoreSnapshot] = {}
        self._staged_views: dict[str, ClassifiedView] = {}

    # ── Ingestion side ───────────────────────────────────────────────────

    def add_item(self, item: RankedItem) -> None:
        with self._lock:
            self._items[item.id] = item

    def upsert_ranking(self, ranking: UserRanking) -> None:
        """A user re-ranking an item replaces their previous entry."""
        with self._lock:
            self._rankings[(ranking.user_id, ranking.item_id)] = ranking

    def remove_ranking(self, user_id: str, item_id: str) -> bool:
        with self._lock:
            return self._rankings.pop((user_id, item_id), None) is not None

    def record_visit(self, visit: VisitEvent) -> None:
        with self._lock:
            self._visits.setdefault(visit.item_id, []).append(visit)

    # ── RankingSource ────────────────────────────────────────────────────

    def list_all_items(self) -> list[RankedItem]:
        with self._lock:
            return list(self._items.values())

    def list_active_rankings(self, item_id: str) -> list[UserRanking]:
        with self._lock:
            return [r for (_, iid), r in self._rankings.items() if iid == item_id]

    def list_visits(self, item_id: str, since: datetime | None = None) -> list[VisitEvent]:
        with self._lock:
            visits = list(self._visits.get(item_id, []))
        if since is None:
            return visits
        return [v for v in visits if v.visited_at >= since]

    # ── ScoreSink ────────────────────────────────────────────────────────

    def write_snapshot(self, item_id: str, snapshot: ItemScoreSnapshot) -> None:
        with self._lock:
            self._staged_snapshots[item_id] = snapshot

    def write_view(self, view_name: str, view: ClassifiedView) -> None:
        with self._lock:
            self._staged_views[view_name] = view

    def commit(self) -> None:
        """Publish the staged run as the complete current set, replacing the previous one."""
        with self._lock:
            self._snapshots = self._staged_snapshots
            self._views = self._staged_views
            self._staged_snapshots = {}
            self._staged_views = {}

    def discard(self) -> None:
        """Drop anything staged since the last commit."""
        with self._lock:
            self._staged_snapshots = {}
            self._staged_views = {}

    # ── Read model ───────────────────────────────────────────────────────

    def get_snapshot(self, item_id: str) -> ItemScoreSnapshot | None:
        with self._lock:
            return self._snapshots.get(item_id)

    def get_snapshots(self) -> list[ItemScoreSnapshot]:
        with self._lock:
            return list(self._snapshots.values())

    def get_view(self, view_name: str) -> ClassifiedView | None:
        with self._lock:
            return self._views.get(view_name)

    def list_views(self) -> list[str]:
        with self._lock:
            return sorted(self._views)
