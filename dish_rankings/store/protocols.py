from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..engine.models import ClassifiedView, ItemScoreSnapshot, RankedItem, UserRanking, VisitEvent


class RankingSource(Protocol):
    """What the engine reads. Any persistence layer can provide it."""

    def list_all_items(self) -> list[RankedItem]: ...

    def list_active_rankings(self, item_id: str) -> list[UserRanking]: ...

    def list_visits(self, item_id: str, since: datetime | None = None) -> list[VisitEvent]: ...


class ScoreSink(Protocol):
    """What the engine writes.

    ``write_snapshot`` and ``write_view`` upsert by key within one run. Nothing
    written becomes visible to readers until ``commit`` is called, which
    replaces the previously published set; ``discard`` drops it.
    """

    def write_snapshot(self, item_id: str, snapshot: ItemScoreSnapshot) -> None: ...

    def write_view(self, view_name: str, view: ClassifiedView) -> None: ...

    def commit(self) -> None: ...

    def discard(self) -> None: ...
