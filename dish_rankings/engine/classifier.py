from __future__ import annotations

from datetime import datetime, timezone

from .aggregator import sort_snapshots
from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .models import ClassifiedView, ItemScoreSnapshot, ViewEntry

HIDDEN_GEMS_VIEW = "hidden-gems"
LOCAL_FAVORITES_PREFIX = "local-favorites:"


def local_favorites_view_name(locality: str) -> str:
    return f"{LOCAL_FAVORITES_PREFIX}{locality}"


def local_favorites(
    snapshots: list[ItemScoreSnapshot],
    locality: str,
    top_n: int = DEFAULT_ENGINE_CONFIG.local_favorites_top_n,
) -> list[ItemScoreSnapshot]:
    """What people in ``locality`` actually eat: frequency score, not combined."""
    local = [s for s in snapshots if s.locality == locality]
    return sort_snapshots(local, "frequency_score")[:top_n]


def is_hidden_gem(snapshot: ItemScoreSnapshot, freq_threshold: float, rank_ceiling: float) -> bool:
    return snapshot.frequency_score > freq_threshold and snapshot.ranking_score < rank_ceiling


def hidden_gems(
    snapshots: list[ItemScoreSnapshot],
    freq_threshold: float = DEFAULT_ENGINE_CONFIG.hidden_gem_freq_threshold,
    rank_ceiling: float = DEFAULT_ENGINE_CONFIG.hidden_gem_rank_ceiling,
    top_n: int = DEFAULT_ENGINE_CONFIG.hidden_gems_top_n,
) -> list[ItemScoreSnapshot]:
    """Heavily visited but under-ranked items. Never padded up to ``top_n``."""
    gems = [s for s in snapshots if is_hidden_gem(s, freq_threshold, rank_ceiling)]
    return sort_snapshots(gems, "frequency_score")[:top_n]


def _to_view(name: str, rows: list[ItemScoreSnapshot], computed_at: datetime) -> ClassifiedView:
    return ClassifiedView(
        name=name,
        entries=[ViewEntry.from_snapshot(s) for s in rows],
        computed_at=computed_at,
    )


def classify(
    snapshots: list[ItemScoreSnapshot],
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    computed_at: datetime | None = None,
) -> list[ClassifiedView]:
    """Every named view for one run: one local-favorites view per locality, plus hidden gems."""
    computed_at = computed_at or datetime.now(timezone.utc)

    localities = sorted({s.locality for s in snapshots if s.locality})
    views = [
        _to_view(
            local_favorites_view_name(locality),
            local_favorites(snapshots, locality, config.local_favorites_top_n),
            computed_at,
        )
        for locality in localities
    ]
    views.append(
        _to_view(
            HIDDEN_GEMS_VIEW,
            hidden_gems(
                snapshots,
                config.hidden_gem_freq_threshold,
                config.hidden_gem_rank_ceiling,
                config.hidden_gems_top_n,
            ),
            computed_at,
        )
    )
    return views
