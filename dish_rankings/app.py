from __future__ import annotations

from dataclasses import replace
from typing import Literal

from fastapi import FastAPI, HTTPException, Query

from .analytics.history import get_runs
from .analytics.stats import compute_run_stats
from .engine.aggregator import leaderboard
from .engine.classifier import HIDDEN_GEMS_VIEW, local_favorites_view_name
from .engine.config import DEFAULT_ENGINE_CONFIG
from .engine.errors import ConfigurationError
from .engine.models import (
    ClassifiedView,
    ItemScoreSnapshot,
    RecomputeRequest,
    RecomputeSummary,
)
from .engine.runner import recompute
from .store.data_store import get_store

app = FastAPI(title="Dish Rankings API", version="1.0.0")


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/leaderboard", response_model=list[ItemScoreSnapshot])
def get_leaderboard(
    by: Literal["combined", "ranking", "frequency"] = "combined",
    category: str | None = None,
    locality: str | None = None,
    limit: int = Query(default=20, ge=1, le=100),
) -> list[ItemScoreSnapshot]:
    snapshots = get_store().get_snapshots()
    return leaderboard(snapshots, by=by, category=category, locality=locality, limit=limit)


@app.get("/items/{item_id}/score", response_model=ItemScoreSnapshot)
def item_score(item_id: str) -> ItemScoreSnapshot:
    snapshot = get_store().get_snapshot(item_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No score for item {item_id}")
    return snapshot


# ── Classified views ─────────────────────────────────────────────────────


@app.get("/views")
def views() -> dict[str, list[str]]:
    return {"views": get_store().list_views()}


@app.get("/views/{view_name}", response_model=ClassifiedView)
def view(view_name: str) -> ClassifiedView:
    found = get_store().get_view(view_name)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Unknown view {view_name}")
    return found


@app.get("/local-favorites/{locality}", response_model=ClassifiedView)
def local_favorites(locality: str) -> ClassifiedView:
    found = get_store().get_view(local_favorites_view_name(locality))
    if found is None:
        raise HTTPException(status_code=404, detail=f"No local favorites for {locality}")
    return found


@app.get("/hidden-gems", response_model=ClassifiedView)
def hidden_gems() -> ClassifiedView:
    found = get_store().get_view(HIDDEN_GEMS_VIEW)
    if found is None:
        raise HTTPException(status_code=404, detail="No recompute has run yet")
    return found


# ── Recompute trigger ────────────────────────────────────────────────────


@app.post("/recompute", response_model=RecomputeSummary)
def trigger_recompute(body: RecomputeRequest | None = None) -> RecomputeSummary:
    body = body or RecomputeRequest()
    overrides = body.model_dump(exclude_none=True, exclude={"now"})
    config = replace(DEFAULT_ENGINE_CONFIG, **overrides)

    store = get_store()
    try:
        result = recompute(store, store, config=config, now=body.now)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return result.summary


@app.get("/recompute/history")
def recompute_history() -> dict:
    return {"runs": get_runs()}


@app.get("/recompute/stats")
def recompute_stats() -> dict:
    return compute_run_stats(get_runs())
