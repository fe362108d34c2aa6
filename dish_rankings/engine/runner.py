"""
Recompute entry point.

Usage (batch job over the CSV snapshot):
    python -m dish_rankings.engine.runner
"""
from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from ..analytics.history import record_run
from ..store.config import DEFAULT_STORE_CONFIG
from ..store.loader import export_results, load_csv_snapshot
from ..store.protocols import RankingSource, ScoreSink
from .aggregator import CorpusSnapshot, score_corpus, sort_snapshots
from .classifier import classify
from .config import DEFAULT_ENGINE_CONFIG, EngineConfig
from .errors import RecomputeCancelled
from .models import ClassifiedView, ItemScoreSnapshot, RecomputeSummary, as_utc

logger = logging.getLogger(__name__)


@dataclass
class RecomputeResult:
    snapshots: list[ItemScoreSnapshot]
    views: list[ClassifiedView]
    summary: RecomputeSummary


def load_corpus(source: RankingSource, since: datetime) -> CorpusSnapshot:
    """Read everything one run needs. The only place the engine touches storage on input."""
    items = source.list_all_items()
    rankings = {item.id: source.list_active_rankings(item.id) for item in items}
    visits = {item.id: source.list_visits(item.id, since) for item in items}
    return CorpusSnapshot(items=items, rankings=rankings, visits=visits)


def publish(result: RecomputeResult, sink: ScoreSink) -> None:
    """Stage every snapshot and view, then make them visible in one commit."""
    try:
        for snapshot in result.snapshots:
            sink.write_snapshot(snapshot.item_id, snapshot)
        for view in result.views:
            sink.write_view(view.name, view)
    except Exception:
        sink.discard()
        raise
    sink.commit()


def recompute(
    source: RankingSource,
    sink: ScoreSink | None = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    now: datetime | None = None,
    cancel_event: threading.Event | None = None,
) -> RecomputeResult:
    """
    Recompute every score and view from the source's current data.

    Steps:
    - Validate configuration (fails before any data is read).
    - Load the corpus, score each item, build the classified views.
    - If a sink is given, publish the complete result set at once.

    A cancelled run raises ``RecomputeCancelled`` and publishes nothing.
    """
    config.validate()

    start_time = time.time()
    started_at = datetime.now(timezone.utc)
    now = as_utc(now) if now is not None else started_at

    try:
        corpus = load_corpus(source, now - config.window)
        aggregated = score_corpus(corpus, config, now, cancel_event)
    except RecomputeCancelled:
        logger.warning("Recompute cancelled, discarding in-progress results")
        raise

    snapshots = sort_snapshots(aggregated.snapshots, "combined_score")
    views = classify(snapshots, config, computed_at=now)

    summary = RecomputeSummary(
        items_processed=len(snapshots),
        items_skipped=aggregated.skipped,
        views_written=len(views) if sink is not None else 0,
        started_at=started_at,
        finished_at=datetime.now(timezone.utc),
        duration_ms=round((time.time() - start_time) * 1000, 1),
    )
    result = RecomputeResult(snapshots=snapshots, views=views, summary=summary)

    # Last point a cancel can take effect; nothing has been staged yet
    if cancel_event is not None and cancel_event.is_set():
        logger.warning("Recompute cancelled, discarding in-progress results")
        raise RecomputeCancelled("cancelled before publish")

    if sink is not None:
        publish(result, sink)

    record_run(summary)
    logger.info(
        "Recompute finished: %d items scored, %d skipped, %d views in %.1f ms",
        summary.items_processed,
        len(summary.items_skipped),
        len(views),
        summary.duration_ms,
    )
    return result


async def recompute_async(
    source: RankingSource,
    sink: ScoreSink | None = None,
    config: EngineConfig = DEFAULT_ENGINE_CONFIG,
    now: datetime | None = None,
) -> RecomputeResult:
    """Run ``recompute`` in a worker thread so the event loop stays free.

    Cancelling the awaiting task stops the run at the next item boundary, or
    just before publishing if scoring has already finished.
    """
    cancel_event = threading.Event()
    try:
        return await asyncio.to_thread(recompute, source, sink, config, now, cancel_event)
    except asyncio.CancelledError:
        cancel_event.set()
        raise


def main() -> None:
    logging.basicConfig(
        level=os.getenv("RANKINGS_LOGLEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    store = load_csv_snapshot(DEFAULT_STORE_CONFIG)
    result = recompute(store, store)
    path = export_results(result.snapshots, result.views, DEFAULT_STORE_CONFIG.output_dir)
    print(
        f"Recompute complete. {result.summary.items_processed} items scored, "
        f"{len(result.summary.items_skipped)} skipped. Scores saved to: {path}"
    )


if __name__ == "__main__":
    main()
