from __future__ import annotations

import asyncio
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from dish_rankings.analytics.history import clear_runs, get_runs
from dish_rankings.engine.classifier import HIDDEN_GEMS_VIEW
from dish_rankings.engine.config import DEFAULT_ENGINE_CONFIG, EngineConfig
from dish_rankings.engine.errors import ConfigurationError, RecomputeCancelled
from dish_rankings.engine.models import ItemScoreSnapshot, RankedItem, UserRanking, VisitEvent
from dish_rankings.engine.runner import recompute, recompute_async
from dish_rankings.store.memory import InMemoryStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _seeded_store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_item(RankedItem(id="a", locality="Bangsar"))
    store.add_item(RankedItem(id="b", locality="Bangsar"))
    store.add_item(RankedItem(id="c"))
    for user, pos in (("u1", 1), ("u2", 2)):
        store.upsert_ranking(UserRanking(user_id=user, item_id="a", position=pos, updated_at=NOW - timedelta(days=1)))
    store.upsert_ranking(UserRanking(user_id="u3", item_id="b", position=99, updated_at=NOW - timedelta(days=1)))
    for hours in range(1, 9):
        store.record_visit(VisitEvent(user_id=f"v{hours % 2}", item_id="c", visited_at=NOW - timedelta(hours=hours)))
    return store


def test_recompute_publishes_scores_and_views():
    store = _seeded_store()
    result = recompute(store, store, now=NOW)

    assert result.summary.items_processed == 2
    assert [s.item_id for s in result.summary.items_skipped] == ["b"]
    assert "99" in result.summary.items_skipped[0].reason
    assert result.summary.clean is False
    assert result.summary.views_written == 2

    assert store.get_snapshot("a") is not None
    assert store.get_snapshot("b") is None
    assert store.list_views() == [HIDDEN_GEMS_VIEW, "local-favorites:Bangsar"]
    assert store.get_view("local-favorites:Bangsar").item_ids == ["a"]


def test_recompute_without_sink_only_returns_results():
    store = _seeded_store()
    result = recompute(store, now=NOW)
    assert {s.item_id for s in result.snapshots} == {"a", "c"}
    assert result.summary.views_written == 0
    assert store.get_snapshots() == []


def test_snapshots_are_sorted_by_combined_score():
    result = recompute(_seeded_store(), now=NOW)
    scores = [s.combined_score for s in result.snapshots]
    assert scores == sorted(scores, reverse=True)


def test_visits_outside_window_do_not_count():
    store = InMemoryStore()
    store.add_item(RankedItem(id="old"))
    store.record_visit(VisitEvent(user_id="u1", item_id="old", visited_at=NOW - timedelta(days=45)))
    result = recompute(store, store, now=NOW)
    assert result.snapshots[0].visit_count == 0
    assert result.snapshots[0].frequency_score == 0.0


def test_default_reference_time_is_wall_clock():
    store = InMemoryStore()
    store.add_item(RankedItem(id="x"))
    before = datetime.now(timezone.utc)
    result = recompute(store)
    assert result.snapshots[0].computed_at >= before


def test_invalid_config_fails_before_reading():
    source = MagicMock()
    with pytest.raises(ConfigurationError):
        recompute(source, config=replace(DEFAULT_ENGINE_CONFIG, window_days=0))
    source.list_all_items.assert_not_called()


# ── Publishing ───────────────────────────────────────────────────────────


def _previous(store: InMemoryStore) -> None:
    store.write_snapshot("a", ItemScoreSnapshot(item_id="a", combined_score=1.0, computed_at=NOW - timedelta(days=1)))
    store.commit()


def test_cancelled_run_keeps_previous_results():
    store = _seeded_store()
    _previous(store)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(RecomputeCancelled):
        recompute(store, store, now=NOW, cancel_event=cancel)

    assert store.get_snapshot("a").combined_score == 1.0
    assert store.list_views() == []


def test_readers_see_old_results_until_commit():
    seen_during_write: list[float] = []

    class WatchingStore(InMemoryStore):
        def write_view(self, view_name, view):
            seen_during_write.append(self.get_snapshot("a").combined_score)
            super().write_view(view_name, view)

    store = WatchingStore()
    for item in _seeded_store().list_all_items():
        store.add_item(item)
    store.upsert_ranking(UserRanking(user_id="u1", item_id="a", position=1, updated_at=NOW - timedelta(days=1)))
    _previous(store)

    recompute(store, store, now=NOW)

    assert seen_during_write and set(seen_during_write) == {1.0}
    assert store.get_snapshot("a").combined_score == pytest.approx(5.0)


def test_failed_publish_discards_staged_writes():
    sink = MagicMock()
    sink.write_view.side_effect = RuntimeError("disk full")

    with pytest.raises(RuntimeError):
        recompute(_seeded_store(), sink, now=NOW)

    sink.discard.assert_called_once()
    sink.commit.assert_not_called()


# ── Async trigger and history ────────────────────────────────────────────


def test_recompute_async():
    store = _seeded_store()
    result = asyncio.run(recompute_async(store, store, now=NOW))
    assert result.summary.items_processed == 2
    assert store.get_snapshot("a") is not None


def test_every_run_is_recorded():
    clear_runs()
    store = _seeded_store()
    recompute(store, store, now=NOW)
    recompute(store, store, now=NOW)

    runs = get_runs()
    assert len(runs) == 2
    assert runs[-1]["items_processed"] == 2
    assert runs[-1]["items_skipped"][0]["item_id"] == "b"
    assert runs[-1]["clean"] is False


def test_skipped_item_drops_out_of_published_results():
    store = InMemoryStore()
    store.add_item(RankedItem(id="a", locality="Pudu"))
    store.add_item(RankedItem(id="b"))
    store.upsert_ranking(UserRanking(user_id="u1", item_id="a", position=1, updated_at=NOW - timedelta(days=1)))
    store.upsert_ranking(UserRanking(user_id="u1", item_id="b", position=2, updated_at=NOW - timedelta(days=1)))
    recompute(store, store, now=NOW)
    assert store.get_view("local-favorites:Pudu").item_ids == ["a"]

    store.upsert_ranking(UserRanking(user_id="u1", item_id="a", position=99, updated_at=NOW))
    recompute(store, store, now=NOW + timedelta(days=1))

    assert store.get_snapshot("a") is None
    assert [s.item_id for s in store.get_snapshots()] == ["b"]
    assert store.get_snapshot("b").computed_at == NOW + timedelta(days=1)
    assert store.get_view("local-favorites:Pudu") is None


def test_config_is_validated_once_per_run():
    with patch.object(EngineConfig, "validate", autospec=True) as validate:
        recompute(_seeded_store(), now=NOW)
    validate.assert_called_once()


def test_cancelling_async_task_publishes_nothing():
    started = threading.Event()
    release = threading.Event()

    class SlowStore(InMemoryStore):
        def list_all_items(self):
            started.set()
            release.wait(5)
            return super().list_all_items()

    store = SlowStore()
    for item in _seeded_store().list_all_items():
        store.add_item(item)
    clear_runs()

    async def cancel_midway():
        task = asyncio.create_task(recompute_async(store, store, now=NOW))
        await asyncio.to_thread(started.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        release.set()

    # asyncio.run waits for the worker thread before returning
    asyncio.run(cancel_midway())

    assert store.get_snapshots() == []
    assert store.list_views() == []
    assert get_runs() == []


def test_cancel_after_scoring_still_blocks_publish():
    cancel = threading.Event()
    sink = MagicMock()

    def classify_then_cancel(*args, **kwargs):
        cancel.set()
        return []

    clear_runs()
    with patch("dish_rankings.engine.runner.classify", side_effect=classify_then_cancel):
        with pytest.raises(RecomputeCancelled):
            recompute(_seeded_store(), sink, now=NOW, cancel_event=cancel)

    sink.write_snapshot.assert_not_called()
    sink.commit.assert_not_called()
    assert get_runs() == []
