from __future__ import annotations

from collections import Counter
from typing import Any


def compute_run_stats(runs: list[dict[str, Any]]) -> dict[str, Any]:
    total = len(runs)

    durations = [r["duration_ms"] for r in runs if "duration_ms" in r]
    avg_duration = round(sum(durations) / len(durations), 1) if durations else 0.0

    clean_runs = sum(1 for r in runs if not r.get("items_skipped"))

    # Items that keep getting skipped usually point at one corrupt record upstream
    skip_counter: Counter[str] = Counter()
    reasons: dict[str, str] = {}
    for r in runs:
        for s in r.get("items_skipped", []) or []:
            skip_counter[s["item_id"]] += 1
            reasons[s["item_id"]] = s["reason"]
    top_skipped = [
        {"item_id": item_id, "runs": count, "last_reason": reasons[item_id]}
        for item_id, count in skip_counter.most_common(10)
    ]

    processed = sum(r.get("items_processed", 0) for r in runs)
    skipped = sum(len(r.get("items_skipped", []) or []) for r in runs)

    return {
        "total_runs": total,
        "avg_duration_ms": avg_duration,
        "clean_run_rate": round(clean_runs / total * 100, 1) if total else 0.0,
        "items_processed": processed,
        "items_skipped": skipped,
        "skip_rate": round(skipped / (processed + skipped) * 100, 1) if processed + skipped else 0.0,
        "top_skipped_items": top_skipped,
        "last_run": runs[-1] if runs else None,
    }
