from __future__ import annotations

from collections import deque
from typing import Any

from ..engine.models import RecomputeSummary

MAX_RUNS = 500

_runs: deque[dict[str, Any]] = deque(maxlen=MAX_RUNS)


def record_run(summary: RecomputeSummary) -> None:
    _runs.append(summary.model_dump(mode="json"))


def get_runs() -> list[dict[str, Any]]:
    """Oldest first. Only the most recent ``MAX_RUNS`` are kept."""
    return list(_runs)


def clear_runs() -> None:
    _runs.clear()
