from __future__ import annotations

from .config import DEFAULT_STORE_CONFIG
from .loader import load_csv_snapshot
from .memory import InMemoryStore

_store: InMemoryStore | None = None


def get_store() -> InMemoryStore:
    """Return the process-wide store, loading the CSV snapshot on first call."""
    global _store
    if _store is None:
        _store = load_csv_snapshot(DEFAULT_STORE_CONFIG)
    return _store


def set_store(store: InMemoryStore | None) -> None:
    """Swap the process-wide store. ``None`` forces a reload on next access."""
    global _store
    _store = store
