from __future__ import annotations


class RankingEngineError(Exception):
    """Base class for engine failures."""


class InputValidationError(RankingEngineError, ValueError):
    """A single ranking or visit record is malformed.

    Recovered per item: the aggregator skips the offending item and carries on.
    """

    def __init__(self, reason: str, item_id: str | None = None) -> None:
        self.reason = reason
        self.item_id = item_id
        prefix = f"item {item_id}: " if item_id else ""
        super().__init__(f"{prefix}{reason}")


class ConfigurationError(RankingEngineError, ValueError):
    """An engine setting would invalidate every result. Fatal to the run."""


class RecomputeCancelled(RankingEngineError):
    """Raised when a run is cancelled between items. Nothing is published."""
