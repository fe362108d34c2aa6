from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


@dataclass(frozen=True)
class EngineConfig:
    """
    Tunables for one recompute run.

    Override per run with ``dataclasses.replace(DEFAULT_ENGINE_CONFIG, ...)``.
    """

    window_days: float = float(os.getenv("RANKINGS_WINDOW_DAYS", "30"))
    saturation: float = float(os.getenv("RANKINGS_SATURATION", "20"))
    hidden_gem_freq_threshold: float = float(os.getenv("RANKINGS_GEM_FREQ_THRESHOLD", "7.0"))
    hidden_gem_rank_ceiling: float = float(os.getenv("RANKINGS_GEM_RANK_CEILING", "5.0"))
    local_favorites_top_n: int = int(os.getenv("RANKINGS_LOCAL_TOP_N", "10"))
    hidden_gems_top_n: int = int(os.getenv("RANKINGS_GEMS_TOP_N", "20"))
    max_workers: int = int(os.getenv("RANKINGS_MAX_WORKERS", "1"))
    # Voter count at which the popularity weight saturates. None means the
    # largest voter count in the corpus being scored.
    popularity_voters: int | None = _optional_int("RANKINGS_POPULARITY_VOTERS")

    @property
    def window(self) -> timedelta:
        return timedelta(days=self.window_days)

    def validate(self) -> None:
        """Raise ``ConfigurationError`` for any value that would corrupt every score."""
        if self.window_days <= 0:
            raise ConfigurationError(f"window_days must be positive, got {self.window_days}")
        if self.saturation <= 0:
            raise ConfigurationError(f"saturation must be positive, got {self.saturation}")
        if self.hidden_gem_freq_threshold < 0:
            raise ConfigurationError(
                f"hidden_gem_freq_threshold must be >= 0, got {self.hidden_gem_freq_threshold}"
            )
        if self.hidden_gem_rank_ceiling < 0:
            raise ConfigurationError(
                f"hidden_gem_rank_ceiling must be >= 0, got {self.hidden_gem_rank_ceiling}"
            )
        if self.local_favorites_top_n < 1:
            raise ConfigurationError(
                f"local_favorites_top_n must be >= 1, got {self.local_favorites_top_n}"
            )
        if self.hidden_gems_top_n < 1:
            raise ConfigurationError(f"hidden_gems_top_n must be >= 1, got {self.hidden_gems_top_n}")
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.popularity_voters is not None and self.popularity_voters < 1:
            raise ConfigurationError(
                f"popularity_voters must be >= 1 when set, got {self.popularity_voters}"
            )


DEFAULT_ENGINE_CONFIG = EngineConfig()
