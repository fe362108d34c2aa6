from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class StoreConfig:
    """
    Where CSV snapshots are read from and results are exported to.
    """

    data_dir: Path = Path(os.getenv("RANKINGS_DATA_DIR", "data"))
    items_filename: str = "items.csv"
    rankings_filename: str = "rankings.csv"
    visits_filename: str = "visits.csv"
    output_dir: Path = Path(os.getenv("RANKINGS_OUTPUT_DIR", "data/output"))

    @property
    def items_path(self) -> Path:
        return self.data_dir / self.items_filename

    @property
    def rankings_path(self) -> Path:
        return self.data_dir / self.rankings_filename

    @property
    def visits_path(self) -> Path:
        return self.data_dir / self.visits_filename


DEFAULT_STORE_CONFIG = StoreConfig()
