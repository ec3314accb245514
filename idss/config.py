from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple


DATA_DIR = Path(__file__).resolve().parents[1] / "base_dados"
DEFAULT_CSV_PATH = DATA_DIR / "idss.csv"

DEFAULT_MODALITIES: Tuple[str, ...] = ("Cooperativa Odontológica", "Odontologia de Grupo")

# Cooperatives split into network-affiliated and independent operators.
SUBGROUP_MODALITY = "Cooperativa Odontológica"
SUBGROUP_FLAG = "Sim"

SMALL_MAX_BENEFICIARIES = 19999
MEDIUM_MAX_BENEFICIARIES = 99999

SCORE_RANGE_DEFAULT: Tuple[float, float] = (0.0, 1.0)
BENEFICIARY_RANGE_DEFAULT: Tuple[int, int] = (0, 1000000)

TABLE_PAGE_SIZE = 50
RANKING_TOP_N = 10


@dataclass(frozen=True)
class Settings:
    data_source: str = "local"
    csv_path: Path = DEFAULT_CSV_PATH
    csv_delimiter: Optional[str] = None
    remote_url: str = ""
    remote_key: str = ""
    remote_table: str = "idss"
    remote_timeout: float = 30.0
    remote_limit: int = 100000

    @property
    def use_remote(self) -> bool:
        return self.data_source == "remote"


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


def get_settings() -> Settings:
    source = (os.getenv("IDSS_DATA_SOURCE") or "local").strip().lower()
    if source not in {"local", "remote"}:
        source = "local"
    csv_path = os.getenv("IDSS_CSV_PATH")
    return Settings(
        data_source=source,
        csv_path=Path(csv_path) if csv_path else DEFAULT_CSV_PATH,
        csv_delimiter=os.getenv("IDSS_CSV_DELIMITER") or None,
        remote_url=(os.getenv("IDSS_REMOTE_URL") or "").rstrip("/"),
        remote_key=os.getenv("IDSS_REMOTE_KEY") or "",
        remote_table=os.getenv("IDSS_REMOTE_TABLE") or "idss",
        remote_timeout=_env_float("IDSS_REMOTE_TIMEOUT", 30.0),
        remote_limit=_env_int("IDSS_REMOTE_LIMIT", 100000),
    )
