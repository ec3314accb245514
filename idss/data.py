from __future__ import annotations

import csv
import io
import logging
from dataclasses import asdict, fields
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
import requests

from idss.config import Settings, get_settings
from idss.options import build_options
from idss.records import OperatorRecord, normalize_row, year_key


logger = logging.getLogger(__name__)

RECORD_COLUMNS: List[str] = [f.name for f in fields(OperatorRecord)]

PERMISSION_HINT = (
    "Grant read access to the table, for example:\n"
    'CREATE POLICY "Enable read access for all users" ON public."{table}" FOR SELECT USING (true);'
)


class IngestionError(RuntimeError):
    """The configured source could not deliver a dataset."""


class PermissionDeniedError(IngestionError):
    """The source answered but refused access to the table."""


# ---------------- Raw row sources ----------------
def parse_csv_text(text: str, *, delimiter: Optional[str] = None) -> List[Dict[str, object]]:
    if not text or not text.strip():
        return []
    try:
        df = pd.read_csv(
            io.StringIO(text),
            sep=delimiter,
            engine="python",
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (csv.Error, pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as exc:
        raise IngestionError(f"Could not parse CSV data: {exc}") from exc
    df.columns = [str(c).strip() for c in df.columns]
    return df.to_dict(orient="records")


def read_csv_file(path: Path, *, delimiter: Optional[str] = None) -> List[Dict[str, object]]:
    path = Path(path)
    if not path.exists():
        raise IngestionError(f"Could not load local CSV: {path} not found")
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise IngestionError(f"Could not load local CSV {path}: {exc}") from exc
    return parse_csv_text(text, delimiter=delimiter)


def _is_permission_error(status: int, payload: object) -> bool:
    if status in (401, 403):
        return True
    if isinstance(payload, dict):
        code = str(payload.get("code") or "")
        message = str(payload.get("message") or "").lower()
        return code == "PGRST301" or "permission" in message or "policy" in message
    return False


def fetch_remote_rows(settings: Settings) -> List[Dict[str, object]]:
    if not settings.remote_url or not settings.remote_key:
        raise IngestionError("Remote source credentials are missing. Set IDSS_REMOTE_URL and IDSS_REMOTE_KEY.")
    url = f"{settings.remote_url}/rest/v1/{settings.remote_table}"
    params = {"select": "*", "order": "Ano.desc", "limit": str(settings.remote_limit)}
    headers = {
        "apikey": settings.remote_key,
        "Authorization": f"Bearer {settings.remote_key}",
        "Accept": "application/json",
    }
    try:
        response = requests.get(url, params=params, headers=headers, timeout=settings.remote_timeout)
    except requests.RequestException as exc:
        raise IngestionError(f"Could not reach remote source {url}: {exc}") from exc

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if not response.ok:
        message = payload.get("message") if isinstance(payload, dict) else response.reason
        code = payload.get("code") if isinstance(payload, dict) else None
        if _is_permission_error(response.status_code, payload):
            raise PermissionDeniedError(
                f"Permission error: {message}\n\n" + PERMISSION_HINT.format(table=settings.remote_table)
            )
        raise IngestionError(f"Error fetching data: {message} (Code: {code or response.status_code})")

    if not isinstance(payload, list):
        raise IngestionError(f"Unexpected response from remote source {url}")
    return [row for row in payload if isinstance(row, Mapping)]


# ---------------- Normalization ----------------
def normalize_rows(rows: Iterable[Mapping[str, object]]) -> List[OperatorRecord]:
    return [normalize_row(row) for row in rows]


def load_dataset(settings: Optional[Settings] = None) -> List[OperatorRecord]:
    settings = settings or get_settings()
    if settings.use_remote:
        rows = fetch_remote_rows(settings)
        source = f"{settings.remote_url}/{settings.remote_table}"
    else:
        rows = read_csv_file(settings.csv_path, delimiter=settings.csv_delimiter)
        source = str(settings.csv_path)
    if not rows:
        if settings.use_remote:
            raise IngestionError("No rows returned. Check the read policies on the remote table.")
        raise IngestionError(f"No rows found in {source}")

    records = normalize_rows(rows)
    logger.info("Loaded %d records from %s", len(records), source)
    logger.debug("Years present: %s", sorted({r.year for r in records if r.year}, key=year_key, reverse=True))
    return records


def records_to_frame(records: Sequence[OperatorRecord]) -> pd.DataFrame:
    if not records:
        return pd.DataFrame(columns=RECORD_COLUMNS)
    return pd.DataFrame([asdict(r) for r in records], columns=RECORD_COLUMNS)


def record_to_dict(record: Optional[OperatorRecord]) -> Optional[Dict[str, object]]:
    return asdict(record) if record is not None else None


def frame_to_records(df: pd.DataFrame) -> List[Dict[str, object]]:
    """DataFrame rows as dicts with NaN replaced by None."""
    if df.empty:
        return []
    return df.astype(object).where(pd.notna(df), None).to_dict(orient="records")


# ---------------- Public API (cached load) ----------------
def source_signature(settings: Settings) -> Tuple[str, str, float]:
    if settings.use_remote:
        return ("remote", f"{settings.remote_url}/{settings.remote_table}", 0.0)
    path = Path(settings.csv_path)
    mtime = path.stat().st_mtime if path.exists() else 0.0
    return ("local", str(path), mtime)


@lru_cache(maxsize=4)
def _load_dashboard_data_cached(signature: Tuple[str, str, float], settings: Settings) -> Dict[str, object]:
    records = load_dataset(settings)
    return {"source": signature[1], "records": records, "options": build_options(records)}


def load_dashboard_data(settings: Optional[Settings] = None) -> Dict[str, object]:
    settings = settings or get_settings()
    return _load_dashboard_data_cached(source_signature(settings), settings)


def clear_dashboard_cache() -> None:
    _load_dashboard_data_cached.cache_clear()
