from __future__ import annotations

import math
from dataclasses import asdict, fields
from typing import Any, Dict, List, Literal, Optional, Sequence

import pandas as pd

from idss.config import TABLE_PAGE_SIZE
from idss.data import records_to_frame
from idss.filters import DashboardState
from idss.ranking import build_rank_lookup, rank_of, rank_overall
from idss.records import SCORE_FIELDS, OperatorRecord

SortDirection = Literal["asc", "desc"]

SORTABLE_FIELDS = tuple(f.name for f in fields(OperatorRecord))
NUMERIC_SORT_FIELDS = set(SCORE_FIELDS) | {"year", "registry_number", "beneficiary_count"}


def search_records(records: Sequence[OperatorRecord], term: str) -> List[OperatorRecord]:
    """Case-insensitive substring match against every field."""
    needle = (term or "").strip().lower()
    if not needle or not records:
        return list(records)
    df = records_to_frame(records).astype(object)
    text = df.where(pd.notna(df), "").astype(str)
    mask = text.apply(lambda col: col.str.lower().str.contains(needle, regex=False)).any(axis=1)
    return [records[i] for i in mask[mask].index]


def _sort_keys(df: pd.DataFrame, key: str) -> pd.Series:
    if key in NUMERIC_SORT_FIELDS:
        raw = df[key].astype(object).where(pd.notna(df[key]), "0").astype(str).str.replace(",", ".", regex=False)
        return pd.to_numeric(raw, errors="coerce").fillna(0.0)
    return df[key].astype(object).where(pd.notna(df[key]), "").astype(str)


def sort_records(records: Sequence[OperatorRecord], key: str, direction: SortDirection = "desc") -> List[OperatorRecord]:
    if key not in SORTABLE_FIELDS:
        raise ValueError(f"Unknown sort field: {key}")
    if not records:
        return []
    keys = _sort_keys(records_to_frame(records), key)
    order = keys.sort_values(ascending=direction != "desc", kind="mergesort").index
    return [records[i] for i in order]


def paginate(records: Sequence[OperatorRecord], page: int, per_page: int = TABLE_PAGE_SIZE) -> Dict[str, Any]:
    total = len(records)
    total_pages = max(1, math.ceil(total / per_page))
    page = max(1, min(int(page), total_pages))
    start = (page - 1) * per_page
    return {
        "page": page,
        "per_page": per_page,
        "total": total,
        "total_pages": total_pages,
        "rows": list(records[start : start + per_page]),
    }


def locate_operator(records: Sequence[OperatorRecord], term: str, per_page: int = TABLE_PAGE_SIZE) -> Optional[Dict[str, Any]]:
    """First record in composite ranking order whose name, registry or tax id contains ``term``."""
    needle = (term or "").strip().lower()
    if not needle:
        return None
    ranked = rank_overall(records)
    for position, record in enumerate(ranked, start=1):
        if needle in record.legal_name.lower() or needle in record.registry_number or needle in record.tax_id:
            return {
                "record": asdict(record),
                "key": f"{record.registry_number}-{record.year}",
                "rank": position,
                "page": math.ceil(position / per_page),
            }
    return None


def compute_table(
    state: DashboardState,
    ctx: Dict[str, Any],
    *,
    search: str = "",
    sort_key: str = "composite",
    direction: SortDirection = "desc",
    page: int = 1,
    locator: str = "",
) -> Dict[str, Any]:
    data: List[OperatorRecord] = ctx.get("filtered", [])
    lookup = build_rank_lookup(rank_overall(data))

    rows = sort_records(search_records(data, search), sort_key, direction)
    paged = paginate(rows, page)
    paged["rows"] = [
        {**asdict(r), "rank": rank_of(lookup, r.registry_number, r.year)} for r in paged["rows"]
    ]
    return {
        "filters": asdict(state.filters),
        "search": search,
        "sort": {"key": sort_key, "direction": direction},
        "table": paged,
        "locator": locate_operator(data, locator),
    }
