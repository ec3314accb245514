from __future__ import annotations

import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from idss.data import records_to_frame
from idss.records import INDEX_FIELDS, OperatorRecord, year_key

NOT_INFORMED = "Not informed"

RankKey = Union[str, Tuple[str, str]]


def ranking_key(record: OperatorRecord) -> Tuple[float, str, str]:
    # Missing composite scores compare as 0.
    return (-(record.composite or 0.0), record.legal_name, record.registry_number)


def best_per_operator(records: Iterable[OperatorRecord]) -> List[OperatorRecord]:
    """Highest-composite record per registry number."""
    best: Dict[str, OperatorRecord] = {}
    for record in sorted(records, key=ranking_key):
        best.setdefault(record.registry_number, record)
    return list(best.values())


def rank_overall(records: Iterable[OperatorRecord], *, per_operator: bool = False) -> List[OperatorRecord]:
    pool = best_per_operator(records) if per_operator else list(records)
    return sorted(pool, key=ranking_key)


def latest_per_operator(records: Iterable[OperatorRecord]) -> Dict[str, OperatorRecord]:
    latest: Dict[str, OperatorRecord] = {}
    for record in records:
        if not record.registry_number:
            continue
        current = latest.get(record.registry_number)
        if current is None or year_key(current.year) < year_key(record.year):
            latest[record.registry_number] = record
    return latest


def operator_history(records: Iterable[OperatorRecord], registry_number: str) -> List[OperatorRecord]:
    """All records of one operator, oldest year first."""
    rows = [r for r in records if r.registry_number == registry_number]
    return sorted(rows, key=lambda r: year_key(r.year))


def build_rank_lookup(ranking: Sequence[OperatorRecord], *, by_year: bool = True) -> Dict[RankKey, int]:
    lookup: Dict[RankKey, int] = {}
    for position, record in enumerate(ranking, start=1):
        key: RankKey = (record.registry_number, record.year) if by_year else record.registry_number
        lookup.setdefault(key, position)
    return lookup


def rank_of(lookup: Dict[RankKey, int], registry_number: str, year: Optional[str] = None) -> Optional[int]:
    key: RankKey = (registry_number, year) if year is not None else registry_number
    return lookup.get(key)


def group_average(records: Iterable[OperatorRecord], field_name: str) -> float:
    """Mean of a score field ignoring missing values; 0.0 when nothing is scored."""
    values = pd.Series([getattr(r, field_name) for r in records], dtype="float64")
    values = values.replace([np.inf, -np.inf], np.nan)
    mean = values.mean(skipna=True)
    if mean is None or pd.isna(mean):
        return 0.0
    return float(mean)


def _numeric_frame(records: Sequence[OperatorRecord], score_fields: Sequence[str]) -> pd.DataFrame:
    df = records_to_frame(records)
    for col in score_fields:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df


def average_by_year(
    records: Sequence[OperatorRecord],
    score_fields: Sequence[str] = INDEX_FIELDS,
    *,
    decimals: int = 4,
) -> pd.DataFrame:
    columns = ["year"] + list(score_fields)
    df = _numeric_frame(records, score_fields)
    df = df[df["year"].astype(str).ne("")]
    if df.empty:
        return pd.DataFrame(columns=columns)
    grouped = df.groupby("year")[list(score_fields)].mean().round(decimals).reset_index()
    grouped = grouped.sort_values("year", key=lambda s: s.map(year_key), kind="mergesort")
    return grouped[columns].reset_index(drop=True)


def category_ranking(records: Sequence[OperatorRecord], category: str, score_field: str = "composite") -> pd.DataFrame:
    df = _numeric_frame(records, [score_field])
    df = df.dropna(subset=[score_field])
    if df.empty:
        return pd.DataFrame(columns=[category, "average", "count"])
    df[category] = df[category].astype(str).replace("", NOT_INFORMED)
    out = (
        df.groupby(category)
        .agg(average=(score_field, "mean"), count=(score_field, "size"))
        .reset_index()
    )
    out["average"] = out["average"].round(4)
    out = out.sort_values(["average", category], ascending=[False, True], kind="mergesort")
    return out.reset_index(drop=True)


def group_counts(records: Sequence[OperatorRecord], category: str) -> pd.DataFrame:
    df = records_to_frame(records)
    if df.empty:
        return pd.DataFrame(columns=[category, "count"])
    labels = df[category].astype(str).replace("", NOT_INFORMED)
    out = labels.value_counts().rename_axis(category).reset_index(name="count")
    return out.sort_values(["count", category], ascending=[False, True], kind="mergesort").reset_index(drop=True)


def operators_per_year(records: Sequence[OperatorRecord]) -> pd.DataFrame:
    df = records_to_frame(records)
    df = df[df["year"].astype(str).ne("")]
    if df.empty:
        return pd.DataFrame(columns=["year", "operators"])
    out = df.groupby("year")["registry_number"].nunique().reset_index(name="operators")
    out = out.sort_values("year", key=lambda s: s.map(year_key), kind="mergesort")
    return out.reset_index(drop=True)


def percent_change(values: Sequence[Optional[float]]) -> Optional[float]:
    """First-to-last change in percent; None without two points or from a zero start."""
    points = [float(v) for v in values if v is not None and math.isfinite(v)]
    if len(points) < 2 or points[0] == 0:
        return None
    return (points[-1] - points[0]) / points[0] * 100
