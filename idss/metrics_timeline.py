from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import pandas as pd

from idss.charts import index_trend_chart
from idss.data import frame_to_records, record_to_dict
from idss.filters import DashboardState
from idss.ranking import average_by_year, operator_history, operators_per_year, percent_change
from idss.records import INDEX_FIELDS, INDEX_LABELS, OperatorRecord


def _long_by_index(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=["year", "series", "value"])
    long = df.melt(id_vars=["year"], value_vars=list(INDEX_FIELDS), var_name="series", value_name="value")
    long["series"] = long["series"].map(INDEX_LABELS)
    return long.dropna(subset=["value"])


def compute_timeline(state: DashboardState, ctx: Dict[str, Any]) -> Dict[str, Any]:
    history: List[OperatorRecord] = ctx.get("history", [])
    selected = state.selected

    averages = average_by_year(history)
    counts = operators_per_year(history)

    operator_rows: List[Dict[str, Any]] = []
    trends: Dict[str, Any] = {}
    if selected is not None:
        own = operator_history(history, selected.registry_number)
        operator_rows = [{"year": r.year, **{f: getattr(r, f) for f in INDEX_FIELDS}} for r in own]
        trends = {INDEX_LABELS[f]: percent_change([getattr(r, f) for r in own]) for f in INDEX_FIELDS}

    charts: Dict[str, Any] = {}
    if not averages.empty:
        charts["average_trend"] = index_trend_chart(_long_by_index(averages), title="Average")
    if operator_rows:
        charts["operator_trend"] = index_trend_chart(_long_by_index(pd.DataFrame(operator_rows)), title="Index")

    return {
        "filters": asdict(state.filters),
        "selected": record_to_dict(selected),
        "averages_by_year": frame_to_records(averages),
        "operator_history": operator_rows,
        "trends": trends,
        "operators_per_year": frame_to_records(counts),
        "operators_max": int(counts["operators"].max()) if not counts.empty else 0,
        "operators_min": int(counts["operators"].min()) if not counts.empty else 0,
        "charts": charts,
    }
