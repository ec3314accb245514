from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

from idss.charts import share_donut_chart
from idss.data import frame_to_records, record_to_dict
from idss.filters import DashboardState
from idss.ranking import group_average, group_counts, rank_overall
from idss.records import INDEX_FIELDS, INDEX_LABELS, SUBINDEX_FIELDS, OperatorRecord


def compute_overview(state: DashboardState, ctx: Dict[str, Any]) -> Dict[str, Any]:
    data: List[OperatorRecord] = ctx.get("filtered", [])
    averages = {INDEX_LABELS[f]: round(group_average(data, f), 4) for f in INDEX_FIELDS}
    subindex_mean = sum(group_average(data, f) for f in SUBINDEX_FIELDS) / len(SUBINDEX_FIELDS)
    top = rank_overall(data)[0] if data else None

    by_modality = group_counts(data, "operator_modality")
    by_size = group_counts(data, "size")
    charts: Dict[str, Any] = {}
    if data:
        charts = {
            "modality_share": share_donut_chart(by_modality, category="operator_modality"),
            "size_share": share_donut_chart(by_size, category="size"),
        }

    return {
        "filters": asdict(state.filters),
        "selected": record_to_dict(state.selected),
        "kpis": {
            "operators": len({r.registry_number for r in data if r.registry_number}),
            "total_operators": int(ctx.get("total_operators", 0) or 0),
            "modalities": int(len(by_modality)),
            "averages": averages,
            "subindex_mean": round(subindex_mean, 4),
            "top_performer": record_to_dict(top),
        },
        "distributions": {
            "modality": frame_to_records(by_modality),
            "size": frame_to_records(by_size),
        },
        "charts": charts,
    }
