from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

import pandas as pd

from idss.charts import score_bar_chart
from idss.config import RANKING_TOP_N
from idss.data import frame_to_records
from idss.filters import DashboardState
from idss.ranking import category_ranking, rank_overall
from idss.records import OperatorRecord


def _ranking_row(record: OperatorRecord, rank: int, selected: Optional[OperatorRecord]) -> Dict[str, Any]:
    return {
        "rank": rank,
        "registry_number": record.registry_number,
        "legal_name": record.legal_name or "N/A",
        "year": record.year,
        "composite": record.composite if record.composite is not None else 0.0,
        "index_modality": record.index_modality or "-",
        "operator_modality": record.operator_modality or "-",
        "is_selected": bool(selected is not None and selected.registry_number == record.registry_number),
    }


def compute_ranking(state: DashboardState, ctx: Dict[str, Any], *, top_n: int = RANKING_TOP_N) -> Dict[str, Any]:
    data: List[OperatorRecord] = ctx.get("filtered", [])
    selected = state.selected
    ranked = [r for r in rank_overall(data) if r.legal_name]

    selected_rank: Optional[int] = None
    if selected is not None:
        for position, record in enumerate(ranked, start=1):
            if record.registry_number == selected.registry_number:
                selected_rank = position
                break

    top = [_ranking_row(r, i, selected) for i, r in enumerate(ranked[:top_n], start=1)]
    if selected_rank is not None and selected_rank > top_n:
        top.append(_ranking_row(ranked[selected_rank - 1], selected_rank, selected))

    by_modality = category_ranking(data, "operator_modality")
    by_size = category_ranking(data, "size")

    charts: Dict[str, Any] = {}
    if top:
        top_df = pd.DataFrame(top)
        top_df["label"] = top_df["rank"].astype(str) + ". " + top_df["legal_name"]
        charts["top_performers"] = score_bar_chart(top_df, label="label", score="composite", title="IDSS", highlight="is_selected")
    if not by_modality.empty:
        charts["modality_ranking"] = score_bar_chart(by_modality, label="operator_modality", score="average", title="Average IDSS")

    return {
        "filters": asdict(state.filters),
        "selected_rank": selected_rank,
        "ranked_count": len(ranked),
        "top": top,
        "axis_floor": max(0.0, min(row["composite"] for row in top)) if top else 0.0,
        "modality_ranking": frame_to_records(by_modality),
        "size_ranking": frame_to_records(by_size),
        "charts": charts,
    }
