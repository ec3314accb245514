from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from idss.charts import index_trend_chart
from idss.data import frame_to_records, record_to_dict
from idss.filters import DashboardState
from idss.ranking import average_by_year, group_average, latest_per_operator
from idss.records import INDEX_FIELDS, INDEX_LABELS, SUBINDEX_FIELDS, OperatorRecord, year_key


def _short_name(legal_name: str) -> str:
    parts = legal_name.split()
    return " ".join(parts[:2])


def _snapshot_label(records: Sequence[OperatorRecord], snapshot: Sequence[OperatorRecord]) -> str:
    years = {r.year for r in records if r.year} or {r.year for r in snapshot if r.year}
    if len(years) == 1:
        return next(iter(years))
    if len(years) > 1:
        return "Latest available year"
    return ""


def _index_values(record: Optional[OperatorRecord], *, missing: Optional[float]) -> Dict[str, Optional[float]]:
    out: Dict[str, Optional[float]] = {}
    for f in INDEX_FIELDS:
        value = getattr(record, f) if record is not None else None
        out[f] = value if value is not None else missing
    return out


def _group_snapshot(snapshot: Sequence[OperatorRecord], category: str, values: Sequence[str], prefix: str, label: str) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for value in values:
        members = [r for r in snapshot if getattr(r, category) == value]
        if not members:
            continue
        name = f"{prefix}: {value}"
        row: Dict[str, Any] = {"name": name, "series_key": f"{category}:{value}", "year": label}
        row.update({f: round(group_average(members, f), 4) for f in INDEX_FIELDS})
        rows.append(row)
    return rows


def _group_series(group: Sequence[OperatorRecord], category: str, values: Sequence[str], prefix: str, indicator: str) -> pd.DataFrame:
    frames: List[pd.DataFrame] = []
    for value in values:
        members = [r for r in group if getattr(r, category) == value]
        by_year = average_by_year(members, [indicator]).dropna(subset=[indicator])
        if by_year.empty:
            continue
        frames.append(
            pd.DataFrame({"year": by_year["year"], "series": f"{prefix}: {value}", "value": by_year[indicator]})
        )
    if not frames:
        return pd.DataFrame(columns=["year", "series", "value"])
    return pd.concat(frames, ignore_index=True)


def compute_comparison(
    state: DashboardState,
    ctx: Dict[str, Any],
    *,
    indicator: str = "composite",
    include_modalities: bool = True,
    include_sizes: bool = True,
) -> Dict[str, Any]:
    if indicator not in INDEX_FIELDS:
        raise ValueError(f"Unknown indicator: {indicator}")
    snapshot: List[OperatorRecord] = ctx.get("filtered", [])
    history: List[OperatorRecord] = ctx.get("history", [])
    group: List[OperatorRecord] = ctx.get("comparison", [])
    selected = state.selected
    filters = state.filters

    # Selected operator against the rest of the filtered snapshot.
    selected_snapshot: Optional[OperatorRecord] = None
    others = snapshot
    if selected is not None:
        selected_snapshot = next((r for r in snapshot if r.registry_number == selected.registry_number), None)
        others = [r for r in snapshot if r.registry_number != selected.registry_number]
    versus = [
        {
            "index": INDEX_LABELS[f],
            "operator": getattr(selected_snapshot, f) if selected_snapshot is not None else None,
            "average": group_average(others, f),
        }
        for f in INDEX_FIELDS
    ]
    radar = [
        {
            "subject": INDEX_LABELS[f],
            "operator": (getattr(selected_snapshot, f) or 0.0) if selected_snapshot is not None else 0.0,
            "average": group_average(others, f),
        }
        for f in SUBINDEX_FIELDS
    ]

    comparison_records: List[OperatorRecord] = []
    if selected is not None and selected.registry_number:
        latest = latest_per_operator(snapshot).get(selected.registry_number) or latest_per_operator(history).get(
            selected.registry_number
        )
        if latest is not None:
            comparison_records.append(latest)
    label = _snapshot_label(comparison_records, snapshot)

    operators = []
    for record in comparison_records:
        row: Dict[str, Any] = {
            "name": _short_name(record.legal_name),
            "full_name": f"{record.legal_name} (Registry {record.registry_number})",
            "series_key": record.registry_number,
            "year": record.year,
        }
        row.update(_index_values(record, missing=0.0))
        operators.append(row)

    groups = _group_snapshot(snapshot, "operator_modality", filters.modalities, "Modality", label)
    groups += _group_snapshot(snapshot, "size", filters.sizes, "Size", label)
    combined = operators + groups
    radar_series = [
        {"subject": INDEX_LABELS[f], **{row["series_key"]: row[f] for row in combined}} for f in SUBINDEX_FIELDS
    ]

    # Year-by-year line: the operator's own values plus group averages.
    timeline_frames: List[pd.DataFrame] = []
    if selected is not None:
        own = [r for r in history if r.registry_number == selected.registry_number and getattr(r, indicator) is not None]
        if own:
            timeline_frames.append(
                pd.DataFrame(
                    {
                        "year": [r.year for r in own],
                        "series": _short_name(selected.legal_name) or selected.registry_number,
                        "value": [getattr(r, indicator) for r in own],
                    }
                )
            )
    if include_modalities:
        timeline_frames.append(_group_series(group, "operator_modality", filters.modalities, "Modality", indicator))
    if include_sizes:
        timeline_frames.append(_group_series(group, "size", filters.sizes, "Size", indicator))
    timeline_frames = [f for f in timeline_frames if not f.empty]
    timeline = (
        pd.concat(timeline_frames, ignore_index=True)
        if timeline_frames
        else pd.DataFrame(columns=["year", "series", "value"])
    )
    if not timeline.empty:
        timeline = timeline.sort_values("year", key=lambda s: s.map(year_key), kind="mergesort").reset_index(drop=True)

    charts: Dict[str, Any] = {}
    if not timeline.empty:
        charts["timeline"] = index_trend_chart(timeline, title=INDEX_LABELS[indicator])

    return {
        "filters": asdict(filters),
        "selected": record_to_dict(selected),
        "indicator": indicator,
        "snapshot_label": label,
        "versus_group": versus,
        "radar": radar,
        "operators": operators,
        "groups": groups,
        "radar_series": radar_series,
        "timeline": frame_to_records(timeline),
        "charts": charts,
    }
