from __future__ import annotations

from dataclasses import asdict
import logging
import math
from typing import Literal

import numpy as np
import pandas as pd
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.encoders import jsonable_encoder

from api.schemas import DashboardRequestModel, FilterEventModel, TransitionRequestModel
from idss.config import RANKING_TOP_N
from idss.data import (
    IngestionError,
    PermissionDeniedError,
    clear_dashboard_cache,
    load_dashboard_data,
    record_to_dict,
    records_to_frame,
)
from idss.evaluator import prepare_context
from idss.filters import (
    BeneficiaryRangeChanged,
    DashboardState,
    FilterEvent,
    FiltersCleared,
    FilterReplaced,
    FilterToggled,
    OperatorSearched,
    OperatorSelected,
    ScoreRangeChanged,
    SelectionCleared,
    find_operator,
    has_active_filters,
    normalize_filters,
    transition,
)
from idss.metrics_comparison import compute_comparison
from idss.metrics_overview import compute_overview
from idss.metrics_ranking import compute_ranking
from idss.metrics_timeline import compute_timeline
from idss.session import DashboardSession
from idss.table import compute_table


app = FastAPI(title="IDSS Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)
session = DashboardSession()

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
            },
        )
    )


def _error(exc: Exception, name: str) -> JSONResponse:
    if isinstance(exc, PermissionDeniedError):
        status = 403
    elif isinstance(exc, IngestionError):
        status = 502
    elif isinstance(exc, ValueError):
        status = 400
    else:
        status = 500
    if status >= 500:
        logger.exception("%s failed", name)
    return JSONResponse(status_code=status, content={"error": str(exc), "type": type(exc).__name__})


def _cached_records() -> list:
    return load_dashboard_data()["records"]


def _fresh_records() -> list:
    clear_dashboard_cache()
    return load_dashboard_data()["records"]


def _data_context() -> dict:
    session.ensure_loaded(_cached_records)
    return session.data_context()


def _state_from_request(model: DashboardRequestModel, data_ctx: dict) -> DashboardState:
    options = data_ctx["options"]
    filters = normalize_filters(model.filters.model_dump(), options=options)
    selected = None
    if model.selected_registry:
        selected = find_operator(data_ctx["records"], model.selected_registry, model.selected_year)
    return DashboardState(options=options, filters=filters, selected=selected)


def _state_payload(state: DashboardState) -> dict:
    selected = state.selected
    return {
        "filters": asdict(state.filters),
        "selected": record_to_dict(selected),
        "selected_registry": selected.registry_number if selected is not None else None,
        "selected_year": selected.year if selected is not None else None,
        "has_active_filters": has_active_filters(state.filters, state.options),
    }


def _event_from_model(model: FilterEventModel, data_ctx: dict) -> FilterEvent:
    if model.kind in ("filter_toggled", "filter_replaced") and not model.dimension:
        raise ValueError("dimension is required")
    if model.kind == "filter_toggled":
        return FilterToggled(model.dimension, model.value or "")
    if model.kind == "filter_replaced":
        return FilterReplaced(model.dimension, list(model.values))
    if model.kind == "score_range_changed":
        options = data_ctx["options"]
        low = model.low if model.low is not None else options.score_range[0]
        high = model.high if model.high is not None else options.score_range[1]
        return ScoreRangeChanged(low, high)
    if model.kind == "beneficiary_range_changed":
        options = data_ctx["options"]
        low = model.low if model.low is not None else options.beneficiary_range[0]
        high = model.high if model.high is not None else options.beneficiary_range[1]
        return BeneficiaryRangeChanged(int(low), int(high))
    if model.kind == "filters_cleared":
        return FiltersCleared()
    if model.kind == "operator_selected":
        record = find_operator(data_ctx["records"], model.registry_number or "", model.year)
        if record is None or record.registry_number != (model.registry_number or ""):
            raise HTTPException(status_code=404, detail=f"Operator {model.registry_number} not found")
        return OperatorSelected(record)
    if model.kind == "operator_searched":
        return OperatorSearched(model.term or "")
    return SelectionCleared()


@app.get("/meta/options")
def meta_options():
    try:
        data_ctx = _data_context()
        return _json(asdict(data_ctx["options"]))
    except Exception as exc:
        return _error(exc, "meta_options")


@app.get("/meta/state")
def meta_state():
    try:
        _data_context()
        return _json(_state_payload(session.state))
    except Exception as exc:
        return _error(exc, "meta_state")


@app.post("/state/transition")
def state_transition(payload: TransitionRequestModel):
    try:
        data_ctx = _data_context()
        state = _state_from_request(payload, data_ctx)
        event = _event_from_model(payload.event, data_ctx)
        return _json(_state_payload(transition(state, event, data_ctx["records"])))
    except HTTPException:
        raise
    except Exception as exc:
        return _error(exc, "state_transition")


@app.post("/reload")
def reload():
    try:
        current = session.reload(_fresh_records)
        # A superseded reload reports whatever the newer load installed.
        data_ctx = session.data_context()
        return _json({"records": len(data_ctx["records"]), "years": data_ctx["options"].years, "current": current})
    except Exception as exc:
        return _error(exc, "reload")


@app.post("/overview")
def overview(payload: DashboardRequestModel):
    try:
        data_ctx = _data_context()
        state = _state_from_request(payload, data_ctx)
        return _json(compute_overview(state, prepare_context(state, data_ctx)))
    except Exception as exc:
        return _error(exc, "overview")


@app.post("/ranking")
def ranking(payload: DashboardRequestModel, top_n: int = Query(default=RANKING_TOP_N, ge=1, le=200)):
    try:
        data_ctx = _data_context()
        state = _state_from_request(payload, data_ctx)
        return _json(compute_ranking(state, prepare_context(state, data_ctx), top_n=top_n))
    except Exception as exc:
        return _error(exc, "ranking")


@app.post("/comparison")
def comparison(
    payload: DashboardRequestModel,
    indicator: Literal["composite", "quality", "access_guarantee", "market_sustainability", "process_management"] = Query(
        default="composite"
    ),
    include_modalities: bool = Query(default=True),
    include_sizes: bool = Query(default=True),
):
    try:
        data_ctx = _data_context()
        state = _state_from_request(payload, data_ctx)
        ctx = prepare_context(state, data_ctx)
        return _json(
            compute_comparison(
                state, ctx, indicator=indicator, include_modalities=include_modalities, include_sizes=include_sizes
            )
        )
    except Exception as exc:
        return _error(exc, "comparison")


@app.post("/timeline")
def timeline(payload: DashboardRequestModel):
    try:
        data_ctx = _data_context()
        state = _state_from_request(payload, data_ctx)
        return _json(compute_timeline(state, prepare_context(state, data_ctx)))
    except Exception as exc:
        return _error(exc, "timeline")


@app.post("/table")
def table(
    payload: DashboardRequestModel,
    search: str = Query(default=""),
    sort_key: str = Query(default="composite"),
    direction: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(default=1, ge=1),
    locator: str = Query(default=""),
):
    try:
        data_ctx = _data_context()
        state = _state_from_request(payload, data_ctx)
        ctx = prepare_context(state, data_ctx)
        return _json(
            compute_table(state, ctx, search=search, sort_key=sort_key, direction=direction, page=page, locator=locator)
        )
    except Exception as exc:
        return _error(exc, "table")


@app.post("/export/{view}")
def export_view(view: str, payload: DashboardRequestModel):
    if view not in {"filtered", "history", "comparison"}:
        return JSONResponse(status_code=404, content={"error": f"Unknown view: {view}", "type": "NotFound"})
    try:
        data_ctx = _data_context()
        state = _state_from_request(payload, data_ctx)
        ctx = prepare_context(state, data_ctx)
    except Exception as exc:
        return _error(exc, "export")
    export_df = records_to_frame(ctx[view])
    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    filename = f"{view}.csv"
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
