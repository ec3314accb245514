from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ActiveFiltersModel(BaseModel):
    years: List[str] = Field(default_factory=list)
    modalities: List[str] = Field(default_factory=list)
    legal_names: List[str] = Field(default_factory=list)
    registry_numbers: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    group_flags: List[str] = Field(default_factory=list)
    score_min: Optional[float] = None
    score_max: Optional[float] = None
    beneficiary_min: Optional[int] = None
    beneficiary_max: Optional[int] = None


class DashboardRequestModel(BaseModel):
    filters: ActiveFiltersModel = Field(default_factory=ActiveFiltersModel)
    selected_registry: Optional[str] = None
    selected_year: Optional[str] = None


EventKind = Literal[
    "filter_toggled",
    "filter_replaced",
    "score_range_changed",
    "beneficiary_range_changed",
    "filters_cleared",
    "operator_selected",
    "operator_searched",
    "selection_cleared",
]


class FilterEventModel(BaseModel):
    kind: EventKind
    dimension: Optional[str] = None
    value: Optional[str] = None
    values: List[str] = Field(default_factory=list)
    low: Optional[float] = None
    high: Optional[float] = None
    registry_number: Optional[str] = None
    year: Optional[str] = None
    term: Optional[str] = None


class TransitionRequestModel(DashboardRequestModel):
    event: FilterEventModel
