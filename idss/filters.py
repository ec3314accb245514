from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, List, Literal, Optional, Sequence, Union

from idss.config import BENEFICIARY_RANGE_DEFAULT, DEFAULT_MODALITIES, SCORE_RANGE_DEFAULT, SUBGROUP_FLAG, SUBGROUP_MODALITY
from idss.options import FilterOptions
from idss.records import OperatorRecord

Dimension = Literal["years", "modalities", "legal_names", "registry_numbers", "sizes", "group_flags"]

DIMENSIONS = ("years", "modalities", "legal_names", "registry_numbers", "sizes", "group_flags")
IDENTITY_DIMENSIONS = ("legal_names", "registry_numbers")

# Separators accepted between the registry number and legal name in an operator label.
SEARCH_SEPARATORS = (" — ", " – ", " - ")


@dataclass(frozen=True)
class ActiveFilters:
    years: List[str] = field(default_factory=list)
    modalities: List[str] = field(default_factory=list)
    legal_names: List[str] = field(default_factory=list)
    registry_numbers: List[str] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    group_flags: List[str] = field(default_factory=list)
    score_min: float = SCORE_RANGE_DEFAULT[0]
    score_max: float = SCORE_RANGE_DEFAULT[1]
    beneficiary_min: int = BENEFICIARY_RANGE_DEFAULT[0]
    beneficiary_max: int = BENEFICIARY_RANGE_DEFAULT[1]


@dataclass(frozen=True)
class DashboardState:
    options: FilterOptions = field(default_factory=FilterOptions)
    filters: ActiveFilters = field(default_factory=ActiveFilters)
    selected: Optional[OperatorRecord] = None


# ---------------- Events ----------------
@dataclass(frozen=True)
class DatasetLoaded:
    options: FilterOptions


@dataclass(frozen=True)
class FilterToggled:
    dimension: Dimension
    value: str


@dataclass(frozen=True)
class FilterReplaced:
    dimension: Dimension
    values: List[str]


@dataclass(frozen=True)
class ScoreRangeChanged:
    low: float
    high: float


@dataclass(frozen=True)
class BeneficiaryRangeChanged:
    low: int
    high: int


@dataclass(frozen=True)
class FiltersCleared:
    pass


@dataclass(frozen=True)
class OperatorSelected:
    record: OperatorRecord


@dataclass(frozen=True)
class OperatorSearched:
    term: str


@dataclass(frozen=True)
class SelectionCleared:
    pass


FilterEvent = Union[
    DatasetLoaded,
    FilterToggled,
    FilterReplaced,
    ScoreRangeChanged,
    BeneficiaryRangeChanged,
    FiltersCleared,
    OperatorSelected,
    OperatorSearched,
    SelectionCleared,
]


# ---------------- Defaults ----------------
def default_filters(options: FilterOptions) -> ActiveFilters:
    latest_year = options.years[0] if options.years else ""
    return ActiveFilters(
        years=[latest_year] if latest_year else [],
        modalities=[m for m in DEFAULT_MODALITIES if m in options.modalities],
        score_min=options.score_range[0],
        score_max=options.score_range[1],
        beneficiary_min=options.beneficiary_range[0],
        beneficiary_max=options.beneficiary_range[1],
    )


def clear_filters(filters: ActiveFilters, options: FilterOptions) -> ActiveFilters:
    """Reset everything to unrestricted, keeping the current year to avoid an all-years view."""
    return ActiveFilters(
        years=list(filters.years[:1]),
        score_min=options.score_range[0],
        score_max=options.score_range[1],
        beneficiary_min=options.beneficiary_range[0],
        beneficiary_max=options.beneficiary_range[1],
    )


def has_active_filters(filters: ActiveFilters, options: FilterOptions) -> bool:
    if any(getattr(filters, dim) for dim in DIMENSIONS):
        return True
    return (
        filters.score_min > options.score_range[0]
        or filters.score_max < options.score_range[1]
        or filters.beneficiary_min > options.beneficiary_range[0]
        or filters.beneficiary_max < options.beneficiary_range[1]
    )


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    out: List[str] = []
    for v in values:
        if v is None:
            continue
        s = str(v).strip()
        if s and s not in out:
            out.append(s)
    return out


def _as_number(value: object, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def normalize_filters(raw: dict, *, options: FilterOptions) -> ActiveFilters:
    """Coerce a loosely-typed filter payload; missing range bounds fall back to the option bounds."""
    score_min = _as_number(raw.get("score_min"), options.score_range[0])
    score_max = _as_number(raw.get("score_max"), options.score_range[1])
    beneficiary_min = _as_number(raw.get("beneficiary_min"), options.beneficiary_range[0])
    beneficiary_max = _as_number(raw.get("beneficiary_max"), options.beneficiary_range[1])
    return ActiveFilters(
        years=_as_str_list(raw.get("years")),
        modalities=_as_str_list(raw.get("modalities")),
        legal_names=_as_str_list(raw.get("legal_names")),
        registry_numbers=_as_str_list(raw.get("registry_numbers")),
        sizes=_as_str_list(raw.get("sizes")),
        group_flags=_as_str_list(raw.get("group_flags")),
        score_min=min(score_min, score_max),
        score_max=max(score_min, score_max),
        beneficiary_min=int(min(beneficiary_min, beneficiary_max)),
        beneficiary_max=int(max(beneficiary_min, beneficiary_max)),
    )


# ---------------- Operator lookup ----------------
def operator_label(record: OperatorRecord) -> str:
    return f"{record.registry_number} — {record.legal_name}"


def _first_match(
    records: Sequence[OperatorRecord],
    predicate: Callable[[OperatorRecord], bool],
    active_year: Optional[str],
) -> Optional[OperatorRecord]:
    first: Optional[OperatorRecord] = None
    for record in records:
        if not predicate(record):
            continue
        if active_year is None or record.year == active_year:
            return record
        if first is None:
            first = record
    return first


def _registry_prefix(term: str) -> Optional[str]:
    for separator in SEARCH_SEPARATORS:
        if separator in term:
            prefix = term.split(separator, 1)[0].strip()
            return prefix or None
    return None


def find_operator(records: Sequence[OperatorRecord], term: str, active_year: Optional[str] = None) -> Optional[OperatorRecord]:
    """Resolve a search term: exact registry, then exact legal name, then the registry part of an operator label."""
    term = (term or "").strip()
    if not term:
        return None
    prefix = _registry_prefix(term)
    predicates: List[Callable[[OperatorRecord], bool]] = [
        lambda r: r.registry_number == term,
        lambda r: r.legal_name == term,
    ]
    if prefix is not None:
        predicates.append(lambda r: r.registry_number == prefix)
    for predicate in predicates:
        match = _first_match(records, predicate, active_year)
        if match is not None:
            return match
    return None


def _active_year(filters: ActiveFilters) -> Optional[str]:
    return filters.years[0] if filters.years else None


# ---------------- Transitions ----------------
def _single(value: str) -> List[str]:
    return [value] if value else []


def select_operator(state: DashboardState, record: OperatorRecord) -> DashboardState:
    f = state.filters
    filters = replace(
        f,
        years=list(f.years) if f.years else _single(record.year),
        modalities=_single(record.operator_modality),
        sizes=_single(record.size),
        group_flags=_single(record.group_flag),
        legal_names=[],
        registry_numbers=[],
    )
    return replace(state, filters=filters, selected=record)


def _resolve_identity_filters(state: DashboardState, records: Sequence[OperatorRecord]) -> DashboardState:
    f = state.filters
    by_name = len(f.legal_names) == 1
    by_registry = len(f.registry_numbers) == 1
    if by_name == by_registry:
        return state
    if by_name:
        name = f.legal_names[0]
        match = _first_match(records, lambda r: r.legal_name == name, _active_year(f))
    else:
        registry = f.registry_numbers[0]
        match = _first_match(records, lambda r: r.registry_number == registry, _active_year(f))
    if match is None:
        return state
    return select_operator(state, match)


def _edits_dimension(event: FilterEvent, dimension: str) -> bool:
    return isinstance(event, (FilterToggled, FilterReplaced)) and event.dimension == dimension


def _apply_subgroup_rule(event: FilterEvent, before: ActiveFilters, state: DashboardState) -> DashboardState:
    after = state.filters
    if SUBGROUP_MODALITY not in after.modalities or SUBGROUP_FLAG in after.group_flags:
        return state
    if SUBGROUP_FLAG not in state.options.group_flags:
        return state
    # Only a fresh load or a direct modality edit bringing the modality in.
    # Selections keep their singleton flag and a manual removal sticks.
    added = _edits_dimension(event, "modalities") and SUBGROUP_MODALITY not in before.modalities
    if not (isinstance(event, DatasetLoaded) or added):
        return state
    return replace(state, filters=replace(after, group_flags=list(after.group_flags) + [SUBGROUP_FLAG]))


def _toggle(values: List[str], value: object) -> List[str]:
    cleaned = _as_str_list([value])
    if not cleaned:
        return list(values)
    value = cleaned[0]
    if value in values:
        return [v for v in values if v != value]
    return list(values) + [value]


def _check_dimension(dimension: str) -> None:
    if dimension not in DIMENSIONS:
        raise ValueError(f"Unknown filter dimension: {dimension}")


def transition(state: DashboardState, event: FilterEvent, records: Sequence[OperatorRecord] = ()) -> DashboardState:
    """Apply one event and return the next state; the input state is never modified."""
    before = state.filters

    if isinstance(event, DatasetLoaded):
        new_state = DashboardState(options=event.options, filters=default_filters(event.options))
    elif isinstance(event, (FilterToggled, FilterReplaced)):
        _check_dimension(event.dimension)
        current = getattr(before, event.dimension)
        if isinstance(event, FilterToggled):
            updated = _toggle(current, event.value)
        else:
            updated = _as_str_list(event.values)
        new_state = replace(state, filters=replace(before, **{event.dimension: updated}))
        if event.dimension in IDENTITY_DIMENSIONS:
            new_state = _resolve_identity_filters(new_state, records)
    elif isinstance(event, ScoreRangeChanged):
        low, high = sorted((float(event.low), float(event.high)))
        new_state = replace(state, filters=replace(before, score_min=low, score_max=high))
    elif isinstance(event, BeneficiaryRangeChanged):
        low, high = sorted((int(event.low), int(event.high)))
        new_state = replace(state, filters=replace(before, beneficiary_min=low, beneficiary_max=high))
    elif isinstance(event, FiltersCleared):
        new_state = replace(state, filters=clear_filters(before, state.options))
    elif isinstance(event, OperatorSelected):
        new_state = select_operator(state, event.record)
    elif isinstance(event, OperatorSearched):
        match = find_operator(records, event.term, _active_year(before))
        new_state = select_operator(state, match) if match is not None else state
    elif isinstance(event, SelectionCleared):
        new_state = replace(state, selected=None)
    else:
        raise TypeError(f"Unsupported filter event: {event!r}")

    return _apply_subgroup_rule(event, before, new_state)
