from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from idss.filters import ActiveFilters, DashboardState
from idss.records import SUBINDEX_FIELDS, OperatorRecord


def _in_range(value: Optional[float], low: float, high: float) -> bool:
    # Missing values are never excluded by a range.
    return value is None or low <= value <= high


def has_scored_subindex(record: OperatorRecord) -> bool:
    return any((getattr(record, name) or 0) > 0 for name in SUBINDEX_FIELDS)


def evaluate(
    records: Sequence[OperatorRecord],
    filters: ActiveFilters,
    *,
    ignore_year: bool = False,
    ignore_operator_identity: bool = False,
) -> List[OperatorRecord]:
    """Return the records matching every active filter, in dataset order.

    ``ignore_year`` builds full-history views; adding ``ignore_operator_identity``
    builds the comparison-group baseline.
    """
    years = set(filters.years) if not ignore_year else set()
    modalities = set(filters.modalities)
    legal_names = set(filters.legal_names) if not ignore_operator_identity else set()
    registry_numbers = set(filters.registry_numbers) if not ignore_operator_identity else set()
    sizes = set(filters.sizes)
    group_flags = set(filters.group_flags)

    out: List[OperatorRecord] = []
    for r in records:
        if years and r.year not in years:
            continue
        if modalities and r.operator_modality not in modalities:
            continue
        if legal_names and r.legal_name not in legal_names:
            continue
        if registry_numbers and r.registry_number not in registry_numbers:
            continue
        if sizes and r.size not in sizes:
            continue
        if group_flags and r.group_flag not in group_flags:
            continue
        if not _in_range(r.composite, filters.score_min, filters.score_max):
            continue
        if not _in_range(r.beneficiary_count, filters.beneficiary_min, filters.beneficiary_max):
            continue
        # Rows carrying a year but no scored data yet are placeholders.
        if years and not has_scored_subindex(r):
            continue
        out.append(r)
    return out


def evaluate_views(records: Sequence[OperatorRecord], filters: ActiveFilters) -> Dict[str, List[OperatorRecord]]:
    return {
        "filtered": evaluate(records, filters),
        "history": evaluate(records, filters, ignore_year=True),
        "comparison": evaluate(records, filters, ignore_year=True, ignore_operator_identity=True),
    }


def prepare_context(state: DashboardState, data_ctx: Dict[str, object]) -> Dict[str, object]:
    records: List[OperatorRecord] = list(data_ctx.get("records", []) or [])
    views = evaluate_views(records, state.filters)
    return {
        "state": state,
        "filters": state.filters,
        "options": state.options,
        "selected": state.selected,
        "records": records,
        "filtered": views["filtered"],
        "history": views["history"],
        "comparison": views["comparison"],
        "total_operators": len({r.registry_number for r in records if r.registry_number}),
    }
