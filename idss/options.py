from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from idss.config import BENEFICIARY_RANGE_DEFAULT, SCORE_RANGE_DEFAULT
from idss.records import OperatorRecord, year_key


@dataclass(frozen=True)
class FilterOptions:
    years: List[str] = field(default_factory=list)
    modalities: List[str] = field(default_factory=list)
    legal_names: List[str] = field(default_factory=list)
    registry_numbers: List[str] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)
    group_flags: List[str] = field(default_factory=list)
    score_range: Tuple[float, float] = SCORE_RANGE_DEFAULT
    beneficiary_range: Tuple[int, int] = BENEFICIARY_RANGE_DEFAULT


def _distinct(values: Iterable[str]) -> List[str]:
    return sorted({v for v in values if v})


def _bounded_range(values: Iterable[Optional[float]], floor: float, ceiling: float) -> Tuple[float, float]:
    # Sentinels keep a single-valued dataset from producing a degenerate range.
    present = [v for v in values if v is not None]
    return min(present + [floor]), max(present + [ceiling])


def build_options(records: Sequence[OperatorRecord]) -> FilterOptions:
    years = sorted({r.year for r in records if r.year}, key=lambda y: (year_key(y), y), reverse=True)
    score_low, score_high = _bounded_range((r.composite for r in records), *SCORE_RANGE_DEFAULT)
    people_low, people_high = _bounded_range((r.beneficiary_count for r in records), *BENEFICIARY_RANGE_DEFAULT)
    return FilterOptions(
        years=years,
        modalities=_distinct(r.operator_modality for r in records),
        legal_names=_distinct(r.legal_name for r in records),
        registry_numbers=_distinct(r.registry_number for r in records),
        sizes=_distinct(r.size for r in records),
        group_flags=_distinct(r.group_flag for r in records),
        score_range=(score_low, score_high),
        beneficiary_range=(people_low, people_high),
    )
