from __future__ import annotations

import math
import numbers
import re
import unicodedata
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional, Tuple

import pandas as pd

from idss.config import MEDIUM_MAX_BENEFICIARIES, SMALL_MAX_BENEFICIARIES


SIZE_SMALL = "Small"
SIZE_MEDIUM = "Medium"
SIZE_LARGE = "Large"


@dataclass(frozen=True)
class OperatorRecord:
    registry_number: str = ""
    tax_id: str = ""
    legal_name: str = ""
    year: str = ""
    composite: Optional[float] = None
    quality: Optional[float] = None
    access_guarantee: Optional[float] = None
    market_sustainability: Optional[float] = None
    process_management: Optional[float] = None
    legacy_idas: Optional[float] = None
    legacy_idef: Optional[float] = None
    legacy_ideo: Optional[float] = None
    legacy_idsb: Optional[float] = None
    index_modality: str = ""
    operator_modality: str = ""
    city: str = ""
    state: str = ""
    size: str = ""
    beneficiary_count: Optional[int] = None
    group_flag: str = ""


# The four structural sub-indices feeding the composite.
SUBINDEX_FIELDS: Tuple[str, ...] = ("quality", "access_guarantee", "market_sustainability", "process_management")
INDEX_FIELDS: Tuple[str, ...] = ("composite",) + SUBINDEX_FIELDS
LEGACY_FIELDS: Tuple[str, ...] = ("legacy_idas", "legacy_idef", "legacy_ideo", "legacy_idsb")
SCORE_FIELDS: Tuple[str, ...] = INDEX_FIELDS + LEGACY_FIELDS

INDEX_LABELS: Dict[str, str] = {
    "composite": "IDSS",
    "quality": "IDQS",
    "access_guarantee": "IDGA",
    "market_sustainability": "IDSM",
    "process_management": "IDGR",
}

TEXT_FIELDS: Tuple[str, ...] = (
    "registry_number",
    "tax_id",
    "legal_name",
    "year",
    "index_modality",
    "operator_modality",
    "city",
    "state",
    "group_flag",
)

# Ordered raw-column spellings per canonical field; first present wins.
CANDIDATE_KEYS: Dict[str, Tuple[str, ...]] = {
    "registry_number": ("REG_ANS", "reg_ans", "REG_INS", "reg_ins", "Registro ANS"),
    "tax_id": ("CNPJ", "cnpj"),
    "legal_name": ("Razão Social", "razao_social", "Razao Social"),
    "year": ("Ano", "ano"),
    "composite": ("IDSS", "idss"),
    "quality": ("IDQS", "idqs"),
    "access_guarantee": ("IDGA", "idga"),
    "market_sustainability": ("IDSM", "idsm"),
    "process_management": ("IDGR", "idgr"),
    "legacy_idas": ("IDAS", "idas"),
    "legacy_idef": ("IDEF", "idef"),
    "legacy_ideo": ("IDEO", "ideo"),
    "legacy_idsb": ("IDSB", "idsb"),
    "index_modality": ("modalidade_idss", "Modalidade IDSS"),
    "operator_modality": ("Modalidade", "modalidade_operadora"),
    "city": ("Cidade", "cidade"),
    "state": ("UF", "uf"),
    "beneficiary_count": ("Qt_Beneficiários", "qt_beneficiarios", "Qt Beneficiarios"),
    "group_flag": ("Uniodonto", "uniodonto"),
}


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    return bool(pd.api.types.is_scalar(value) and pd.isna(value))


def fold_key(key: object) -> str:
    """Case-, accent- and punctuation-insensitive form of a column name."""
    text = unicodedata.normalize("NFKD", str(key))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"[^0-9a-z]", "", text.lower())


def resolve_value(row: Mapping[str, object], candidates: Tuple[str, ...], folded: Optional[Dict[str, str]] = None) -> object:
    for key in candidates:
        if key in row:
            return row[key]
    if folded is None:
        folded = folded_index(row)
    for key in candidates:
        original = folded.get(fold_key(key))
        if original is not None:
            return row[original]
    return None


def folded_index(row: Mapping[str, object]) -> Dict[str, str]:
    index: Dict[str, str] = {}
    for key in row.keys():
        index.setdefault(fold_key(key), key)
    return index


def normalize_text(value: object) -> str:
    if _is_missing(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _scale_to_unit(number: Decimal) -> float:
    while number > 1:
        number = number.scaleb(-1)
    return float(number)


def parse_score(value: object) -> Optional[float]:
    """Parse an index score into [0, 1].

    The decimal separator is whichever of "." or "," appears last; every other
    non-digit is dropped. Values above 1 are divided by 10 until they fit, so
    "85,23" -> 0.8523 and "123" -> 0.123.
    """
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        if not math.isfinite(float(value)):
            return None
        number = Decimal(str(abs(float(value))))
    else:
        raw = str(value).strip()
        if not raw:
            return None
        separator = "," if raw.rfind(",") > raw.rfind(".") else "."
        cleaned = re.sub(rf"[^0-9{re.escape(separator)}]", "", raw).replace(separator, ".", 1)
        try:
            number = Decimal(cleaned)
        except InvalidOperation:
            return None
    if not number.is_finite():
        return None
    return _scale_to_unit(number)


def parse_integer(value: object) -> Optional[int]:
    """Parse a count written with "." thousands and "," decimals, truncating."""
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        return int(value) if math.isfinite(float(value)) else None
    raw = str(value).strip()
    if not raw:
        return None
    normalized = raw.replace(".", "").replace(",", ".", 1)
    try:
        number = float(normalized)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def compute_size(beneficiary_count: Optional[float]) -> str:
    if beneficiary_count is None or not math.isfinite(beneficiary_count):
        return ""
    if beneficiary_count <= SMALL_MAX_BENEFICIARIES:
        return SIZE_SMALL
    if beneficiary_count <= MEDIUM_MAX_BENEFICIARIES:
        return SIZE_MEDIUM
    return SIZE_LARGE


def normalize_row(row: Mapping[str, object]) -> OperatorRecord:
    folded = folded_index(row)

    def lookup(field_name: str) -> object:
        return resolve_value(row, CANDIDATE_KEYS[field_name], folded)

    values: Dict[str, object] = {name: normalize_text(lookup(name)) for name in TEXT_FIELDS}
    for name in SCORE_FIELDS:
        values[name] = parse_score(lookup(name))
    beneficiaries = parse_integer(lookup("beneficiary_count"))
    values["beneficiary_count"] = beneficiaries
    values["size"] = compute_size(beneficiaries)
    return OperatorRecord(**values)


def year_key(year: str) -> int:
    """Numeric sort key for a year string; unparseable years sort as 0."""
    match = re.match(r"\s*(\d+)", str(year or ""))
    return int(match.group(1)) if match else 0
