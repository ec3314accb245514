"""
Pytest fixtures for the IDSS dashboard tests.

Provides:
- an OperatorRecord factory with scored sub-indices by default
- a small multi-year dataset covering every modality/size/flag combination used
- the matching FilterOptions and a freshly loaded DashboardState
"""
import pytest

from idss.filters import DashboardState, DatasetLoaded, transition
from idss.options import build_options
from idss.records import OperatorRecord, compute_size


COOP = "Cooperativa Odontológica"
GROUP = "Odontologia de Grupo"
MEDICAL = "Medicina de Grupo"


def build_record(**overrides) -> OperatorRecord:
    values = {
        "registry_number": "000",
        "legal_name": "Operator",
        "year": "2025",
        "composite": 0.5,
        "quality": 0.5,
        "access_guarantee": 0.5,
        "market_sustainability": 0.5,
        "process_management": 0.5,
        "operator_modality": COOP,
        "index_modality": COOP,
        "beneficiary_count": 1000,
        "group_flag": "Sim",
    }
    values.update(overrides)
    if "size" not in overrides:
        values["size"] = compute_size(values["beneficiary_count"])
    return OperatorRecord(**values)


@pytest.fixture
def make_record():
    """Factory fixture for OperatorRecord objects."""
    return build_record


@pytest.fixture
def sample_records():
    return [
        build_record(registry_number="111", legal_name="Alpha Odonto", year="2023", composite=0.5),
        build_record(registry_number="111", legal_name="Alpha Odonto", year="2024", composite=0.7),
        build_record(registry_number="111", legal_name="Alpha Odonto", year="2025", composite=0.6),
        build_record(
            registry_number="222",
            legal_name="Beta Dental",
            year="2025",
            composite=0.8,
            operator_modality=GROUP,
            beneficiary_count=50000,
            group_flag="Não",
        ),
        build_record(
            registry_number="222",
            legal_name="Beta Dental",
            year="2024",
            composite=0.75,
            operator_modality=GROUP,
            beneficiary_count=48000,
            group_flag="Não",
        ),
        build_record(
            registry_number="333",
            legal_name="Gamma Saude",
            year="2025",
            composite=0.4,
            operator_modality=MEDICAL,
            beneficiary_count=250000,
            group_flag="",
        ),
        # Placeholder: year assigned, nothing scored yet.
        build_record(
            registry_number="444",
            legal_name="Delta Coop",
            year="2025",
            composite=None,
            quality=None,
            access_guarantee=0.0,
            market_sustainability=None,
            process_management=None,
        ),
    ]


@pytest.fixture
def sample_options(sample_records):
    return build_options(sample_records)


@pytest.fixture
def loaded_state(sample_records, sample_options):
    return transition(DashboardState(), DatasetLoaded(sample_options), sample_records)


@pytest.fixture
def data_ctx(sample_records, sample_options):
    return {"source": "memory", "records": sample_records, "options": sample_options}
