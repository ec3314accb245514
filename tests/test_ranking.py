import pytest

from idss.ranking import (
    NOT_INFORMED,
    average_by_year,
    best_per_operator,
    build_rank_lookup,
    category_ranking,
    group_average,
    group_counts,
    latest_per_operator,
    operator_history,
    operators_per_year,
    percent_change,
    rank_of,
    rank_overall,
)


class TestRankOverall:
    def test_ties_and_nulls(self, make_record):
        a = make_record(registry_number="1", legal_name="Bbb", composite=0.9)
        b = make_record(registry_number="2", legal_name="Ccc", composite=None)
        c = make_record(registry_number="3", legal_name="Aaa", composite=0.9)
        assert rank_overall([a, b, c]) == [c, a, b]
        assert rank_overall([b, c, a]) == [c, a, b]

    def test_registry_breaks_name_ties(self, make_record):
        x = make_record(registry_number="20", legal_name="Same", composite=0.5)
        y = make_record(registry_number="10", legal_name="Same", composite=0.5)
        assert rank_overall([x, y]) == [y, x]

    def test_per_operator_keeps_best_year(self, sample_records):
        ranked = rank_overall(sample_records, per_operator=True)
        assert [(r.registry_number, r.year) for r in ranked] == [
            ("222", "2025"),
            ("111", "2024"),
            ("333", "2025"),
            ("444", "2025"),
        ]
        assert len(best_per_operator(sample_records)) == 4


class TestRankLookup:
    def test_by_year(self, sample_records):
        lookup = build_rank_lookup(rank_overall(sample_records))
        assert rank_of(lookup, "222", "2025") == 1
        assert rank_of(lookup, "111", "2023") == 5
        assert rank_of(lookup, "999", "2025") is None

    def test_by_registry(self, sample_records):
        lookup = build_rank_lookup(rank_overall(sample_records), by_year=False)
        assert rank_of(lookup, "111") == 3
        assert rank_of(lookup, "999") is None


class TestGroupAverage:
    def test_empty_is_zero(self):
        assert group_average([], "composite") == 0

    def test_all_null_is_zero(self, make_record):
        records = [make_record(composite=None), make_record(composite=None)]
        assert group_average(records, "composite") == 0

    def test_ignores_nulls(self, make_record):
        records = [make_record(composite=0.5), make_record(composite=None), make_record(composite=0.7)]
        assert group_average(records, "composite") == pytest.approx(0.6)


class TestSeries:
    def test_average_by_year_ascending(self, sample_records):
        df = average_by_year(sample_records)
        assert df["year"].tolist() == ["2023", "2024", "2025"]
        assert df.loc[df["year"] == "2024", "composite"].iloc[0] == pytest.approx(0.725)
        assert list(df.columns) == ["year", "composite", "quality", "access_guarantee", "market_sustainability", "process_management"]

    def test_average_by_year_empty(self):
        assert average_by_year([]).empty

    def test_category_ranking(self, sample_records, make_record):
        records = sample_records + [make_record(registry_number="555", operator_modality="", composite=0.95)]
        df = category_ranking(records, "operator_modality")
        assert df["operator_modality"].tolist()[0] == NOT_INFORMED
        assert df["average"].is_monotonic_decreasing
        coop = df[df["operator_modality"] == "Cooperativa Odontológica"].iloc[0]
        assert coop["count"] == 3
        assert coop["average"] == pytest.approx(0.6)

    def test_group_counts(self, sample_records):
        df = group_counts(sample_records, "size")
        assert dict(zip(df["size"], df["count"])) == {"Small": 4, "Medium": 2, "Large": 1}

    def test_operators_per_year(self, sample_records):
        df = operators_per_year(sample_records)
        assert dict(zip(df["year"], df["operators"])) == {"2023": 1, "2024": 2, "2025": 4}


class TestOperatorHelpers:
    def test_latest_per_operator(self, sample_records):
        latest = latest_per_operator(sample_records)
        assert latest["111"].year == "2025"
        assert latest["222"].year == "2025"

    def test_history_sorted(self, sample_records):
        assert [r.year for r in operator_history(reversed(sample_records), "111")] == ["2023", "2024", "2025"]

    def test_percent_change(self):
        assert percent_change([0.5, None, 0.6]) == pytest.approx(20.0)
        assert percent_change([0.5]) is None
        assert percent_change([0.0, 0.4]) is None
