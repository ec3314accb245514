import math

import pytest

from idss.records import (
    SIZE_LARGE,
    SIZE_MEDIUM,
    SIZE_SMALL,
    compute_size,
    fold_key,
    normalize_row,
    normalize_text,
    parse_integer,
    parse_score,
    resolve_value,
    year_key,
)


class TestParseScore:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("85,23", 0.8523),
            ("0.75", 0.75),
            ("123", 0.123),
            ("1.234,56", 0.123456),
            ("0,5", 0.5),
            ("1", 1.0),
            ("100", 1.0),
            ("10", 1.0),
            ("1000", 1.0),
        ],
    )
    def test_decimal_separator_and_scaling(self, raw, expected):
        assert parse_score(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "   ", "n/a", float("nan")])
    def test_unparseable_is_none(self, raw):
        assert parse_score(raw) is None

    def test_numeric_input_is_scaled(self):
        assert parse_score(0.42) == pytest.approx(0.42)
        assert parse_score(85) == pytest.approx(0.85)

    def test_values_in_unit_interval_are_unchanged(self):
        for raw in ["0", "0.1", "0.3333", "0.999", "1.0"]:
            assert parse_score(raw) == pytest.approx(float(raw))

    def test_values_above_one_land_in_tenth_to_one(self):
        for raw in ["2", "10", "57.5", "999", "12345"]:
            value = parse_score(raw)
            assert 0.1 < value <= 1
            k = 0
            while float(raw) / 10 ** k > 1:
                k += 1
            assert value == pytest.approx(float(raw) / 10 ** k)


class TestParseInteger:
    def test_thousands_separator(self):
        assert parse_integer("12.345") == 12345

    def test_comma_decimal_truncates(self):
        assert parse_integer("1.234,9") == 1234

    def test_numbers_pass_through(self):
        assert parse_integer(2500) == 2500
        assert parse_integer(2500.7) == 2500

    @pytest.mark.parametrize("raw", [None, "", "abc", float("inf")])
    def test_invalid_is_none(self, raw):
        assert parse_integer(raw) is None


class TestComputeSize:
    @pytest.mark.parametrize(
        "count,expected",
        [
            (0, SIZE_SMALL),
            (19999, SIZE_SMALL),
            (20000, SIZE_MEDIUM),
            (99999, SIZE_MEDIUM),
            (100000, SIZE_LARGE),
            (None, ""),
            (math.inf, ""),
        ],
    )
    def test_boundaries(self, count, expected):
        assert compute_size(count) == expected


class TestColumnResolution:
    def test_fold_key_ignores_case_accents_and_punctuation(self):
        assert fold_key("Razão Social") == fold_key("razao_social") == "razaosocial"
        assert fold_key("Qt_Beneficiários") == "qtbeneficiarios"

    def test_first_present_candidate_wins(self):
        row = {"reg_ans": "2", "REG_ANS": "1"}
        assert resolve_value(row, ("REG_ANS", "reg_ans")) == "1"

    def test_folded_fallback(self):
        row = {"RAZAO SOCIAL": "Acme"}
        assert resolve_value(row, ("Razão Social",)) == "Acme"

    def test_missing_column(self):
        assert resolve_value({"x": 1}, ("REG_ANS",)) is None


class TestNormalizeRow:
    def test_full_row(self):
        record = normalize_row(
            {
                "REG_ANS": " 123456 ",
                "CNPJ": "00.000.000/0001-00",
                "Razão Social": "Odonto Sul",
                "Ano": "2024",
                "IDSS": "0,8123",
                "IDQS": "75,5",
                "IDGA": "0.9",
                "IDSM": "",
                "IDGR": "1",
                "Modalidade": "Cooperativa Odontológica",
                "modalidade_idss": "Odontológica",
                "Cidade": "Curitiba",
                "UF": "PR",
                "Qt_Beneficiários": "45.210",
                "Uniodonto": "Sim",
            }
        )
        assert record.registry_number == "123456"
        assert record.legal_name == "Odonto Sul"
        assert record.year == "2024"
        assert record.composite == pytest.approx(0.8123)
        assert record.quality == pytest.approx(0.755)
        assert record.market_sustainability is None
        assert record.beneficiary_count == 45210
        assert record.size == SIZE_MEDIUM
        assert record.group_flag == "Sim"

    def test_unknown_columns_and_gaps_never_fail(self):
        record = normalize_row({"something": "else", "idss": "abc"})
        assert record.registry_number == ""
        assert record.composite is None
        assert record.size == ""

    def test_integral_float_text(self):
        assert normalize_text(2024.0) == "2024"
        assert normalize_text(None) == ""


class TestYearKey:
    def test_numeric_prefix(self):
        assert year_key("2025") == 2025
        assert year_key("2024 (base 2023)") == 2024
        assert year_key("") == 0
