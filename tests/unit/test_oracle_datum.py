from decimal import Decimal

import pytest

from src.mk_chain.domain.oracle import OracleDatumError, parse_oracle_datum

USD = "555344"
EUR = "657572"


def _entry(currency_hex: str, value: dict) -> dict:
    return {"k": {"bytes": currency_hex}, "v": value}


class TestParseOracleDatum:
    def test_integer_rate(self) -> None:
        datum = {"map": [_entry(USD, {"int": 2})]}
        assert parse_oracle_datum(datum) == {"USD": Decimal(2)}

    def test_rational_rate(self) -> None:
        datum = {"map": [_entry(USD, {"list": [{"int": 1}, {"int": 2}]})]}
        assert parse_oracle_datum(datum) == {"USD": Decimal("0.5")}

    def test_multiple_currencies(self) -> None:
        datum = {
            "map": [
                _entry(USD, {"int": 3}),
                _entry(EUR, {"list": [{"int": 7}, {"int": 4}]}),
            ]
        }
        assert parse_oracle_datum(datum) == {"USD": Decimal(3), "EUR": Decimal("1.75")}

    def test_lowercase_currency_is_uppercased(self) -> None:
        datum = {"map": [_entry("757364", {"int": 1})]}  # "usd"
        assert list(parse_oracle_datum(datum)) == ["USD"]

    def test_zero_denominator(self) -> None:
        datum = {"map": [_entry(USD, {"list": [{"int": 1}, {"int": 0}]})]}
        with pytest.raises(OracleDatumError):
            parse_oracle_datum(datum)

    def test_not_a_map(self) -> None:
        with pytest.raises(OracleDatumError):
            parse_oracle_datum({"list": []})

    def test_non_hex_key(self) -> None:
        with pytest.raises(OracleDatumError):
            parse_oracle_datum({"map": [_entry("zz", {"int": 1})]})

    def test_unsupported_value(self) -> None:
        with pytest.raises(OracleDatumError):
            parse_oracle_datum({"map": [_entry(USD, {"bytes": "00"})]})

    def test_error_is_value_error(self) -> None:
        assert issubclass(OracleDatumError, ValueError)
