"""Oracle datum decoding.

The oracle UTxO carries an inline Plutus datum in db-sync's detailed JSON schema:
a map of currency code (hex bytes) to either an integer rate or a
[numerator, denominator] rational.

    {"map": [{"k": {"bytes": "555344"}, "v": {"list": [{"int": 1}, {"int": 2}]}}]}
"""
from decimal import Decimal
from typing import Any


class OracleDatumError(ValueError):
    pass


def _decode_currency(key: dict[str, Any]) -> str:
    if "bytes" not in key:
        raise OracleDatumError(f"Oracle key is not bytes: {key}")
    try:
        return bytes.fromhex(key["bytes"]).decode("utf-8").upper()
    except (ValueError, UnicodeDecodeError) as exc:
        raise OracleDatumError(f"Undecodable oracle currency: {key['bytes']}") from exc


def _decode_rate(value: dict[str, Any]) -> Decimal:
    if "int" in value:
        return Decimal(value["int"])
    if "list" in value:
        items = value["list"]
        if len(items) != 2 or not all("int" in i for i in items):
            raise OracleDatumError(f"Oracle rational must be [int, int]: {value}")
        numerator, denominator = (Decimal(i["int"]) for i in items)
        if denominator == 0:
            raise OracleDatumError("Oracle rational has zero denominator")
        return numerator / denominator
    raise OracleDatumError(f"Unsupported oracle rate encoding: {value}")


def parse_oracle_datum(datum: dict[str, Any]) -> dict[str, Decimal]:
    """Return {currency: rate}. Raises OracleDatumError on a malformed datum."""
    entries = datum.get("map")
    if not isinstance(entries, list):
        raise OracleDatumError("Oracle datum is not a map")
    rates: dict[str, Decimal] = {}
    for entry in entries:
        rates[_decode_currency(entry["k"])] = _decode_rate(entry["v"])
    return rates
