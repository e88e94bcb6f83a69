"""Decimal arithmetic for native-unit amounts.

Amounts are Decimal in native units (ADA) with lovelace precision (6 places).
Never float.
"""

from decimal import ROUND_CEILING, Decimal

NATIVE_QUANTUM = Decimal("0.000001")


def to_decimal(value: object) -> Decimal:
    """Coerce int/str/Decimal to Decimal; floats go through str to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)  # type: ignore[arg-type]


def calculate_fee(amount: Decimal, fee_percent: Decimal) -> Decimal:
    """Marketplace fee, rounded up to lovelace (platform never loses).

    fee = ceil(amount * fee_percent / 100, 6 places)
    """
    if amount == 0 or fee_percent == 0:
        return Decimal("0").quantize(NATIVE_QUANTUM)
    raw = amount * fee_percent / Decimal(100)
    return raw.quantize(NATIVE_QUANTUM, rounding=ROUND_CEILING)


def convert_with_rate(amount: Decimal, rate: Decimal, scaling_factor: int) -> Decimal:
    """Settlement-currency amount → native units: amount * rate / scaling_factor."""
    if scaling_factor <= 0:
        raise ValueError(f"scaling_factor must be positive, got {scaling_factor}")
    return amount * rate / Decimal(scaling_factor)


def quantize_native(amount: Decimal) -> Decimal:
    """Round up to whole lovelace so datum, payment and stored amount agree."""
    return amount.quantize(NATIVE_QUANTUM, rounding=ROUND_CEILING)
