from decimal import Decimal

import pytest

from src.mk_common.amounts import calculate_fee, convert_with_rate, quantize_native, to_decimal


class TestCalculateFee:
    def test_three_percent_of_round_amount(self) -> None:
        assert calculate_fee(Decimal("100"), Decimal("3")) == Decimal("3.000000")

    def test_rounds_up_to_lovelace(self) -> None:
        # 0.000033 * 3% = 0.00000099 -> 0.000001
        assert calculate_fee(Decimal("0.000033"), Decimal("3")) == Decimal("0.000001")

    def test_exact_value_not_bumped(self) -> None:
        assert calculate_fee(Decimal("12.5"), Decimal("2")) == Decimal("0.250000")

    def test_zero_amount(self) -> None:
        assert calculate_fee(Decimal("0"), Decimal("3")) == Decimal("0")

    def test_zero_percent(self) -> None:
        assert calculate_fee(Decimal("100"), Decimal("0")) == Decimal("0")

    def test_result_has_six_places(self) -> None:
        assert calculate_fee(Decimal("7"), Decimal("3")).as_tuple().exponent == -6


class TestConvertWithRate:
    def test_scaled_rate(self) -> None:
        # 100 USD at rate 0.5 with scaling 1_000_000
        assert convert_with_rate(Decimal("100"), Decimal("0.5"), 1_000_000) == Decimal("0.00005")

    def test_unit_scaling(self) -> None:
        assert convert_with_rate(Decimal("10"), Decimal("2"), 1) == Decimal("20")

    @pytest.mark.parametrize("scaling", [0, -1])
    def test_non_positive_scaling_rejected(self, scaling: int) -> None:
        with pytest.raises(ValueError):
            convert_with_rate(Decimal("1"), Decimal("1"), scaling)


class TestConversions:
    def test_float_goes_through_str(self) -> None:
        assert to_decimal(0.1) == Decimal("0.1")

    def test_str_and_int(self) -> None:
        assert to_decimal("2.5") == Decimal("2.5")
        assert to_decimal(7) == Decimal(7)

    def test_quantize_native_rounds_partial_lovelace_up(self) -> None:
        assert quantize_native(Decimal("1.5")) == Decimal("1.500000")
        assert quantize_native(Decimal("0.0000001")) == Decimal("0.000001")

    def test_quantize_native_non_terminating_quotient(self) -> None:
        amount = convert_with_rate(Decimal("100"), Decimal(1) / Decimal(3), 1_000_000)
        assert quantize_native(amount) == Decimal("0.000034")
        assert quantize_native(amount).as_tuple().exponent == -6
