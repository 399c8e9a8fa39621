"""
Tests for milestone commission math.

Covers:
- validate_milestone
- commissionable_amount per industry, including the 50% contract fallback
- calculate_allocation_amount percent/flat arithmetic and rounding
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from commissions.exceptions import ValidationFailure
from commissions.models.enums import Industry
from commissions.services.commission import (
    calculate_allocation_amount,
    commissionable_amount,
    to_money,
    validate_milestone,
)


def _make_sale(industry, contract_amount="10000.00", **detail):
    sale = SimpleNamespace(
        industry=industry,
        contract_amount=Decimal(contract_amount) if contract_amount is not None else None,
        solar_detail=None,
        pest_detail=None,
        roofing_detail=None,
        fiber_detail=None,
    )
    setattr(sale, f"{industry.value}_detail", SimpleNamespace(**detail))
    return sale


def _make_rate(**kwargs):
    defaults = {"percent_mp1": None, "flat_mp1": None, "percent_mp2": None, "flat_mp2": None}
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


# ── validate_milestone ────────────────────────────────────


class TestValidateMilestone:
    @pytest.mark.parametrize("milestone", [1, 2])
    def test_valid(self, milestone):
        assert validate_milestone(milestone) == milestone

    @pytest.mark.parametrize("milestone", [0, 3, -1, None, "1", True])
    def test_invalid(self, milestone):
        with pytest.raises(ValidationFailure):
            validate_milestone(milestone)

    def test_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_milestone(3)


# ── commissionable_amount ─────────────────────────────────


class TestRoofing:
    def test_receipts_used_per_milestone(self):
        sale = _make_sale(
            Industry.ROOFING,
            frontend_received_amount=Decimal("3000.00"),
            backend_received_amount=Decimal("6500.00"),
        )
        assert commissionable_amount(sale, 1) == Decimal("3000.00")
        assert commissionable_amount(sale, 2) == Decimal("6500.00")

    def test_no_receipts_falls_back_to_half_contract(self):
        sale = _make_sale(
            Industry.ROOFING,
            frontend_received_amount=None,
            backend_received_amount=None,
        )
        assert commissionable_amount(sale, 1) == Decimal("5000.00")
        # Fallback applies to each milestone independently
        assert commissionable_amount(sale, 2) == Decimal("5000.00")

    def test_end_to_end_eight_percent(self):
        """$10,000 contract, no receipts, 8% at MP1 -> $400.00."""
        sale = _make_sale(Industry.ROOFING, frontend_received_amount=None)
        base = commissionable_amount(sale, 1)
        amount = calculate_allocation_amount(base, 1, _make_rate(percent_mp1=Decimal("8")))
        assert base == Decimal("5000.00")
        assert amount == Decimal("400.00")

    def test_missing_detail_row(self):
        sale = _make_sale(Industry.ROOFING)
        sale.roofing_detail = None
        assert commissionable_amount(sale, 1) == Decimal("5000.00")


class TestSolar:
    def test_half_of_system_sold_value(self):
        sale = _make_sale(Industry.SOLAR, system_sold_value=Decimal("30000.00"))
        assert commissionable_amount(sale, 1) == Decimal("15000.00")
        assert commissionable_amount(sale, 2) == Decimal("15000.00")

    def test_contract_fallback(self):
        sale = _make_sale(Industry.SOLAR, contract_amount="8000.00", system_sold_value=None)
        assert commissionable_amount(sale, 1) == Decimal("4000.00")


class TestPest:
    def test_initial_service_at_mp1(self):
        sale = _make_sale(
            Industry.PEST,
            initial_service_price=Decimal("199.00"),
            contract_total_value=Decimal("1200.00"),
        )
        assert commissionable_amount(sale, 1) == Decimal("199.00")

    def test_remaining_value_at_mp2(self):
        sale = _make_sale(
            Industry.PEST,
            initial_service_price=Decimal("199.00"),
            contract_total_value=Decimal("1200.00"),
        )
        assert commissionable_amount(sale, 2) == Decimal("1001.00")

    def test_remaining_value_never_negative(self):
        sale = _make_sale(
            Industry.PEST,
            initial_service_price=Decimal("500.00"),
            contract_total_value=Decimal("300.00"),
        )
        assert commissionable_amount(sale, 2) == Decimal("0.00")

    def test_contract_fallback(self):
        sale = _make_sale(
            Industry.PEST,
            contract_amount="900.00",
            initial_service_price=None,
            contract_total_value=None,
        )
        assert commissionable_amount(sale, 1) == Decimal("450.00")
        assert commissionable_amount(sale, 2) == Decimal("450.00")


class TestFiber:
    def test_half_contract(self):
        sale = _make_sale(Industry.FIBER, contract_amount="120.00", isp="Acme")
        assert commissionable_amount(sale, 1) == Decimal("60.00")

    def test_no_contract_amount(self):
        sale = _make_sale(Industry.FIBER, contract_amount=None)
        assert commissionable_amount(sale, 2) == Decimal("0.00")


def test_commissionable_amount_rejects_bad_milestone():
    sale = _make_sale(Industry.FIBER)
    with pytest.raises(ValidationFailure):
        commissionable_amount(sale, 3)


# ── calculate_allocation_amount ───────────────────────────


class TestCalculateAllocationAmount:
    def test_percent_plus_flat(self):
        rate = _make_rate(percent_mp1=Decimal("10"), flat_mp1=Decimal("5"))
        assert calculate_allocation_amount(Decimal("100.00"), 1, rate) == Decimal("15.00")

    def test_uses_milestone_specific_components(self):
        rate = _make_rate(
            percent_mp1=Decimal("10"),
            flat_mp1=Decimal("5"),
            percent_mp2=Decimal("2"),
            flat_mp2=None,
        )
        assert calculate_allocation_amount(Decimal("1000.00"), 2, rate) == Decimal("20.00")

    def test_flat_only(self):
        rate = _make_rate(flat_mp2=Decimal("250"))
        assert calculate_allocation_amount(Decimal("0.00"), 2, rate) == Decimal("250.00")

    def test_no_components_is_zero(self):
        assert calculate_allocation_amount(Decimal("5000.00"), 1, _make_rate()) == Decimal("0.00")

    def test_rounds_half_up(self):
        rate = _make_rate(percent_mp1=Decimal("2.5"))
        # 1.01 * 2.5% = 0.02525 -> 0.03
        assert calculate_allocation_amount(Decimal("1.01"), 1, rate) == Decimal("0.03")

    def test_result_is_decimal(self):
        rate = _make_rate(percent_mp1=Decimal("8"))
        amount = calculate_allocation_amount(Decimal("5000.00"), 1, rate)
        assert isinstance(amount, Decimal)
        assert amount.as_tuple().exponent == -2

    def test_bad_milestone(self):
        with pytest.raises(ValidationFailure):
            calculate_allocation_amount(Decimal("100"), 0, _make_rate())


def test_to_money_float_noise():
    assert to_money(0.1 + 0.2) == Decimal("0.30")
    assert to_money(None) == Decimal("0.00")
