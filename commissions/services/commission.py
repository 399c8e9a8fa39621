"""
Milestone commission math.

Rules:
- MP1 and MP2 are the only milestones
- Commissionable amount comes from the industry detail, falling back to
  50% of the contract amount when the milestone figure is unknown
- Payout = commissionable amount x percent / 100 + flat, rounded half-up
  to cents

Everything here is pure: no I/O, no mutation of the sale or rate.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from commissions.exceptions import ValidationFailure
from commissions.models.enums import Industry

MILESTONES = (1, 2)
CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Share of the contract amount used when a milestone figure is missing
DEFAULT_MILESTONE_SHARE = Decimal("0.5")

MILESTONE_NAMES = {
    1: "MP1 (Approved)",
    2: "MP2 (Completed)",
}


def validate_milestone(milestone_number: Any) -> int:
    """Return the milestone number or raise ValidationFailure."""
    if isinstance(milestone_number, bool) or milestone_number not in MILESTONES:
        raise ValidationFailure(
            "Milestone must be 1 (MP1) or 2 (MP2)",
            {"milestone": milestone_number},
        )
    return int(milestone_number)


def to_money(value: Any) -> Decimal:
    """Coerce a number to a Decimal rounded half-up to cents.

    Floats go through str() so binary noise never reaches the result.
    """
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _half_contract(sale: Any) -> Decimal:
    contract = _decimal(sale.contract_amount) or Decimal("0")
    return contract * DEFAULT_MILESTONE_SHARE


def _roofing_amount(sale: Any, detail: Any, milestone_number: int) -> Decimal:
    # MP1 is paid on the frontend receipt, MP2 on the backend receipt
    field = "frontend_received_amount" if milestone_number == 1 else "backend_received_amount"
    received = _decimal(getattr(detail, field, None)) if detail is not None else None
    if received is not None:
        return received
    return _half_contract(sale)


def _solar_amount(sale: Any, detail: Any, milestone_number: int) -> Decimal:
    sold_value = _decimal(getattr(detail, "system_sold_value", None)) if detail is not None else None
    if sold_value is not None:
        return sold_value * DEFAULT_MILESTONE_SHARE
    return _half_contract(sale)


def _pest_amount(sale: Any, detail: Any, milestone_number: int) -> Decimal:
    initial = _decimal(getattr(detail, "initial_service_price", None)) if detail is not None else None
    total = _decimal(getattr(detail, "contract_total_value", None)) if detail is not None else None

    if milestone_number == 1 and initial is not None:
        return initial
    if milestone_number == 2 and initial is not None and total is not None:
        return max(total - initial, Decimal("0"))
    return _half_contract(sale)


def _fiber_amount(sale: Any, detail: Any, milestone_number: int) -> Decimal:
    return _half_contract(sale)


_INDUSTRY_RULES = {
    Industry.ROOFING: _roofing_amount,
    Industry.SOLAR: _solar_amount,
    Industry.PEST: _pest_amount,
    Industry.FIBER: _fiber_amount,
}


def commissionable_amount(sale: Any, milestone_number: int) -> Decimal:
    """Calculate the dollar base subject to commission for a milestone.

    Args:
        sale: A Sale (or any object with industry, contract_amount and
            the matching <industry>_detail attribute)
        milestone_number: 1 (MP1) or 2 (MP2)

    Returns:
        Commissionable amount as a Decimal rounded to cents
    """
    milestone_number = validate_milestone(milestone_number)
    industry = Industry(sale.industry)
    detail = getattr(sale, f"{industry.value}_detail", None)
    rule = _INDUSTRY_RULES[industry]
    return to_money(rule(sale, detail, milestone_number))


def calculate_allocation_amount(
    commissionable: Decimal,
    milestone_number: int,
    rate: Any,
) -> Decimal:
    """Calculate the payout for one rate at one milestone.

    A missing percent or flat component counts as zero.

    Args:
        commissionable: Commissionable amount for the milestone
        milestone_number: 1 (MP1) or 2 (MP2)
        rate: CommissionRate (or any object with percent_mpN / flat_mpN)

    Returns:
        Payout as a Decimal, rounded half-up to cents
    """
    milestone_number = validate_milestone(milestone_number)
    percent = _decimal(getattr(rate, f"percent_mp{milestone_number}", None))
    flat = _decimal(getattr(rate, f"flat_mp{milestone_number}", None))

    base = _decimal(commissionable) or Decimal("0")
    percent_amount = base * percent / Decimal("100") if percent is not None else Decimal("0")
    flat_amount = flat if flat is not None else Decimal("0")

    return to_money(percent_amount + flat_amount)
