"""
Discount Calculation
Unit-driven checkout discounts and proportional money splits
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence, Tuple

from app.core.exceptions import ValidationError


CENT = Decimal("0.01")

# Discount value per hospital unit or payer.
# Negative values are flat amounts off the bill, others are percentages.
UNIT_DISCOUNTS: Dict[str, Decimal] = {
    "TCN": Decimal("100"),
    "Director": Decimal("100"),
    "Sacred Heart": Decimal("100"),
    "NHIS": Decimal("10"),
    "Staff": Decimal("-3000"),
    "Student": Decimal("-3000"),
    "Ultrasound": Decimal("0"),
    "CT scan": Decimal("0"),
    "Labour Ward": Decimal("0"),
    "Theatre": Decimal("0"),
    "ANC": Decimal("0"),
    "Male Ward": Decimal("0"),
    "Female Ward": Decimal("0"),
    "PostNatal": Decimal("0"),
    "Sick Prenatal": Decimal("0"),
    "St Anthony": Decimal("0"),
    "Assumpta": Decimal("0"),
    "Chi Ward": Decimal("0"),
    "SCBU": Decimal("0"),
    "Chest": Decimal("0"),
    "OPCD": Decimal("0"),
    "A&E PATIENT": Decimal("0"),
    "A&E REQUEST": Decimal("0"),
}

_UNIT_LOOKUP = {name.lower(): value for name, value in UNIT_DISCOUNTS.items()}


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def unit_discount(unit: Optional[str]) -> Decimal:
    """Default discount for a unit; unknown units get none"""
    if not unit:
        return Decimal("0")
    return _UNIT_LOOKUP.get(unit.strip().lower(), Decimal("0"))


def calculate_discount(
    subtotal: Decimal,
    discount: Optional[Decimal] = None,
    unit: Optional[str] = None
) -> Tuple[Decimal, Decimal]:
    """
    Work out the discount for a checkout.

    A negative discount is a flat amount, anything else is a percentage of
    the subtotal. Without an explicit discount the unit's default applies.
    The amount never exceeds the subtotal.

    Returns:
        Tuple of (discount_amount, total)
    """
    subtotal = to_money(subtotal)
    value = Decimal(discount) if discount is not None else unit_discount(unit)

    if value < 0:
        amount = abs(value)
    else:
        if value > 100:
            raise ValidationError("Percentage discount cannot exceed 100")
        amount = subtotal * value / Decimal("100")

    amount = min(to_money(amount), subtotal)
    return amount, subtotal - amount


def split_proportionally(amount: Decimal, weights: Sequence[Decimal]) -> List[Decimal]:
    """
    Split amount across weights, to the cent.

    Uses cumulative rounding so the parts always sum to the amount and no
    part exceeds its weight when amount <= sum(weights).
    """
    if not weights:
        return []

    total = sum((Decimal(w) for w in weights), Decimal("0"))
    if total <= 0:
        parts = [Decimal("0.00")] * len(weights)
        parts[-1] = to_money(amount)
        return parts

    parts: List[Decimal] = []
    running = Decimal("0")
    allocated = Decimal("0.00")
    for weight in weights:
        running += Decimal(weight)
        upto = to_money(amount * running / total)
        parts.append(upto - allocated)
        allocated = upto

    # Last part absorbs whatever rounding left over
    parts[-1] += to_money(amount) - allocated
    return parts
