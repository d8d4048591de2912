"""
Invoice calculator
Project: DermaCare Client

Pure functions computing the derived monetary fields of an invoice:
subtotal, discount applied, insurance amount and patient due.

Values typed by the receptionist arrive as free text, so every input is
parsed defensively: anything non-numeric counts as zero and never
propagates as NaN.
"""

import logging
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, Union

from dermacare.schemas.invoice import (
    InvoiceTotals,
    ServiceLine,
    ServiceLineError,
    ServiceLineValidation,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")
# Largest quantity, price, discount or coverage accepted from user input
MAX_AMOUNT = Decimal("1000000000000")
# Working precision for totals, enough for MAX_AMOUNT * MAX_AMOUNT summed
TOTALS_PRECISION = 60

ServiceLike = Union[ServiceLine, Mapping[str, Any]]


def _to_decimal(raw: Any) -> Decimal:
    """
    Strict conversion used by validation.

    Raises:
        InvalidOperation: if raw is not a finite number or exceeds MAX_AMOUNT
    """
    if isinstance(raw, bool) or raw is None:
        raise InvalidOperation(f"not a number: {raw!r}")
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, (int, float)):
        value = Decimal(str(raw))
    else:
        text = str(raw).strip().replace(",", ".")
        value = Decimal(text)
    if not value.is_finite():
        raise InvalidOperation(f"not a finite number: {raw!r}")
    if abs(value) > MAX_AMOUNT:
        raise InvalidOperation(f"amount out of range: {raw!r}")
    return value


def parse_amount(raw: Any) -> Decimal:
    """
    Parses a user-entered amount.

    Empty, non-numeric, NaN, infinite and out-of-range input (beyond
    MAX_AMOUNT in absolute value) become 0.
    A comma is accepted as decimal separator.

    Args:
        raw: str, int, float, Decimal or None

    Returns:
        Decimal: parsed value (may be negative, callers clamp)
    """
    try:
        return _to_decimal(raw)
    except (InvalidOperation, ValueError):
        if raw not in (None, ""):
            logger.debug("Non-numeric amount treated as 0: %r", raw)
        return ZERO


def _field(line: ServiceLike, name: str) -> Any:
    if isinstance(line, Mapping):
        return line.get(name)
    return getattr(line, name, None)


def _line_amount(line: ServiceLike) -> Decimal:
    """quantity * unit_price with quantity >= 1 and unit_price >= 0."""
    quantity = max(Decimal("1"), parse_amount(_field(line, "quantity")))
    unit_price = max(ZERO, parse_amount(_field(line, "unit_price")))
    return quantity * unit_price


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_totals(
    services: Iterable[ServiceLike],
    discount_amount: Any = ZERO,
    insurance_coverage_percent: Any = ZERO,
) -> InvoiceTotals:
    """
    Computes all derived invoice amounts.

    Steps:
    1. subtotal = sum of quantity * unit_price
    2. discount_applied = max(0, discount), not capped at the subtotal
    3. insurance_amount = max(0, (subtotal - discount) * coverage / 100)
    4. patient_due = max(0, subtotal - discount - insurance_amount)

    A discount larger than the subtotal is not rejected: it only drives
    insurance and patient due to zero. Coverage is clamped to [0, 100].

    Args:
        services: ServiceLine models or mappings with quantity/unit_price
        discount_amount: Flat discount, raw user input accepted
        insurance_coverage_percent: Coverage percentage, raw input accepted

    Returns:
        InvoiceTotals: amounts rounded to 2 decimals (ROUND_HALF_UP)
    """
    with localcontext() as ctx:
        ctx.prec = TOTALS_PRECISION

        subtotal = sum((_line_amount(line) for line in services), ZERO)

        discount_applied = max(ZERO, parse_amount(discount_amount))

        coverage = min(HUNDRED, max(ZERO, parse_amount(insurance_coverage_percent)))
        insurance_amount = max(ZERO, (subtotal - discount_applied) * coverage / HUNDRED)
        insurance_amount = _round(insurance_amount)

        patient_due = max(ZERO, _round(subtotal) - _round(discount_applied) - insurance_amount)

        return InvoiceTotals(
            subtotal=_round(subtotal),
            discount_applied=_round(discount_applied),
            insurance_amount=insurance_amount,
            patient_due=_round(patient_due),
        )


def validate_service_line(line: ServiceLike) -> ServiceLineValidation:
    """
    Checks a service line before it is added to a draft.

    Checks run in order: quantity, price, description.

    Args:
        line: ServiceLine or mapping with description/quantity/unit_price

    Returns:
        ServiceLineValidation: valid flag and the first failing reason
    """
    try:
        quantity = _to_decimal(_field(line, "quantity"))
    except (InvalidOperation, ValueError):
        return ServiceLineValidation(valid=False, reason=ServiceLineError.INVALID_QUANTITY)
    if quantity < 1 or quantity != quantity.to_integral_value():
        return ServiceLineValidation(valid=False, reason=ServiceLineError.INVALID_QUANTITY)

    try:
        unit_price = _to_decimal(_field(line, "unit_price"))
    except (InvalidOperation, ValueError):
        return ServiceLineValidation(valid=False, reason=ServiceLineError.INVALID_PRICE)
    if unit_price < 0:
        return ServiceLineValidation(valid=False, reason=ServiceLineError.INVALID_PRICE)

    description = _field(line, "description")
    if description is None or not str(description).strip():
        return ServiceLineValidation(valid=False, reason=ServiceLineError.EMPTY_DESCRIPTION)

    return ServiceLineValidation(valid=True)
