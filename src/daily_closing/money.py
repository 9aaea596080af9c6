"""Money helpers: rounding and VAT decomposition."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any

VAT_RATE = Decimal("0.15")
CENT = Decimal("0.01")
ZERO = Decimal("0")

# Amounts with more digits than this, either side of the point, count as unparseable.
MAX_DIGITS = 100


def _parse(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(repr(value))
    text = str(value).strip().replace(",", "")
    if not text:
        return ZERO
    try:
        return Decimal(text)
    except InvalidOperation:
        return ZERO


def to_decimal(value: Any) -> Decimal:
    """Coerce a form or stored value to a finite Decimal.

    Floats go through ``str`` so that binary drift (``0.1 + 0.2``) does not
    leak into the decimal value. ``None``, blanks, unparseable strings and
    non-finite values (``"nan"``, ``"Infinity"``, ``float("inf")``) count as
    zero, as do values needing more than ``MAX_DIGITS`` digits.
    """
    if value is None:
        return ZERO
    amount = _parse(value)
    if not amount.is_finite() or amount.is_zero():
        return ZERO
    if abs(amount.adjusted()) >= MAX_DIGITS or len(amount.as_tuple().digits) > MAX_DIGITS:
        return ZERO
    return amount


def round_money(value: Any) -> Decimal:
    """Round to two decimal places, half away from zero.

    Idempotent: ``round_money(round_money(x)) == round_money(x)``. Never
    raises; the quantize runs with enough precision for any accepted amount.
    """
    amount = to_decimal(value)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_tax(amount: Any, rate: Any = VAT_RATE) -> Decimal:
    """Return the VAT due on ``amount`` at ``rate``."""
    return round_money(to_decimal(amount) * to_decimal(rate))


def calculate_net_from_gross(gross: Any, rate: Any = VAT_RATE) -> Decimal:
    """Extract the pre-VAT amount from a VAT-inclusive gross.

    Only an approximate inverse of adding tax: callers must tolerate one
    cent of slack. A rate of -100% has no inverse and yields 0.
    """
    divisor = 1 + to_decimal(rate)
    if divisor == 0:
        return round_money(ZERO)
    return round_money(to_decimal(gross) / divisor)


def split_vat(total: Any, rate: Any = VAT_RATE, exempt: bool = False) -> tuple[Decimal, Decimal]:
    """Split a VAT-inclusive total into ``(net, vat)``."""
    amount = round_money(total)
    if exempt:
        return amount, ZERO.quantize(CENT)
    net = calculate_net_from_gross(amount, rate)
    return net, round_money(amount - net)


def money_sum(values: Any) -> Decimal:
    """Sum monetary values and round the result once."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return round_money(total)
