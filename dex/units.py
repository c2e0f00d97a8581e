"""Conversion between human-readable decimals and fixed-point amounts.

All amounts inside the engine are integers with ``decimals`` fractional
digits (18 by default). These helpers convert at the edges using a
high-precision Decimal context so uint256-sized values never round.
"""

from __future__ import annotations

import decimal
from decimal import Decimal

from dex.constants import DEFAULT_DECIMALS, UINT256_MAX

# 78 digits of precision, enough for uint256 values (up to ~10^77)
DECIMAL_HIGH_PREC_CONTEXT = decimal.Context(prec=78)


def parse_units(value: str | int | Decimal, decimals: int = DEFAULT_DECIMALS) -> int:
    """Parse a decimal amount into its fixed-point integer.

    ``parse_units("1.5")`` returns ``1_500_000_000_000_000_000``.

    Raises:
        ValueError: If the value is negative, not a number, has more
            fractional digits than ``decimals``, or exceeds uint256
    """
    if isinstance(value, float):
        raise ValueError("Floats are not accepted, pass a string or Decimal")
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except decimal.InvalidOperation as err:
        raise ValueError(f"Not a decimal amount: {value!r}") from err
    if not amount.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    if amount < 0:
        raise ValueError(f"Amount cannot be negative: {value}")

    with decimal.localcontext(DECIMAL_HIGH_PREC_CONTEXT):
        scaled = amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{value} has more than {decimals} fractional digits")
        result = int(scaled)

    if result > UINT256_MAX:
        raise ValueError(f"Amount exceeds uint256: {value}")
    return result


def format_units(amount: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Format a fixed-point integer as a plain decimal string.

    Trailing fractional zeros are dropped; whole numbers render without a
    decimal point (``format_units(10**18) == "1"``).
    """
    if amount < 0:
        raise ValueError(f"Amount cannot be negative: {amount}")
    whole, fraction = divmod(amount, 10**decimals)
    if fraction == 0:
        return str(whole)
    digits = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{digits}"


__all__ = [
    "DECIMAL_HIGH_PREC_CONTEXT",
    "parse_units",
    "format_units",
]
