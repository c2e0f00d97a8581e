"""Checked integer arithmetic for reserves, shares and amounts.

SafeInt wraps a Python int so that the pricing and pool code cannot silently
produce a value a ledger could never hold:
- Division by zero raises DivisionByZero
- Subtraction below zero raises Underflow
- Values outside uint256 raise Uint256Overflow on to_uint256()

Usage pattern:
    from dex.safe_int import S

    def share_value(shares: int, reserve: int, total: int) -> int:
        return (S(shares) * S(reserve) // S(total)).value

The module-level helpers (isqrt, mul_div, mul_div_up) cover the rounding
conventions the engine relies on: floor when paying out, ceiling when
charging the caller.
"""

from __future__ import annotations

import math

from dex.constants import UINT256_MAX


class SafeIntError(ArithmeticError):
    """Base class for SafeInt arithmetic errors."""

    pass


class DivisionByZero(SafeIntError):
    """Division by zero."""

    pass


class Underflow(SafeIntError):
    """Subtraction would produce a negative amount."""

    pass


class Uint256Overflow(SafeIntError):
    """Amount is negative or exceeds uint256."""

    pass


class SafeInt:
    """Non-negative integer amount with checked operators.

    Attributes:
        value: The underlying integer value (read-only)
    """

    __slots__ = ("_value",)
    _value: int

    def __init__(self, value: int | SafeInt) -> None:
        if isinstance(value, SafeInt):
            self._value = value._value
        elif isinstance(value, int) and not isinstance(value, bool):
            self._value = value
        else:
            raise TypeError(f"SafeInt requires int, got {type(value).__name__}")

    @property
    def value(self) -> int:
        """The underlying integer value."""
        return self._value

    def __repr__(self) -> str:
        return f"SafeInt({self._value})"

    def __hash__(self) -> int:
        return hash(self._value)

    # --- Arithmetic ---

    def __add__(self, other: SafeInt | int) -> SafeInt:
        return SafeInt(self._value + _extract_value(other))

    __radd__ = __add__

    def __sub__(self, other: SafeInt | int) -> SafeInt:
        """Subtract other from self.

        Raises:
            Underflow: If result would be negative
        """
        other_val = _extract_value(other)
        result = self._value - other_val
        if result < 0:
            raise Underflow(f"Underflow: {self._value} - {other_val} = {result}")
        return SafeInt(result)

    def __rsub__(self, other: int) -> SafeInt:
        return SafeInt(other) - self

    def __mul__(self, other: SafeInt | int) -> SafeInt:
        return SafeInt(self._value * _extract_value(other))

    __rmul__ = __mul__

    def __floordiv__(self, other: SafeInt | int) -> SafeInt:
        """Floor division.

        Raises:
            DivisionByZero: If other is zero
        """
        other_val = _extract_value(other)
        if other_val == 0:
            raise DivisionByZero(f"Division by zero: {self._value} // 0")
        return SafeInt(self._value // other_val)

    def ceiling_div(self, other: SafeInt | int) -> SafeInt:
        """Ceiling division for non-negative operands.

        Raises:
            DivisionByZero: If other is zero
        """
        other_val = _extract_value(other)
        if other_val == 0:
            raise DivisionByZero(f"Ceiling division by zero: {self._value}")
        return SafeInt(-(-self._value // other_val))

    # --- Comparison ---

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SafeInt):
            return self._value == other._value
        if isinstance(other, int):
            return self._value == other
        return NotImplemented

    def __lt__(self, other: SafeInt | int) -> bool:
        return self._value < _extract_value(other)

    def __le__(self, other: SafeInt | int) -> bool:
        return self._value <= _extract_value(other)

    def __gt__(self, other: SafeInt | int) -> bool:
        return self._value > _extract_value(other)

    def __ge__(self, other: SafeInt | int) -> bool:
        return self._value >= _extract_value(other)

    # --- Conversion ---

    def __int__(self) -> int:
        return self._value

    def __bool__(self) -> bool:
        return self._value != 0

    def min(self, other: SafeInt | int) -> SafeInt:
        """Return minimum of self and other."""
        return SafeInt(min(self._value, _extract_value(other)))

    def to_uint256(self) -> int:
        """Convert to int, validating uint256 bounds.

        Raises:
            Uint256Overflow: If value is negative or exceeds 2^256-1
        """
        if self._value < 0:
            raise Uint256Overflow(f"Negative value cannot be uint256: {self._value}")
        if self._value > UINT256_MAX:
            raise Uint256Overflow(f"Value exceeds uint256 max: {self._value}")
        return self._value


def _extract_value(x: SafeInt | int) -> int:
    if isinstance(x, SafeInt):
        return x._value
    return x


def isqrt(value: SafeInt | int) -> SafeInt:
    """Floor square root of a non-negative amount.

    Raises:
        Underflow: If value is negative
    """
    raw = _extract_value(value)
    if raw < 0:
        raise Underflow(f"Square root of negative value: {raw}")
    return SafeInt(math.isqrt(raw))


def mul_div(a: SafeInt | int, b: SafeInt | int, denominator: SafeInt | int) -> SafeInt:
    """floor(a * b / denominator) without intermediate rounding."""
    return (S(a) * S(b)) // S(denominator)


def mul_div_up(a: SafeInt | int, b: SafeInt | int, denominator: SafeInt | int) -> SafeInt:
    """ceil(a * b / denominator) without intermediate rounding."""
    return (S(a) * S(b)).ceiling_div(S(denominator))


# Convenience alias for concise code
S = SafeInt
