"""Constant-product pricing.

Pools price trades with x * y = k and keep a fee on the input amount:

    amount_out = (in * (10000 - fee) * res_out) / (res_in * 10000 + in * (10000 - fee))

Outputs round down and required inputs round up, so no rounding error can
move value out of a pool.
"""

from __future__ import annotations

from collections.abc import Sequence

from dex.config import validate_fee_bps
from dex.constants import BPS_DENOMINATOR, DEFAULT_FEE_BPS
from dex.errors import InsufficientLiquidity, InvalidInput
from dex.safe_int import S, mul_div


class QuoteCalculator:
    """Stateless constant-product math.

    Every method is pure: reserves are passed in, nothing is cached.
    """

    @staticmethod
    def fee_multiplier(fee_bps: int) -> int:
        """Share of the input that is priced (10000 - fee_bps).

        For 30 bps this returns 9970.
        """
        return BPS_DENOMINATOR - validate_fee_bps(fee_bps)

    def amount_out(
        self,
        amount_in: int,
        reserve_in: int,
        reserve_out: int,
        fee_bps: int = DEFAULT_FEE_BPS,
    ) -> int:
        """Calculate output for an exact input, rounded down.

        Args:
            amount_in: Input asset amount
            reserve_in: Pool reserve of the input asset
            reserve_out: Pool reserve of the output asset
            fee_bps: Pool fee in basis points

        Returns:
            Output asset amount

        Raises:
            InvalidInput: If any argument is not positive
        """
        if amount_in <= 0:
            raise InvalidInput(f"amount_in must be positive: {amount_in}")
        if reserve_in <= 0 or reserve_out <= 0:
            raise InvalidInput(f"Reserves must be positive: ({reserve_in}, {reserve_out})")

        amount_in_with_fee = S(amount_in) * self.fee_multiplier(fee_bps)
        numerator = amount_in_with_fee * S(reserve_out)
        denominator = S(reserve_in) * BPS_DENOMINATOR + amount_in_with_fee
        return (numerator // denominator).value

    def amount_in(
        self,
        amount_out: int,
        reserve_in: int,
        reserve_out: int,
        fee_bps: int = DEFAULT_FEE_BPS,
    ) -> int:
        """Calculate the input needed for an exact output, rounded up.

        Formula: ceil(res_in * out * 10000 / ((res_out - out) * (10000 - fee)))

        Raises:
            InvalidInput: If any argument is not positive
            InsufficientLiquidity: If amount_out would drain the output reserve
        """
        if amount_out <= 0:
            raise InvalidInput(f"amount_out must be positive: {amount_out}")
        if reserve_in <= 0 or reserve_out <= 0:
            raise InvalidInput(f"Reserves must be positive: ({reserve_in}, {reserve_out})")
        if amount_out >= reserve_out:
            raise InsufficientLiquidity(
                f"Requested {amount_out} but output reserve is {reserve_out}"
            )

        numerator = S(reserve_in) * S(amount_out) * BPS_DENOMINATOR
        denominator = (S(reserve_out) - S(amount_out)) * self.fee_multiplier(fee_bps)
        return numerator.ceiling_div(denominator).value

    def quote(self, amount_a: int, reserve_a: int, reserve_b: int) -> int:
        """Amount of B worth amount_a of A at the current reserve ratio (no fee).

        Raises:
            InvalidInput: If amount_a is not positive
            InsufficientLiquidity: If either reserve is empty
        """
        if amount_a <= 0:
            raise InvalidInput(f"amount_a must be positive: {amount_a}")
        if reserve_a <= 0 or reserve_b <= 0:
            raise InsufficientLiquidity(f"Reserves must be positive: ({reserve_a}, {reserve_b})")
        return mul_div(amount_a, reserve_b, reserve_a).value

    def quote_path(
        self,
        amount_in: int,
        reserves: Sequence[tuple[int, int]],
        fee_bps: int | Sequence[int] = DEFAULT_FEE_BPS,
    ) -> list[int]:
        """Chain amount_out across hops.

        Args:
            amount_in: Input to the first hop
            reserves: (reserve_in, reserve_out) for each hop, in route order
            fee_bps: One fee for every hop, or one per hop

        Returns:
            Amounts of length len(reserves) + 1, starting with amount_in
        """
        fees = _fees_per_hop(fee_bps, len(reserves))
        amounts = [amount_in]
        for (reserve_in, reserve_out), fee in zip(reserves, fees, strict=True):
            amounts.append(self.amount_out(amounts[-1], reserve_in, reserve_out, fee))
        return amounts

    def quote_path_in(
        self,
        amount_out: int,
        reserves: Sequence[tuple[int, int]],
        fee_bps: int | Sequence[int] = DEFAULT_FEE_BPS,
    ) -> list[int]:
        """Chain amount_in backwards from the final output.

        Returns:
            Amounts of length len(reserves) + 1, ending with amount_out
        """
        fees = _fees_per_hop(fee_bps, len(reserves))
        amounts = [0] * len(reserves) + [amount_out]
        for i in range(len(reserves) - 1, -1, -1):
            reserve_in, reserve_out = reserves[i]
            amounts[i] = self.amount_in(amounts[i + 1], reserve_in, reserve_out, fees[i])
        return amounts


def _fees_per_hop(fee_bps: int | Sequence[int], hops: int) -> list[int]:
    if isinstance(fee_bps, int):
        return [fee_bps] * hops
    fees = list(fee_bps)
    if len(fees) != hops:
        raise InvalidInput(f"Expected {hops} fees, got {len(fees)}")
    return fees


# Singleton instance
quote_calculator = QuoteCalculator()


__all__ = ["QuoteCalculator", "quote_calculator"]
