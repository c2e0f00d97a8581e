"""Engine configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from dex.constants import (
    BPS_DENOMINATOR,
    DEFAULT_DECIMALS,
    DEFAULT_FEE_BPS,
    DEFAULT_ROUTER_ADDRESS,
)
from dex.errors import InvalidInput
from dex.units import format_units, parse_units


@dataclass(frozen=True)
class DexConfig:
    """Centralized configuration for pools and routing.

    Attributes:
        fee_bps: Swap fee charged on input amounts, in basis points. Applied to
            every pool created without an explicit fee (default: 30 = 0.3%)
        decimals: Fractional digits of every asset amount (default: 18)
        router_address: Account the router spends allowances as
    """

    fee_bps: int = DEFAULT_FEE_BPS
    decimals: int = DEFAULT_DECIMALS
    router_address: str = DEFAULT_ROUTER_ADDRESS

    def __post_init__(self) -> None:
        try:
            validate_fee_bps(self.fee_bps)
        except InvalidInput as exc:
            raise ValueError(exc.message) from exc
        if self.decimals < 0:
            raise ValueError(f"decimals must be non-negative: {self.decimals}")
        if not self.router_address:
            raise ValueError("router_address must be non-empty")

    def parse_units(self, value: str | int | Decimal) -> int:
        """Parse a human-readable amount using the configured decimals."""
        return parse_units(value, self.decimals)

    def format_units(self, amount: int) -> str:
        """Format a fixed-point amount using the configured decimals."""
        return format_units(amount, self.decimals)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DexConfig:
        """Build a config from environment variables with sensible defaults.

        - DEX_FEE_BPS: Default pool fee in bps (default: 30)
        - DEX_DECIMALS: Fixed-point decimals (default: 18)
        - DEX_ROUTER_ADDRESS: Router account name (default: dex-router)

        Raises:
            ValueError: If a variable is not a valid integer or out of range
        """
        env = os.environ if environ is None else environ
        return cls(
            fee_bps=int(env.get("DEX_FEE_BPS", str(DEFAULT_FEE_BPS))),
            decimals=int(env.get("DEX_DECIMALS", str(DEFAULT_DECIMALS))),
            router_address=env.get("DEX_ROUTER_ADDRESS", DEFAULT_ROUTER_ADDRESS),
        )


def validate_fee_bps(fee_bps: int) -> int:
    """Check that a fee leaves a non-zero share of the input for pricing.

    Raises:
        InvalidInput: If fee_bps is not an int in [0, 10000)
    """
    if not isinstance(fee_bps, int) or isinstance(fee_bps, bool):
        raise InvalidInput(f"fee_bps must be an int, got {type(fee_bps).__name__}")
    if not 0 <= fee_bps < BPS_DENOMINATOR:
        raise InvalidInput(f"fee_bps must be in [0, {BPS_DENOMINATOR}): {fee_bps}")
    return fee_bps


# Default configuration instance
DEFAULT_CONFIG = DexConfig()
