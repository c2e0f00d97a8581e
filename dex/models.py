"""Pydantic models for exporting and restoring ledger state.

Amounts are plain ints in Python and serialize to JSON as decimal strings,
so 256-bit values survive clients whose numbers are IEEE doubles.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer

from dex.constants import UINT256_MAX


def validate_amount(value: Any) -> int:
    """Validate that a value is a non-negative uint256 amount.

    Args:
        value: Amount as int or decimal string

    Returns:
        The amount as int

    Raises:
        ValueError: If value is not a non-negative integer within uint256 range
    """
    if isinstance(value, bool):
        raise ValueError("Amount must be an integer, got bool")
    if isinstance(value, str):
        try:
            value = int(value)
        except ValueError as err:
            raise ValueError(f"Amount must be a decimal integer string: '{value}'") from err
    if not isinstance(value, int):
        raise ValueError(f"Amount must be string or int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"Amount cannot be negative: {value}")
    if value > UINT256_MAX:
        raise ValueError(f"Amount overflow: {value} > 2^256-1")
    return value


# Non-negative 256-bit amount (decimal string on the wire)
Amount = Annotated[
    int,
    BeforeValidator(validate_amount),
    PlainSerializer(str, return_type=str, when_used="json"),
    Field(description="Fixed-point amount, decimal string in JSON"),
]


class AllowanceEntry(BaseModel):
    """Amount a spender may move on behalf of an owner.

    ``asset`` is None for pool share allowances.
    """

    owner: str
    spender: str
    amount: Amount
    asset: str | None = None


class BalanceEntry(BaseModel):
    """One account's balance of one asset."""

    asset: str
    owner: str
    amount: Amount


class PoolSnapshot(BaseModel):
    """Point-in-time state of a single pool."""

    pool_id: str = Field(alias="poolId")
    asset_a: str = Field(alias="assetA")
    asset_b: str = Field(alias="assetB")
    fee_bps: int = Field(alias="feeBps", ge=0, lt=10_000)
    reserve_a: Amount = Field(alias="reserveA")
    reserve_b: Amount = Field(alias="reserveB")
    total_shares: Amount = Field(alias="totalShares")
    shares: dict[str, Amount] = Field(default_factory=dict)
    share_allowances: list[AllowanceEntry] = Field(
        default_factory=list, alias="shareAllowances"
    )

    model_config = {"populate_by_name": True}


class LedgerSnapshot(BaseModel):
    """Full engine state: pools in registration order plus token ledger."""

    pools: list[PoolSnapshot] = Field(default_factory=list)
    balances: list[BalanceEntry] = Field(default_factory=list)
    allowances: list[AllowanceEntry] = Field(default_factory=list)


__all__ = [
    "Amount",
    "validate_amount",
    "AllowanceEntry",
    "BalanceEntry",
    "PoolSnapshot",
    "LedgerSnapshot",
]
